"""
Project store interface.

Defines the abstract interface for persisting finalized generations, so the
CLI (or any other collaborator) can swap the local filesystem for another
backend.
"""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from pathlib import Path

from ..models.project import Project, ProjectMetadata


class ProjectStore(ABC):
    """Abstract store for generated projects keyed by a slug."""

    @abstractmethod
    async def save_project(self, key: str, project: Project, metadata: ProjectMetadata | None = None) -> str:
        """Persist every file of a project plus its metadata.

        Args:
            key: Project key (directory name for local storage)
            project: File set to write
            metadata: Optional finalize metadata

        Returns:
            The final storage key
        """
        ...

    @staticmethod
    def compute_hash(data: bytes) -> str:
        """Compute SHA-256 hash of data."""
        return hashlib.sha256(data).hexdigest()

    @abstractmethod
    def get_local_path(self, key: str) -> Path | None:
        """Get local filesystem path if available."""
        ...
