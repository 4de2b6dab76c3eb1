"""
Local filesystem project store.

Each project lives in its own directory under the base path: the generated
files at their project-relative paths, plus ``.webforge/metadata.json``
recording the finalize metadata and a SHA-256 per file.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

import aiofiles

from ..core.exceptions import PathTraversalError
from ..core.logging import get_logger
from ..core.types import utcnow
from ..models.project import Project, ProjectMetadata, normalize_project_path
from .interface import ProjectStore

logger = get_logger(__name__)

METADATA_DIR = ".webforge"
METADATA_FILE = "metadata.json"


def slugify(key: str) -> str:
    slug = re.sub(r"[^a-z0-9._-]+", "-", key.strip().lower()).strip("-.")
    return slug or "project"


class LocalProjectStore(ProjectStore):
    """Local filesystem project store."""

    def __init__(self, base_path: Path) -> None:
        """Initialize local storage.

        Args:
            base_path: Base directory for all stored projects
        """
        self.base_path = base_path.resolve()

    def _project_root(self, key: str) -> Path:
        return self.base_path / slugify(key)

    def _metadata_path(self, key: str) -> Path:
        return self._project_root(key) / METADATA_DIR / METADATA_FILE

    def _file_path(self, root: Path, path: str) -> Path:
        """Absolute location for a project path, refusing anything outside root."""
        safe = normalize_project_path(path)
        full_path = root.joinpath(*safe.split("/")).resolve()
        try:
            full_path.relative_to(root.resolve())
        except ValueError:
            raise PathTraversalError(message="Path escapes the project directory", path=path)
        return full_path

    async def save_project(self, key: str, project: Project, metadata: ProjectMetadata | None = None) -> str:
        """Write all files, then the metadata record."""
        root = self._project_root(key)
        records: list[dict[str, Any]] = []
        for file in project.files:
            full_path = self._file_path(root, file.path)
            full_path.parent.mkdir(parents=True, exist_ok=True)
            data = file.content.encode("utf-8")
            async with aiofiles.open(full_path, "wb") as f:
                await f.write(data)
            records.append(
                {
                    "path": file.path,
                    "language": file.language,
                    "sizeBytes": len(data),
                    "sha256": self.compute_hash(data),
                }
            )

        meta_path = self._metadata_path(key)
        meta_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "key": slugify(key),
            "storedAt": utcnow().isoformat(),
            "metadata": metadata.to_wire() if metadata else None,
            "files": records,
        }
        async with aiofiles.open(meta_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(payload, indent=2))

        logger.info("Project stored", key=slugify(key), files=len(records), path=str(root))
        return slugify(key)

    def get_local_path(self, key: str) -> Path | None:
        root = self._project_root(key)
        return root if root.exists() else None
