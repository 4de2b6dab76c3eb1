"""Project builder service."""

from .service import ProjectBuilderService

__all__ = ["ProjectBuilderService"]
