"""Storage for finalized projects."""

from .interface import ProjectStore
from .local import LocalProjectStore, slugify

__all__ = ["ProjectStore", "LocalProjectStore", "slugify"]
