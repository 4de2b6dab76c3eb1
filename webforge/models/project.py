"""
Generated project models.

A Project is an immutable, path-keyed set of GeneratedFile values. Builder and
policy passes never patch a project in place; they produce a new one.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Iterable

from pydantic import Field, field_validator, model_validator

from ..core.exceptions import PathTraversalError
from .base import FrozenWireModel

_DRIVE_LETTER = re.compile(r"^[A-Za-z]:")

LANGUAGE_BY_EXTENSION = {
    "html": "html",
    "htm": "html",
    "css": "css",
    "js": "javascript",
    "mjs": "javascript",
    "cjs": "javascript",
    "jsx": "jsx",
    "ts": "typescript",
    "tsx": "tsx",
    "json": "json",
    "md": "markdown",
}


def normalize_project_path(raw: str) -> str:
    """Normalize a generated path into a safe project-relative path.

    Backslashes become forward slashes, ``.`` and empty segments are dropped.

    Raises:
        PathTraversalError: If the path is absolute, carries a drive letter,
            contains a ``..`` segment, or is empty after normalization.
    """
    candidate = raw.strip().replace("\\", "/")
    if candidate.startswith("/") or _DRIVE_LETTER.match(candidate):
        raise PathTraversalError(message="absolute paths are not allowed", path=raw)
    parts = [part for part in candidate.split("/") if part not in ("", ".")]
    if ".." in parts:
        raise PathTraversalError(message="parent directory segments are not allowed", path=raw)
    if not parts:
        raise PathTraversalError(message="path is empty", path=raw)
    return "/".join(parts)


def language_for_path(path: str) -> str:
    """Language tag derived from the file extension."""
    extension = path.rsplit(".", 1)[-1].lower() if "." in path else ""
    return LANGUAGE_BY_EXTENSION.get(extension, "plaintext")


class GeneratedFile(FrozenWireModel):
    """One generated source file."""

    path: str
    content: str
    language: str = ""

    @field_validator("path")
    @classmethod
    def _safe_path(cls, value: str) -> str:
        try:
            return normalize_project_path(value)
        except PathTraversalError as e:
            raise ValueError(str(e)) from e

    @model_validator(mode="before")
    @classmethod
    def _default_language(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("language") and isinstance(data.get("path"), str):
            return {**data, "language": language_for_path(data["path"].replace("\\", "/"))}
        return data


class Project(FrozenWireModel):
    """Immutable set of generated files keyed by unique path."""

    files: tuple[GeneratedFile, ...] = Field(default_factory=tuple)

    @field_validator("files")
    @classmethod
    def _unique_paths(cls, value: tuple[GeneratedFile, ...]) -> tuple[GeneratedFile, ...]:
        paths = [f.path for f in value]
        if len(paths) != len(set(paths)):
            raise ValueError("duplicate file paths in project")
        return value

    @classmethod
    def from_files(cls, files: Iterable[GeneratedFile]) -> Project:
        """Build a project; when paths repeat, the last file wins."""
        by_path: dict[str, GeneratedFile] = {}
        for generated in files:
            by_path[generated.path] = generated
        return cls(files=tuple(by_path.values()))

    @classmethod
    def from_mapping(cls, mapping: dict[str, str]) -> Project:
        return cls.from_files(GeneratedFile(path=p, content=c) for p, c in mapping.items())

    def get(self, path: str) -> GeneratedFile | None:
        for generated in self.files:
            if generated.path == path:
                return generated
        return None

    def content_of(self, path: str) -> str | None:
        generated = self.get(path)
        return generated.content if generated else None

    def has(self, path: str) -> bool:
        return self.get(path) is not None

    @property
    def paths(self) -> list[str]:
        return [f.path for f in self.files]

    def with_file(self, path: str, content: str) -> Project:
        """New project with one file added or replaced."""
        return Project.from_files([*self.files, GeneratedFile(path=path, content=content)])

    def as_dict(self) -> dict[str, str]:
        return {f.path: f.content for f in self.files}

    @property
    def total_size(self) -> int:
        return sum(len(f.content) for f in self.files)

    def __len__(self) -> int:
        return len(self.files)


class PackageManifest(FrozenWireModel):
    """Normalized dependency manifest for a generated project."""

    framework: str
    entry: str
    scripts: dict[str, str] = Field(default_factory=dict)
    dependencies: dict[str, str] = Field(default_factory=dict)
    dev_dependencies: dict[str, str] = Field(default_factory=dict)

    @property
    def has_build_script(self) -> bool:
        return bool(self.scripts.get("build"))


class PreviewRuntime(str, Enum):
    """Preview execution strategies."""

    STATIC = "static"
    BUNDLED = "bundled"
    REMOTE = "remote"


class RuntimeHint(FrozenWireModel):
    """Which preview runtime suits the project's complexity."""

    preferred_runtime: PreviewRuntime
    fallback_runtime: PreviewRuntime
    reason: str
    complexity_score: int = Field(ge=0, le=100)


class ResponsiveReport(FrozenWireModel):
    """Responsive readiness for the standard viewports."""

    passed: bool
    warnings: list[str] = Field(default_factory=list)
    checked_viewports: list[int] = Field(default_factory=lambda: [375, 768, 1280])


class ProjectMetadata(FrozenWireModel):
    """Metadata streamed once after all files at finalize."""

    name: str
    description: str
    framework: str
    created_at: str
    runtime_hint: RuntimeHint | None = None
    package_manifest: PackageManifest | None = None
    responsive_report: ResponsiveReport | None = None
    visual_score: int | None = None
    accepted: bool | None = None
    retries_used: int = 0
    total_cost_usd: float = 0.0
    notes: list[str] = Field(default_factory=list)
