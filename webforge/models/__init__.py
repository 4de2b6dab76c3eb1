"""Domain models for WebForge."""

from .design import ComponentSpec, DesignSpec, FilePlanEntry, LayoutSpec, VisualSystem
from .events import EventType, GenerationEvent, StreamChunk
from .project import (
    GeneratedFile,
    PackageManifest,
    PreviewRuntime,
    Project,
    ProjectMetadata,
    ResponsiveReport,
    RuntimeHint,
    language_for_path,
    normalize_project_path,
)
from .quality import QualityReport, RuntimeBuildValidationResult, RuntimePhase
from .reference import ReferenceBundle, ReferenceScreenshot, UrlReference
from .request import (
    AIConfig,
    AIProvider,
    GenerationConstraints,
    GenerationRequest,
    OutputStack,
    QualityMode,
    UploadedImage,
)

__all__ = [
    # Request
    "AIConfig",
    "AIProvider",
    "GenerationConstraints",
    "GenerationRequest",
    "OutputStack",
    "QualityMode",
    "UploadedImage",
    # References
    "ReferenceBundle",
    "ReferenceScreenshot",
    "UrlReference",
    # Design
    "ComponentSpec",
    "DesignSpec",
    "FilePlanEntry",
    "LayoutSpec",
    "VisualSystem",
    # Project
    "GeneratedFile",
    "PackageManifest",
    "PreviewRuntime",
    "Project",
    "ProjectMetadata",
    "ResponsiveReport",
    "RuntimeHint",
    "language_for_path",
    "normalize_project_path",
    # Validation
    "QualityReport",
    "RuntimeBuildValidationResult",
    "RuntimePhase",
    # Stream
    "EventType",
    "GenerationEvent",
    "StreamChunk",
]
