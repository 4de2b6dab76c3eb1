"""
Design blueprint models.

The DesignSpec is produced once by spec extraction and is a read-only input to
every later stage. Fields are lenient so a partially well-formed model reply
still validates.
"""

from __future__ import annotations

from pydantic import Field

from .base import FrozenWireModel
from .request import OutputStack


class LayoutSpec(FrozenWireModel):
    """Page structure and breakpoints."""

    structure: str = ""
    sections: list[str] = Field(default_factory=list)
    breakpoints: list[str] = Field(default_factory=list)


class VisualSystem(FrozenWireModel):
    """Palette, typography and spacing tokens."""

    palette: list[str] = Field(default_factory=list)
    typography: list[str] = Field(default_factory=list)
    spacing: list[str] = Field(default_factory=list)


class ComponentSpec(FrozenWireModel):
    """A UI component and its states."""

    name: str
    role: str = ""
    states: list[str] = Field(default_factory=list)


class FilePlanEntry(FrozenWireModel):
    """A planned file and why it exists."""

    path: str
    purpose: str = ""


class DesignSpec(FrozenWireModel):
    """Structured blueprint used to generate a project."""

    app_name: str = "Generated App"
    description: str = ""
    output_stack: OutputStack = OutputStack.REACT_TAILWIND
    layout: LayoutSpec = Field(default_factory=LayoutSpec)
    visual_system: VisualSystem = Field(default_factory=VisualSystem)
    components: list[ComponentSpec] = Field(default_factory=list)
    interactions: list[str] = Field(default_factory=list)
    file_plan: list[FilePlanEntry] = Field(default_factory=list)

    @property
    def planned_paths(self) -> list[str]:
        return [entry.path for entry in self.file_plan]


REQUIRED_FILE_PLAN: dict[OutputStack, tuple[FilePlanEntry, ...]] = {
    OutputStack.REACT_TAILWIND: (
        FilePlanEntry(path="package.json", purpose="Dependencies and scripts for npm runtime"),
        FilePlanEntry(path="index.html", purpose="Root HTML with #root mount and viewport meta"),
        FilePlanEntry(path="src/main.tsx", purpose="React entrypoint and root render"),
        FilePlanEntry(path="src/App.tsx", purpose="Primary app shell and layout"),
        FilePlanEntry(path="src/styles.css", purpose="Tailwind import and global styles"),
        FilePlanEntry(path="tailwind.config.js", purpose="Tailwind content scanning and theme extension"),
        FilePlanEntry(path="postcss.config.js", purpose="PostCSS plugin wiring for Tailwind"),
    ),
    OutputStack.VANILLA: (
        FilePlanEntry(path="index.html", purpose="Main markup and application mount points"),
        FilePlanEntry(path="styles.css", purpose="Design tokens and component styling"),
        FilePlanEntry(path="app.js", purpose="State, rendering, and event handlers"),
    ),
}


def required_paths(stack: OutputStack) -> list[str]:
    """Files every project of the given stack must contain."""
    return [entry.path for entry in REQUIRED_FILE_PLAN[stack]]
