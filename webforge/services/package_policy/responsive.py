"""
Responsive readiness heuristics shared by policy enforcement and validation.
"""

from __future__ import annotations

import re

from ...models.project import Project, ResponsiveReport

STANDARD_VIEWPORTS = [375, 768, 1280]

VIEWPORT_META = re.compile(r"<meta[^>]*name=[\"']viewport[\"'][^>]*>", re.IGNORECASE)
MEDIA_QUERY = re.compile(r"@media\s*\(", re.IGNORECASE)
UTILITY_BREAKPOINT = re.compile(r"\b(sm:|md:|lg:|xl:|2xl:)\b")
OVERFLOW_GUARD = re.compile(r"(overflow-x\s*:\s*hidden|max-width\s*:\s*100%|minmax\()", re.IGNORECASE)
_STYLED_SOURCE = re.compile(r"\.(css|scss|sass|js|jsx|ts|tsx|html)$", re.IGNORECASE)

MISSING_VIEWPORT = "Missing viewport meta tag."
MISSING_BREAKPOINTS = "No breakpoint rules detected for 375/768/1280 layouts."
MISSING_OVERFLOW_GUARD = "No explicit horizontal overflow guard detected."


def entry_html(project: Project) -> str:
    """index.html, else the first HTML file, else empty."""
    index = project.content_of("index.html")
    if index is not None:
        return index
    return next((f.content for f in project.files if f.path.endswith(".html")), "")


def styled_corpus(project: Project) -> str:
    return "\n".join(f.content for f in project.files if _STYLED_SOURCE.search(f.path))


def has_breakpoints(corpus: str) -> bool:
    return bool(MEDIA_QUERY.search(corpus) or UTILITY_BREAKPOINT.search(corpus))


def has_overflow_guard(corpus: str) -> bool:
    return bool(OVERFLOW_GUARD.search(corpus))


def responsive_warnings(project: Project) -> list[str]:
    corpus = styled_corpus(project)
    warnings = []
    if not VIEWPORT_META.search(entry_html(project)):
        warnings.append(MISSING_VIEWPORT)
    if not has_breakpoints(corpus):
        warnings.append(MISSING_BREAKPOINTS)
    if not has_overflow_guard(corpus):
        warnings.append(MISSING_OVERFLOW_GUARD)
    return warnings


def build_responsive_report(project: Project) -> ResponsiveReport:
    warnings = responsive_warnings(project)
    return ResponsiveReport(
        passed=not warnings, warnings=warnings, checked_viewports=list(STANDARD_VIEWPORTS)
    )
