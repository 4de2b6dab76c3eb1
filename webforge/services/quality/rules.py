"""
Deterministic quality rules and visual-similarity scoring.
"""

from __future__ import annotations

import json
import math
import posixpath
import re

from ...models.project import Project
from ...models.request import OutputStack, QualityMode
from ..package_policy.responsive import entry_html

SCRIPT_SOURCE = re.compile(r"\.(ts|tsx|js|jsx|mjs)$", re.IGNORECASE)
IMPORT_SPECIFIER = re.compile(
    r"(?:import|export)\s+(?:[^'\"]*?\s+from\s+)?[\"']([^\"']+)[\"']|import\(\s*[\"']([^\"']+)[\"']\s*\)"
)
SCRIPT_SRC = re.compile(r"<script[^>]*\ssrc=[\"']([^\"']+)[\"']", re.IGNORECASE)
LINK_TAG = re.compile(r"<link\b[^>]*>", re.IGNORECASE)
LINK_HREF = re.compile(r"\shref=[\"']([^\"']+)[\"']", re.IGNORECASE)
LINK_REL_ASSET = re.compile(r"\srel=[\"'](?:stylesheet|modulepreload)[\"']", re.IGNORECASE)
REACT_MODULE_ENTRY = re.compile(
    r"<script[^>]*type=[\"']module[\"'][^>]*src=[\"']/?src/main\.(tsx|jsx)[\"'][^>]*>", re.IGNORECASE
)
LEGACY_DIRECTIVE = re.compile(r"^@tailwind\s+(base|components|utilities);?", re.IGNORECASE | re.MULTILINE)
LEGACY_IMPORT = re.compile(
    r"^@import\s+['\"]tailwindcss/(base|components|utilities)['\"];?", re.IGNORECASE | re.MULTILINE
)

GENERATED_COLOR = re.compile(r"#(?:[0-9a-f]{3,8})\b|rgba?\([^)]+\)|hsla?\([^)]+\)", re.IGNORECASE)
GENERATED_FONT = re.compile(r"font-family\s*:\s*[^;}\n]+", re.IGNORECASE)
GENERATED_SPACING = re.compile(r"(?:padding|margin|gap|border-radius)\s*:\s*[^;}\n]+", re.IGNORECASE)
GENERATED_CLASS_HINT = re.compile(r"\b(navbar|sidebar|hero|card|grid|flex|modal|table|form)\b", re.IGNORECASE)

RESOLVE_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".css", ".json")
SKIPPED_SPECIFIERS = frozenset({"vite/client", "react/jsx-runtime", "react/jsx-dev-runtime"})
SKIPPED_PREFIXES = ("./", "../", "/", "@/", "node:", "http://", "https://")
EXTERNAL_REF_PREFIXES = ("http://", "https://", "//", "data:", "#")

QUALITY_THRESHOLDS = {QualityMode.STRICT_VISUAL: 78, QualityMode.BALANCED: 65}
DEFAULT_SIMILARITY_SCORE = 70
DEFAULT_INTERACTION_SCORE = 75
MAX_GENERATED_TOKENS = 120
MAX_PATCH_LINES = 20


def dedupe(values: list[str]) -> list[str]:
    return list(dict.fromkeys(v.strip() for v in values if v.strip()))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _local_ref(ref: str) -> str | None:
    """Project path an HTML reference points at, or None for external refs."""
    ref = ref.strip()
    if not ref or ref.lower().startswith(EXTERNAL_REF_PREFIXES):
        return None
    ref = re.split(r"[?#]", ref, maxsplit=1)[0]
    while ref.startswith("./"):
        ref = ref[2:]
    return ref.lstrip("/") or None


def check_missing_html_references(project: Project) -> list[str]:
    html = entry_html(project)
    refs = SCRIPT_SRC.findall(html)
    for tag in LINK_TAG.findall(html):
        href = LINK_HREF.search(tag)
        if href and LINK_REL_ASSET.search(tag):
            refs.append(href.group(1))
    missing = []
    for ref in refs:
        target = _local_ref(ref)
        if target is not None and not project.has(target):
            missing.append(f"Missing referenced file: {ref}")
    return dedupe(missing)


def check_runtime_structure(project: Project, stack: OutputStack) -> list[str]:
    if not stack.is_framework:
        return []
    issues = []
    if not project.has("package.json"):
        issues.append("Missing package.json for React runtime.")
    if not (project.has("src/main.tsx") or project.has("src/main.jsx")):
        issues.append("Missing React entry file (src/main.tsx or src/main.jsx).")
    if not (project.has("src/App.tsx") or project.has("src/App.jsx")):
        issues.append("Missing root App component file.")
    if not REACT_MODULE_ENTRY.search(entry_html(project)):
        issues.append("index.html does not include module entry script for React.")
    return issues


def check_tailwind_compatibility(project: Project, stack: OutputStack) -> list[str]:
    if not stack.is_framework:
        return []
    styles = project.content_of("src/styles.css")
    if not styles:
        return ["Missing src/styles.css for Tailwind runtime."]
    issues = []
    if LEGACY_DIRECTIVE.search(styles):
        issues.append(
            'Tailwind v3 directives detected in src/styles.css. Use @import "tailwindcss"; for Tailwind v4.'
        )
    if LEGACY_IMPORT.search(styles):
        issues.append('Legacy tailwindcss/base|components|utilities import detected. Use @import "tailwindcss";.')
    return issues


def _specifiers(content: str) -> list[str]:
    return [(a or b).strip() for a, b in IMPORT_SPECIFIER.findall(content) if (a or b).strip()]


def check_local_imports(project: Project) -> list[str]:
    """Relative imports must resolve to a file, trying common extensions and index files."""
    issues = []
    for file in project.files:
        if not SCRIPT_SOURCE.search(file.path):
            continue
        for specifier in _specifiers(file.content):
            if not specifier.startswith(("./", "../")):
                continue
            base = posixpath.normpath(posixpath.join(posixpath.dirname(file.path), specifier))
            candidates = [base]
            candidates += [f"{base}{ext}" for ext in RESOLVE_EXTENSIONS]
            candidates += [f"{base}/index{ext}" for ext in RESOLVE_EXTENSIONS]
            if not any(project.has(candidate) for candidate in candidates):
                issues.append(f"Unresolved local import in {file.path}: {specifier}")
    return dedupe(issues)


def package_name(specifier: str) -> str:
    """Package part of a bare import specifier (``@scope/name`` or ``name``)."""
    parts = specifier.split("/")
    if specifier.startswith("@"):
        return "/".join(parts[:2]) if len(parts) >= 2 and parts[1] else specifier
    return parts[0]


def _declared_packages(project: Project) -> set[str]:
    content = project.content_of("package.json")
    if content is None:
        return set()
    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        return set()
    if not isinstance(data, dict):
        return set()
    declared: set[str] = set()
    for key in ("dependencies", "devDependencies"):
        section = data.get(key)
        if isinstance(section, dict):
            declared.update(section)
    return declared


def check_dependency_declarations(project: Project) -> list[str]:
    declared = _declared_packages(project)
    if not declared:
        return []
    issues = []
    for file in project.files:
        if not SCRIPT_SOURCE.search(file.path):
            continue
        for specifier in _specifiers(file.content):
            if specifier in SKIPPED_SPECIFIERS or specifier.startswith(SKIPPED_PREFIXES):
                continue
            name = package_name(specifier)
            if name not in declared:
                issues.append(
                    f'Missing package dependency "{name}" required by {file.path} import "{specifier}".'
                )
    return dedupe(issues)


def generated_style_tokens(project: Project) -> list[str]:
    corpus = "\n".join(f.content for f in project.files)
    tokens = [
        *GENERATED_COLOR.findall(corpus),
        *GENERATED_FONT.findall(corpus),
        *GENERATED_SPACING.findall(corpus),
        *GENERATED_CLASS_HINT.findall(corpus),
    ]
    return dedupe([re.sub(r"\s+", " ", t.lower()) for t in tokens])[:MAX_GENERATED_TOKENS]


def visual_similarity(reference_tokens: list[str], generated_tokens: list[str]) -> int:
    if not reference_tokens:
        return DEFAULT_SIMILARITY_SCORE
    reference = {t.lower() for t in reference_tokens}
    generated = {t.lower() for t in generated_tokens}
    ratio = len(reference & generated) / len(reference)
    return round_half_up(min(100.0, max(0.0, ratio * 100)))


def interaction_coverage(hints: list[str], project: Project) -> int:
    if not hints:
        return DEFAULT_INTERACTION_SCORE
    corpus = "\n".join(f.content.lower() for f in project.files)
    matched = 0
    for hint in hints:
        parts = hint.split(":")
        needle = parts[1] if len(parts) > 1 else hint
        if needle.lower() in corpus:
            matched += 1
    return round_half_up(matched / len(hints) * 100)


def visual_score(reference_tokens: list[str], hints: list[str], project: Project) -> int:
    """70% style-token overlap, 30% interaction-hint coverage."""
    similarity = visual_similarity(reference_tokens, generated_style_tokens(project))
    coverage = interaction_coverage(hints, project)
    return round_half_up(similarity * 0.7 + coverage * 0.3)


def threshold_for(mode: QualityMode) -> int | None:
    """Minimum visual score, or None when the mode never gates on it."""
    return QUALITY_THRESHOLDS.get(mode)
