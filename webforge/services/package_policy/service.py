"""
Package Policy Service.

Sanitizes and merges dependency manifests, scaffolds missing required files,
normalizes legacy Tailwind and CommonJS syntax, injects responsive CSS guards
and derives a preview RuntimeHint. Running it on its own output changes
nothing.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

from ...core.config import PolicyConfig
from ...core.logging import get_logger
from ...models.project import (
    PackageManifest,
    PreviewRuntime,
    Project,
    ResponsiveReport,
    RuntimeHint,
)
from ...models.request import OutputStack
from .catalog import HEAVY_PACKAGES, base_manifest, is_known_package, resolve_alias
from .responsive import build_responsive_report, has_breakpoints, has_overflow_guard, styled_corpus
from .scaffold import BREAKPOINT_BASELINE_CSS, OVERFLOW_GUARD_CSS, POSTCSS_CONFIG, SCAFFOLDS

logger = get_logger(__name__)

REMOTE_RUNTIME_THRESHOLD = 85
MAX_LISTED_UNLISTED = 8

LEGACY_TAILWIND_DIRECTIVE = re.compile(r"^@tailwind\s+(base|components|utilities);?$", re.IGNORECASE)
LEGACY_TAILWIND_IMPORT = re.compile(
    r"^@import\s+['\"]tailwindcss/(base|components|utilities)['\"];?$", re.IGNORECASE
)
TAILWIND_V4_IMPORT = re.compile(r"^@import\s+['\"]tailwindcss['\"];?$", re.IGNORECASE)
COMMONJS_EXPORT = re.compile(r"module\.exports\s*=\s*")
_GUARD_ALREADY_PRESENT = re.compile(r"(overflow-x\s*:\s*hidden|max-width\s*:\s*100%)", re.IGNORECASE)
_MIN_768 = re.compile(r"@media\s*\(\s*min-width\s*:\s*768px\s*\)", re.IGNORECASE)
_MIN_1280 = re.compile(r"@media\s*\(\s*min-width\s*:\s*1280px\s*\)", re.IGNORECASE)


@dataclass
class PolicyResult:
    """Outcome of one policy pass."""

    project: Project
    manifest: PackageManifest
    runtime_hint: RuntimeHint
    responsive_report: ResponsiveReport
    blocked_packages: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)


def _parse_package_json(project: Project) -> dict[str, Any] | None:
    content = project.content_of("package.json")
    if content is None:
        return None
    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def _string_map(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): v for k, v in value.items() if isinstance(v, str)}


def normalize_tailwind_styles(content: str) -> str:
    """Replace Tailwind v3 directives with the v4 ``@import "tailwindcss";`` form."""
    lines = content.split("\n")
    kept = [
        line
        for line in lines
        if not (
            LEGACY_TAILWIND_DIRECTIVE.match(line.strip()) or LEGACY_TAILWIND_IMPORT.match(line.strip())
        )
    ]
    has_v4_import = any(TAILWIND_V4_IMPORT.match(line.strip()) for line in kept)
    if has_v4_import and len(kept) == len(lines):
        return content
    body = "\n".join(kept).strip()
    if has_v4_import:
        return f"{body}\n"
    return f'@import "tailwindcss";\n\n{body}\n' if body else '@import "tailwindcss";\n'


def to_esm_config(content: str) -> str:
    """Rewrite ``module.exports =`` as ``export default``."""
    if not COMMONJS_EXPORT.search(content):
        return content
    return COMMONJS_EXPORT.sub("export default ", content).rstrip() + "\n"


def estimate_complexity(manifest: PackageManifest, project: Project) -> int:
    names = list(manifest.dependencies)
    heavy = sum(1 for name in names if name in HEAVY_PACKAGES)
    dep_score = min(55, len(names) * 4)
    size_score = min(25, (project.total_size // 60_000) * 5)
    return min(100, dep_score + heavy * 20 + size_score)


def build_runtime_hint(stack: OutputStack, complexity: int, blocked_count: int) -> RuntimeHint:
    if not stack.is_framework:
        return RuntimeHint(
            preferred_runtime=PreviewRuntime.STATIC,
            fallback_runtime=PreviewRuntime.BUNDLED,
            reason="Vanilla output can be rendered directly as a static document.",
            complexity_score=complexity,
        )
    if complexity >= REMOTE_RUNTIME_THRESHOLD:
        return RuntimeHint(
            preferred_runtime=PreviewRuntime.REMOTE,
            fallback_runtime=PreviewRuntime.BUNDLED,
            reason="High dependency complexity detected; a remote sandboxed runtime is preferred.",
            complexity_score=complexity,
        )
    reason = (
        "React project with sanitized dependencies; in-browser bundling preferred with remote fallback."
        if blocked_count
        else "React project detected; in-browser bundled preview selected."
    )
    return RuntimeHint(
        preferred_runtime=PreviewRuntime.BUNDLED,
        fallback_runtime=PreviewRuntime.REMOTE,
        reason=reason,
        complexity_score=complexity,
    )


class PackagePolicyService:
    """Service enforcing the package and scaffold policy on a generated project."""

    def __init__(self, config: PolicyConfig) -> None:
        self.config = config

    def _sanitize(
        self, deps: dict[str, str], blocked: list[str], retained: list[str]
    ) -> dict[str, str]:
        output: dict[str, str] = {}
        for name, version in deps.items():
            alias = resolve_alias(name)
            if not is_known_package(alias):
                if self.config.strict_package_allowlist:
                    blocked.append(name)
                    logger.info("Blocked unlisted package", package=name)
                    continue
                retained.append(alias)
            output[alias] = version
        return output

    def merge_manifest(
        self,
        stack: OutputStack,
        package_json: dict[str, Any] | None,
        blocked: list[str],
        retained: list[str],
    ) -> PackageManifest:
        """Base manifest merged with sanitized generated dependencies.

        For the framework stack the core toolchain is pinned back to the base
        versions and the base scripts win.
        """
        base = base_manifest(stack)
        generated = package_json or {}
        scripts = {**base.scripts, **_string_map(generated.get("scripts"))}
        dependencies = {
            **base.dependencies,
            **self._sanitize(_string_map(generated.get("dependencies")), blocked, retained),
        }
        dev_dependencies = {
            **base.dev_dependencies,
            **self._sanitize(_string_map(generated.get("devDependencies")), blocked, retained),
        }
        entry = generated.get("entry") if isinstance(generated.get("entry"), str) else base.entry

        if stack.is_framework:
            dependencies.update(base.dependencies)
            dev_dependencies.update(base.dev_dependencies)
            scripts.update(base.scripts)
            entry = base.entry

        return PackageManifest(
            framework=base.framework,
            entry=entry,
            scripts=scripts,
            dependencies=dependencies,
            dev_dependencies=dev_dependencies,
        )

    @staticmethod
    def render_package_json(manifest: PackageManifest, stack: OutputStack) -> str:
        document: dict[str, Any] = {"name": "generated-app", "private": True, "version": "0.0.0"}
        if stack.is_framework:
            document["type"] = "module"
        document["scripts"] = manifest.scripts
        document["dependencies"] = manifest.dependencies
        document["devDependencies"] = manifest.dev_dependencies
        return json.dumps(document, indent=2, ensure_ascii=False) + "\n"

    @staticmethod
    def ensure_scaffold(project: Project, stack: OutputStack, manifest: PackageManifest) -> Project:
        for path, content in SCAFFOLDS[stack].items():
            if not project.has(path):
                logger.debug("Scaffolding missing file", path=path)
                project = project.with_file(path, content)
        return project.with_file("package.json", PackagePolicyService.render_package_json(manifest, stack))

    @staticmethod
    def ensure_tailwind_syntax(project: Project, stack: OutputStack) -> Project:
        styles = project.content_of("src/styles.css")
        if not stack.is_framework or styles is None:
            return project
        normalized = normalize_tailwind_styles(styles)
        return project if normalized == styles else project.with_file("src/styles.css", normalized)

    @staticmethod
    def normalize_esm_configs(project: Project, stack: OutputStack) -> Project:
        if not stack.is_framework:
            return project
        for path in ("postcss.config.js", "tailwind.config.js"):
            content = project.content_of(path)
            if content is not None:
                converted = to_esm_config(content)
                if converted != content:
                    project = project.with_file(path, converted)
        postcss = project.content_of("postcss.config.js")
        if postcss is not None and "@tailwindcss/postcss" not in postcss:
            project = project.with_file("postcss.config.js", POSTCSS_CONFIG)
        return project

    @staticmethod
    def ensure_responsive_guards(project: Project, stack: OutputStack) -> Project:
        corpus = styled_corpus(project)
        need_guard = not has_overflow_guard(corpus)
        need_breakpoints = not has_breakpoints(corpus)
        if not need_guard and not need_breakpoints:
            return project

        preferred = "src/styles.css" if stack.is_framework else "styles.css"
        target = preferred if project.has(preferred) else next(
            (f.path for f in project.files if f.path.endswith(".css")), preferred
        )
        content = project.content_of(target) or ""
        if need_guard and not _GUARD_ALREADY_PRESENT.search(content):
            content = content.rstrip() + OVERFLOW_GUARD_CSS
        if need_breakpoints and not (_MIN_768.search(content) and _MIN_1280.search(content)):
            content = content.rstrip() + BREAKPOINT_BASELINE_CSS
        return project.with_file(target, content)

    def enforce(self, project: Project, stack: OutputStack) -> PolicyResult:
        """Apply the full policy to a project.

        Args:
            project: Builder output
            stack: Requested output stack

        Returns:
            PolicyResult with the new project, manifest, hint and notes
        """
        blocked: list[str] = []
        retained: list[str] = []
        manifest = self.merge_manifest(stack, _parse_package_json(project), blocked, retained)

        project = self.ensure_scaffold(project, stack, manifest)
        project = self.ensure_tailwind_syntax(project, stack)
        project = self.normalize_esm_configs(project, stack)
        project = self.ensure_responsive_guards(project, stack)

        notes: list[str] = []
        if blocked:
            notes.append(f"Strict allowlist blocked packages: {', '.join(blocked)}")
        if retained:
            listed = list(dict.fromkeys(retained))
            suffix = "..." if len(listed) > MAX_LISTED_UNLISTED else ""
            notes.append(
                "Retained non-allowlisted dependencies for runtime compatibility: "
                f"{', '.join(listed[:MAX_LISTED_UNLISTED])}{suffix}"
            )

        complexity = estimate_complexity(manifest, project)
        runtime_hint = build_runtime_hint(stack, complexity, len(blocked))
        responsive_report = build_responsive_report(project)
        if not responsive_report.passed:
            notes.append(f"Responsive warnings: {' '.join(responsive_report.warnings)}")

        logger.info(
            "Package policy enforced",
            files=len(project),
            dependencies=len(manifest.dependencies),
            blocked=len(blocked),
            complexity=complexity,
            runtime=runtime_hint.preferred_runtime.value,
        )
        return PolicyResult(
            project=project,
            manifest=manifest,
            runtime_hint=runtime_hint,
            responsive_report=responsive_report,
            blocked_packages=blocked,
            notes=notes,
        )
