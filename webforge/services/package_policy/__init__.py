"""Package policy enforcement."""

from .catalog import APPROVED_PACKAGES, HEAVY_PACKAGES, PACKAGE_ALIASES, base_manifest
from .responsive import build_responsive_report, responsive_warnings
from .service import (
    PackagePolicyService,
    PolicyResult,
    build_runtime_hint,
    estimate_complexity,
    normalize_tailwind_styles,
)

__all__ = [
    "APPROVED_PACKAGES",
    "HEAVY_PACKAGES",
    "PACKAGE_ALIASES",
    "base_manifest",
    "build_responsive_report",
    "responsive_warnings",
    "PackagePolicyService",
    "PolicyResult",
    "build_runtime_hint",
    "estimate_complexity",
    "normalize_tailwind_styles",
]
