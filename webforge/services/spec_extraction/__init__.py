"""Spec extraction service."""

from .service import SpecExtractionService, build_fallback_spec, enforce_required_plan

__all__ = ["SpecExtractionService", "build_fallback_spec", "enforce_required_plan"]
