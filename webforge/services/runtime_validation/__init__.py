"""Runtime build validation service."""

from .service import OutputBuffer, RuntimeBuildValidator, run_command, summarize_failure

__all__ = ["OutputBuffer", "RuntimeBuildValidator", "run_command", "summarize_failure"]
