"""Core infrastructure components for WebForge."""

from .config import Settings, get_settings
from .exceptions import (
    CostLimitExceededError,
    InputValidationError,
    PathTraversalError,
    PipelineError,
    ProviderError,
    ServiceError,
    UnsafeReferenceError,
    WebForgeError,
)
from .logging import bind_context, clear_context, get_logger, setup_logging
from .types import PipelineStage, ServiceResult, StageTransition

__all__ = [
    "Settings",
    "get_settings",
    "CostLimitExceededError",
    "InputValidationError",
    "PathTraversalError",
    "PipelineError",
    "ProviderError",
    "ServiceError",
    "UnsafeReferenceError",
    "WebForgeError",
    "bind_context",
    "clear_context",
    "get_logger",
    "setup_logging",
    "PipelineStage",
    "ServiceResult",
    "StageTransition",
]
