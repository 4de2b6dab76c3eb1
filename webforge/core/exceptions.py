"""
Custom exception hierarchy for WebForge.

All exceptions inherit from WebForgeError so the orchestrator can turn any
fatal condition into exactly one ``error`` line on the progress stream.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class WebForgeError(Exception):
    """Base exception for all WebForge errors."""

    message: str
    context: dict[str, Any] = field(default_factory=dict)
    cause: Exception | None = None

    def __str__(self) -> str:
        ctx = f" | context: {self.context}" if self.context else ""
        cause = f" | caused by: {self.cause}" if self.cause else ""
        return f"{self.message}{ctx}{cause}"


@dataclass
class InputValidationError(WebForgeError):
    """Raised when a generation request is rejected before any model call."""

    field_name: str | None = None

    def __str__(self) -> str:
        if self.field_name:
            return f"Invalid request field '{self.field_name}': {self.message}"
        return f"Invalid request: {self.message}"


@dataclass
class ServiceError(WebForgeError):
    """Raised when a service operation fails."""

    service_name: str = ""
    operation: str = ""

    def __str__(self) -> str:
        return f"[{self.service_name}.{self.operation}] {super().__str__()}"


@dataclass
class ProviderError(ServiceError):
    """Raised when a model provider call fails. Never retried."""

    provider: str = ""
    status_code: int | None = None

    def __post_init__(self) -> None:
        self.service_name = "provider"

    def __str__(self) -> str:
        status = f" ({self.status_code})" if self.status_code is not None else ""
        return f"{self.provider} API error{status}: {self.message}"


@dataclass
class CostLimitExceededError(WebForgeError):
    """Raised the moment the running cost total exceeds the configured cap."""

    total_cost_usd: float = 0.0
    limit_usd: float = 0.0

    def __str__(self) -> str:
        return (
            f"Cost limit exceeded: ${self.total_cost_usd:.4f} spent, "
            f"cap is ${self.limit_usd:.2f}"
        )


@dataclass
class UnsafeReferenceError(WebForgeError):
    """Raised when a reference URL is rejected by the network guard."""

    url: str = ""

    def __str__(self) -> str:
        return self.message


@dataclass
class PathTraversalError(WebForgeError):
    """Raised when a generated file path is absolute or escapes the project root."""

    path: str = ""

    def __str__(self) -> str:
        return f"Unsafe file path '{self.path}': {self.message}"


@dataclass
class PipelineError(WebForgeError):
    """Raised when pipeline orchestration fails at a given stage."""

    stage: str = ""
    request_id: str = ""

    def __str__(self) -> str:
        return f"Pipeline error at stage '{self.stage}' (request: {self.request_id}): {super().__str__()}"
