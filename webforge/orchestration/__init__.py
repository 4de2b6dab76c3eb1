"""Orchestration module for WebForge."""

from .events import EventChannel
from .pipeline import GenerationPipeline, GenerationResult, stream_generation
from .state import OrchestrationState, PassState

__all__ = [
    "EventChannel",
    "GenerationPipeline",
    "GenerationResult",
    "stream_generation",
    "OrchestrationState",
    "PassState",
]
