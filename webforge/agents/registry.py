"""
Agent registry: the pipeline resolves its three model roles by name.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..core.exceptions import PipelineError

if TYPE_CHECKING:
    from .base import Agent
    from .client import LLMClient

_AGENT_REGISTRY: dict[str, type[Agent]] = {}


class AgentRegistry:
    """Name -> agent class lookup filled by the ``register`` decorator."""

    @classmethod
    def register(cls, agent_class: type[Agent]) -> type[Agent]:
        """Register an agent class under its ``NAME``.

        Used as a decorator:
            @AgentRegistry.register
            class ReviewerAgent(Agent):
                ...
        """
        name = getattr(agent_class, "NAME", agent_class.__name__)
        existing = _AGENT_REGISTRY.get(name)
        if existing is not None and existing is not agent_class:
            raise ValueError(f"Agent name already registered: {name}")
        _AGENT_REGISTRY[name] = agent_class
        return agent_class

    @classmethod
    def get(cls, name: str) -> type[Agent] | None:
        return _AGENT_REGISTRY.get(name)

    @classmethod
    def create(cls, name: str, client: LLMClient, max_tokens: int) -> Agent:
        """Instantiate a registered agent bound to one request's client.

        Raises:
            PipelineError: If no agent is registered under ``name``.
        """
        agent_class = cls.get(name)
        if agent_class is None:
            raise PipelineError(message=f"Agent not registered: {name}", stage="setup")
        return agent_class(client, max_tokens)

    @classmethod
    def list_agents(cls) -> list[str]:
        return sorted(_AGENT_REGISTRY)
