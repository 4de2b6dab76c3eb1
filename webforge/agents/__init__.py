"""Model-backed agents for WebForge."""

from .base import Agent, AgentContext, AgentResponse, PromptTemplate
from .builder import BuildBrief, BuildDraft, BuilderAgent
from .client import ContentPart, CostLedger, LLMClient, LLMResult, TokenUsage, safe_json_parse
from .design_architect import DesignArchitectAgent, DesignBrief
from .registry import AgentRegistry
from .reviewer import ReviewBrief, ReviewerAgent, ReviewVerdict

__all__ = [
    "Agent",
    "AgentContext",
    "AgentResponse",
    "PromptTemplate",
    "AgentRegistry",
    "ContentPart",
    "CostLedger",
    "LLMClient",
    "LLMResult",
    "TokenUsage",
    "safe_json_parse",
    "BuildBrief",
    "BuildDraft",
    "BuilderAgent",
    "DesignArchitectAgent",
    "DesignBrief",
    "ReviewBrief",
    "ReviewerAgent",
    "ReviewVerdict",
]
