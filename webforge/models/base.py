"""Shared pydantic configuration for models that cross the wire."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Model serialized with camelCase keys and parsed from either casing."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """JSON-safe dict using wire (camelCase) keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class FrozenWireModel(WireModel):
    """Immutable variant for per-pass snapshots."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)
