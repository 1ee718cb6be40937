"""Data models for provider launch specs, tool descriptions and routes."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, NamedTuple

from pydantic import BaseModel, ConfigDict, Field

from mcprouter.routing.errors import ProtocolError

# Opaque JSON value: null, bool, number, string, array or object as decoded by ``json``.
JSON = Any

DEFAULT_INPUT_SCHEMA: Dict[str, Any] = {"type": "object", "properties": {}}


class LaunchSpec(BaseModel):
    """How to start one provider process."""

    command: str
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)  # applied in order over os.environ
    timeout: float = 30.0  # seconds per request, handshake included


class ToolDescription(BaseModel):
    """One callable tool as presented to an external caller (e.g. an LLM)."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    parameters: JSON = Field(default_factory=lambda: dict(DEFAULT_INPUT_SCHEMA))

    @classmethod
    def from_mcp(cls, raw: JSON) -> "ToolDescription":
        """
        Build a description from one element of a ``tools/list`` response.

        ``name`` must be a string. ``description`` and ``inputSchema`` are
        copied verbatim when present.
        """
        if not isinstance(raw, dict) or not isinstance(raw.get("name"), str):
            raise ProtocolError("Tool entry has no string 'name'", details={"entry": raw})
        description = raw.get("description")
        if description is not None and not isinstance(description, str):
            raise ProtocolError("Tool entry has a non-string 'description'", details={"entry": raw})
        schema = raw.get("inputSchema")
        return cls(
            name=raw["name"],
            description=description or "",
            parameters=schema if schema is not None else dict(DEFAULT_INPUT_SCHEMA),
        )

    def renamed(self, name: str) -> "ToolDescription":
        if name == self.name:
            return self
        return self.model_copy(update={"name": name})

    def as_function(self) -> Dict[str, Any]:
        """OpenAI-style function-calling entry."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolRoute(NamedTuple):
    """Where a tool key lives: the provider and its provider-local tool id."""

    provider: str
    tool_id: str


class CollisionPolicy(str, Enum):
    """What the registry does when two tools map to the same key."""

    LAST_WINS = "last_wins"
    NAMESPACE = "namespace"
    ERROR = "error"


def namespaced_key(provider: str, tool_id: str, separator: str = "__") -> str:
    return f"{provider}{separator}{tool_id}"
