"""Abstract tool interface for model tool use."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from store_assistant.storage.store_queries import StoreQueries


@dataclass(frozen=True)
class ToolParam:
    """One property of a tool's JSON input schema."""

    type: str
    description: str
    required: bool = False
    enum: Optional[tuple[str, ...]] = None

    def to_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type, "description": self.description}
        if self.enum:
            schema["enum"] = list(self.enum)
        return schema


@dataclass(frozen=True)
class ToolDefinition:
    """Provider-neutral description of a tool offered to the model."""

    name: str
    description: str
    parameters: dict[str, ToolParam] = field(default_factory=dict)

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {name: p.to_schema() for name, p in self.parameters.items()},
            "required": [name for name, p in self.parameters.items() if p.required],
        }

    def to_api_dict(self) -> dict[str, Any]:
        """Serialize to the Anthropic API tool definition format."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


class Tool(ABC):
    """Base class for all model-callable store tools."""

    name: str = ""
    description: str = ""
    label: str = ""
    parameters: dict[str, ToolParam] = {}

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(self.name, self.description, dict(self.parameters))

    def to_api_dict(self) -> dict[str, Any]:
        return self.definition.to_api_dict()

    @abstractmethod
    async def execute(self, queries: StoreQueries, args: dict[str, Any]) -> Any:
        """Run the tool against the backend and return a JSON-serializable result."""
        ...
