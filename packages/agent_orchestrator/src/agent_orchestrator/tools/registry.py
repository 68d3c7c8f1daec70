"""Name-to-tool lookup used by the scheduler and for model function declarations."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from agent_orchestrator.tools.base import Tool

ToolDetailLevel = Literal["name", "summary", "full"]


def _clean_labels(labels: Iterable[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for label in labels:
        text = str(label).strip().lower()
        if text:
            seen.setdefault(text)
    return tuple(seen)


@dataclass(frozen=True)
class ToolDefinition:
    """What the model and the registry know about a tool.

    ``input_schema`` is the JSON schema handed to the model as the function's
    parameters. ``requires_approval`` marks tools whose calls may pause in
    ``awaiting_approval``; the tool itself still decides per call.
    """

    name: str
    description: str
    category: str = "general"
    tags: tuple[str, ...] = ()
    input_schema: dict[str, Any] | None = None
    capabilities: tuple[str, ...] = ()
    requires_approval: bool = False
    _search_text: str = field(init=False, repr=False, compare=False, default="")

    def __post_init__(self) -> None:
        if not self.name.strip() or any(ch.isspace() for ch in self.name):
            msg = f"Invalid tool name: {self.name!r}"
            raise ValueError(msg)
        if not self.description.strip():
            msg = f"Tool {self.name} needs a description"
            raise ValueError(msg)
        object.__setattr__(self, "category", self.category.strip() or "general")
        object.__setattr__(self, "tags", _clean_labels(self.tags))
        object.__setattr__(self, "capabilities", _clean_labels(self.capabilities))
        if self.input_schema is not None:
            _check_parameters(self.name, self.input_schema)
        words = (self.name, self.description, self.category, *self.tags, *self.capabilities)
        object.__setattr__(self, "_search_text", " ".join(words).lower())

    def matches(self, query: str) -> bool:
        """True when every word of ``query`` occurs somewhere in the definition."""
        words = query.lower().split()
        return bool(words) and all(word in self._search_text for word in words)

    def declaration(self) -> dict[str, Any]:
        """Function declaration in the shape model backends expect."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.input_schema or {"type": "object", "properties": {}},
        }

    def to_dict(self, detail_level: ToolDetailLevel = "full") -> dict[str, Any]:
        if detail_level == "name":
            return {"name": self.name}
        payload: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "tags": list(self.tags),
            "capabilities": list(self.capabilities),
            "requires_approval": self.requires_approval,
        }
        if detail_level == "full":
            payload["input_schema"] = self.input_schema
        return payload


def _check_parameters(tool_name: str, schema: dict[str, Any]) -> None:
    if schema.get("type", "object") != "object":
        msg = f"Tool {tool_name} parameters must be an object schema"
        raise ValueError(msg)
    properties = schema.get("properties") or {}
    missing = [key for key in schema.get("required", []) if key not in properties]
    if missing:
        msg = f"Tool {tool_name} requires undeclared parameters: {', '.join(missing)}"
        raise ValueError(msg)


class ToolRegistry:
    """Maps tool names to their implementations.

    The scheduler resolves every tool-call request through a registry, so each
    scheduler owns exactly the tools it was built with.
    """

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def register(self, tool: Tool) -> None:
        name = tool.definition.name
        if name in self._tools:
            msg = f"Tool already registered: {name}"
            raise ValueError(msg)
        self._tools[name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def declarations(self) -> list[dict[str, Any]]:
        """Function declarations for every tool, in registration order."""
        return [tool.definition.declaration() for tool in self._tools.values()]

    def list(self, detail_level: ToolDetailLevel = "full") -> list[dict[str, Any]]:
        return [tool.definition.to_dict(detail_level) for tool in self._tools.values()]

    def list_by_category(
        self, detail_level: ToolDetailLevel = "summary"
    ) -> dict[str, list[dict[str, Any]]]:
        grouped: dict[str, list[dict[str, Any]]] = {}
        for tool in self._tools.values():
            definition = tool.definition
            grouped.setdefault(definition.category, []).append(definition.to_dict(detail_level))
        return grouped

    def search(self, query: str, detail_level: ToolDetailLevel = "summary") -> list[dict[str, Any]]:
        """Tools whose name, description, category, tags, or capabilities match ``query``."""
        return [
            tool.definition.to_dict(detail_level)
            for tool in self._tools.values()
            if tool.definition.matches(query)
        ]
