"""Hold the fixed set of tools the bridge can dispatch to.

The registry is built once at startup from a list of entries and never changes
afterwards. Lookups, manifest generation and validator reuse all read from an
immutable mapping, so concurrent dispatch calls share it without locking.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Type

from core.results import InvocationResult
from core.schema_validator import SchemaValidator, ToolArgs

Handler = Callable[[Dict[str, Any]], InvocationResult]


class UnknownToolError(KeyError):
    """Raised when a tool name is not present in the registry."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown tool: {self.name}"


@dataclass(frozen=True)
class ToolDescriptor:
    """Public description of a tool, as listed in the manifest."""

    name: str
    description: str
    input_schema: Mapping[str, Any] = field(default_factory=dict)
    mutating: bool = False

    def to_manifest(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": dict(self.input_schema),
        }


@dataclass(frozen=True)
class ToolEntry:
    """Registration record: what the tool is, how to check input, who runs it."""

    name: str
    description: str
    args_model: Type[ToolArgs]
    handler: Handler
    mutating: bool = False


@dataclass(frozen=True)
class RegisteredTool:
    """A descriptor paired with its compiled validator and bound handler."""

    descriptor: ToolDescriptor
    validator: SchemaValidator
    handler: Handler

    @property
    def name(self) -> str:
        return self.descriptor.name


class ToolRegistry:
    """Immutable mapping from tool name to descriptor, validator and handler."""

    def __init__(self, entries: Iterable[ToolEntry]) -> None:
        tools: Dict[str, RegisteredTool] = {}
        for entry in entries:
            name = (entry.name or "").strip()
            if not name:
                raise ValueError("Tool name must be a non-empty string")
            if name in tools:
                raise ValueError(f"Tool '{name}' is already registered")
            if not callable(entry.handler):
                raise TypeError(f"Handler for tool '{name}' is not callable")
            validator = SchemaValidator(entry.args_model)
            descriptor = ToolDescriptor(
                name=name,
                description=entry.description,
                input_schema=MappingProxyType(validator.input_schema),
                mutating=entry.mutating,
            )
            tools[name] = RegisteredTool(descriptor=descriptor, validator=validator, handler=entry.handler)
        self._tools: Mapping[str, RegisteredTool] = MappingProxyType(tools)
        self._descriptors: Tuple[ToolDescriptor, ...] = tuple(tool.descriptor for tool in tools.values())
        self._manifest: Tuple[Dict[str, Any], ...] = tuple(d.to_manifest() for d in self._descriptors)

    # WHAT: resolve a tool name to its descriptor, validator and handler.
    # WHY: the dispatcher must reject unknown names before anything runs.
    # HOW: read the frozen mapping and translate a miss into `UnknownToolError`.
    def lookup(self, name: str) -> RegisteredTool:
        try:
            return self._tools[name]
        except (KeyError, TypeError) as exc:
            raise UnknownToolError(str(name)) from exc

    def get(self, name: str) -> Optional[RegisteredTool]:
        if not isinstance(name, str):
            return None
        return self._tools.get(name)

    # WHAT: descriptors in registration order.
    # WHY: `/tools`, `tools/list` and the SSE manifest must agree on ordering.
    def list_tools(self) -> Tuple[ToolDescriptor, ...]:
        return self._descriptors

    def names(self) -> List[str]:
        return [descriptor.name for descriptor in self._descriptors]

    # WHAT: public manifest entries (name, description, input_schema).
    # HOW: hand out copies of the cached entries so callers cannot mutate them.
    def manifest(self) -> List[Dict[str, Any]]:
        return [dict(item) for item in self._manifest]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name in self._tools

    def __len__(self) -> int:
        return len(self._tools)


__all__ = [
    "Handler",
    "RegisteredTool",
    "ToolDescriptor",
    "ToolEntry",
    "ToolRegistry",
    "UnknownToolError",
]
