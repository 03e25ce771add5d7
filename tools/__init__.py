"""Register the built-in bridge tools.

Each tool module exposes ``entries(context)`` returning its ``ToolEntry``
records with handlers already bound to the shared ``ToolContext``. This module
fixes the registration order used for the manifest.
"""

from __future__ import annotations

from typing import List

from core.tool_registry import ToolEntry, ToolRegistry
from tools import (
    discord_tool,
    docker_tool,
    dockerhub_tool,
    github_tool,
    llm_tool,
    ping_tool,
    railway_tool,
)
from tools.context import ToolContext

_TOOL_MODULES = (
    ping_tool,
    discord_tool,
    github_tool,
    railway_tool,
    dockerhub_tool,
    docker_tool,
    llm_tool,
)


def load_all_core_tools(context: ToolContext) -> List[ToolEntry]:
    # Collect every core tool entry in registration order
    collected: List[ToolEntry] = []
    for module in _TOOL_MODULES:
        collected.extend(module.entries(context))
    return collected


def build_registry(context: ToolContext) -> ToolRegistry:
    return ToolRegistry(load_all_core_tools(context))


__all__ = ["ToolContext", "build_registry", "load_all_core_tools"]
