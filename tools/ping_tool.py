"""Liveness tool that answers without touching any upstream."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List

from core.results import InvocationResult, Ok
from core.schema_validator import NoArgs
from core.tool_registry import ToolEntry
from tools.context import ToolContext


def run(args: Dict[str, Any]) -> InvocationResult:
    """Return ``pong`` with the current UTC time; never cached."""

    return Ok({"pong": True, "ts": datetime.now(tz=timezone.utc).isoformat()})


def entries(context: ToolContext) -> List[ToolEntry]:
    return [
        ToolEntry(
            name="ping",
            description="Return pong with the current server timestamp.",
            args_model=NoArgs,
            handler=run,
        )
    ]
