"""Run one tool invocation end to end and publish its outcome.

The dispatcher is the only place that touches the registry, the handler and
the broadcast hub in the same call:

1. look up the tool (unknown name -> 400, nothing runs);
2. validate the arguments (invalid -> 400, nothing runs);
3. run the handler on the worker thread pool, bounded by the optional timeout;
4. turn the result into the response body once and publish that same body as a
   ``tool_result``/``tool_error`` event tagged with the correlation id.

Handlers are expected to return ``Ok``/``Err`` and never raise; anything else
is caught here and reported as an internal error so the process keeps serving.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Dict, Mapping, Optional
from uuid import uuid4

from core.audit_logger import AuditLogger, InvocationRecord
from core.broadcast import BroadcastEvent, BroadcastHub, EventKind
from core.results import Err, ErrorKind, InvocationResult, is_invocation_result
from core.schema_validator import ArgumentValidationError
from core.tool_registry import RegisteredTool, ToolRegistry, UnknownToolError

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal error while running tool"


@dataclass(frozen=True)
class InvocationRequest:
    tool: str
    args: Mapping[str, Any] = field(default_factory=dict)
    correlation_id: Optional[str] = None


@dataclass(frozen=True)
class DispatchOutcome:
    """Everything the transports need to answer the caller."""

    tool: str
    correlation_id: str
    result: InvocationResult
    body: Any
    status_code: int
    duration_ms: int
    broadcast: bool = False

    @property
    def ok(self) -> bool:
        return self.result.ok


def new_correlation_id() -> str:
    return uuid4().hex


class Dispatcher:
    """Validate, execute and broadcast tool invocations."""

    def __init__(
        self,
        registry: ToolRegistry,
        hub: BroadcastHub,
        *,
        timeout_seconds: Optional[float] = None,
        audit_logger: Optional[AuditLogger] = None,
    ) -> None:
        self._registry = registry
        self._hub = hub
        self._timeout = timeout_seconds if timeout_seconds and timeout_seconds > 0 else None
        self._audit_logger = audit_logger

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def hub(self) -> BroadcastHub:
        return self._hub

    @property
    def timeout_seconds(self) -> Optional[float]:
        return self._timeout

    async def dispatch(self, request: InvocationRequest, *, source: str = "invoke") -> DispatchOutcome:
        """WHAT: run one invocation and return the body both transports answer with.

        WHY: `/invoke` and `tools/call` must behave identically, including the
        event published to stream subscribers.
        HOW: look up, validate, run the handler off the event loop, then build
        the response body once in `_finish` and publish that same body.
        """
        started = perf_counter()
        raw_id = request.correlation_id
        correlation_id = (str(raw_id).strip() if raw_id is not None else "") or new_correlation_id()
        tool_name = request.tool if isinstance(request.tool, str) else str(request.tool)

        try:
            tool = self._registry.lookup(tool_name)
        except UnknownToolError:
            result: InvocationResult = Err(message="Unknown tool", kind=ErrorKind.UNKNOWN_TOOL)
            return self._finish(tool_name, correlation_id, result, started, source, request.args, publish=False)

        try:
            args = tool.validator.validate(request.args)
        except ArgumentValidationError as exc:
            result = Err(message="Invalid arguments", kind=ErrorKind.VALIDATION_ERROR, issues=exc.to_dicts())
            return self._finish(tool_name, correlation_id, result, started, source, request.args, publish=False)

        result = await self._run_handler(tool, args)
        return self._finish(tool_name, correlation_id, result, started, source, args, publish=True)

    # WHAT: execute a handler on the default thread pool under the optional timeout.
    # HOW: any raise or non-result return becomes an internal error; the process keeps serving.
    async def _run_handler(self, tool: RegisteredTool, args: Dict[str, Any]) -> InvocationResult:
        try:
            loop = asyncio.get_running_loop()
            call = loop.run_in_executor(None, tool.handler, args)
            if self._timeout is not None:
                value = await asyncio.wait_for(call, self._timeout)
            else:
                value = await call
        except asyncio.TimeoutError:
            logger.warning("Tool %s timed out after %ss", tool.name, self._timeout)
            return Err(
                message=f"Tool '{tool.name}' timed out after {self._timeout:g}s",
                kind=ErrorKind.TIMEOUT,
            )
        except Exception:
            logger.exception("Tool %s raised instead of returning a result", tool.name)
            return Err(message=INTERNAL_ERROR_MESSAGE, kind=ErrorKind.INTERNAL_ERROR)

        if not is_invocation_result(value):
            logger.error("Tool %s returned %r instead of Ok/Err", tool.name, type(value).__name__)
            return Err(message=INTERNAL_ERROR_MESSAGE, kind=ErrorKind.INTERNAL_ERROR)
        return value

    def _finish(
        self,
        tool_name: str,
        correlation_id: str,
        result: InvocationResult,
        started: float,
        source: str,
        args: Any,
        *,
        publish: bool,
    ) -> DispatchOutcome:
        body = result.to_body(tool_name)
        duration_ms = int((perf_counter() - started) * 1000)
        outcome = DispatchOutcome(
            tool=tool_name,
            correlation_id=correlation_id,
            result=result,
            body=body,
            status_code=result.http_status,
            duration_ms=duration_ms,
            broadcast=publish,
        )
        if publish:
            event = BroadcastEvent(
                kind=EventKind.TOOL_RESULT if result.ok else EventKind.TOOL_ERROR,
                payload=body,
                correlation_id=correlation_id,
                tool=tool_name,
            )
            self._hub.publish(event)
        self._audit(outcome, source, args)
        return outcome

    # WHAT: hand a summary of the finished call to the audit logger.
    # HOW: errors carry their kind and message; args are the validated ones when available.
    def _audit(self, outcome: DispatchOutcome, source: str, args: Any) -> None:
        if not self._audit_logger:
            return
        result = outcome.result
        record = InvocationRecord.new(
            source=source,
            tool=outcome.tool,
            correlation_id=outcome.correlation_id,
            ok=result.ok,
            status_code=outcome.status_code,
            duration_ms=outcome.duration_ms,
            kind=None if result.ok else result.kind.value,
            error=None if result.ok else result.message,
            args=dict(args) if isinstance(args, Mapping) else None,
        )
        self._audit_logger.log_invocation(record)


__all__ = [
    "DispatchOutcome",
    "Dispatcher",
    "INTERNAL_ERROR_MESSAGE",
    "InvocationRequest",
    "new_correlation_id",
]
