"""Uniform result envelope shared by every tool handler.

Handlers never raise toward the bridge; they return either ``Ok`` with the
upstream payload or ``Err`` describing what went wrong. The dispatcher turns
both into the JSON body returned to the caller and broadcast to subscribers, so
the two views of one invocation are always built from the same object.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class ErrorKind(str, Enum):
    """Failure taxonomy for invocation results."""

    UNKNOWN_TOOL = "unknown_tool"
    VALIDATION_ERROR = "validation_error"
    WRITE_DISABLED = "write_disabled"
    UPSTREAM_ERROR = "upstream_error"
    INTERNAL_ERROR = "internal_error"
    TIMEOUT = "timeout"


_HTTP_STATUS: Dict[ErrorKind, int] = {
    ErrorKind.UNKNOWN_TOOL: 400,
    ErrorKind.VALIDATION_ERROR: 400,
    ErrorKind.WRITE_DISABLED: 403,
    ErrorKind.UPSTREAM_ERROR: 500,
    ErrorKind.INTERNAL_ERROR: 500,
    ErrorKind.TIMEOUT: 504,
}


@dataclass(frozen=True)
class Ok:
    """Successful tool outcome."""

    payload: Any = None

    @property
    def ok(self) -> bool:
        return True

    @property
    def http_status(self) -> int:
        return 200

    def to_body(self, tool: Optional[str] = None) -> Any:
        return self.payload


@dataclass(frozen=True)
class Err:
    """Normalized failure with optional upstream detail."""

    message: str
    kind: ErrorKind = ErrorKind.UPSTREAM_ERROR
    status: Optional[int] = None
    body: Any = None
    issues: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return False

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS.get(self.kind, 500)

    def to_body(self, tool: Optional[str] = None) -> Dict[str, Any]:
        """Render the structured JSON error body.

        Only keys that carry information are included, so an unknown-tool
        error stays ``{"ok": false, "error": "Unknown tool", "tool": name}``.
        """

        body: Dict[str, Any] = {"ok": False, "error": self.message}
        if tool:
            body["tool"] = tool
        if self.issues:
            body["issues"] = list(self.issues)
        if self.status is not None:
            body["upstream_status"] = self.status
        if self.body is not None:
            body["upstream_body"] = self.body
        return body


InvocationResult = Union[Ok, Err]


def upstream_error(message: str, *, status: Optional[int] = None, body: Any = None) -> Err:
    return Err(message=message, kind=ErrorKind.UPSTREAM_ERROR, status=status, body=body)


def not_configured(service: str, *settings: str) -> Err:
    """Return the error used when a handler lacks the credentials it needs."""

    names = ", ".join(settings)
    return Err(
        message=f"{service} is not configured. Set {names} to enable this tool.",
        kind=ErrorKind.UPSTREAM_ERROR,
    )


def is_invocation_result(value: Any) -> bool:
    return isinstance(value, (Ok, Err))


__all__ = [
    "Err",
    "ErrorKind",
    "InvocationResult",
    "Ok",
    "is_invocation_result",
    "not_configured",
    "upstream_error",
]
