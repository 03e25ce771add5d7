"""Process-wide policy switch for tools that mutate external state."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from core.results import Err, ErrorKind

WRITES_DISABLED_MESSAGE = "Writes are disabled. Set ALLOW_WRITES=true to enable mutating tools."


class WriteDisabledError(RuntimeError):
    """Raised by ``WriteGuard.ensure_write_allowed`` when writes are off."""

    def __init__(self, tool: Optional[str] = None) -> None:
        super().__init__(WRITES_DISABLED_MESSAGE)
        self.tool = tool


@dataclass(frozen=True)
class WriteGuard:
    """Single boolean gate, fixed at startup and closed unless enabled."""

    allow_writes: bool = False

    def is_write_allowed(self) -> bool:
        return self.allow_writes

    def ensure_write_allowed(self, tool: Optional[str] = None) -> None:
        """Raise ``WriteDisabledError`` when mutating actions are not permitted."""

        if not self.allow_writes:
            raise WriteDisabledError(tool)

    def check(self, tool: Optional[str] = None) -> Optional[Err]:
        """Return a normalized error for handlers, or ``None`` when writes are allowed."""

        try:
            self.ensure_write_allowed(tool)
        except WriteDisabledError as exc:
            return Err(message=str(exc), kind=ErrorKind.WRITE_DISABLED)
        return None


__all__ = ["WRITES_DISABLED_MESSAGE", "WriteDisabledError", "WriteGuard"]
