"""Dependencies shared by every tool handler."""

from __future__ import annotations

from dataclasses import dataclass, field

from app.config import BridgeSettings
from core.http import UpstreamClient
from core.write_guard import WriteGuard


@dataclass(frozen=True)
class ToolContext:
    """Settings, write guard and upstream client bound into each handler."""

    settings: BridgeSettings = field(default_factory=BridgeSettings)
    guard: WriteGuard = field(default_factory=WriteGuard)
    http: UpstreamClient = field(default_factory=UpstreamClient)

    @classmethod
    def from_settings(cls, settings: BridgeSettings) -> "ToolContext":
        return cls(
            settings=settings,
            guard=WriteGuard(allow_writes=settings.allow_writes),
            http=UpstreamClient(timeout=settings.upstream_timeout_seconds),
        )


__all__ = ["ToolContext"]
