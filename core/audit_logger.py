"""Emit one redacted ``[audit]`` log line per tool invocation.

The bridge keeps no invocation history of its own: each dispatch is summarised
as a JSON object on the ``core.audit_logger`` logger and whatever handler the
process configures (stderr by default) decides where it ends up.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Pattern, Tuple

logger = logging.getLogger(__name__)

# Applied in order: token shapes before the generic url rule.
_REDACTION_RULES: Tuple[Tuple[str, Pattern[str]], ...] = (
    (
        "secret",
        re.compile(
            r"\b(?:gh[pousr]_[A-Za-z0-9]{20,}|github_pat_[A-Za-z0-9_]{20,}|sk-[A-Za-z0-9_-]{16,}|xox[abpr]-[A-Za-z0-9-]{10,})\b"
        ),
    ),
    ("bearer", re.compile(r"\b(?:Bearer|Bot)\s+[A-Za-z0-9._~+/=-]{16,}", re.IGNORECASE)),
    ("email", re.compile(r"\b[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}\b", re.IGNORECASE)),
    ("url", re.compile(r"https?://[^\s]+", re.IGNORECASE)),
)
_SCRUBBED_FIELDS = ("args", "error")
_SENSITIVE_KEYS = frozenset({"token", "password", "secret", "api_key", "authorization"})


@dataclass
class InvocationRecord:
    """Structured audit entry for a single dispatch."""

    timestamp: str
    source: str
    tool: str
    correlation_id: Optional[str]
    ok: bool
    status_code: int
    duration_ms: int
    kind: Optional[str] = None
    error: Optional[str] = None
    args: Optional[Dict[str, Any]] = None

    @classmethod
    def new(cls, **fields: Any) -> "InvocationRecord":
        return cls(timestamp=datetime.now(tz=timezone.utc).isoformat(), **fields)


def scrub(value: Any, rules: Iterable[Tuple[str, Pattern[str]]] = _REDACTION_RULES) -> Any:
    """Return ``value`` with credential-shaped strings and sensitive keys masked."""

    rules = tuple(rules)
    if isinstance(value, dict):
        return {
            key: "[REDACTED]" if str(key).lower() in _SENSITIVE_KEYS else scrub(item, rules)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [scrub(item, rules) for item in value]
    if isinstance(value, str):
        for name, pattern in rules:
            value = pattern.sub(f"[REDACTED_{name.upper()}]", value)
    return value


class AuditLogger:
    def __init__(
        self,
        *,
        enabled: bool = True,
        redact: bool = True,
        patterns: Iterable[str] | None = None,
    ) -> None:
        self._enabled = enabled
        self._redact = redact
        wanted = set(patterns) if patterns else None
        self._rules: List[Tuple[str, Pattern[str]]] = [
            rule for rule in _REDACTION_RULES if wanted is None or rule[0] in wanted
        ]

    @property
    def enabled(self) -> bool:
        return self._enabled

    def to_dict(self, record: InvocationRecord) -> Dict[str, Any]:
        payload = asdict(record)
        if self._redact:
            for field in _SCRUBBED_FIELDS:
                payload[field] = scrub(payload[field], self._rules)
        return payload

    def log_invocation(self, record: InvocationRecord) -> None:
        if not self._enabled:
            return
        logger.info("[audit] %s", json.dumps(self.to_dict(record), ensure_ascii=False, default=str))


__all__ = ["AuditLogger", "InvocationRecord", "scrub"]
