from __future__ import annotations

from typing import Any, Dict, List, Tuple

import pytest

from core.results import InvocationResult, Ok


class FakeUpstream:
    """Stands in for ``UpstreamClient``: records calls, replays queued results."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []
        self.responses: List[InvocationResult] = []
        self.timeout = 1.0

    def queue(self, *results: InvocationResult) -> "FakeUpstream":
        self.responses.extend(results)
        return self

    def request(self, method: str, url: str, *, service: str, **kwargs: Any) -> InvocationResult:
        self.calls.append((method, url, kwargs))
        if self.responses:
            return self.responses.pop(0)
        return Ok(None)

    def get(self, url: str, *, service: str, **kwargs: Any) -> InvocationResult:
        return self.request("GET", url, service=service, **kwargs)

    def post(self, url: str, *, service: str, **kwargs: Any) -> InvocationResult:
        return self.request("POST", url, service=service, **kwargs)

    def close(self) -> None:
        pass


@pytest.fixture
def fake_upstream() -> FakeUpstream:
    return FakeUpstream()
