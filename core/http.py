"""Shared HTTP session for upstream calls, normalized into invocation results."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from core.results import InvocationResult, Ok, upstream_error

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_SECONDS = 15.0
_USER_AGENT = "tool-bridge/1.0"
_MAX_ERROR_BODY_CHARS = 2000


def _build_session(pool_size: int = 10) -> requests.Session:
    session = requests.Session()
    session.headers.update({
        "User-Agent": _USER_AGENT,
        "Accept": "application/json",
    })
    # One attempt per invocation; the bridge does not retry upstream calls.
    retry = Retry(total=0, connect=0, read=0, redirect=3, status=0, raise_on_status=False)
    adapter = HTTPAdapter(max_retries=retry, pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def _decode_body(response: requests.Response) -> Any:
    if not response.content:
        return None
    content_type = response.headers.get("Content-Type", "")
    if "json" in content_type:
        try:
            return response.json()
        except ValueError:
            pass
    text = response.text
    if len(text) > _MAX_ERROR_BODY_CHARS:
        return text[:_MAX_ERROR_BODY_CHARS] + "..."
    return text


def _error_message(service: str, response: requests.Response, body: Any) -> str:
    detail = ""
    if isinstance(body, Mapping):
        for key in ("message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                detail = value.strip()
                break
    suffix = f": {detail}" if detail else ""
    return f"{service} request failed with HTTP {response.status_code}{suffix}"


class UpstreamClient:
    """Thin wrapper around ``requests.Session`` that never raises.

    Every call returns ``Ok(decoded_body)`` for 2xx responses and ``Err`` with
    the upstream status and body otherwise; transport failures become ``Err``
    without a status.
    """

    def __init__(
        self,
        *,
        timeout: float = _DEFAULT_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._timeout = timeout
        self._session = session or _build_session()

    @property
    def timeout(self) -> float:
        return self._timeout

    def request(
        self,
        method: str,
        url: str,
        *,
        service: str,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
    ) -> InvocationResult:
        try:
            response = self._session.request(
                method,
                url,
                headers=dict(headers or {}),
                params=params,
                json=json,
                timeout=self._timeout,
            )
        except requests.Timeout:
            logger.warning("%s %s %s timed out after %ss", service, method, url, self._timeout)
            return upstream_error(f"{service} request timed out after {self._timeout:g}s")
        except requests.RequestException as exc:
            logger.warning("%s %s %s failed: %s", service, method, url, exc)
            return upstream_error(f"{service} request failed: {exc}")

        body = _decode_body(response)
        if not response.ok:
            logger.info("%s %s %s returned HTTP %s", service, method, url, response.status_code)
            return upstream_error(_error_message(service, response, body), status=response.status_code, body=body)
        return Ok(body)

    def get(self, url: str, *, service: str, **kwargs: Any) -> InvocationResult:
        return self.request("GET", url, service=service, **kwargs)

    def post(self, url: str, *, service: str, **kwargs: Any) -> InvocationResult:
        return self.request("POST", url, service=service, **kwargs)

    def close(self) -> None:
        self._session.close()


__all__ = ["UpstreamClient"]
