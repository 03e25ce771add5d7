"""FastAPI application exposing the bridge over HTTP, SSE and JSON-RPC."""

from __future__ import annotations

import hmac
import logging
import secrets
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from time import perf_counter
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse, StreamingResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import BridgeSettings
from core.broadcast import BroadcastEvent, BroadcastHub, EventKind, Subscriber
from core.dispatcher import Dispatcher, InvocationRequest
from core.results import ErrorKind

logger = logging.getLogger(__name__)

ADMIN_TOKEN_HEADER = "x-admin-token"
CORRELATION_HEADER = "X-Correlation-Id"
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
_SSE_ALLOW = "GET, HEAD, OPTIONS"

# JSON-RPC 2.0 error codes
RPC_INVALID_REQUEST = -32600
RPC_METHOD_NOT_FOUND = -32601
RPC_INVALID_PARAMS = -32602
RPC_TOOL_FAILED = -32000


class InvokePayload(BaseModel):
    tool: str = Field(..., min_length=1)
    args: Optional[Dict[str, Any]] = None
    stream_id: Optional[str] = None


def _error_body(message: str, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"ok": False, "error": message}
    body.update({key: value for key, value in extra.items() if value is not None})
    return body


def _rpc_ok(request_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _rpc_error(request_id: Any, code: int, message: str, data: Any = None) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": request_id, "error": error}


def new_session_id() -> str:
    """Ten upper-cased url-safe characters, as handed out by ``initialize``."""

    return secrets.token_urlsafe(8)[:10].upper()


def sse_stream(hub: BroadcastHub, manifest_event: BroadcastEvent) -> AsyncIterator[str]:
    """Frame the handshake, manifest and relayed events for one connection.

    The subscriber is created when the stream starts and removed when it
    finishes for any reason: the client disconnecting (the ASGI server cancels
    the generator), a failed write, or the hub closing the subscriber. A client
    that goes away before the first frame never registers at all.
    """

    async def _events() -> AsyncIterator[str]:
        subscriber: Subscriber = hub.subscribe()
        try:
            yield ": ok\n\n"
            yield manifest_event.to_sse()
            subscriber.activate()
            async for event in hub.iter_events(subscriber):
                yield event.to_sse()
        finally:
            hub.unsubscribe(subscriber)

    return _events()


def create_app(
    dispatcher: Dispatcher,
    settings: Optional[BridgeSettings] = None,
) -> FastAPI:
    """Build the FastAPI app around an already-wired dispatcher.

    The registry, hub and settings are cached on ``app.state`` so routes and
    tests read the same instances that were injected here.
    """

    config = settings or BridgeSettings()

    @asynccontextmanager
    async def _lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        dispatcher.hub.close_all()

    app = FastAPI(title="Tool Bridge", version=config.version, lifespan=_lifespan)
    app.state.settings = config
    app.state.dispatcher = dispatcher
    app.state.registry = dispatcher.registry
    app.state.hub = dispatcher.hub
    app.state.admin_token = config.admin_token
    app.state.version = config.version

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[CORRELATION_HEADER],
    )

    def _require_admin_token(request: Request) -> None:
        """Enforce the shared secret on privileged routes when configured."""

        expected = app.state.admin_token
        if not expected:
            return
        provided = (request.headers.get(ADMIN_TOKEN_HEADER) or "").strip()
        if not provided or not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
            raise HTTPException(status_code=401, detail="Unauthorized")

    guarded = [Depends(_require_admin_token)]

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return JSONResponse(status_code=exc.status_code, content=_error_body(detail), headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        issues = [
            {
                "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body") or "body",
                "constraint": str(error.get("type") or "invalid"),
                "message": str(error.get("msg") or "Invalid value"),
            }
            for error in exc.errors()
        ]
        return JSONResponse(status_code=400, content=_error_body("Invalid request body", issues=issues))

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=_error_body("Internal server error"))

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------
    @app.get("/healthz")
    def healthz() -> Dict[str, Any]:
        return {"ok": True, "version": app.state.version}

    @app.get("/health")
    def health() -> RedirectResponse:
        return RedirectResponse(url="/healthz", status_code=307)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    @app.post("/invoke", dependencies=guarded)
    async def invoke(payload: InvokePayload) -> JSONResponse:
        """Run one tool and answer with its result; the same body is broadcast."""

        outcome = await app.state.dispatcher.dispatch(
            InvocationRequest(tool=payload.tool, args=payload.args or {}, correlation_id=payload.stream_id),
            source="invoke",
        )
        return JSONResponse(
            status_code=outcome.status_code,
            content=outcome.body,
            headers={CORRELATION_HEADER: outcome.correlation_id},
        )

    @app.get("/tools")
    def list_tools() -> Dict[str, Any]:
        return {"tools": app.state.registry.manifest()}

    # ------------------------------------------------------------------
    # Stream
    # ------------------------------------------------------------------
    def _manifest_event() -> BroadcastEvent:
        return BroadcastEvent(
            kind=EventKind.MANIFEST,
            payload={"tools": app.state.registry.manifest(), "version": app.state.version},
        )

    @app.head("/sse", dependencies=guarded)
    def sse_head() -> Response:
        return Response(status_code=200, media_type="text/event-stream", headers=SSE_HEADERS)

    @app.get("/sse", dependencies=guarded)
    async def sse() -> StreamingResponse:
        return StreamingResponse(
            sse_stream(app.state.hub, _manifest_event()),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    @app.options("/sse")
    def sse_options() -> Response:
        return Response(status_code=204, headers={"Allow": _SSE_ALLOW})

    @app.post("/sse", dependencies=guarded)
    def sse_post() -> JSONResponse:
        return JSONResponse(status_code=405, content=_error_body("Method Not Allowed"), headers={"Allow": _SSE_ALLOW})

    # ------------------------------------------------------------------
    # JSON-RPC
    # ------------------------------------------------------------------
    async def _rpc_tools_call(request_id: Any, params: Dict[str, Any]) -> Dict[str, Any]:
        name = params.get("name")
        if not isinstance(name, str) or not name:
            return _rpc_error(request_id, RPC_INVALID_PARAMS, "params.name is required")
        arguments = params.get("arguments")
        outcome = await app.state.dispatcher.dispatch(
            InvocationRequest(tool=name, args=arguments if arguments is not None else {}, correlation_id=params.get("stream_id")),
            source="mcp",
        )
        result = outcome.result
        if result.ok:
            return _rpc_ok(request_id, outcome.body)
        if result.kind is ErrorKind.UNKNOWN_TOOL:
            return _rpc_error(request_id, RPC_METHOD_NOT_FOUND, f"Unknown tool: {name}")
        if result.kind is ErrorKind.VALIDATION_ERROR:
            return _rpc_error(request_id, RPC_INVALID_PARAMS, "Invalid arguments", outcome.body.get("issues"))
        return _rpc_error(request_id, RPC_TOOL_FAILED, result.message, outcome.body)

    @app.post("/mcp/", dependencies=guarded)
    async def mcp(request: Request) -> JSONResponse:
        started = perf_counter()
        method: Optional[str] = None
        try:
            try:
                body = await request.json()
            except ValueError:
                return JSONResponse(content=_rpc_error(None, RPC_INVALID_REQUEST, "Invalid JSON-RPC request"))
            if not isinstance(body, dict):
                return JSONResponse(content=_rpc_error(None, RPC_INVALID_REQUEST, "Invalid JSON-RPC request"))

            request_id = body.get("id")
            method = body.get("method")
            params = body.get("params") if isinstance(body.get("params"), dict) else {}

            if method == "initialize":
                return JSONResponse(content=_rpc_ok(request_id, {
                    "session_id": new_session_id(),
                    "serverInfo": {"name": "tool-bridge", "version": app.state.version},
                    "capabilities": {"tools": {}},
                }))
            if method == "tools/list":
                return JSONResponse(content=_rpc_ok(request_id, {"tools": app.state.registry.manifest()}))
            if method == "tools/call":
                return JSONResponse(content=await _rpc_tools_call(request_id, params))
            if method == "ping":
                return JSONResponse(content=_rpc_ok(request_id, {}))
            return JSONResponse(content=_rpc_error(request_id, RPC_METHOD_NOT_FOUND, "Method not found"))
        finally:
            logger.info(
                "[audit] %s",
                {
                    "ts": datetime.now(tz=timezone.utc).isoformat(),
                    "action": method,
                    "duration_ms": int((perf_counter() - started) * 1000),
                },
            )

    @app.api_route("/mcp", methods=["GET", "POST", "PUT", "PATCH", "DELETE"], dependencies=guarded)
    def mcp_wrong_path() -> JSONResponse:
        return JSONResponse(status_code=405, content={"error": "Use POST /mcp/"})

    return app
