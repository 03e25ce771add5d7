"""Assemble the bridge (registry, hub, dispatcher, app) and serve it with uvicorn."""

from __future__ import annotations

import argparse
import logging
from typing import Optional, Sequence

import uvicorn
from fastapi import FastAPI

from app.config import BridgeSettings, load_settings
from app.web_api import create_app
from core.audit_logger import AuditLogger
from core.broadcast import BroadcastHub
from core.dispatcher import Dispatcher
from tools import ToolContext, build_registry

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=_LOG_FORMAT)


# -- Dispatcher construction ---------------------------------------------------
def build_dispatcher(settings: BridgeSettings) -> Dispatcher:
    """WHAT: wire the registry, broadcast hub and audit logger behind one dispatcher.

    WHY: every entry point (HTTP, JSON-RPC, tests) must share handler bindings
    and publish behaviour.
    HOW: bind handlers to a `ToolContext` built from `settings`, then hand the
    registry, a sized hub and the audit logger to `Dispatcher`.
    """
    context = ToolContext.from_settings(settings)
    registry = build_registry(context)
    hub = BroadcastHub(
        keepalive_seconds=settings.sse_keepalive_seconds,
        buffer_size=settings.sse_buffer_size,
    )
    audit_logger = AuditLogger(enabled=settings.audit_log_enabled, redact=settings.log_redaction_enabled)
    return Dispatcher(
        registry,
        hub,
        timeout_seconds=settings.invoke_timeout_seconds,
        audit_logger=audit_logger,
    )


def build_app(settings: Optional[BridgeSettings] = None) -> FastAPI:
    """Application factory used by ``uvicorn --factory app.main:build_app``."""

    config = settings or load_settings()
    configure_logging(config.log_level)
    dispatcher = build_dispatcher(config)
    logger.info(
        "Bridge ready: %d tools, writes %s, version %s",
        len(dispatcher.registry),
        "enabled" if config.allow_writes else "disabled",
        config.version,
    )
    return create_app(dispatcher, config)


# -- Server entry point --------------------------------------------------------
def main(argv: Optional[Sequence[str]] = None) -> None:
    settings = load_settings()
    parser = argparse.ArgumentParser(description="Serve the tool bridge over HTTP.")
    parser.add_argument("--host", default=settings.host)
    parser.add_argument("--port", type=int, default=settings.port)
    args = parser.parse_args(argv)

    uvicorn.run(
        build_app(settings),
        host=args.host,
        port=args.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
