"""Centralize defaults and environment lookups for the bridge.

Every getter accepts an optional ``env`` mapping so tests can pass a plain dict
instead of patching ``os.environ``. ``load_settings`` gathers them into one
frozen ``BridgeSettings`` object that the rest of the process receives at
startup; nothing below the app layer reads the environment directly.

An optional YAML file (``BRIDGE_CONFIG_PATH``) may supply values keyed by the
same variable names. Real environment variables take precedence over it.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from importlib.metadata import PackageNotFoundError, version as package_version
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml
from dotenv import load_dotenv

load_dotenv()

# ---------------------------------------------------------------------------
# Default configuration values
# ---------------------------------------------------------------------------
_DEFAULT_HOST = "0.0.0.0"
_DEFAULT_PORT = 8080
_DEFAULT_ALLOW_WRITES = False
_DEFAULT_INVOKE_TIMEOUT_SECONDS = 60.0
_DEFAULT_UPSTREAM_TIMEOUT_SECONDS = 15.0
_DEFAULT_SSE_KEEPALIVE_MS = 30_000
_DEFAULT_SSE_BUFFER_SIZE = 100
_DEFAULT_CORS_ORIGINS = "*"
_DEFAULT_LOG_LEVEL = "INFO"
_DEFAULT_AUDIT_LOG_ENABLED = True
_DEFAULT_LOG_REDACTION_ENABLED = True
_DEFAULT_DISCORD_API_BASE = "https://discord.com/api/v10"
_DEFAULT_GITHUB_API_BASE = "https://api.github.com"
_DEFAULT_RAILWAY_API_URL = "https://backboard.railway.app/graphql/v2"
_DEFAULT_DOCKERHUB_API_BASE = "https://hub.docker.com/v2"
_DEFAULT_DOCKER_API_VERSION = "v1.43"
_DEFAULT_LLM_MODEL = "gpt-4o-mini"
_PACKAGE_NAME = "tool-bridge"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigError(RuntimeError):
    """Raised when the optional YAML config file is missing or malformed."""


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------
def _source(env: Mapping[str, str] | None) -> Mapping[str, str]:
    return env if env is not None else os.environ


def _get_str(env: Mapping[str, str] | None, key: str, default: str = "") -> str:
    raw = _source(env).get(key)
    if raw is None:
        return default
    return str(raw).strip()


def _get_bool(env: Mapping[str, str] | None, key: str, default: bool) -> bool:
    raw = _source(env).get(key)
    if raw is None:
        return default
    normalized = str(raw).strip().lower()
    if normalized in _FALSE_VALUES:
        return False
    if normalized in _TRUE_VALUES:
        return True
    return default


def _get_int(env: Mapping[str, str] | None, key: str, default: int, *, minimum: int = 0) -> int:
    raw = _source(env).get(key)
    if raw is None:
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        return default
    return max(value, minimum)


def _get_float(env: Mapping[str, str] | None, key: str, default: float) -> float:
    raw = _source(env).get(key)
    if raw is None:
        return default
    try:
        value = float(str(raw).strip())
    except ValueError:
        return default
    return max(value, 0.0)


def _optional(value: str) -> Optional[str]:
    return value or None


# ---------------------------------------------------------------------------
# Server settings
# ---------------------------------------------------------------------------
def get_host(env: Mapping[str, str] | None = None) -> str:
    return _get_str(env, "HOST", _DEFAULT_HOST) or _DEFAULT_HOST


def get_port(env: Mapping[str, str] | None = None) -> int:
    """Return the listening port, falling back to the default when out of range."""

    value = _get_int(env, "PORT", _DEFAULT_PORT)
    return value if 0 < value <= 65535 else _DEFAULT_PORT


def get_admin_token(env: Mapping[str, str] | None = None) -> Optional[str]:
    """Return the shared secret guarding privileged routes, if configured."""

    return _optional(_get_str(env, "ADMIN_TOKEN"))


def is_write_allowed(env: Mapping[str, str] | None = None) -> bool:
    """Return True only when ``ALLOW_WRITES`` is explicitly enabled."""

    return _get_bool(env, "ALLOW_WRITES", _DEFAULT_ALLOW_WRITES)


def get_invoke_timeout_seconds(env: Mapping[str, str] | None = None) -> float:
    """Return the per-invocation bound in seconds; ``0`` disables it."""

    return _get_float(env, "INVOKE_TIMEOUT_SECONDS", _DEFAULT_INVOKE_TIMEOUT_SECONDS)


def get_upstream_timeout_seconds(env: Mapping[str, str] | None = None) -> float:
    value = _get_float(env, "UPSTREAM_TIMEOUT_SECONDS", _DEFAULT_UPSTREAM_TIMEOUT_SECONDS)
    return value or _DEFAULT_UPSTREAM_TIMEOUT_SECONDS


def get_sse_keepalive_seconds(env: Mapping[str, str] | None = None) -> float:
    """Return the stream keep-alive interval (configured in milliseconds)."""

    millis = _get_int(env, "SSE_KEEPALIVE_MS", _DEFAULT_SSE_KEEPALIVE_MS, minimum=1)
    return millis / 1000.0


def get_sse_buffer_size(env: Mapping[str, str] | None = None) -> int:
    return _get_int(env, "SSE_BUFFER_SIZE", _DEFAULT_SSE_BUFFER_SIZE, minimum=1)


def get_cors_origins(env: Mapping[str, str] | None = None) -> Tuple[str, ...]:
    raw = _get_str(env, "CORS_ALLOW_ORIGINS", _DEFAULT_CORS_ORIGINS)
    origins = tuple(part.strip() for part in raw.split(",") if part.strip())
    return origins or (_DEFAULT_CORS_ORIGINS,)


def get_log_level(env: Mapping[str, str] | None = None) -> str:
    return (_get_str(env, "LOG_LEVEL", _DEFAULT_LOG_LEVEL) or _DEFAULT_LOG_LEVEL).upper()


def get_app_version(env: Mapping[str, str] | None = None) -> str:
    """Return ``APP_VERSION`` or the installed package version, else ``dev``."""

    override = _get_str(env, "APP_VERSION")
    if override:
        return override
    try:
        return package_version(_PACKAGE_NAME)
    except PackageNotFoundError:
        return "dev"


# ---------------------------------------------------------------------------
# Audit log settings
# ---------------------------------------------------------------------------
def is_audit_log_enabled(env: Mapping[str, str] | None = None) -> bool:
    return _get_bool(env, "AUDIT_LOG_ENABLED", _DEFAULT_AUDIT_LOG_ENABLED)


def is_log_redaction_enabled(env: Mapping[str, str] | None = None) -> bool:
    return _get_bool(env, "LOG_REDACTION_ENABLED", _DEFAULT_LOG_REDACTION_ENABLED)


# ---------------------------------------------------------------------------
# Upstream credentials and endpoints
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class DiscordSettings:
    bot_token: Optional[str] = None
    channel_id: Optional[str] = None
    webhook_url: Optional[str] = None
    api_base: str = _DEFAULT_DISCORD_API_BASE


@dataclass(frozen=True)
class GitHubSettings:
    token: Optional[str] = None
    api_base: str = _DEFAULT_GITHUB_API_BASE


@dataclass(frozen=True)
class RailwaySettings:
    token: Optional[str] = None
    api_url: str = _DEFAULT_RAILWAY_API_URL


@dataclass(frozen=True)
class DockerSettings:
    engine_url: Optional[str] = None
    api_version: str = _DEFAULT_DOCKER_API_VERSION
    hub_api_base: str = _DEFAULT_DOCKERHUB_API_BASE
    hub_token: Optional[str] = None


@dataclass(frozen=True)
class LLMSettings:
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    model: str = _DEFAULT_LLM_MODEL


def get_discord_settings(env: Mapping[str, str] | None = None) -> DiscordSettings:
    return DiscordSettings(
        bot_token=_optional(_get_str(env, "DISCORD_BOT_TOKEN")),
        channel_id=_optional(_get_str(env, "DISCORD_CHANNEL_ID")),
        webhook_url=_optional(_get_str(env, "DISCORD_WEBHOOK_URL")),
        api_base=(_get_str(env, "DISCORD_API_BASE") or _DEFAULT_DISCORD_API_BASE).rstrip("/"),
    )


def get_github_settings(env: Mapping[str, str] | None = None) -> GitHubSettings:
    return GitHubSettings(
        token=_optional(_get_str(env, "GITHUB_TOKEN")),
        api_base=(_get_str(env, "GITHUB_API_BASE") or _DEFAULT_GITHUB_API_BASE).rstrip("/"),
    )


def get_railway_settings(env: Mapping[str, str] | None = None) -> RailwaySettings:
    return RailwaySettings(
        token=_optional(_get_str(env, "RAILWAY_TOKEN")),
        api_url=_get_str(env, "RAILWAY_API_URL") or _DEFAULT_RAILWAY_API_URL,
    )


def get_docker_settings(env: Mapping[str, str] | None = None) -> DockerSettings:
    engine = _get_str(env, "DOCKER_ENGINE_URL").rstrip("/")
    return DockerSettings(
        engine_url=_optional(engine),
        api_version=_get_str(env, "DOCKER_API_VERSION") or _DEFAULT_DOCKER_API_VERSION,
        hub_api_base=(_get_str(env, "DOCKERHUB_API_BASE") or _DEFAULT_DOCKERHUB_API_BASE).rstrip("/"),
        hub_token=_optional(_get_str(env, "DOCKERHUB_TOKEN")),
    )


def get_llm_settings(env: Mapping[str, str] | None = None) -> LLMSettings:
    return LLMSettings(
        api_key=_optional(_get_str(env, "OPENAI_API_KEY")),
        base_url=_optional(_get_str(env, "OPENAI_BASE_URL")),
        model=_get_str(env, "LLM_MODEL") or _DEFAULT_LLM_MODEL,
    )


# ---------------------------------------------------------------------------
# Aggregate settings
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class BridgeSettings:
    """Immutable configuration handed to the bridge at startup."""

    host: str = _DEFAULT_HOST
    port: int = _DEFAULT_PORT
    admin_token: Optional[str] = None
    allow_writes: bool = _DEFAULT_ALLOW_WRITES
    invoke_timeout_seconds: float = _DEFAULT_INVOKE_TIMEOUT_SECONDS
    upstream_timeout_seconds: float = _DEFAULT_UPSTREAM_TIMEOUT_SECONDS
    sse_keepalive_seconds: float = _DEFAULT_SSE_KEEPALIVE_MS / 1000.0
    sse_buffer_size: int = _DEFAULT_SSE_BUFFER_SIZE
    cors_origins: Tuple[str, ...] = (_DEFAULT_CORS_ORIGINS,)
    log_level: str = _DEFAULT_LOG_LEVEL
    audit_log_enabled: bool = _DEFAULT_AUDIT_LOG_ENABLED
    log_redaction_enabled: bool = _DEFAULT_LOG_REDACTION_ENABLED
    version: str = "dev"
    discord: DiscordSettings = field(default_factory=DiscordSettings)
    github: GitHubSettings = field(default_factory=GitHubSettings)
    railway: RailwaySettings = field(default_factory=RailwaySettings)
    docker: DockerSettings = field(default_factory=DockerSettings)
    llm: LLMSettings = field(default_factory=LLMSettings)


def read_config_file(path: Path | str) -> Dict[str, str]:
    """Read a YAML mapping of ``VARIABLE: value`` pairs."""

    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")
    data: Any = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, Mapping):
        raise ConfigError("Config file must contain a mapping of setting names to values.")
    values: Dict[str, str] = {}
    for key, raw in data.items():
        if raw is None:
            continue
        if isinstance(raw, (dict, list)):
            raise ConfigError(f"Config value for '{key}' must be a scalar.")
        if isinstance(raw, bool):
            values[str(key).upper()] = "true" if raw else "false"
        else:
            values[str(key).upper()] = str(raw)
    return values


def _merged_source(env: Mapping[str, str] | None) -> Dict[str, str]:
    source = dict(_source(env))
    config_path = source.get("BRIDGE_CONFIG_PATH")
    if not config_path:
        return source
    merged = read_config_file(config_path)
    merged.update(source)
    return merged


def load_settings(env: Mapping[str, str] | None = None) -> BridgeSettings:
    """Collect every setting into a ``BridgeSettings`` snapshot."""

    source = _merged_source(env)
    return BridgeSettings(
        host=get_host(source),
        port=get_port(source),
        admin_token=get_admin_token(source),
        allow_writes=is_write_allowed(source),
        invoke_timeout_seconds=get_invoke_timeout_seconds(source),
        upstream_timeout_seconds=get_upstream_timeout_seconds(source),
        sse_keepalive_seconds=get_sse_keepalive_seconds(source),
        sse_buffer_size=get_sse_buffer_size(source),
        cors_origins=get_cors_origins(source),
        log_level=get_log_level(source),
        audit_log_enabled=is_audit_log_enabled(source),
        log_redaction_enabled=is_log_redaction_enabled(source),
        version=get_app_version(source),
        discord=get_discord_settings(source),
        github=get_github_settings(source),
        railway=get_railway_settings(source),
        docker=get_docker_settings(source),
        llm=get_llm_settings(source),
    )
