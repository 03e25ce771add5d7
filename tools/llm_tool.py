"""Chat completion tool backed by an OpenAI-compatible endpoint."""

from __future__ import annotations

import logging
from functools import partial
from typing import Any, Dict, List, Optional

import openai
from openai import OpenAI
from pydantic import Field

from app.config import LLMSettings
from core.results import InvocationResult, Ok, not_configured, upstream_error
from core.schema_validator import Identifier, ToolArgs
from core.tool_registry import ToolEntry
from tools.context import ToolContext

logger = logging.getLogger(__name__)

_SERVICE = "LLM"


class ChatArgs(ToolArgs):
    prompt: str = Field(..., min_length=1, description="User message.")
    system: Optional[str] = Field(None, description="Optional system instruction.")
    model: Optional[Identifier] = Field(None, description="Override LLM_MODEL for this call.")
    temperature: float = Field(0.2, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(None, ge=1, le=8192)


def build_client(settings: LLMSettings, timeout: float) -> OpenAI:
    """Construct the SDK client; tests replace this to avoid network calls."""

    return OpenAI(api_key=settings.api_key, base_url=settings.base_url, timeout=timeout, max_retries=0)


def _messages(args: Dict[str, Any]) -> List[Dict[str, str]]:
    messages: List[Dict[str, str]] = []
    if args.get("system"):
        messages.append({"role": "system", "content": args["system"]})
    messages.append({"role": "user", "content": args["prompt"]})
    return messages


def chat(args: Dict[str, Any], context: ToolContext) -> InvocationResult:
    settings = context.settings.llm
    if not settings.api_key:
        return not_configured(_SERVICE, "OPENAI_API_KEY")

    model = args.get("model") or settings.model
    request: Dict[str, Any] = {
        "model": model,
        "messages": _messages(args),
        "temperature": args.get("temperature", 0.2),
    }
    if args.get("max_tokens"):
        request["max_tokens"] = args["max_tokens"]

    client = build_client(settings, context.settings.upstream_timeout_seconds)
    try:
        response = client.chat.completions.create(**request)
    except openai.APIStatusError as exc:
        logger.info("LLM call failed with HTTP %s", exc.status_code)
        return upstream_error(f"{_SERVICE} request failed with HTTP {exc.status_code}: {exc.message}", status=exc.status_code, body=exc.body)
    except openai.APIError as exc:
        logger.warning("LLM call failed: %s", exc)
        return upstream_error(f"{_SERVICE} request failed: {exc}")

    if not response.choices:
        return upstream_error(f"{_SERVICE} returned no choices")
    choice = response.choices[0]
    usage = getattr(response, "usage", None)
    return Ok({
        "model": getattr(response, "model", model),
        "content": getattr(choice.message, "content", None) or "",
        "finish_reason": getattr(choice, "finish_reason", None),
        "usage": {
            "prompt_tokens": getattr(usage, "prompt_tokens", None),
            "completion_tokens": getattr(usage, "completion_tokens", None),
        } if usage else None,
    })


def entries(context: ToolContext) -> List[ToolEntry]:
    return [
        ToolEntry(
            name="llm.chat",
            description="Send a prompt to the configured LLM and return its reply.",
            args_model=ChatArgs,
            handler=partial(chat, context=context),
        )
    ]
