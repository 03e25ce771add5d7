"""Discord tools: post a message and read recent channel history.

Messages go through the bot API when ``DISCORD_BOT_TOKEN`` is set, otherwise
through ``DISCORD_WEBHOOK_URL``. Reading history always needs the bot token.
"""

from __future__ import annotations

from functools import partial
from typing import Any, Dict, List, Optional

from pydantic import Field

from core.results import InvocationResult, Ok, not_configured
from core.schema_validator import Identifier, ToolArgs
from core.tool_registry import ToolEntry
from tools.context import ToolContext

_SERVICE = "Discord"
_MAX_CONTENT_LENGTH = 2000
_SNOWFLAKE_PATTERN = r"^\d{1,20}$"


class SendMessageArgs(ToolArgs):
    content: str = Field(..., min_length=1, max_length=_MAX_CONTENT_LENGTH, description="Message text.")
    channel_id: Optional[Identifier] = Field(None, pattern=_SNOWFLAKE_PATTERN, description="Target channel; defaults to DISCORD_CHANNEL_ID.")


class ListMessagesArgs(ToolArgs):
    channel_id: Optional[Identifier] = Field(None, pattern=_SNOWFLAKE_PATTERN, description="Channel to read; defaults to DISCORD_CHANNEL_ID.")
    limit: int = Field(20, ge=1, le=100, description="Number of messages to return.")


# --- Low-level helpers -------------------------------------------------------
def _bot_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bot {token}"}


def _summarize_message(message: Dict[str, Any]) -> Dict[str, Any]:
    author = message.get("author") or {}
    return {
        "id": message.get("id"),
        "channel_id": message.get("channel_id"),
        "content": message.get("content", ""),
        "author": author.get("username"),
        "timestamp": message.get("timestamp"),
    }


# --- Tool handlers -----------------------------------------------------------
def send_message(args: Dict[str, Any], context: ToolContext) -> InvocationResult:
    """Post ``content`` to a channel; refused while writes are disabled."""

    blocked = context.guard.check("discord.sendMessage")
    if blocked:
        return blocked

    settings = context.settings.discord
    content = args["content"]
    channel_id = args.get("channel_id") or settings.channel_id

    if settings.bot_token and channel_id:
        result = context.http.post(
            f"{settings.api_base}/channels/{channel_id}/messages",
            service=_SERVICE,
            headers=_bot_headers(settings.bot_token),
            json={"content": content},
        )
    elif settings.webhook_url:
        result = context.http.post(
            settings.webhook_url,
            service=_SERVICE,
            params={"wait": "true"},
            json={"content": content},
        )
    else:
        return not_configured(_SERVICE, "DISCORD_BOT_TOKEN and DISCORD_CHANNEL_ID", "or DISCORD_WEBHOOK_URL")

    if not result.ok:
        return result
    body = result.payload if isinstance(result.payload, dict) else {}
    return Ok({"sent": True, "message": _summarize_message(body) if body else None})


def list_messages(args: Dict[str, Any], context: ToolContext) -> InvocationResult:
    settings = context.settings.discord
    channel_id = args.get("channel_id") or settings.channel_id
    if not settings.bot_token or not channel_id:
        return not_configured(_SERVICE, "DISCORD_BOT_TOKEN", "DISCORD_CHANNEL_ID")

    result = context.http.get(
        f"{settings.api_base}/channels/{channel_id}/messages",
        service=_SERVICE,
        headers=_bot_headers(settings.bot_token),
        params={"limit": args.get("limit", 20)},
    )
    if not result.ok:
        return result
    messages = result.payload if isinstance(result.payload, list) else []
    return Ok({
        "channel_id": channel_id,
        "count": len(messages),
        "messages": [_summarize_message(item) for item in messages if isinstance(item, dict)],
    })


def entries(context: ToolContext) -> List[ToolEntry]:
    return [
        ToolEntry(
            name="discord.sendMessage",
            description="Send a message to a Discord channel (requires writes enabled).",
            args_model=SendMessageArgs,
            handler=partial(send_message, context=context),
            mutating=True,
        ),
        ToolEntry(
            name="discord.listMessages",
            description="List recent messages from a Discord channel.",
            args_model=ListMessagesArgs,
            handler=partial(list_messages, context=context),
        ),
    ]
