"""Read-only Docker Hub registry lookups."""

from __future__ import annotations

from functools import partial
from typing import Any, Dict, List

from pydantic import Field

from core.results import InvocationResult, Ok
from core.schema_validator import Identifier, ToolArgs
from core.tool_registry import ToolEntry
from tools.context import ToolContext

_SERVICE = "Docker Hub"
_NAME_PATTERN = r"^[a-z0-9]+(?:[._-][a-z0-9]+)*$"


class RepositoryArgs(ToolArgs):
    namespace: Identifier = Field("library", pattern=_NAME_PATTERN, description="User or org; 'library' for official images.")
    repository: Identifier = Field(..., min_length=1, pattern=_NAME_PATTERN)


class ListTagsArgs(RepositoryArgs):
    page_size: int = Field(10, ge=1, le=100)


def _headers(token: str | None) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"} if token else {}


def _repo_url(context: ToolContext, args: Dict[str, Any]) -> str:
    base = context.settings.docker.hub_api_base
    return f"{base}/repositories/{args.get('namespace', 'library')}/{args['repository']}"


def list_tags(args: Dict[str, Any], context: ToolContext) -> InvocationResult:
    result = context.http.get(
        f"{_repo_url(context, args)}/tags",
        service=_SERVICE,
        headers=_headers(context.settings.docker.hub_token),
        params={"page_size": args.get("page_size", 10), "ordering": "last_updated"},
    )
    if not result.ok:
        return result
    body = result.payload if isinstance(result.payload, dict) else {}
    tags = []
    for item in body.get("results") or []:
        if not isinstance(item, dict):
            continue
        tags.append({
            "name": item.get("name"),
            "last_updated": item.get("last_updated"),
            "full_size": item.get("full_size"),
            "digest": item.get("digest"),
        })
    return Ok({"count": body.get("count", len(tags)), "tags": tags})


def get_repository(args: Dict[str, Any], context: ToolContext) -> InvocationResult:
    result = context.http.get(
        _repo_url(context, args),
        service=_SERVICE,
        headers=_headers(context.settings.docker.hub_token),
    )
    if not result.ok:
        return result
    body = result.payload if isinstance(result.payload, dict) else {}
    return Ok({
        "name": body.get("name"),
        "namespace": body.get("namespace"),
        "description": body.get("description"),
        "star_count": body.get("star_count"),
        "pull_count": body.get("pull_count"),
        "last_updated": body.get("last_updated"),
        "is_private": body.get("is_private"),
    })


def entries(context: ToolContext) -> List[ToolEntry]:
    return [
        ToolEntry(
            name="dockerhub.listTags",
            description="List the most recently updated tags of a Docker Hub repository.",
            args_model=ListTagsArgs,
            handler=partial(list_tags, context=context),
        ),
        ToolEntry(
            name="dockerhub.getRepository",
            description="Fetch Docker Hub repository metadata (stars, pulls, description).",
            args_model=RepositoryArgs,
            handler=partial(get_repository, context=context),
        ),
    ]
