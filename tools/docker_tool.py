"""Docker Engine tools over the Engine HTTP API (``DOCKER_ENGINE_URL``)."""

from __future__ import annotations

from functools import partial
from typing import Any, Dict, List, Optional

from pydantic import Field

from core.results import InvocationResult, Ok, not_configured, upstream_error
from core.schema_validator import Identifier, ToolArgs
from core.tool_registry import ToolEntry
from tools.context import ToolContext

_SERVICE = "Docker Engine"


class ListContainersArgs(ToolArgs):
    all: bool = Field(False, description="Include stopped containers.")


class RunContainerArgs(ToolArgs):
    image: Identifier = Field(..., min_length=1, description="Image reference, e.g. nginx:latest.")
    name: Optional[Identifier] = Field(None, pattern=r"^/?[a-zA-Z0-9][a-zA-Z0-9_.-]+$")
    cmd: Optional[List[str]] = None
    env: Dict[str, str] = Field(default_factory=dict)


def _engine_url(context: ToolContext, path: str) -> Optional[str]:
    settings = context.settings.docker
    if not settings.engine_url:
        return None
    return f"{settings.engine_url}/{settings.api_version}{path}"


def _summarize_container(container: Dict[str, Any]) -> Dict[str, Any]:
    names = container.get("Names") or []
    return {
        "id": (container.get("Id") or "")[:12],
        "name": names[0].lstrip("/") if names else None,
        "image": container.get("Image"),
        "state": container.get("State"),
        "status": container.get("Status"),
    }


def list_containers(args: Dict[str, Any], context: ToolContext) -> InvocationResult:
    url = _engine_url(context, "/containers/json")
    if not url:
        return not_configured(_SERVICE, "DOCKER_ENGINE_URL")
    result = context.http.get(url, service=_SERVICE, params={"all": "true" if args.get("all") else "false"})
    if not result.ok:
        return result
    containers = result.payload if isinstance(result.payload, list) else []
    return Ok({
        "count": len(containers),
        "containers": [_summarize_container(item) for item in containers if isinstance(item, dict)],
    })


def run_container(args: Dict[str, Any], context: ToolContext) -> InvocationResult:
    """Create and start a container; refused while writes are disabled."""

    blocked = context.guard.check("docker.runContainer")
    if blocked:
        return blocked
    create_url = _engine_url(context, "/containers/create")
    if not create_url:
        return not_configured(_SERVICE, "DOCKER_ENGINE_URL")

    create_body: Dict[str, Any] = {"Image": args["image"]}
    if args.get("cmd"):
        create_body["Cmd"] = list(args["cmd"])
    if args.get("env"):
        create_body["Env"] = [f"{key}={value}" for key, value in args["env"].items()]
    params = {"name": args["name"]} if args.get("name") else None

    created = context.http.post(create_url, service=_SERVICE, params=params, json=create_body)
    if not created.ok:
        return created
    container_id = (created.payload or {}).get("Id") if isinstance(created.payload, dict) else None
    if not container_id:
        return upstream_error(f"{_SERVICE} did not return a container id", body=created.payload)

    started = context.http.post(_engine_url(context, f"/containers/{container_id}/start"), service=_SERVICE)
    if not started.ok:
        return started
    return Ok({
        "started": True,
        "id": container_id[:12],
        "image": args["image"],
        "name": args.get("name"),
        "warnings": (created.payload or {}).get("Warnings") or [],
    })


def entries(context: ToolContext) -> List[ToolEntry]:
    return [
        ToolEntry(
            name="docker.listContainers",
            description="List containers on the configured Docker Engine.",
            args_model=ListContainersArgs,
            handler=partial(list_containers, context=context),
        ),
        ToolEntry(
            name="docker.runContainer",
            description="Create and start a container from an image (requires writes enabled).",
            args_model=RunContainerArgs,
            handler=partial(run_container, context=context),
            mutating=True,
        ),
    ]
