"""Railway tools over the public GraphQL API."""

from __future__ import annotations

from functools import partial
from typing import Any, Dict, List, Optional

from pydantic import Field

from core.results import InvocationResult, Ok, not_configured, upstream_error
from core.schema_validator import Identifier, NoArgs, ToolArgs
from core.tool_registry import ToolEntry
from tools.context import ToolContext

_SERVICE = "Railway"

_PROJECTS_QUERY = """
query Projects {
  projects {
    edges {
      node {
        id
        name
        services { edges { node { id name } } }
        environments { edges { node { id name } } }
      }
    }
  }
}
"""

_REDEPLOY_MUTATION = """
mutation Redeploy($serviceId: String!, $environmentId: String!) {
  serviceInstanceRedeploy(serviceId: $serviceId, environmentId: $environmentId)
}
"""


class TriggerDeployArgs(ToolArgs):
    service_id: Identifier = Field(..., min_length=1)
    environment_id: Identifier = Field(..., min_length=1)


# --- Low-level helpers -------------------------------------------------------
def _graphql(
    context: ToolContext,
    query: str,
    variables: Optional[Dict[str, Any]] = None,
) -> InvocationResult:
    """POST a GraphQL document; GraphQL ``errors`` become ``Err`` too."""

    settings = context.settings.railway
    result = context.http.post(
        settings.api_url,
        service=_SERVICE,
        headers={"Authorization": f"Bearer {settings.token}", "Content-Type": "application/json"},
        json={"query": query, "variables": variables or {}},
    )
    if not result.ok:
        return result
    body = result.payload if isinstance(result.payload, dict) else {}
    errors = body.get("errors")
    if errors:
        first = errors[0] if isinstance(errors, list) and errors else {}
        message = first.get("message") if isinstance(first, dict) else None
        return upstream_error(f"{_SERVICE} GraphQL error: {message or 'unknown error'}", body=errors)
    return Ok(body.get("data") or {})


def _nodes(connection: Any) -> List[Dict[str, Any]]:
    if not isinstance(connection, dict):
        return []
    return [edge["node"] for edge in connection.get("edges") or [] if isinstance(edge, dict) and edge.get("node")]


# --- Tool handlers -----------------------------------------------------------
def list_projects(args: Dict[str, Any], context: ToolContext) -> InvocationResult:
    if not context.settings.railway.token:
        return not_configured(_SERVICE, "RAILWAY_TOKEN")
    result = _graphql(context, _PROJECTS_QUERY)
    if not result.ok:
        return result
    projects = []
    for node in _nodes(result.payload.get("projects")):
        projects.append({
            "id": node.get("id"),
            "name": node.get("name"),
            "services": [{"id": s.get("id"), "name": s.get("name")} for s in _nodes(node.get("services"))],
            "environments": [{"id": e.get("id"), "name": e.get("name")} for e in _nodes(node.get("environments"))],
        })
    return Ok({"count": len(projects), "projects": projects})


def trigger_deploy(args: Dict[str, Any], context: ToolContext) -> InvocationResult:
    """Redeploy a service instance; refused while writes are disabled."""

    blocked = context.guard.check("railway.triggerDeploy")
    if blocked:
        return blocked
    if not context.settings.railway.token:
        return not_configured(_SERVICE, "RAILWAY_TOKEN")

    result = _graphql(
        context,
        _REDEPLOY_MUTATION,
        {"serviceId": args["service_id"], "environmentId": args["environment_id"]},
    )
    if not result.ok:
        return result
    return Ok({
        "triggered": bool(result.payload.get("serviceInstanceRedeploy")),
        "service_id": args["service_id"],
        "environment_id": args["environment_id"],
    })


def entries(context: ToolContext) -> List[ToolEntry]:
    return [
        ToolEntry(
            name="railway.listProjects",
            description="List Railway projects with their services and environments.",
            args_model=NoArgs,
            handler=partial(list_projects, context=context),
        ),
        ToolEntry(
            name="railway.triggerDeploy",
            description="Redeploy a Railway service in an environment (requires writes enabled).",
            args_model=TriggerDeployArgs,
            handler=partial(trigger_deploy, context=context),
            mutating=True,
        ),
    ]
