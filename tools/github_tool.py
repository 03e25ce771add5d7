"""GitHub REST tools for repositories and issues."""

from __future__ import annotations

from functools import partial
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from core.results import InvocationResult, Ok, not_configured
from core.schema_validator import Identifier, ToolArgs
from core.tool_registry import ToolEntry
from tools.context import ToolContext

_SERVICE = "GitHub"
_API_VERSION = "2022-11-28"
_NAME_PATTERN = r"^[A-Za-z0-9_.-]+$"


class ListReposArgs(ToolArgs):
    owner: Optional[Identifier] = Field(None, pattern=_NAME_PATTERN, description="User or org; omit for the token's own repos.")
    type: Literal["all", "owner", "member"] = "owner"
    per_page: int = Field(30, ge=1, le=100)


class RepoArgs(ToolArgs):
    owner: Identifier = Field(..., min_length=1, pattern=_NAME_PATTERN)
    repo: Identifier = Field(..., min_length=1, pattern=_NAME_PATTERN)


class ListIssuesArgs(RepoArgs):
    state: Literal["open", "closed", "all"] = "open"
    per_page: int = Field(30, ge=1, le=100)


class CreateIssueArgs(RepoArgs):
    title: str = Field(..., min_length=1, max_length=256)
    body: Optional[str] = None
    labels: List[str] = Field(default_factory=list)


# --- Low-level helpers -------------------------------------------------------
def _headers(token: Optional[str]) -> Dict[str, str]:
    headers = {
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": _API_VERSION,
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def _summarize_repo(repo: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "full_name": repo.get("full_name"),
        "description": repo.get("description"),
        "private": repo.get("private"),
        "default_branch": repo.get("default_branch"),
        "stars": repo.get("stargazers_count"),
        "url": repo.get("html_url"),
        "updated_at": repo.get("updated_at"),
    }


def _summarize_issue(issue: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "number": issue.get("number"),
        "title": issue.get("title"),
        "state": issue.get("state"),
        "url": issue.get("html_url"),
        "labels": [label.get("name") for label in issue.get("labels") or [] if isinstance(label, dict)],
        "is_pull_request": "pull_request" in issue,
    }


# --- Tool handlers -----------------------------------------------------------
def list_repos(args: Dict[str, Any], context: ToolContext) -> InvocationResult:
    settings = context.settings.github
    owner = args.get("owner")
    params: Dict[str, Any] = {"per_page": args.get("per_page", 30), "type": args.get("type", "owner")}
    if owner:
        url = f"{settings.api_base}/users/{owner}/repos"
    else:
        if not settings.token:
            return not_configured(_SERVICE, "GITHUB_TOKEN")
        url = f"{settings.api_base}/user/repos"

    result = context.http.get(url, service=_SERVICE, headers=_headers(settings.token), params=params)
    if not result.ok:
        return result
    repos = result.payload if isinstance(result.payload, list) else []
    return Ok({"count": len(repos), "repos": [_summarize_repo(repo) for repo in repos if isinstance(repo, dict)]})


def get_repo(args: Dict[str, Any], context: ToolContext) -> InvocationResult:
    settings = context.settings.github
    result = context.http.get(
        f"{settings.api_base}/repos/{args['owner']}/{args['repo']}",
        service=_SERVICE,
        headers=_headers(settings.token),
    )
    if not result.ok:
        return result
    repo = result.payload if isinstance(result.payload, dict) else {}
    summary = _summarize_repo(repo)
    summary["open_issues"] = repo.get("open_issues_count")
    summary["language"] = repo.get("language")
    return Ok(summary)


def list_issues(args: Dict[str, Any], context: ToolContext) -> InvocationResult:
    settings = context.settings.github
    result = context.http.get(
        f"{settings.api_base}/repos/{args['owner']}/{args['repo']}/issues",
        service=_SERVICE,
        headers=_headers(settings.token),
        params={"state": args.get("state", "open"), "per_page": args.get("per_page", 30)},
    )
    if not result.ok:
        return result
    issues = result.payload if isinstance(result.payload, list) else []
    return Ok({"count": len(issues), "issues": [_summarize_issue(item) for item in issues if isinstance(item, dict)]})


def create_issue(args: Dict[str, Any], context: ToolContext) -> InvocationResult:
    """Open an issue; refused while writes are disabled."""

    blocked = context.guard.check("github.createIssue")
    if blocked:
        return blocked
    settings = context.settings.github
    if not settings.token:
        return not_configured(_SERVICE, "GITHUB_TOKEN")

    payload: Dict[str, Any] = {"title": args["title"]}
    if args.get("body"):
        payload["body"] = args["body"]
    if args.get("labels"):
        payload["labels"] = list(args["labels"])

    result = context.http.post(
        f"{settings.api_base}/repos/{args['owner']}/{args['repo']}/issues",
        service=_SERVICE,
        headers=_headers(settings.token),
        json=payload,
    )
    if not result.ok:
        return result
    issue = result.payload if isinstance(result.payload, dict) else {}
    return Ok({"created": True, "issue": _summarize_issue(issue)})


def entries(context: ToolContext) -> List[ToolEntry]:
    return [
        ToolEntry(
            name="github.listRepos",
            description="List repositories for a user/org, or for the authenticated token.",
            args_model=ListReposArgs,
            handler=partial(list_repos, context=context),
        ),
        ToolEntry(
            name="github.getRepo",
            description="Fetch metadata for a single repository.",
            args_model=RepoArgs,
            handler=partial(get_repo, context=context),
        ),
        ToolEntry(
            name="github.listIssues",
            description="List issues of a repository.",
            args_model=ListIssuesArgs,
            handler=partial(list_issues, context=context),
        ),
        ToolEntry(
            name="github.createIssue",
            description="Create an issue in a repository (requires writes enabled).",
            args_model=CreateIssueArgs,
            handler=partial(create_issue, context=context),
            mutating=True,
        ),
    ]
