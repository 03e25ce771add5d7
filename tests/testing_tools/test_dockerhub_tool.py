from app.config import BridgeSettings, DockerSettings
from core.results import Ok, upstream_error
from core.write_guard import WriteGuard
from tools import dockerhub_tool
from tools.context import ToolContext


def _context(fake_upstream, **docker):
    return ToolContext(settings=BridgeSettings(docker=DockerSettings(**docker)), guard=WriteGuard(), http=fake_upstream)


def test_list_tags_defaults_to_library_namespace(fake_upstream):
    fake_upstream.queue(Ok({"count": 120, "results": [
        {"name": "latest", "last_updated": "2024-05-01T00:00:00Z", "full_size": 100, "digest": "sha256:abc"},
    ]}))

    result = dockerhub_tool.list_tags({"namespace": "library", "repository": "nginx", "page_size": 1}, _context(fake_upstream))

    _, url, kwargs = fake_upstream.calls[0]
    assert url == "https://hub.docker.com/v2/repositories/library/nginx/tags"
    assert kwargs["params"] == {"page_size": 1, "ordering": "last_updated"}
    assert kwargs["headers"] == {}
    assert result.payload["count"] == 120
    assert result.payload["tags"][0]["name"] == "latest"


def test_get_repository_sends_token_when_configured(fake_upstream):
    fake_upstream.queue(Ok({"name": "app", "namespace": "acme", "star_count": 2, "pull_count": 50, "is_private": True}))

    result = dockerhub_tool.get_repository({"namespace": "acme", "repository": "app"}, _context(fake_upstream, hub_token="hub"))

    assert fake_upstream.calls[0][2]["headers"] == {"Authorization": "Bearer hub"}
    assert result.payload["pull_count"] == 50
    assert result.payload["is_private"] is True


def test_missing_repository_reports_upstream_status(fake_upstream):
    fake_upstream.queue(upstream_error("Docker Hub request failed with HTTP 404", status=404))

    result = dockerhub_tool.get_repository({"repository": "nope"}, _context(fake_upstream))

    assert not result.ok
    assert result.status == 404
