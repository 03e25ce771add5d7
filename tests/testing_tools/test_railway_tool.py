from app.config import BridgeSettings, RailwaySettings
from core.results import ErrorKind, Ok
from core.write_guard import WriteGuard
from tools import railway_tool
from tools.context import ToolContext


def _context(fake_upstream, *, token="rw-token", allow_writes=True):
    settings = BridgeSettings(railway=RailwaySettings(token=token))
    return ToolContext(settings=settings, guard=WriteGuard(allow_writes=allow_writes), http=fake_upstream)


def test_list_projects_flattens_graphql_edges(fake_upstream):
    fake_upstream.queue(Ok({"data": {"projects": {"edges": [{"node": {
        "id": "p1",
        "name": "api",
        "services": {"edges": [{"node": {"id": "s1", "name": "web"}}]},
        "environments": {"edges": [{"node": {"id": "e1", "name": "production"}}]},
    }}]}}}))

    result = railway_tool.list_projects({}, _context(fake_upstream))

    _, url, kwargs = fake_upstream.calls[0]
    assert url == "https://backboard.railway.app/graphql/v2"
    assert kwargs["headers"]["Authorization"] == "Bearer rw-token"
    assert result.payload == {
        "count": 1,
        "projects": [{
            "id": "p1",
            "name": "api",
            "services": [{"id": "s1", "name": "web"}],
            "environments": [{"id": "e1", "name": "production"}],
        }],
    }


def test_graphql_errors_become_upstream_errors(fake_upstream):
    fake_upstream.queue(Ok({"errors": [{"message": "Not Authorized"}], "data": None}))

    result = railway_tool.list_projects({}, _context(fake_upstream))

    assert result.kind is ErrorKind.UPSTREAM_ERROR
    assert result.message == "Railway GraphQL error: Not Authorized"
    assert result.body == [{"message": "Not Authorized"}]


def test_trigger_deploy_sends_variables(fake_upstream):
    fake_upstream.queue(Ok({"data": {"serviceInstanceRedeploy": True}}))

    result = railway_tool.trigger_deploy({"service_id": "s1", "environment_id": "e1"}, _context(fake_upstream))

    assert fake_upstream.calls[0][2]["json"]["variables"] == {"serviceId": "s1", "environmentId": "e1"}
    assert result.payload == {"triggered": True, "service_id": "s1", "environment_id": "e1"}


def test_trigger_deploy_respects_guard_and_token(fake_upstream):
    blocked = railway_tool.trigger_deploy({"service_id": "s", "environment_id": "e"}, _context(fake_upstream, allow_writes=False))
    missing = railway_tool.trigger_deploy({"service_id": "s", "environment_id": "e"}, _context(fake_upstream, token=None))

    assert blocked.kind is ErrorKind.WRITE_DISABLED
    assert "RAILWAY_TOKEN" in missing.message
    assert fake_upstream.calls == []
