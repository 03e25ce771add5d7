import json

import requests

from core.http import UpstreamClient
from core.results import ErrorKind


class FakeResponse:
    def __init__(self, status_code=200, body=None, content_type="application/json"):
        self.status_code = status_code
        self.headers = {"Content-Type": content_type}
        if body is None:
            self.text = ""
        elif isinstance(body, str):
            self.text = body
        else:
            self.text = json.dumps(body)
        self.content = self.text.encode("utf-8")

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return json.loads(self.text)


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error:
            raise self.error
        return self.response

    def close(self):
        pass


def test_success_returns_decoded_json_and_passes_timeout():
    session = FakeSession(FakeResponse(body={"id": 1}))
    client = UpstreamClient(timeout=3.0, session=session)

    result = client.get("https://api.example.com/thing", service="Example", params={"a": 1})

    assert result.ok
    assert result.payload == {"id": 1}
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("GET", "https://api.example.com/thing")
    assert kwargs["timeout"] == 3.0
    assert kwargs["params"] == {"a": 1}


def test_non_2xx_keeps_upstream_status_and_body():
    session = FakeSession(FakeResponse(status_code=404, body={"message": "Not Found"}))
    client = UpstreamClient(session=session)

    result = client.post("https://api.example.com/thing", service="GitHub", json={"x": 1})

    assert not result.ok
    assert result.kind is ErrorKind.UPSTREAM_ERROR
    assert result.status == 404
    assert result.body == {"message": "Not Found"}
    assert result.message == "GitHub request failed with HTTP 404: Not Found"


def test_empty_body_decodes_to_none_and_text_is_kept():
    assert UpstreamClient(session=FakeSession(FakeResponse(status_code=204))).get("u", service="S").payload is None

    text = UpstreamClient(session=FakeSession(FakeResponse(body="plain", content_type="text/plain"))).get("u", service="S")
    assert text.payload == "plain"


def test_transport_failures_become_errors_without_status():
    timeout = UpstreamClient(timeout=2, session=FakeSession(error=requests.Timeout("slow"))).get("u", service="Railway")
    assert timeout.message == "Railway request timed out after 2s"
    assert timeout.status is None

    refused = UpstreamClient(session=FakeSession(error=requests.ConnectionError("refused"))).get("u", service="Docker Engine")
    assert refused.message.startswith("Docker Engine request failed: ")
