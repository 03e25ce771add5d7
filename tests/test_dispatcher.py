import asyncio
import json
import logging
import time

from pydantic import Field

from core.audit_logger import AuditLogger
from core.broadcast import BroadcastHub, EventKind
from core.dispatcher import INTERNAL_ERROR_MESSAGE, Dispatcher, InvocationRequest
from core.results import Err, ErrorKind, Ok, upstream_error
from core.schema_validator import NoArgs, ToolArgs
from core.tool_registry import ToolEntry, ToolRegistry


class CountArgs(ToolArgs):
    n: int = Field(..., ge=0)


class RecordingHandler:
    """Handler stub that counts invocations and returns a canned result."""

    def __init__(self, result=None, *, raises=None, delay=0.0) -> None:
        self.calls = []
        self.result = result if result is not None else Ok({"done": True})
        self.raises = raises
        self.delay = delay

    def __call__(self, args):
        self.calls.append(args)
        if self.delay:
            time.sleep(self.delay)
        if self.raises:
            raise self.raises
        return self.result


def build_dispatcher(handler, *, args_model=NoArgs, timeout=None, audit_logger=None):
    registry = ToolRegistry([ToolEntry(name="work", description="Do work.", args_model=args_model, handler=handler)])
    hub = BroadcastHub()
    return Dispatcher(registry, hub, timeout_seconds=timeout, audit_logger=audit_logger), hub


def _dispatch(dispatcher, tool="work", args=None, correlation_id=None):
    return asyncio.run(dispatcher.dispatch(InvocationRequest(tool=tool, args=args or {}, correlation_id=correlation_id)))


def test_unknown_tool_never_runs_a_handler_or_broadcasts():
    handler = RecordingHandler()
    dispatcher, hub = build_dispatcher(handler)
    subscriber = hub.subscribe()

    outcome = _dispatch(dispatcher, tool="nope")

    assert outcome.status_code == 400
    assert outcome.body == {"ok": False, "error": "Unknown tool", "tool": "nope"}
    assert handler.calls == []
    assert subscriber.get_nowait() is None


def test_invalid_arguments_never_reach_the_handler():
    handler = RecordingHandler()
    dispatcher, hub = build_dispatcher(handler, args_model=CountArgs)
    subscriber = hub.subscribe()

    outcome = _dispatch(dispatcher, args={"n": -1})

    assert outcome.status_code == 400
    assert outcome.result.kind is ErrorKind.VALIDATION_ERROR
    assert outcome.body["issues"][0]["field"] == "n"
    assert handler.calls == []
    assert subscriber.get_nowait() is None


def test_success_body_matches_broadcast_payload_and_correlation_id():
    handler = RecordingHandler(Ok({"value": 42}))
    dispatcher, hub = build_dispatcher(handler, args_model=CountArgs)
    subscriber = hub.subscribe()

    outcome = _dispatch(dispatcher, args={"n": 3, "ignored": True}, correlation_id="stream-1")

    assert outcome.status_code == 200
    assert outcome.body == {"value": 42}
    assert handler.calls == [{"n": 3}]
    event = subscriber.get_nowait()
    assert event.kind is EventKind.TOOL_RESULT
    assert event.correlation_id == "stream-1" == outcome.correlation_id
    assert event.tool == "work"
    assert event.payload == outcome.body


def test_correlation_id_is_generated_when_missing():
    dispatcher, _ = build_dispatcher(RecordingHandler())

    first = _dispatch(dispatcher)
    second = _dispatch(dispatcher)

    assert len(first.correlation_id) == 32
    assert first.correlation_id != second.correlation_id


def test_handler_error_result_is_broadcast_as_tool_error():
    handler = RecordingHandler(upstream_error("GitHub request failed with HTTP 404", status=404, body={"message": "Not Found"}))
    dispatcher, hub = build_dispatcher(handler)
    subscriber = hub.subscribe()

    outcome = _dispatch(dispatcher)

    assert outcome.status_code == 500
    assert outcome.body == {
        "ok": False,
        "error": "GitHub request failed with HTTP 404",
        "tool": "work",
        "upstream_status": 404,
        "upstream_body": {"message": "Not Found"},
    }
    event = subscriber.get_nowait()
    assert event.kind is EventKind.TOOL_ERROR
    assert event.payload == outcome.body


def test_raising_handler_becomes_internal_error():
    dispatcher, hub = build_dispatcher(RecordingHandler(raises=RuntimeError("boom")))
    subscriber = hub.subscribe()

    outcome = _dispatch(dispatcher)

    assert outcome.result.kind is ErrorKind.INTERNAL_ERROR
    assert outcome.body["error"] == INTERNAL_ERROR_MESSAGE
    assert "boom" not in json.dumps(outcome.body)
    assert subscriber.get_nowait().kind is EventKind.TOOL_ERROR


def test_handler_returning_plain_value_is_internal_error():
    dispatcher, _ = build_dispatcher(RecordingHandler({"raw": "dict"}))

    outcome = _dispatch(dispatcher)

    assert outcome.status_code == 500
    assert isinstance(outcome.result, Err)


def test_slow_handler_times_out():
    dispatcher, hub = build_dispatcher(RecordingHandler(delay=0.5), timeout=0.05)
    subscriber = hub.subscribe()

    outcome = _dispatch(dispatcher)

    assert outcome.status_code == 504
    assert outcome.result.kind is ErrorKind.TIMEOUT
    assert "timed out" in outcome.body["error"]
    assert subscriber.get_nowait().kind is EventKind.TOOL_ERROR


def test_each_dispatch_logs_one_audit_record(caplog):
    caplog.set_level(logging.INFO, logger="core.audit_logger")
    audit = AuditLogger()
    dispatcher, _ = build_dispatcher(RecordingHandler(), args_model=CountArgs, audit_logger=audit)

    _dispatch(dispatcher, args={"n": 1}, correlation_id="cid-1")
    _dispatch(dispatcher, tool="missing")

    rows = [
        json.loads(record.getMessage()[len("[audit] "):])
        for record in caplog.records
        if record.name == "core.audit_logger"
    ]
    assert [row["tool"] for row in rows] == ["work", "missing"]
    assert rows[0]["ok"] is True
    assert rows[0]["correlation_id"] == "cid-1"
    assert rows[0]["args"] == {"n": 1}
    assert rows[1]["kind"] == "unknown_tool"
    assert rows[1]["status_code"] == 400
