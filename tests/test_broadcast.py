import asyncio
import json

import pytest

from core.broadcast import BroadcastEvent, BroadcastHub, EventKind, SubscriberState, ping_event


def _result_event(cid: str = "abc") -> BroadcastEvent:
    return BroadcastEvent(kind=EventKind.TOOL_RESULT, payload={"pong": True}, correlation_id=cid, tool="ping")


def test_publish_reaches_every_live_subscriber():
    hub = BroadcastHub()
    subscribers = [hub.subscribe() for _ in range(3)]

    delivered = hub.publish(_result_event())

    assert delivered == 3
    for subscriber in subscribers:
        event = subscriber.get_nowait()
        assert event.correlation_id == "abc"
        assert event.payload == {"pong": True}


def test_unsubscribed_client_receives_nothing():
    hub = BroadcastHub()
    gone = hub.subscribe()
    stays = hub.subscribe()
    hub.unsubscribe(gone)

    assert hub.publish(_result_event()) == 1
    assert hub.subscriber_count == 1
    assert gone.closed
    assert stays.get_nowait() is not None


def test_full_buffer_disconnects_slow_subscriber_without_raising():
    hub = BroadcastHub(buffer_size=2)
    slow = hub.subscribe()
    fast = hub.subscribe()

    hub.publish(_result_event("1"))
    hub.publish(_result_event("2"))
    fast.get_nowait()
    fast.get_nowait()
    delivered = hub.publish(_result_event("3"))

    assert delivered == 1
    assert slow.state is SubscriberState.CLOSED
    assert hub.subscribers() == [fast]


def test_publish_with_no_subscribers_is_a_no_op():
    assert BroadcastHub().publish(_result_event()) == 0


def test_iter_events_yields_queued_events_then_pings_when_idle():
    async def scenario():
        hub = BroadcastHub(keepalive_seconds=0.01)
        subscriber = hub.subscribe()
        hub.publish(_result_event())
        received = []
        async for event in hub.iter_events(subscriber):
            received.append(event)
            if len(received) == 3:
                break
        hub.unsubscribe(subscriber)
        return received

    received = asyncio.run(scenario())

    assert received[0].kind is EventKind.TOOL_RESULT
    assert [event.kind for event in received[1:]] == [EventKind.PING, EventKind.PING]


def test_iter_events_stops_once_subscriber_is_closed():
    async def scenario():
        hub = BroadcastHub(keepalive_seconds=5)
        subscriber = hub.subscribe()

        async def consume():
            return [event async for event in hub.iter_events(subscriber)]

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)
        hub.close_all()
        return await asyncio.wait_for(task, 1)

    assert asyncio.run(scenario()) == []


def test_sse_framing_for_results_and_pings():
    frame = _result_event().to_sse()

    lines = frame.rstrip("\n").split("\n")
    assert lines[0] == "event: tool_result"
    assert lines[1] == "id: abc"
    assert json.loads(lines[2][len("data: "):]) == {
        "kind": "tool_result",
        "correlation_id": "abc",
        "tool": "ping",
        "payload": {"pong": True},
    }
    assert frame.endswith("\n\n")
    assert ping_event().to_sse() == "event: ping\ndata: {}\n\n"


def test_hub_requires_positive_keepalive():
    with pytest.raises(ValueError):
        BroadcastHub(keepalive_seconds=0)
