import asyncio
import json

from starlette.websockets import WebSocketState

from recallbridge.events import parse_event
from recallbridge.hub import PARSE_ERROR, Hub


class FakeConnection:
    def __init__(self, ready: bool = True, fail: bool = False) -> None:
        state = WebSocketState.CONNECTED if ready else WebSocketState.DISCONNECTED
        self.client_state = state
        self.application_state = WebSocketState.CONNECTED
        self.fail = fail
        self.sent: list[dict] = []

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise RuntimeError("socket went away")
        self.sent.append(json.loads(data))


def _run(hub, coro):
    async def main():
        result = await coro
        await hub.drain()
        return result

    return asyncio.run(main())


def test_broadcast_message_shape():
    hub = Hub()
    conn = FakeConnection()
    hub.subscribe(conn)

    _run(hub, hub.broadcast("hello", {"a": 1}))
    _run(hub, hub.broadcast("no data"))

    first, second = conn.sent
    assert first["log"] == "hello"
    assert first["data"] == {"a": 1}
    assert first["timestamp"].endswith("Z")
    assert second["log"] == "no data"
    assert "data" not in second


def test_subscribe_twice_and_unsubscribe_missing_are_noops():
    hub = Hub()
    conn = FakeConnection()
    hub.subscribe(conn)
    hub.subscribe(conn)
    assert len(hub) == 1

    hub.unsubscribe(FakeConnection())
    assert len(hub) == 1 and conn in hub

    hub.unsubscribe(conn)
    hub.unsubscribe(conn)
    assert len(hub) == 0

    _run(hub, hub.broadcast("nobody listening"))
    assert conn.sent == []


def test_not_ready_subscriber_is_skipped_but_kept():
    hub = Hub()
    first, stale, third = FakeConnection(), FakeConnection(ready=False), FakeConnection()
    for conn in (first, stale, third):
        hub.subscribe(conn)

    _run(hub, hub.dispatch(parse_event({"event": "transcript.data", "data": {"t": 1}})))

    assert len(first.sent) == 1
    assert len(third.sent) == 1
    assert stale.sent == []
    assert stale in hub
    assert len(hub) == 3


def test_failing_send_does_not_abort_fanout():
    hub = Hub()
    broken, healthy = FakeConnection(fail=True), FakeConnection()
    hub.subscribe(broken)
    hub.subscribe(healthy)

    assert _run(hub, hub.broadcast("still delivered")) == 2
    assert healthy.sent[0]["log"] == "still delivered"
    assert broken in hub


def test_late_subscriber_gets_nothing_from_earlier_dispatch():
    hub = Hub()
    early = FakeConnection()
    hub.subscribe(early)
    _run(hub, hub.dispatch_raw(json.dumps({"event": "transcript.data", "data": {}})))

    late = FakeConnection()
    hub.subscribe(late)

    assert len(early.sent) == 1
    assert late.sent == []


def test_unknown_tag_produces_one_broadcast():
    hub = Hub()
    conn = FakeConnection()
    hub.subscribe(conn)

    _run(hub, hub.dispatch_raw(json.dumps({"event": "bot.status_change", "data": {"code": "x"}})))

    assert len(conn.sent) == 1
    assert "bot.status_change" in conn.sent[0]["log"]
    assert conn.sent[0]["data"] == {"code": "x"}


def test_malformed_frames_are_reported_and_processing_continues():
    hub = Hub()
    conn = FakeConnection()
    hub.subscribe(conn)

    async def feed():
        await hub.dispatch_raw("{not json")
        await hub.dispatch_raw(json.dumps({"event": "audio_mixed_raw.data", "data": {}}))
        await hub.dispatch_raw(json.dumps({"event": "transcript.data", "data": {"ok": True}}))

    _run(hub, feed())

    assert [m["log"] for m in conn.sent[:2]] == [PARSE_ERROR, PARSE_ERROR]
    assert conn.sent[0]["data"]["receivedMessage"] == "{not json..."
    assert conn.sent[0]["data"]["error"]
    assert conn.sent[2]["log"] == "Received transcript event: transcript.data"
    assert conn.sent[2]["data"] == {"ok": True}


def test_unsubscribe_during_fanout_is_safe():
    hub = Hub()

    class Leaver(FakeConnection):
        async def send_text(self, data: str) -> None:
            await super().send_text(data)
            hub.unsubscribe(self)
            hub.subscribe(FakeConnection())

    leaver, other = Leaver(), FakeConnection()
    hub.subscribe(leaver)
    hub.subscribe(other)

    assert _run(hub, hub.broadcast("x")) == 2
    assert leaver not in hub
    assert len(hub) == 2


def test_stalled_subscriber_does_not_block_dispatch():
    hub = Hub()

    class Stalled(FakeConnection):
        async def send_text(self, data: str) -> None:
            await asyncio.Event().wait()

    stalled, fast = Stalled(), FakeConnection()
    hub.subscribe(stalled)
    hub.subscribe(fast)

    async def scenario():
        event = parse_event({"event": "transcript.data", "data": {"t": 1}})
        await asyncio.wait_for(hub.dispatch(event), 1.0)
        await asyncio.wait_for(hub.dispatch_raw("{broken"), 1.0)
        await asyncio.sleep(0.05)

    asyncio.run(scenario())

    assert [m["log"] for m in fast.sent] == [
        "Received transcript event: transcript.data",
        PARSE_ERROR,
    ]
    assert stalled in hub
