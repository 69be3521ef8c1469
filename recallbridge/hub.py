"""Fan-out of bot events and log lines to every open dashboard websocket."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Protocol

from starlette.websockets import WebSocketState

from .events import BotEvent, MalformedEvent, decode_frame
from .metrics import BOT_EVENTS, FANOUT, SUBSCRIBERS

log = logging.getLogger(__name__)

PARSE_ERROR = "Error parsing message from Recall Bot WebSocket or processing data:"


class Connection(Protocol):
    client_state: WebSocketState
    application_state: WebSocketState

    async def send_text(self, data: str) -> None: ...


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def _preview(frame: str | bytes, limit: int) -> str:
    if isinstance(frame, bytes):
        frame = frame.decode("utf-8", errors="replace")
    return frame[:limit] + "..."


def is_ready(conn: Connection) -> bool:
    return (
        getattr(conn, "client_state", None) == WebSocketState.CONNECTED
        and getattr(conn, "application_state", None) == WebSocketState.CONNECTED
    )


class Hub:
    """Owns the subscriber set.

    Everything runs on the event loop, so membership is only ever changed by
    the connection handlers and read by ``broadcast`` from a snapshot. Each
    send runs as its own task; ``broadcast`` never waits for delivery.
    """

    def __init__(self) -> None:
        self._subscribers: set[Connection] = set()
        self._pending: set[asyncio.Task[None]] = set()

    def __len__(self) -> int:
        return len(self._subscribers)

    def __contains__(self, conn: object) -> bool:
        return conn in self._subscribers

    def subscribe(self, conn: Connection) -> None:
        if conn not in self._subscribers:
            self._subscribers.add(conn)
            SUBSCRIBERS.inc()

    def unsubscribe(self, conn: Connection) -> None:
        if conn in self._subscribers:
            self._subscribers.discard(conn)
            SUBSCRIBERS.dec()

    async def broadcast(self, message: str, data: Any = None) -> int:
        """Start a send of one log line to every ready subscriber.

        Returns how many sends were started.
        """

        body: dict[str, Any] = {"log": message}
        if data is not None:
            body["data"] = data
        body["timestamp"] = _now()
        text = json.dumps(body, default=str)
        if data is None:
            log.info("[UI Broadcast] %s", message)
        else:
            log.info("[UI Broadcast] %s %s", message, text)

        started = 0
        for conn in list(self._subscribers):
            if not is_ready(conn):
                FANOUT.labels("skipped").inc()
                continue
            task = asyncio.create_task(self._send(conn, text))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            started += 1
        return started

    async def _send(self, conn: Connection, text: str) -> None:
        if not is_ready(conn):
            FANOUT.labels("skipped").inc()
            return
        try:
            await conn.send_text(text)
        except Exception as exc:  # noqa: BLE001
            log.debug("broadcast send failed: %r", exc)
            FANOUT.labels("failed").inc()
            return
        FANOUT.labels("sent").inc()

    async def drain(self) -> None:
        """Wait until every send started so far has finished."""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def dispatch(self, event: BotEvent) -> None:
        try:
            message, data = event.summary()
            BOT_EVENTS.labels(event.kind).inc()
            await self.broadcast(message, data)
        except Exception as exc:  # noqa: BLE001
            BOT_EVENTS.labels("malformed").inc()
            await self._report(exc, repr(event))

    async def dispatch_raw(self, frame: str | bytes) -> None:
        try:
            event = decode_frame(frame)
        except MalformedEvent as exc:
            BOT_EVENTS.labels("malformed").inc()
            await self._report(exc, frame)
            return
        await self.dispatch(event)

    async def _report(self, exc: Exception, frame: str | bytes) -> None:
        log.error("%s %s %s", PARSE_ERROR, exc, _preview(frame, 200))
        try:
            await self.broadcast(
                PARSE_ERROR,
                {"error": str(exc), "receivedMessage": _preview(frame, 100)},
            )
        except Exception:  # noqa: BLE001
            log.exception("failed to report malformed bot event")
