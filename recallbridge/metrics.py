from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REQS = Counter(
    "recallbridge_requests_total",
    "Requests",
    ["method", "path", "status"],
)
LAT = Histogram(
    "recallbridge_latency_seconds",
    "Latency",
    ["method", "path"],
)
BOT_EVENTS = Counter(
    "recallbridge_bot_events_total",
    "Realtime events received from bots",
    ["kind"],
)
FANOUT = Counter(
    "recallbridge_fanout_sends_total",
    "Dashboard broadcast sends",
    ["outcome"],
)
SUBSCRIBERS = Gauge(
    "recallbridge_subscribers",
    "Open websocket connections receiving broadcasts",
)


def router() -> APIRouter:
    r = APIRouter()

    @r.get("/metrics", include_in_schema=False)
    def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return r
