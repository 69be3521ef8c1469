from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager, suppress
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

import httpx
from fastapi import Body, Depends, FastAPI, Request, WebSocket
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import HTTPConnection

from .config import reload_settings, settings
from .hub import Hub
from .logging_setup import RequestLogMiddleware, init_logging
from .metrics import LAT, REQS, router as metrics_router
from .recall import RecallClient
from .recording import RecordingOptions, normalize_callback_url, synthesize
from .signing import rtms_signature, url_validation_token

log = logging.getLogger(__name__)

NOT_FOUND = "Sorry, the page you requested could not be found."
WRONG_WEBHOOK_PATH = (
    'Received 404 POST error, this may mean that your Zoom "Event notification '
    'endpoint URL" is configured for a different path! This sample expects /zoom-webhook'
)
BOT_CONNECTED = (
    "Recall Bot WebSocket client connected (Recall.ai bot has connected to this server)."
)
BOT_DISCONNECTED = (
    "Recall Bot WebSocket client disconnected (Recall.ai bot disconnected)."
)


class Health(BaseModel):
    status: str
    time: str


class RtmsStarted(BaseModel):
    meeting_uuid: str
    rtms_stream_id: str
    server_urls: Any = None


class JoinMeetRequest(BaseModel):
    space_name: Optional[str] = None
    access_token: Optional[str] = None
    recording_option_list: Optional[List[str]] = None
    websocket_url: Optional[str] = None


class RecordingToggle(BaseModel):
    checkbox_id: str
    checkbox_on: bool = False


class WebsocketUrlUpdate(BaseModel):
    websocket_url: Optional[str] = None


def get_hub(conn: HTTPConnection) -> Hub:
    return conn.app.state.hub


def get_options(conn: HTTPConnection) -> RecordingOptions:
    return conn.app.state.recording


def get_recall_client(hub: Hub = Depends(get_hub)) -> RecallClient:
    return RecallClient(settings, hub)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


@asynccontextmanager
async def lifespan(app: FastAPI):
    reload_settings()
    msg = f"HTTP server with UI WebSocket is running at http://localhost:{settings.PORT}"
    await app.state.hub.broadcast(msg)
    try:
        yield
    finally:
        with suppress(asyncio.TimeoutError):
            await asyncio.wait_for(app.state.hub.drain(), timeout=1.0)


init_logging(settings.LOG_LEVEL)

app = FastAPI(title="RecallBridge", version="0.1.0", lifespan=lifespan)
app.state.hub = Hub()
app.state.recording = RecordingOptions()
app.add_middleware(RequestLogMiddleware)
app.include_router(metrics_router())
app.mount(
    "/static",
    StaticFiles(directory=settings.PUBLIC_DIR, check_dir=False),
    name="static",
)

origins = [o.strip() for o in settings.CORS_ALLOW_ORIGINS.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def _metrics(request: Request, call_next):
    method = request.method
    path = request.url.path
    start = time.time()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        duration = time.time() - start
        REQS.labels(method, path, str(status_code)).inc()
        LAT.labels(method, path).observe(duration)


@app.exception_handler(StarletteHTTPException)
async def _not_found(request: Request, exc: StarletteHTTPException):
    if exc.status_code != 404:
        return await http_exception_handler(request, exc)
    if not request.url.path.endswith("favicon.ico"):
        log.error("404 Not Found: %s %s", request.method, request.url)
        if request.method == "POST":
            await get_hub(request).broadcast(WRONG_WEBHOOK_PATH)
    return PlainTextResponse(NOT_FOUND, status_code=404)


@app.get("/", include_in_schema=False)
def index():
    page = Path(settings.PUBLIC_DIR) / "index.html"
    if not page.is_file():
        raise StarletteHTTPException(status_code=404)
    return FileResponse(page)


@app.get("/health", response_model=Health)
def health():
    return Health(status="ok", time=datetime.utcnow().isoformat())


@app.post("/zoom-webhook")
async def zoom_webhook(
    body: dict = Body(...),
    hub: Hub = Depends(get_hub),
    options: RecordingOptions = Depends(get_options),
    recall: RecallClient = Depends(get_recall_client),
):
    await hub.broadcast("Received zoom webhook:", body)
    event = body.get("event")
    payload = body.get("payload")
    if not isinstance(payload, dict):
        payload = {}
    log.info("Received Zoom webhook event: %s", event)

    if event == "endpoint.url_validation" and payload.get("plainToken"):
        if not settings.ZOOM_SECRET_TOKEN:
            await hub.broadcast("Error: ZOOM_SECRET_TOKEN is not set, cannot validate webhook URL")
            return _error(500, "ZOOM_SECRET_TOKEN is not set")
        plain = str(payload["plainToken"])
        log.info("Responding to URL validation challenge")
        return {
            "plainToken": plain,
            "encryptedToken": url_validation_token(settings.ZOOM_SECRET_TOKEN, plain),
        }

    if event == "meeting.rtms_started":
        try:
            started = RtmsStarted.model_validate(payload)
        except ValidationError as exc:
            await hub.broadcast("Invalid meeting.rtms_started payload:", {"error": str(exc)})
            return _error(400, "invalid meeting.rtms_started payload")
        recall_payload = {
            "zoom_rtms": {
                "meeting_uuid": started.meeting_uuid,
                "rtms_stream_id": started.rtms_stream_id,
                "server_urls": started.server_urls,
                "signature": rtms_signature(
                    settings.ZOOM_CLIENT_ID,
                    settings.ZOOM_CLIENT_SECRET,
                    started.meeting_uuid,
                    started.rtms_stream_id,
                ),
            },
            "recording_config": options.build(),
        }
        try:
            await recall.start_direct_connect(recall_payload)
        except httpx.HTTPError as exc:
            # already reported to the dashboard; Zoom gets a 200 so it does not redeliver
            return {"event": event, "forwarded": False, "error": str(exc) or repr(exc)}
        return {"event": event, "forwarded": True}

    return {"event": event}


@app.post("/join-meet-meeting")
async def join_meet_meeting(
    req: JoinMeetRequest,
    hub: Hub = Depends(get_hub),
    recall: RecallClient = Depends(get_recall_client),
):
    if not req.space_name:
        await hub.broadcast("Error in /join-meet-meeting: space_name is required")
        return _error(400, "space_name is required")
    if not req.access_token:
        await hub.broadcast("Error in /join-meet-meeting: access_token is required")
        return _error(400, "access_token is required")
    if not settings.RECALL_API_KEY:
        await hub.broadcast(
            "Error in /join-meet-meeting: RECALL_API_KEY is not set in server environment"
        )
        return _error(500, "RECALL_API_KEY is not set in environment variables")

    payload = {
        "google_meet_media_api": {
            "space_name": req.space_name,
            "access_token": req.access_token,
        },
        "recording_config": synthesize(req.recording_option_list, req.websocket_url),
    }
    try:
        status_code, data = await recall.start_direct_connect(payload)
    except httpx.HTTPStatusError as exc:
        try:
            detail = exc.response.json()
        except ValueError:
            detail = {"error": exc.response.text}
        return JSONResponse(detail, status_code=exc.response.status_code)
    except httpx.HTTPError:
        return _error(500, "Failed due to an internal server error.")

    if not data:
        await hub.broadcast("No data returned from Recall.ai API")
        return _error(500, "Failed to start meeting bot")
    return JSONResponse(data, status_code=status_code)


@app.post("/set-recording-config")
async def set_recording_config(
    toggle: RecordingToggle,
    hub: Hub = Depends(get_hub),
    options: RecordingOptions = Depends(get_options),
):
    if toggle.checkbox_on:
        options.enable(toggle.checkbox_id)
        await hub.broadcast("Added:", toggle.checkbox_id)
    else:
        options.disable(toggle.checkbox_id)
        await hub.broadcast("Removed:", toggle.checkbox_id)
    current = options.capabilities()
    await hub.broadcast("Updated Zoom RTMS recording config:", current)
    return {"recording_config": current}


@app.post("/set-websocket-url")
async def set_websocket_url(
    update: WebsocketUrlUpdate,
    hub: Hub = Depends(get_hub),
    options: RecordingOptions = Depends(get_options),
):
    options.set_callback_url(update.websocket_url)
    await hub.broadcast("Updated Zoom RTMS websocket url:", options.callback_url)
    return {
        "websocket_url": options.callback_url,
        "realtime_url": normalize_callback_url(options.callback_url),
    }


@app.get("/is-zoom-ready")
async def is_zoom_ready(hub: Hub = Depends(get_hub)):
    if not settings.RECALL_API_KEY:
        await hub.broadcast("Error: Please set RECALL_API_KEY in your .env file")
        return _error(500, "No RECALL_API_KEY set")
    for name in ("ZOOM_CLIENT_ID", "ZOOM_CLIENT_SECRET", "ZOOM_SECRET_TOKEN"):
        if not getattr(settings, name):
            return _error(500, f"Please set {name} in your .env to use Zoom RTMS")
    return {
        "message": "Zoom RTMS is ready! Once your meeting starts, your webhook "
        "will be called and recording will start",
    }


@app.websocket("/ui-updates")
async def ui_updates(websocket: WebSocket, hub: Hub = Depends(get_hub)):
    await websocket.accept()
    hub.subscribe(websocket)
    log.info("UI WebSocket client connected")
    try:
        await hub.broadcast("New UI client connected to server logs.")
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        hub.unsubscribe(websocket)
        log.info("UI WebSocket client disconnected")


@app.websocket("/recall-events")
async def recall_events(websocket: WebSocket, hub: Hub = Depends(get_hub)):
    await websocket.accept()
    hub.subscribe(websocket)
    try:
        await hub.broadcast(BOT_CONNECTED)
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                code = message.get("code", 1000)
                if code not in (1000, 1001, 1005):
                    log.error("Recall Bot WebSocket connection error: close code %s", code)
                    await hub.broadcast(
                        "Recall Bot WebSocket connection error:", {"code": code}
                    )
                break
            frame = message.get("text")
            if frame is None:
                frame = message.get("bytes") or b""
            await hub.dispatch_raw(frame)
    finally:
        hub.unsubscribe(websocket)
        await hub.broadcast(BOT_DISCONNECTED)
