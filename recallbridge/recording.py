"""Recall.ai ``recording_config`` synthesis from requested capability tokens."""

from __future__ import annotations

import logging
from typing import Any, Iterable

log = logging.getLogger(__name__)

MIXED_AUDIO = "audio_mixed_raw.data"
SEPARATE_VIDEO = "video_separate_png.data"
SEPARATE_AUDIO = "audio_separate_raw.data"
TRANSCRIPT = "transcript.data"
PARTIAL_TRANSCRIPT = "transcript.partial_data"

CAPABILITIES = (
    MIXED_AUDIO,
    SEPARATE_VIDEO,
    SEPARATE_AUDIO,
    TRANSCRIPT,
    PARTIAL_TRANSCRIPT,
)

EVENTS_PATH = "recall-events"
VIDEO_LAYOUT = "gallery_view_v2"

_SCHEME_REWRITES = (("http://", "wss://"), ("https://", "wss://"))
_SOCKET_SCHEMES = ("wss://", "ws://")


def normalize_callback_url(raw: str | None) -> str:
    """Turn a host or http(s)/ws(s) base address into the bot's websocket URL.

    An empty address stays empty, meaning no realtime endpoint is requested.
    """

    if not raw:
        return ""
    separator = "" if raw.endswith("/") else "/"
    for prefix, replacement in _SCHEME_REWRITES:
        if raw.startswith(prefix):
            return replacement + raw[len(prefix):] + separator + EVENTS_PATH
    if raw.startswith(_SOCKET_SCHEMES):
        return raw + separator + EVENTS_PATH
    return "wss://" + raw + separator + EVENTS_PATH


def synthesize(capabilities: Iterable[str] | None, raw_address: str | None) -> dict[str, Any]:
    events = list(capabilities or [])
    requested = set(events)
    config: dict[str, Any] = {}

    if MIXED_AUDIO in requested:
        config["audio_mixed_raw"] = {}
    if TRANSCRIPT in requested or PARTIAL_TRANSCRIPT in requested:
        config["transcript"] = {"provider": {"meeting_captions": {}}}
    if SEPARATE_VIDEO in requested:
        config["video_mixed_layout"] = VIDEO_LAYOUT
        config["video_separate_png"] = {}
    if SEPARATE_AUDIO in requested:
        config["audio_separate_raw"] = {}

    url = normalize_callback_url(raw_address)
    if url:
        config["realtime_endpoints"] = [
            {"type": "websocket", "url": url, "events": events}
        ]
    log.debug("recording config for %s -> %s", events, config)
    return config


class RecordingOptions:
    """Capabilities and callback address chosen from the dashboard.

    Used when Zoom starts an RTMS stream, since that webhook carries no
    recording preferences of its own.
    """

    def __init__(self) -> None:
        self._capabilities: dict[str, None] = {}
        self.callback_url = ""

    def enable(self, token: str) -> None:
        self._capabilities.setdefault(token, None)

    def disable(self, token: str) -> None:
        self._capabilities.pop(token, None)

    def set_callback_url(self, url: str | None) -> None:
        self.callback_url = url or ""

    def capabilities(self) -> list[str]:
        return list(self._capabilities)

    def build(self) -> dict[str, Any]:
        return synthesize(self.capabilities(), self.callback_url)
