"""Models for the realtime events a Recall.ai bot streams over its websocket.

Frames look like ``{"event": "<tag>", "data": {...}}``. Only the fields the
dashboard summaries read are declared; everything else is tolerated so that
new provider fields do not break parsing.
"""

from __future__ import annotations

import json
from typing import Any, ClassVar, Dict, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, ValidationError

from .recording import (
    MIXED_AUDIO,
    PARTIAL_TRANSCRIPT,
    SEPARATE_AUDIO,
    SEPARATE_VIDEO,
    TRANSCRIPT,
)

Summary = Tuple[str, Any]


class MalformedEvent(ValueError):
    """Frame is not JSON, lacks a tag, or does not fit its tag's shape."""


class _Loose(BaseModel):
    model_config = ConfigDict(extra="allow")


class Participant(_Loose):
    id: Optional[Any] = None
    name: Optional[Any] = None

    def label(self) -> str:
        return str(self.name) if self.name else str(self.id)


class Recording(_Loose):
    id: Any


class Buffer(_Loose):
    buffer: str


class ParticipantBuffer(Buffer):
    participant: Participant
    timestamp: Any = None


class VideoBuffer(ParticipantBuffer):
    type: Optional[str] = None


class MixedAudioPayload(_Loose):
    data: Buffer
    recording: Recording


class SeparateAudioPayload(_Loose):
    data: ParticipantBuffer


class SeparateVideoPayload(_Loose):
    data: VideoBuffer


class BotEvent(BaseModel):
    event: str
    kind: ClassVar[str] = "unknown"

    def summary(self) -> Summary:
        raise NotImplementedError


class MixedAudioEvent(BotEvent):
    kind = "mixed_audio"
    data: MixedAudioPayload

    def summary(self) -> Summary:
        rec_id = self.data.recording.id
        return (
            f"Received mixed audio ({MIXED_AUDIO}) for recording ID: {rec_id}",
            {"recordingId": rec_id, "bufferSize": len(self.data.data.buffer)},
        )


class SeparateVideoEvent(BotEvent):
    kind = "separate_video"
    data: SeparateVideoPayload

    def summary(self) -> Summary:
        frame = self.data.data
        return (
            f"Received separate participant video ({SEPARATE_VIDEO}) for: "
            f"{frame.participant.label()} ({frame.type})",
            {
                "participant": frame.participant.model_dump(),
                "type": frame.type,
                "timestamp": frame.timestamp,
                "bufferSize": len(frame.buffer),
            },
        )


class SeparateAudioEvent(BotEvent):
    kind = "separate_audio"
    data: SeparateAudioPayload

    def summary(self) -> Summary:
        chunk = self.data.data
        return (
            f"Received separate participant audio ({SEPARATE_AUDIO}) for: "
            f"{chunk.participant.label()}",
            {
                "participant": chunk.participant.model_dump(),
                "timestamp": chunk.timestamp,
                "bufferSize": len(chunk.buffer),
            },
        )


class TranscriptEvent(BotEvent):
    kind = "transcript"
    data: Any = None

    def summary(self) -> Summary:
        return f"Received transcript event: {self.event}", self.data


class UnknownEvent(BotEvent):
    data: Any = None

    def summary(self) -> Summary:
        return f"Unhandled Recall Bot WebSocket message event: {self.event}", self.data


EVENT_MODELS: Dict[str, Type[BotEvent]] = {
    MIXED_AUDIO: MixedAudioEvent,
    SEPARATE_VIDEO: SeparateVideoEvent,
    SEPARATE_AUDIO: SeparateAudioEvent,
    TRANSCRIPT: TranscriptEvent,
    PARTIAL_TRANSCRIPT: TranscriptEvent,
}


def parse_event(message: Any) -> BotEvent:
    if not isinstance(message, dict):
        raise MalformedEvent(f"expected a JSON object, got {type(message).__name__}")
    tag = message.get("event")
    if not isinstance(tag, str):
        raise MalformedEvent("missing string 'event' tag")
    model = EVENT_MODELS.get(tag, UnknownEvent)
    try:
        return model.model_validate(message)
    except ValidationError as exc:
        raise MalformedEvent(f"{tag}: {exc.error_count()} invalid field(s): {exc}") from exc


def decode_frame(frame: str | bytes) -> BotEvent:
    if isinstance(frame, bytes):
        try:
            frame = frame.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedEvent(f"frame is not utf-8: {exc}") from exc
    try:
        message = json.loads(frame)
    except json.JSONDecodeError as exc:
        raise MalformedEvent(f"invalid JSON: {exc}") from exc
    return parse_event(message)
