"""Data model shared by the transport, capture pipelines and coordinator."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence, Tuple, Union

AUDIO_MIME_TYPE = "audio/pcm;rate=16000"
VIDEO_MIME_TYPE = "image/jpeg"


@dataclass(frozen=True)
class GenerationConfig:
    """Generation settings sent with the setup handshake."""

    response_modalities: Tuple[str, ...] = ("TEXT",)
    voice: Optional[str] = None


@dataclass(frozen=True)
class SessionConfig:
    """Immutable per-connection-attempt session settings."""

    model: str
    generation_config: Optional[GenerationConfig] = None
    system_instruction: Optional[str] = None


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"


@dataclass(frozen=True)
class InlineImage:
    """Base64-encoded image plus its MIME type."""

    base64: str
    mime_type: str


@dataclass(frozen=True)
class ContextPayload:
    """One-shot solver output injected at the start of a live session."""

    content: str
    image_data: Optional[InlineImage] = None
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class AudioChunk:
    data: str
    mime_type: str = AUDIO_MIME_TYPE


@dataclass(frozen=True)
class VideoFrame:
    data: str
    mime_type: str = VIDEO_MIME_TYPE


MediaChunk = Union[AudioChunk, VideoFrame]


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class InlineDataPart:
    data: str
    mime_type: str


OutboundPart = Union[TextPart, InlineDataPart]


@dataclass(frozen=True)
class ModelTurnPart:
    text: str


@dataclass(frozen=True)
class TurnComplete:
    pass


InboundFragment = Union[ModelTurnPart, TurnComplete]


@dataclass(frozen=True)
class PipelineEnablement:
    """Which capture pipelines should be running right now."""

    audio_enabled: bool = False
    video_enabled: bool = False

    @classmethod
    def derive(
        cls, connected: bool, muted: bool, active_stream: Optional[Any]
    ) -> "PipelineEnablement":
        return cls(
            audio_enabled=connected and not muted,
            video_enabled=connected and active_stream is not None,
        )


def context_parts(payload: ContextPayload, template: str) -> Sequence[OutboundPart]:
    """Build the injected context message: wrapped prompt, then the image."""
    parts: list[OutboundPart] = [TextPart(template.format(content=payload.content))]
    if payload.image_data is not None:
        parts.append(
            InlineDataPart(
                data=payload.image_data.base64,
                mime_type=payload.image_data.mime_type,
            )
        )
    return parts


__all__ = [
    "AUDIO_MIME_TYPE",
    "AudioChunk",
    "ConnectionState",
    "ContextPayload",
    "GenerationConfig",
    "InboundFragment",
    "InlineDataPart",
    "InlineImage",
    "MediaChunk",
    "ModelTurnPart",
    "OutboundPart",
    "PipelineEnablement",
    "SessionConfig",
    "TextPart",
    "TurnComplete",
    "VIDEO_MIME_TYPE",
    "VideoFrame",
    "context_parts",
]
