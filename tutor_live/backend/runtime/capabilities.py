"""Capability interface standing in for platform device and transport APIs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

AudioBlockCallback = Callable[[bytes], None]


class TransportConnection(Protocol):
    """An open bidirectional message connection."""

    async def send(self, message: str) -> None: ...

    async def recv(self) -> Union[str, bytes]: ...

    async def close(self) -> None: ...


class AudioDevice(Protocol):
    """An opened microphone delivering PCM16 blocks.

    ``start`` may invoke the callback from a driver thread.
    """

    sample_rate: int
    channels: int

    def start(self, callback: AudioBlockCallback) -> None: ...

    def close(self) -> None: ...


class VideoSource(Protocol):
    """A live camera or screen stream that can be polled for its latest frame."""

    kind: str

    def read_frame(self) -> Optional[Any]: ...

    def stop(self) -> None: ...


RequestAudioDevice = Callable[[], Awaitable[AudioDevice]]
RequestVideoStream = Callable[[str], Awaitable[VideoSource]]
OpenTransport = Callable[[], Awaitable[TransportConnection]]


@dataclass(frozen=True)
class Capabilities:
    """Everything the core needs from the platform."""

    request_audio_device: RequestAudioDevice
    request_video_stream: RequestVideoStream
    open_transport: OpenTransport


__all__ = [
    "AudioBlockCallback",
    "AudioDevice",
    "Capabilities",
    "OpenTransport",
    "RequestAudioDevice",
    "RequestVideoStream",
    "TransportConnection",
    "VideoSource",
]
