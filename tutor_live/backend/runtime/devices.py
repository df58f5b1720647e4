"""Platform capture devices: sounddevice microphone, OpenCV camera, mss screen."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Any, Optional, Union

import cv2
import mss
import numpy as np
import sounddevice as sd

from tutor_live.backend.runtime.capabilities import (
    AudioBlockCallback,
    AudioDevice,
    Capabilities,
    VideoSource,
)
from tutor_live.backend.transport.websocket import websocket_opener
from tutor_live.errors import DevicePermissionError, ErrorCode

if TYPE_CHECKING:
    from tutor_live.config import LiveConfig

LOGGER = logging.getLogger("tutor_live.devices")


def _device_arg(device: Optional[Union[str, int]]) -> Optional[Union[str, int]]:
    if isinstance(device, str) and device.strip().isdigit():
        return int(device.strip())
    return device or None


class SoundDeviceMicrophone:
    """Mono PCM16 input stream; blocks are delivered on the PortAudio thread."""

    def __init__(
        self,
        sample_rate: int,
        chunk_ms: int,
        device: Optional[Union[str, int]] = None,
    ) -> None:
        self.sample_rate = int(sample_rate)
        self.channels = 1
        self.chunk_ms = chunk_ms
        self.device = _device_arg(device)
        self._stream: Optional[sd.RawInputStream] = None
        self._callback: Optional[AudioBlockCallback] = None

    def open(self) -> "SoundDeviceMicrophone":
        """Open the input stream, falling back to the device's native rate."""
        try:
            self._stream = self._open_stream(self.sample_rate)
        except sd.PortAudioError as exc:
            try:
                info = sd.query_devices(self.device, "input")
                native_rate = int(info["default_samplerate"])
            except Exception:
                raise DevicePermissionError(
                    ErrorCode.MIC_PERMISSION_DENIED, str(exc)
                ) from exc
            if native_rate == self.sample_rate:
                raise DevicePermissionError(
                    ErrorCode.MIC_PERMISSION_DENIED, str(exc)
                ) from exc
            LOGGER.info(
                "Microphone rejected %d Hz; capturing at %d Hz and resampling",
                self.sample_rate,
                native_rate,
            )
            try:
                self._stream = self._open_stream(native_rate)
            except sd.PortAudioError as retry_exc:
                raise DevicePermissionError(
                    ErrorCode.MIC_PERMISSION_DENIED, str(retry_exc)
                ) from retry_exc
            self.sample_rate = native_rate
        return self

    def _open_stream(self, sample_rate: int) -> sd.RawInputStream:
        return sd.RawInputStream(
            samplerate=sample_rate,
            blocksize=max(int(sample_rate * (self.chunk_ms / 1000)), 1),
            channels=self.channels,
            dtype="int16",
            device=self.device,
            callback=self._on_audio,
        )

    def start(self, callback: AudioBlockCallback) -> None:
        if self._stream is None:
            raise DevicePermissionError(ErrorCode.MIC_PERMISSION_DENIED, "stream not open")
        self._callback = callback
        self._stream.start()

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if status:
            LOGGER.debug("Microphone status: %s", status)
        callback = self._callback
        if callback is not None:
            callback(bytes(indata))

    def close(self) -> None:
        self._callback = None
        stream = self._stream
        self._stream = None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()


class CameraStream:
    """Webcam polled by a grabber thread; ``read_frame`` returns the latest RGB frame."""

    kind = "camera"

    def __init__(self, index: int = 0) -> None:
        self.index = index
        self._capture: Optional[cv2.VideoCapture] = None
        self._latest: Optional[np.ndarray] = None
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def open(self) -> "CameraStream":
        capture = cv2.VideoCapture(self.index)
        if not capture.isOpened():
            capture.release()
            raise DevicePermissionError(
                ErrorCode.VIDEO_PERMISSION_DENIED, f"camera {self.index} could not be opened"
            )
        self._capture = capture
        self._thread = threading.Thread(target=self._grab_loop, daemon=True)
        self._thread.start()
        return self

    def _grab_loop(self) -> None:
        capture = self._capture
        while capture is not None and not self._stop_event.is_set():
            ok, frame = capture.read()
            if not ok or frame is None:
                self._stop_event.wait(0.05)
                continue
            rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
            with self._lock:
                self._latest = rgb

    def read_frame(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._latest

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=1.0)
        self._thread = None
        if self._capture is not None:
            self._capture.release()
            self._capture = None
        with self._lock:
            self._latest = None


class ScreenStream:
    """Screen capture of one monitor via mss, grabbed on demand."""

    kind = "screen"

    def __init__(self, monitor: int = 1) -> None:
        self.monitor = monitor
        self._sct: Optional[Any] = None
        self._region: Optional[dict] = None

    def open(self) -> "ScreenStream":
        try:
            with mss.mss() as sct:
                monitors = list(sct.monitors)
        except Exception as exc:
            raise DevicePermissionError(ErrorCode.VIDEO_PERMISSION_DENIED, str(exc)) from exc
        if not monitors:
            raise DevicePermissionError(ErrorCode.VIDEO_PERMISSION_DENIED, "no monitors found")
        index = self.monitor if 0 <= self.monitor < len(monitors) else 0
        self._region = dict(monitors[index])
        return self

    def read_frame(self) -> Optional[np.ndarray]:
        if self._region is None:
            return None
        # mss handles are bound to the thread that created them.
        if self._sct is None:
            self._sct = mss.mss()
        shot = self._sct.grab(self._region)
        bgra = np.asarray(shot)
        return np.ascontiguousarray(bgra[:, :, 2::-1])

    def stop(self) -> None:
        self._region = None
        sct = self._sct
        self._sct = None
        if sct is not None:
            sct.close()


def platform_capabilities(config: "LiveConfig") -> Capabilities:
    """Capabilities backed by the local microphone, camera, screen and network."""

    async def request_audio_device() -> AudioDevice:
        microphone = SoundDeviceMicrophone(
            config.audio_sample_rate, config.audio_chunk_ms, config.audio_device
        )
        return await asyncio.to_thread(microphone.open)

    async def request_video_stream(kind: str) -> VideoSource:
        if kind == "camera":
            return await asyncio.to_thread(CameraStream(config.camera_index).open)
        if kind == "screen":
            return await asyncio.to_thread(ScreenStream(config.screen_monitor).open)
        raise DevicePermissionError(
            ErrorCode.VIDEO_PERMISSION_DENIED, f"unknown video source {kind!r}"
        )

    return Capabilities(
        request_audio_device=request_audio_device,
        request_video_stream=request_video_stream,
        open_transport=websocket_opener(
            config.host, config.api_key, open_timeout=config.handshake_timeout_sec
        ),
    )


__all__ = [
    "CameraStream",
    "ScreenStream",
    "SoundDeviceMicrophone",
    "platform_capabilities",
]
