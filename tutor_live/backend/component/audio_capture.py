"""Microphone capture encoded as 16 kHz PCM16 base64 chunks."""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Optional

from tutor_live.backend.core.events import EventEmitter
from tutor_live.backend.core.types import AudioChunk
from tutor_live.backend.runtime.capabilities import AudioDevice, RequestAudioDevice
from tutor_live.errors import DevicePermissionError, ErrorCode
from tutor_live.utils import audio

LOGGER = logging.getLogger("tutor_live.audio")


class AudioCapturePipeline(EventEmitter):
    """Continuous microphone capture.

    Emits ``data(AudioChunk)`` for every block the device delivers, as soon as
    it is encoded, and ``volume(float)`` on its own timer. Device blocks may
    arrive on a driver thread; they are moved onto the event loop before any
    work happens. Every start/stop bumps a run token so blocks, volume ticks
    and late permission grants from an earlier run are dropped.
    """

    def __init__(
        self,
        request_audio_device: RequestAudioDevice,
        *,
        volume_interval_ms: int = 25,
        volume_decay: float = 0.7,
    ) -> None:
        super().__init__()
        self._request_audio_device = request_audio_device
        self._volume_interval_sec = max(1, int(volume_interval_ms)) / 1000.0
        self._volume_decay = min(max(float(volume_decay), 0.0), 1.0)
        self._device: Optional[AudioDevice] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._volume_handle: Optional[asyncio.TimerHandle] = None
        self._run_token = 0
        self._running = False
        self._starting = False
        self._volume = 0.0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def starting(self) -> bool:
        return self._starting

    @property
    def volume(self) -> float:
        return self._volume

    async def start(self) -> None:
        """Request the microphone and begin capture.

        Raises DevicePermissionError when access is denied or the device cannot
        be opened. Returns without capturing if ``stop()`` was called while the
        device request was pending.
        """
        if self._running or self._starting:
            return
        self._run_token += 1
        token = self._run_token
        self._starting = True
        self._loop = asyncio.get_running_loop()
        try:
            device = await self._request_audio_device()
        except DevicePermissionError:
            raise
        except Exception as exc:
            raise DevicePermissionError(ErrorCode.MIC_PERMISSION_DENIED, str(exc)) from exc
        finally:
            if token == self._run_token:
                self._starting = False

        if token != self._run_token:
            LOGGER.info("Microphone granted after stop; releasing it")
            self._close_device(device)
            return

        self._device = device
        self._running = True
        self._volume = 0.0
        try:
            device.start(lambda block: self._marshal_block(token, block))
        except Exception as exc:
            self.stop()
            raise DevicePermissionError(ErrorCode.MIC_PERMISSION_DENIED, str(exc)) from exc
        self._volume_handle = self._loop.call_later(
            self._volume_interval_sec, self._volume_tick, token
        )
        LOGGER.info(
            "Microphone capture started (rate=%s, channels=%s)",
            device.sample_rate,
            device.channels,
        )

    async def probe(self) -> None:
        """Check microphone access without capturing; raises DevicePermissionError."""
        try:
            device = await self._request_audio_device()
        except DevicePermissionError:
            raise
        except Exception as exc:
            raise DevicePermissionError(ErrorCode.MIC_PERMISSION_DENIED, str(exc)) from exc
        self._close_device(device)

    def stop(self) -> None:
        """Halt capture and release the device; safe to call repeatedly."""
        self._run_token += 1
        self._starting = False
        if self._volume_handle is not None:
            self._volume_handle.cancel()
            self._volume_handle = None
        was_running = self._running
        self._running = False
        self._volume = 0.0
        device = self._device
        self._device = None
        if device is not None:
            self._close_device(device)
        if was_running:
            LOGGER.info("Microphone capture stopped")

    def _marshal_block(self, token: int, block: bytes) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._on_block, token, bytes(block))
        except RuntimeError:
            # Loop shut down between the check and the call.
            LOGGER.debug("Dropping audio block after loop shutdown")

    def _on_block(self, token: int, block: bytes) -> None:
        device = self._device
        if token != self._run_token or not self._running or device is None:
            return
        if not block:
            return
        samples = audio.pcm16_to_float32(block, device.channels)
        self._volume = min(
            1.0, max(audio.chunk_rms(samples), self._volume * self._volume_decay)
        )
        if device.channels == 1 and device.sample_rate == audio.TARGET_SAMPLE_RATE:
            pcm = block
        else:
            pcm = audio.float32_to_pcm16(audio.ensure_16k(samples, device.sample_rate))
        if not pcm:
            return
        self.emit("data", AudioChunk(data=base64.b64encode(pcm).decode("ascii")))

    def _volume_tick(self, token: int) -> None:
        if token != self._run_token or not self._running or self._loop is None:
            return
        self.emit("volume", self._volume)
        self._volume_handle = self._loop.call_later(
            self._volume_interval_sec, self._volume_tick, token
        )

    @staticmethod
    def _close_device(device: AudioDevice) -> None:
        try:
            device.close()
        except Exception:
            LOGGER.warning("Closing microphone failed", exc_info=True)


__all__ = ["AudioCapturePipeline"]
