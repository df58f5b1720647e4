"""Periodic video frame sampling."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional, Sequence

from tutor_live.backend.core.events import EventEmitter
from tutor_live.backend.core.metrics import SessionMetrics
from tutor_live.backend.core.types import VideoFrame
from tutor_live.backend.runtime.capabilities import VideoSource
from tutor_live.utils.image import downsample, encode_jpeg_base64, frame_size

LOGGER = logging.getLogger("tutor_live.video")

FrameSink = Callable[[Sequence[VideoFrame]], Any]


class VideoFrameSampler(EventEmitter):
    """Pull one frame from the active source every ``interval_sec``.

    At most one tick is ever pending. ``start`` on a running sampler cancels
    the pending tick and drops the old source before the new one is sampled,
    so two loops never share the encode path. Emits ``frame(VideoFrame)``
    after each frame is handed to the sink.
    """

    def __init__(
        self,
        sink: FrameSink,
        *,
        interval_sec: float = 2.0,
        scale: float = 0.25,
        jpeg_quality: int = 95,
        metrics: Optional[SessionMetrics] = None,
    ) -> None:
        super().__init__()
        self._sink = sink
        self._interval_sec = float(interval_sec)
        self._scale = float(scale)
        self._jpeg_quality = int(jpeg_quality)
        self._metrics = metrics
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._handle: Optional[asyncio.Handle] = None
        self._source: Optional[VideoSource] = None
        self._run_token = 0

    @property
    def running(self) -> bool:
        return self._source is not None

    @property
    def source(self) -> Optional[VideoSource]:
        return self._source

    @property
    def interval_sec(self) -> float:
        return self._interval_sec

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def start(self, source: VideoSource) -> None:
        """Begin sampling ``source``; the first frame is taken on the next loop iteration."""
        self.stop()
        self._loop = asyncio.get_running_loop()
        self._run_token += 1
        self._source = source
        self._handle = self._loop.call_soon(self._tick, self._run_token)
        LOGGER.info(
            "Video sampling started (source=%s, every %.1fs)",
            getattr(source, "kind", "unknown"),
            self._interval_sec,
        )

    def stop(self) -> None:
        """Cancel the pending tick; idempotent."""
        self._run_token += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._source is not None:
            LOGGER.info("Video sampling stopped")
        self._source = None

    def _tick(self, token: int) -> None:
        self._handle = None
        source = self._source
        if token != self._run_token or source is None or self._loop is None:
            return
        try:
            self._sample(source)
        except Exception:
            LOGGER.exception("Video frame sampling failed; will retry next tick")
        if token == self._run_token and self._source is source:
            self._handle = self._loop.call_later(self._interval_sec, self._tick, token)

    def _sample(self, source: VideoSource) -> None:
        frame = source.read_frame()
        width, height = frame_size(frame)
        if width == 0 or height == 0:
            if self._metrics:
                self._metrics.record_video_skip()
            LOGGER.trace("Video source not ready; skipping tick")  # type: ignore[attr-defined]
            return
        image = downsample(frame, self._scale)
        video_frame = VideoFrame(data=encode_jpeg_base64(image, self._jpeg_quality))
        sent = self._sink([video_frame])
        if sent is not False and self._metrics:
            self._metrics.record_video_frame()
        self.emit("frame", video_frame)


__all__ = ["FrameSink", "VideoFrameSampler"]
