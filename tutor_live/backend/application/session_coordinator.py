"""State machine tying the transport to the capture pipelines."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

from tutor_live.backend.component.audio_capture import AudioCapturePipeline
from tutor_live.backend.component.turn_accumulator import TurnAccumulator
from tutor_live.backend.component.video_sampler import VideoFrameSampler
from tutor_live.backend.core.events import EventEmitter
from tutor_live.backend.core.types import (
    AudioChunk,
    ContextPayload,
    PipelineEnablement,
    SessionConfig,
    TextPart,
    context_parts,
)
from tutor_live.backend.runtime.capabilities import RequestVideoStream, VideoSource
from tutor_live.backend.transport.live_transport import TransportSession
from tutor_live.config.default import DEFAULT_CONTEXT_PROMPT
from tutor_live.errors import (
    DevicePermissionError,
    ErrorCode,
    LiveSessionError,
    SessionStateError,
    TransportConnectionError,
)
from tutor_live.utils.logger import TRANSCRIPT_LOGGER, clear_session_id

if TYPE_CHECKING:
    from tutor_live.backend.core.metrics import SessionMetrics

LOGGER = logging.getLogger("tutor_live.session")


class CoordinatorState(Enum):
    IDLE = "idle"
    READY = "ready"
    LIVE = "live"


@dataclass(frozen=True)
class CoordinatorSettings:
    """Per-coordinator settings resolved from LiveConfig."""

    session_config: SessionConfig
    context_prompt: str = DEFAULT_CONTEXT_PROMPT
    start_muted: bool = False


class SessionCoordinator(EventEmitter):
    """Owns the Idle/Ready/Live lifecycle of one live session.

    The context payload is injected from the ``open`` handler only on the
    transition into Live, so it is always the first message on a fresh
    connection and is sent once per connection. Capture pipelines are
    reconciled against ``PipelineEnablement`` after every state change.

    Events: ``state(CoordinatorState)``, ``muted(bool)``, ``volume(float)``,
    ``video_source(kind or None)``, ``turn_partial(str)``, ``turn(str)`` and
    ``error(LiveSessionError)`` (transport errors are forwarded).
    """

    def __init__(
        self,
        transport: TransportSession,
        audio: AudioCapturePipeline,
        sampler: VideoFrameSampler,
        request_video_stream: RequestVideoStream,
        settings: CoordinatorSettings,
        metrics: Optional["SessionMetrics"] = None,
    ) -> None:
        super().__init__()
        self._transport = transport
        self._audio = audio
        self._sampler = sampler
        self._request_video_stream = request_video_stream
        self._settings = settings
        self._metrics = metrics
        self._state = CoordinatorState.IDLE
        self._payload: Optional[ContextPayload] = None
        self._muted = bool(settings.start_muted)
        self._video_source: Optional[VideoSource] = None
        self._video_kind: Optional[str] = None
        self._video_token = 0
        self._audio_token = 0
        self._audio_pending = False
        self._turn: Optional[TurnAccumulator] = None
        # Requests sent with turnComplete whose reply has not finished yet.
        self._unanswered = 0
        transport.on("open", self._on_open)
        transport.on("close", self._on_close)
        transport.on("error", self._on_transport_error)

    # ------------------------------------------------------------------ state

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is CoordinatorState.LIVE

    @property
    def muted(self) -> bool:
        return self._muted

    @property
    def context(self) -> Optional[ContextPayload]:
        return self._payload

    @property
    def video_source(self) -> Optional[VideoSource]:
        return self._video_source

    @property
    def video_kind(self) -> Optional[str]:
        return self._video_kind

    @property
    def current_turn(self) -> Optional[TurnAccumulator]:
        return self._turn

    @property
    def enablement(self) -> PipelineEnablement:
        return PipelineEnablement.derive(self.connected, self._muted, self._video_source)

    def _set_state(self, state: CoordinatorState) -> None:
        if state is self._state:
            return
        previous = self._state
        self._state = state
        LOGGER.info("Session state %s -> %s", previous.value, state.value)
        self.emit("state", state)

    # ---------------------------------------------------------------- context

    def set_context(self, payload: ContextPayload) -> bool:
        """Store a solver result for injection; older or equal timestamps are ignored."""
        current = self._payload
        if current is not None and payload.timestamp <= current.timestamp:
            LOGGER.debug("Ignoring context payload that is not newer than the current one")
            return False
        self._payload = payload
        if self._state is CoordinatorState.IDLE:
            self._set_state(CoordinatorState.READY)
        elif self._state is CoordinatorState.LIVE:
            LOGGER.info("Context updated while live; it will be sent on the next connection")
        return True

    # ------------------------------------------------------------- connection

    async def connect(self) -> None:
        """Open the live transport; the session stays Ready if this fails."""
        if self._state is CoordinatorState.IDLE or self._payload is None:
            raise SessionStateError(ErrorCode.CONTEXT_NOT_READY)
        try:
            await self._transport.connect(self._settings.session_config)
        except TransportConnectionError:
            if self._state is not CoordinatorState.LIVE:
                self._set_state(CoordinatorState.READY)
            raise

    def disconnect(self) -> None:
        """Leave Live synchronously; idempotent."""
        if self._state is CoordinatorState.LIVE:
            self._enter_ready()
        self._transport.disconnect()

    def _on_open(self) -> None:
        if self._state is CoordinatorState.LIVE:
            LOGGER.debug("Transport reported open while already live; not re-injecting")
            return
        self._set_state(CoordinatorState.LIVE)
        self._inject_context()
        self._arm_turn()
        self._reconcile()

    def _on_close(self, reason: str = "") -> None:
        if self._state is not CoordinatorState.LIVE:
            return
        LOGGER.info("Live session ended (%s)", reason or "closed")
        self._enter_ready()

    def _on_transport_error(self, error: LiveSessionError) -> None:
        self.emit("error", error)

    def _enter_ready(self) -> None:
        self._stop_audio()
        self._sampler.stop()
        turn = self._turn
        self._turn = None
        self._unanswered = 0
        if turn is not None:
            turn.abort("session ended")
        self._set_state(CoordinatorState.READY)
        clear_session_id()

    def _inject_context(self) -> None:
        payload = self._payload
        if payload is None:
            return
        parts = context_parts(payload, self._settings.context_prompt)
        if self._transport.send(parts, True):
            self._unanswered += 1
            if self._metrics:
                self._metrics.record_context_injection()
            LOGGER.info("Context injected (%d parts)", len(parts))

    # ------------------------------------------------------------------ turns

    def _arm_turn(self) -> TurnAccumulator:
        self._turn = TurnAccumulator(
            self._transport,
            on_partial=self._on_turn_partial,
            on_complete=self._on_turn_complete,
        )
        return self._turn

    def _on_turn_partial(self, text: str) -> None:
        self.emit("turn_partial", text)

    def _on_turn_complete(self, text: str) -> None:
        if self._metrics:
            self._metrics.record_turn()
        if self._unanswered:
            self._unanswered -= 1
        TRANSCRIPT_LOGGER.info("model: %s", text)
        self.emit("turn", text)
        if self._state is CoordinatorState.LIVE:
            self._arm_turn()

    async def ask(self, text: str) -> str:
        """Send a typed user turn and wait for the model's reply."""
        if self._state is not CoordinatorState.LIVE:
            raise SessionStateError(ErrorCode.SESSION_NOT_LIVE)
        # Replies to the context and to earlier questions arrive first.
        while self._unanswered:
            pending = self._turn
            if pending is None:
                raise SessionStateError(ErrorCode.SESSION_NOT_LIVE)
            await pending.wait()
        if self._state is not CoordinatorState.LIVE:
            raise SessionStateError(ErrorCode.SESSION_NOT_LIVE)
        turn = self._turn or self._arm_turn()
        TRANSCRIPT_LOGGER.info("user: %s", text)
        if not self._transport.send([TextPart(text)], True):
            turn.abort("send failed")
            self._turn = None
            raise SessionStateError(ErrorCode.SESSION_NOT_LIVE, "text turn was dropped")
        self._unanswered += 1
        return await turn.wait()

    # ------------------------------------------------------------------ audio

    def set_muted(self, muted: bool) -> None:
        muted = bool(muted)
        if muted == self._muted:
            return
        self._muted = muted
        LOGGER.info("Microphone %s", "muted" if muted else "unmuted")
        self.emit("muted", muted)
        self._reconcile()

    async def toggle_mute(self) -> bool:
        """Flip mute; unmuting while disconnected checks microphone access first."""
        if self._muted and self._state is not CoordinatorState.LIVE:
            try:
                await self._audio.probe()
            except DevicePermissionError as exc:
                self._report_permission_denied(exc)
                return self._muted
        self.set_muted(not self._muted)
        return self._muted

    def _reconcile(self) -> None:
        enablement = self.enablement
        if enablement.audio_enabled:
            self._start_audio()
        else:
            self._stop_audio()
        if enablement.video_enabled:
            if self._sampler.source is not self._video_source:
                self._sampler.start(self._video_source)
        else:
            self._sampler.stop()

    def _start_audio(self) -> None:
        if self._audio.running or self._audio_pending:
            return
        self._audio_token += 1
        token = self._audio_token
        self._audio_pending = True
        self._audio.on("data", self._on_audio_data)
        self._audio.on("volume", self._on_volume)
        asyncio.get_running_loop().create_task(self._run_audio_start(token))

    async def _run_audio_start(self, token: int) -> None:
        try:
            await self._audio.start()
        except DevicePermissionError as exc:
            if token != self._audio_token:
                return
            self._audio_pending = False
            self._detach_audio()
            self._report_permission_denied(exc)
            return
        if token != self._audio_token:
            return
        self._audio_pending = False
        if not self.enablement.audio_enabled:
            self._stop_audio()

    def _stop_audio(self) -> None:
        was_active = self._audio.running or self._audio_pending
        self._audio_token += 1
        self._audio_pending = False
        self._detach_audio()
        self._audio.stop()
        if was_active:
            self.emit("volume", 0.0)

    def _detach_audio(self) -> None:
        self._audio.off("data", self._on_audio_data)
        self._audio.off("volume", self._on_volume)

    def _on_audio_data(self, chunk: AudioChunk) -> None:
        if self._transport.send_realtime_input([chunk]) and self._metrics:
            self._metrics.record_audio_chunk(_decoded_length(chunk.data))

    def _on_volume(self, level: float) -> None:
        self.emit("volume", level)

    def _report_permission_denied(self, error: DevicePermissionError) -> None:
        if self._metrics:
            self._metrics.record_permission_denial()
            self._metrics.record_error(error.code)
        LOGGER.warning("Microphone unavailable: %s", error)
        self.emit("error", error)
        self.set_muted(True)

    # ------------------------------------------------------------------ video

    async def select_video_source(self, kind: Optional[str]) -> Optional[VideoSource]:
        """Hand off to a new camera/screen source, or to none.

        The old source is stopped before the new one is requested, so only one
        source is ever held. A denied request leaves no active source.
        """
        self._video_token += 1
        token = self._video_token
        self._sampler.stop()
        previous = self._video_source
        self._video_source = None
        self._video_kind = None
        if previous is not None:
            self._stop_source(previous)

        if not kind or kind == "none":
            self.emit("video_source", None)
            self._reconcile()
            return None

        try:
            source = await self._request_video_stream(kind)
        except DevicePermissionError as exc:
            error = exc
        except Exception as exc:
            error = DevicePermissionError(ErrorCode.VIDEO_PERMISSION_DENIED, str(exc))
        else:
            error = None
        if error is not None:
            if token == self._video_token:
                if self._metrics:
                    self._metrics.record_permission_denial()
                    self._metrics.record_error(error.code)
                LOGGER.warning("Video source %s unavailable: %s", kind, error)
                self.emit("error", error)
                self.emit("video_source", None)
            return None

        if token != self._video_token:
            LOGGER.info("Video source %s granted after a newer selection; releasing it", kind)
            self._stop_source(source)
            return None

        self._video_source = source
        self._video_kind = kind
        self.emit("video_source", kind)
        self._reconcile()
        return source

    @staticmethod
    def _stop_source(source: VideoSource) -> None:
        try:
            source.stop()
        except Exception:
            LOGGER.warning("Stopping video source failed", exc_info=True)

    # --------------------------------------------------------------- shutdown

    async def shutdown(self) -> None:
        """Disconnect, release every device and wait for the transport to close."""
        self.disconnect()
        await self.select_video_source(None)
        self._stop_audio()
        await self._transport.wait_closed()


def _decoded_length(data: str) -> int:
    """Byte length of a base64 payload without decoding it."""
    padding = len(data) - len(data.rstrip("="))
    return len(data) * 3 // 4 - padding


__all__ = ["CoordinatorSettings", "CoordinatorState", "SessionCoordinator"]
