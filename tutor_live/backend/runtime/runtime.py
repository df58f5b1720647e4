"""Application wiring for the live tutor session."""

from __future__ import annotations

from typing import Optional

from tutor_live.backend.application.session_coordinator import (
    CoordinatorSettings,
    SessionCoordinator,
)
from tutor_live.backend.component.audio_capture import AudioCapturePipeline
from tutor_live.backend.component.video_sampler import VideoFrameSampler
from tutor_live.backend.core.metrics import SessionMetrics
from tutor_live.backend.core.types import GenerationConfig, SessionConfig
from tutor_live.backend.runtime.capabilities import Capabilities
from tutor_live.backend.transport.live_transport import TransportSession
from tutor_live.config import LiveConfig
from tutor_live.utils.logger import LOGGER


def session_config_from(config: LiveConfig) -> SessionConfig:
    return SessionConfig(
        model=config.model,
        generation_config=GenerationConfig(
            response_modalities=tuple(config.response_modalities),
            voice=config.voice,
        ),
        system_instruction=config.system_instruction,
    )


class LiveRuntime:
    """Builds and owns the transport, capture pipelines and coordinator."""

    def __init__(
        self,
        config: LiveConfig,
        capabilities: Capabilities,
        metrics: Optional[SessionMetrics] = None,
    ) -> None:
        self.config = config
        self.capabilities = capabilities
        self.metrics = metrics or SessionMetrics()
        self.transport = TransportSession(
            capabilities.open_transport,
            handshake_timeout_sec=config.handshake_timeout_sec,
            metrics=self.metrics,
        )
        self.audio = AudioCapturePipeline(
            capabilities.request_audio_device,
            volume_interval_ms=config.volume_interval_ms,
            volume_decay=config.volume_decay,
        )
        self.sampler = VideoFrameSampler(
            self.transport.send_realtime_input,
            interval_sec=config.video_interval_sec,
            scale=config.video_scale,
            jpeg_quality=config.jpeg_quality,
            metrics=self.metrics,
        )
        self.coordinator = SessionCoordinator(
            self.transport,
            self.audio,
            self.sampler,
            capabilities.request_video_stream,
            CoordinatorSettings(
                session_config=session_config_from(config),
                context_prompt=config.context_prompt,
                start_muted=config.start_muted,
            ),
            metrics=self.metrics,
        )
        LOGGER.debug(
            "Live runtime ready (model=%s, video every %.1fs)",
            config.model,
            config.video_interval_sec,
        )

    async def shutdown(self) -> None:
        await self.coordinator.shutdown()
        LOGGER.info("Session metrics:\n%s", self.metrics.render().rstrip())


__all__ = ["LiveRuntime", "session_config_from"]
