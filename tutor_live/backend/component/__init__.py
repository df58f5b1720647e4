"""Capture pipelines and turn assembly."""

from tutor_live.backend.component.audio_capture import AudioCapturePipeline
from tutor_live.backend.component.turn_accumulator import TurnAccumulator
from tutor_live.backend.component.video_sampler import VideoFrameSampler

__all__ = ["AudioCapturePipeline", "TurnAccumulator", "VideoFrameSampler"]
