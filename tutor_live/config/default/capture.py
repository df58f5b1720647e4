"""Default values for microphone and video capture."""

from typing import Dict

DEFAULT_AUDIO_SAMPLE_RATE = 16000
DEFAULT_AUDIO_CHUNK_MS = 100
DEFAULT_AUDIO_DEVICE = None
DEFAULT_VOLUME_INTERVAL_MS = 25
DEFAULT_VOLUME_DECAY = 0.7
DEFAULT_START_MUTED = False

# 1000 / 0.5 ms, i.e. one frame every two seconds.
DEFAULT_VIDEO_INTERVAL_SEC = 2.0
DEFAULT_VIDEO_SCALE = 0.25
DEFAULT_JPEG_QUALITY = 95
DEFAULT_VIDEO_SOURCE = "none"
DEFAULT_CAMERA_INDEX = 0
DEFAULT_SCREEN_MONITOR = 1

VIDEO_SOURCES = ("none", "camera", "screen")

CAPTURE_SECTION_MAP: Dict[str, Dict[str, str]] = {
    "audio": {
        "sample_rate": "audio_sample_rate",
        "chunk_ms": "audio_chunk_ms",
        "device": "audio_device",
        "volume_interval_ms": "volume_interval_ms",
        "volume_decay": "volume_decay",
        "start_muted": "start_muted",
    },
    "video": {
        "interval_sec": "video_interval_sec",
        "scale": "video_scale",
        "jpeg_quality": "jpeg_quality",
        "source": "video_source",
        "camera_index": "camera_index",
        "screen_monitor": "screen_monitor",
    },
}

__all__ = [
    "CAPTURE_SECTION_MAP",
    "DEFAULT_AUDIO_CHUNK_MS",
    "DEFAULT_AUDIO_DEVICE",
    "DEFAULT_AUDIO_SAMPLE_RATE",
    "DEFAULT_CAMERA_INDEX",
    "DEFAULT_JPEG_QUALITY",
    "DEFAULT_SCREEN_MONITOR",
    "DEFAULT_START_MUTED",
    "DEFAULT_VIDEO_INTERVAL_SEC",
    "DEFAULT_VIDEO_SCALE",
    "DEFAULT_VIDEO_SOURCE",
    "DEFAULT_VOLUME_DECAY",
    "DEFAULT_VOLUME_INTERVAL_MS",
    "VIDEO_SOURCES",
]
