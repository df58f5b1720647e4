from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from tutor_live.config.default import (
    CAPTURE_SECTION_MAP,
    DEFAULT_AUDIO_CHUNK_MS,
    DEFAULT_AUDIO_DEVICE,
    DEFAULT_AUDIO_SAMPLE_RATE,
    DEFAULT_CAMERA_INDEX,
    DEFAULT_CONTEXT_PROMPT,
    DEFAULT_HANDSHAKE_TIMEOUT_SEC,
    DEFAULT_JPEG_QUALITY,
    DEFAULT_LIVE_HOST,
    DEFAULT_LIVE_MODEL,
    DEFAULT_LOG_FILE,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_IMAGE_MB,
    DEFAULT_RESPONSE_MODALITIES,
    DEFAULT_SCREEN_MONITOR,
    DEFAULT_SOLVER_BASE_URL,
    DEFAULT_SOLVER_MODEL,
    DEFAULT_SOLVER_PROMPT,
    DEFAULT_SOLVER_QUESTION,
    DEFAULT_SOLVER_RETRIES,
    DEFAULT_SOLVER_TIMEOUT_SEC,
    DEFAULT_START_MUTED,
    DEFAULT_SYSTEM_INSTRUCTION,
    DEFAULT_TRANSCRIPT_LOG_FILE,
    DEFAULT_VIDEO_INTERVAL_SEC,
    DEFAULT_VIDEO_SCALE,
    DEFAULT_VIDEO_SOURCE,
    DEFAULT_VOICE,
    DEFAULT_VOLUME_DECAY,
    DEFAULT_VOLUME_INTERVAL_MS,
    SESSION_SECTION_MAP,
)


@dataclass
class LiveConfig:
    # live session
    model: str = DEFAULT_LIVE_MODEL
    response_modalities: List[str] = field(
        default_factory=lambda: list(DEFAULT_RESPONSE_MODALITIES)
    )
    voice: Optional[str] = DEFAULT_VOICE
    system_instruction: Optional[str] = DEFAULT_SYSTEM_INSTRUCTION
    host: str = DEFAULT_LIVE_HOST
    api_key: Optional[str] = None
    handshake_timeout_sec: float = DEFAULT_HANDSHAKE_TIMEOUT_SEC
    context_prompt: str = DEFAULT_CONTEXT_PROMPT
    # audio
    audio_sample_rate: int = DEFAULT_AUDIO_SAMPLE_RATE
    audio_chunk_ms: int = DEFAULT_AUDIO_CHUNK_MS
    audio_device: Optional[str] = DEFAULT_AUDIO_DEVICE
    volume_interval_ms: int = DEFAULT_VOLUME_INTERVAL_MS
    volume_decay: float = DEFAULT_VOLUME_DECAY
    start_muted: bool = DEFAULT_START_MUTED
    # video
    video_interval_sec: float = DEFAULT_VIDEO_INTERVAL_SEC
    video_scale: float = DEFAULT_VIDEO_SCALE
    jpeg_quality: int = DEFAULT_JPEG_QUALITY
    video_source: str = DEFAULT_VIDEO_SOURCE
    camera_index: int = DEFAULT_CAMERA_INDEX
    screen_monitor: int = DEFAULT_SCREEN_MONITOR
    # one-shot solver
    solver_model: str = DEFAULT_SOLVER_MODEL
    solver_base_url: str = DEFAULT_SOLVER_BASE_URL
    solver_timeout_sec: float = DEFAULT_SOLVER_TIMEOUT_SEC
    solver_retries: int = DEFAULT_SOLVER_RETRIES
    solver_question: str = DEFAULT_SOLVER_QUESTION
    solver_prompt: str = DEFAULT_SOLVER_PROMPT
    max_image_mb: float = DEFAULT_MAX_IMAGE_MB
    # logging
    log_level: str = DEFAULT_LOG_LEVEL
    log_file: Optional[str] = DEFAULT_LOG_FILE
    transcript_log_file: Optional[str] = DEFAULT_TRANSCRIPT_LOG_FILE


PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "live.yaml"

SECTION_MAP: Dict[str, Dict[str, str]] = {}
SECTION_MAP.update(SESSION_SECTION_MAP)
SECTION_MAP.update(CAPTURE_SECTION_MAP)


def load_config(path: Optional[Path] = None) -> LiveConfig:
    """Load live session configuration from YAML, falling back to defaults."""
    cfg = LiveConfig()
    data = _read_yaml(path or DEFAULT_CONFIG_PATH)
    if data:
        _apply_sections(cfg, data)
    return cfg


def _read_yaml(path: Optional[Path]) -> Optional[Dict[str, Any]]:
    if not path or not path.exists():
        return None
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if isinstance(data, dict):
        return data
    return None


def _apply_sections(cfg: LiveConfig, raw: Dict[str, Any]) -> None:
    field_names = {f.name for f in fields(LiveConfig)}
    for section, mapping in SECTION_MAP.items():
        data = raw.get(section)
        if not isinstance(data, dict):
            continue
        for key, attr in mapping.items():
            if key in data and data[key] is not None:
                setattr(cfg, attr, data[key])

    if isinstance(cfg.response_modalities, str):
        cfg.response_modalities = [cfg.response_modalities]
    cfg.response_modalities = [str(item).upper() for item in cfg.response_modalities]

    for key, value in raw.items():
        if key in SECTION_MAP:
            continue
        if key in field_names and value is not None:
            setattr(cfg, key, value)


__all__ = [
    "LiveConfig",
    "DEFAULT_CONFIG_PATH",
    "SECTION_MAP",
    "load_config",
]
