"""JSON envelopes for the BidiGenerateContent live protocol."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Union

from tutor_live.backend.core.types import (
    InboundFragment,
    InlineDataPart,
    MediaChunk,
    ModelTurnPart,
    OutboundPart,
    SessionConfig,
    TextPart,
    TurnComplete,
)
from tutor_live.errors import WireFormatError
from tutor_live.utils.logger import LOGGER


@dataclass
class ServerMessage:
    """Decoded inbound message."""

    setup_complete: bool = False
    fragments: List[InboundFragment] = field(default_factory=list)
    ignored: List[str] = field(default_factory=list)


def _model_name(model: str) -> str:
    return model if model.startswith("models/") else f"models/{model}"


def encode_setup(config: SessionConfig) -> str:
    setup: Dict[str, Any] = {"model": _model_name(config.model)}
    generation = config.generation_config
    if generation is not None:
        generation_config: Dict[str, Any] = {
            "responseModalities": list(generation.response_modalities)
        }
        if generation.voice:
            generation_config["speechConfig"] = {
                "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": generation.voice}}
            }
        setup["generationConfig"] = generation_config
    if config.system_instruction:
        setup["systemInstruction"] = {"parts": [{"text": config.system_instruction}]}
    return json.dumps({"setup": setup})


def _encode_part(part: OutboundPart) -> Dict[str, Any]:
    if isinstance(part, TextPart):
        return {"text": part.text}
    if isinstance(part, InlineDataPart):
        return {"inlineData": {"mimeType": part.mime_type, "data": part.data}}
    raise TypeError(f"unsupported outbound part: {type(part).__name__}")


def encode_client_content(parts: Sequence[OutboundPart], turn_complete: bool) -> str:
    return json.dumps(
        {
            "clientContent": {
                "turns": [
                    {"role": "user", "parts": [_encode_part(part) for part in parts]}
                ],
                "turnComplete": bool(turn_complete),
            }
        }
    )


def encode_realtime_input(items: Sequence[MediaChunk]) -> str:
    return json.dumps(
        {
            "realtimeInput": {
                "mediaChunks": [
                    {"mimeType": item.mime_type, "data": item.data} for item in items
                ]
            }
        }
    )


def decode_server_message(raw: Union[str, bytes]) -> ServerMessage:
    """Decode one inbound frame into setup/turn fragments."""
    try:
        text = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw
        payload = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise WireFormatError(str(exc)) from exc
    if not isinstance(payload, dict):
        raise WireFormatError("expected a JSON object")

    message = ServerMessage()
    if "setupComplete" in payload:
        message.setup_complete = True

    server_content = payload.get("serverContent")
    if isinstance(server_content, dict):
        model_turn = server_content.get("modelTurn") or {}
        if not isinstance(model_turn, dict):
            raise WireFormatError("modelTurn must be an object")
        parts = model_turn.get("parts") or []
        if not isinstance(parts, list):
            raise WireFormatError("modelTurn.parts must be a list")
        for part in parts:
            if not isinstance(part, dict):
                continue
            text = part.get("text")
            if isinstance(text, str):
                message.fragments.append(ModelTurnPart(text))
                continue
            message.ignored.extend(sorted(part.keys()))
        if server_content.get("turnComplete"):
            message.fragments.append(TurnComplete())

    for key in payload:
        if key not in ("setupComplete", "serverContent"):
            message.ignored.append(key)
    if message.ignored:
        LOGGER.trace("Ignoring inbound keys: %s", ", ".join(message.ignored))  # type: ignore[attr-defined]
    return message


__all__ = [
    "ServerMessage",
    "decode_server_message",
    "encode_client_content",
    "encode_realtime_input",
    "encode_setup",
]
