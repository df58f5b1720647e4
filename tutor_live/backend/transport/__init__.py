"""Live transport: wire codec, session and WebSocket capability."""

from .live_transport import TransportSession
from .wire import (
    ServerMessage,
    decode_server_message,
    encode_client_content,
    encode_realtime_input,
    encode_setup,
)

__all__ = [
    "ServerMessage",
    "TransportSession",
    "decode_server_message",
    "encode_client_content",
    "encode_realtime_input",
    "encode_setup",
]
