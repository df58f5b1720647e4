"""Centralized error codes and exception types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Final, Optional


class ErrorCode(str, Enum):
    """Stable error identifiers surfaced to callers and logs."""

    # connection (ERR100x)
    CONNECT_FAILED = "ERR1001"
    HANDSHAKE_REJECTED = "ERR1002"
    HANDSHAKE_TIMEOUT = "ERR1003"
    CONNECT_CANCELLED = "ERR1004"
    API_KEY_MISSING = "ERR1005"

    # capture devices (ERR200x)
    MIC_PERMISSION_DENIED = "ERR2001"
    VIDEO_PERMISSION_DENIED = "ERR2002"

    # send (ERR300x)
    SEND_NOT_OPEN = "ERR3001"
    SEND_FAILED = "ERR3002"
    WIRE_FORMAT_INVALID = "ERR3003"

    # session state (ERR400x)
    CONTEXT_NOT_READY = "ERR4001"
    TURN_ABORTED = "ERR4002"
    SESSION_NOT_LIVE = "ERR4003"

    # one-shot solver (ERR500x)
    SOLVER_REQUEST_FAILED = "ERR5001"
    SOLVER_EMPTY_RESPONSE = "ERR5002"
    IMAGE_TYPE_UNSUPPORTED = "ERR5003"
    IMAGE_TOO_LARGE = "ERR5004"
    IMAGE_NOT_FOUND = "ERR5005"


class ErrorCategory(str, Enum):
    CONNECTION = "connection"
    PERMISSION = "permission"
    SEND = "send"
    STATE = "state"
    SOLVER = "solver"


@dataclass(frozen=True)
class ErrorSpec:
    """Maps an error code to its category, retry hint and message."""

    code: ErrorCode
    category: ErrorCategory
    retryable: bool
    message: str


ERROR_SPECS: Final[dict[ErrorCode, ErrorSpec]] = {
    ErrorCode.CONNECT_FAILED: ErrorSpec(
        ErrorCode.CONNECT_FAILED,
        ErrorCategory.CONNECTION,
        True,
        "transport could not be opened",
    ),
    ErrorCode.HANDSHAKE_REJECTED: ErrorSpec(
        ErrorCode.HANDSHAKE_REJECTED,
        ErrorCategory.CONNECTION,
        True,
        "session setup was rejected by the backend",
    ),
    ErrorCode.HANDSHAKE_TIMEOUT: ErrorSpec(
        ErrorCode.HANDSHAKE_TIMEOUT,
        ErrorCategory.CONNECTION,
        True,
        "timed out waiting for setupComplete",
    ),
    ErrorCode.CONNECT_CANCELLED: ErrorSpec(
        ErrorCode.CONNECT_CANCELLED,
        ErrorCategory.CONNECTION,
        True,
        "connect was superseded by disconnect",
    ),
    ErrorCode.API_KEY_MISSING: ErrorSpec(
        ErrorCode.API_KEY_MISSING,
        ErrorCategory.CONNECTION,
        False,
        "GEMINI_API_KEY is not set",
    ),
    ErrorCode.MIC_PERMISSION_DENIED: ErrorSpec(
        ErrorCode.MIC_PERMISSION_DENIED,
        ErrorCategory.PERMISSION,
        True,
        "microphone access denied or device unavailable",
    ),
    ErrorCode.VIDEO_PERMISSION_DENIED: ErrorSpec(
        ErrorCode.VIDEO_PERMISSION_DENIED,
        ErrorCategory.PERMISSION,
        True,
        "camera or screen access denied or device unavailable",
    ),
    ErrorCode.SEND_NOT_OPEN: ErrorSpec(
        ErrorCode.SEND_NOT_OPEN,
        ErrorCategory.SEND,
        False,
        "transport is not open",
    ),
    ErrorCode.SEND_FAILED: ErrorSpec(
        ErrorCode.SEND_FAILED,
        ErrorCategory.SEND,
        False,
        "transport send failed",
    ),
    ErrorCode.WIRE_FORMAT_INVALID: ErrorSpec(
        ErrorCode.WIRE_FORMAT_INVALID,
        ErrorCategory.SEND,
        False,
        "malformed wire message",
    ),
    ErrorCode.CONTEXT_NOT_READY: ErrorSpec(
        ErrorCode.CONTEXT_NOT_READY,
        ErrorCategory.STATE,
        False,
        "no solution context available; solve an image first",
    ),
    ErrorCode.TURN_ABORTED: ErrorSpec(
        ErrorCode.TURN_ABORTED,
        ErrorCategory.STATE,
        True,
        "transport closed before the turn completed",
    ),
    ErrorCode.SESSION_NOT_LIVE: ErrorSpec(
        ErrorCode.SESSION_NOT_LIVE,
        ErrorCategory.STATE,
        True,
        "live session is not connected",
    ),
    ErrorCode.SOLVER_REQUEST_FAILED: ErrorSpec(
        ErrorCode.SOLVER_REQUEST_FAILED,
        ErrorCategory.SOLVER,
        True,
        "solver request failed",
    ),
    ErrorCode.SOLVER_EMPTY_RESPONSE: ErrorSpec(
        ErrorCode.SOLVER_EMPTY_RESPONSE,
        ErrorCategory.SOLVER,
        True,
        "solver returned no text",
    ),
    ErrorCode.IMAGE_TYPE_UNSUPPORTED: ErrorSpec(
        ErrorCode.IMAGE_TYPE_UNSUPPORTED,
        ErrorCategory.SOLVER,
        False,
        "image type is not supported",
    ),
    ErrorCode.IMAGE_TOO_LARGE: ErrorSpec(
        ErrorCode.IMAGE_TOO_LARGE,
        ErrorCategory.SOLVER,
        False,
        "image exceeds the maximum size",
    ),
    ErrorCode.IMAGE_NOT_FOUND: ErrorSpec(
        ErrorCode.IMAGE_NOT_FOUND,
        ErrorCategory.SOLVER,
        False,
        "image file not found",
    ),
}


def spec_for(code: ErrorCode) -> ErrorSpec:
    """Return the ErrorSpec for a given error code."""
    return ERROR_SPECS[code]


def format_error(code: ErrorCode, detail: Optional[str] = None) -> str:
    """Format an error code and optional detail into a message."""
    spec = ERROR_SPECS[code]
    message = detail if detail else spec.message
    return f"{spec.code.value} {message}"


class LiveSessionError(RuntimeError):
    """Raised for application-defined errors with code metadata."""

    def __init__(self, code: ErrorCode, detail: Optional[str] = None) -> None:
        self.code = code
        spec = ERROR_SPECS[code]
        self.category = spec.category
        self.retryable = spec.retryable
        self.detail = detail or spec.message
        super().__init__(format_error(code, detail))


class TransportConnectionError(LiveSessionError):
    """Handshake or open failure; the session stays ready for a retry."""


class DevicePermissionError(LiveSessionError):
    """Capture device access denied or the device could not be opened."""


class TransportSendError(LiveSessionError):
    """Send attempted while closed, or the transport failed to write."""


class WireFormatError(LiveSessionError):
    """Inbound payload could not be decoded."""

    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(ErrorCode.WIRE_FORMAT_INVALID, detail)


class SessionStateError(LiveSessionError):
    """Operation not allowed in the current coordinator state."""


class SolverError(LiveSessionError):
    """One-shot solver failure."""


class ImageValidationError(LiveSessionError):
    """Staged image rejected before it reaches the solver."""


__all__ = [
    "DevicePermissionError",
    "ErrorCategory",
    "ErrorCode",
    "ErrorSpec",
    "ERROR_SPECS",
    "ImageValidationError",
    "LiveSessionError",
    "SessionStateError",
    "SolverError",
    "TransportConnectionError",
    "TransportSendError",
    "WireFormatError",
    "format_error",
    "spec_for",
]
