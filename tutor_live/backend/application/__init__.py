"""Application layer for the live tutor session."""

from .session_coordinator import (
    CoordinatorSettings,
    CoordinatorState,
    SessionCoordinator,
)

__all__ = ["CoordinatorSettings", "CoordinatorState", "SessionCoordinator"]
