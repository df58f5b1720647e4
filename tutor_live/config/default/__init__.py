"""Default configuration values."""

from .capture import *  # noqa: F401,F403
from .capture import __all__ as _capture_all
from .session import *  # noqa: F401,F403
from .session import __all__ as _session_all

__all__ = list(_capture_all) + list(_session_all)
