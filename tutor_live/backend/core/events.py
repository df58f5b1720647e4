"""Minimal synchronous publish/subscribe helper."""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, Dict, List

from tutor_live.utils.logger import LOGGER

Handler = Callable[..., Any]


class EventEmitter:
    """Chainable on/off event registry.

    Handlers run synchronously in registration order on the emitting thread.
    A handler that raises is logged and does not stop later handlers or leak
    into the code that emitted the event.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)

    def on(self, event: str, handler: Handler) -> "EventEmitter":
        handlers = self._handlers[event]
        if handler not in handlers:
            handlers.append(handler)
        return self

    def off(self, event: str, handler: Handler) -> "EventEmitter":
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)
        return self

    def emit(self, event: str, *args: Any) -> int:
        """Dispatch to a snapshot of the current handlers; return the count."""
        handlers = list(self._handlers.get(event, ()))
        for handler in handlers:
            try:
                handler(*args)
            except Exception:
                LOGGER.exception("Handler for %r event failed", event)
        return len(handlers)

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, ()))


__all__ = ["EventEmitter", "Handler"]
