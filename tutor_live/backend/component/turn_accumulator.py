"""Assemble streamed model fragments into one turn."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from tutor_live.backend.core.events import EventEmitter
from tutor_live.backend.core.types import InboundFragment, ModelTurnPart, TurnComplete
from tutor_live.errors import ErrorCode, SessionStateError

LOGGER = logging.getLogger("tutor_live.turn")

TextCallback = Callable[[str], None]


class TurnAccumulator:
    """One-shot collector for a single model turn.

    Subscribes to ``content`` and ``close`` on ``source`` when created and
    unsubscribes both as soon as the turn completes or is aborted, so a
    finished turn never sees another fragment. Must be created on the loop
    thread.
    """

    def __init__(
        self,
        source: EventEmitter,
        *,
        on_partial: Optional[TextCallback] = None,
        on_complete: Optional[TextCallback] = None,
    ) -> None:
        self._source = source
        self._on_partial = on_partial
        self._on_complete = on_complete
        self._parts: List[str] = []
        self._future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._aborted: Optional[str] = None
        self._attached = True
        source.on("content", self._on_content)
        source.on("close", self._on_close)

    @property
    def partial_text(self) -> str:
        return "".join(self._parts)

    @property
    def started(self) -> bool:
        return bool(self._parts)

    @property
    def done(self) -> bool:
        return self._future.done()

    @property
    def attached(self) -> bool:
        return self._attached

    async def wait(self) -> str:
        """Return the final text; raises SessionStateError if the turn was aborted."""
        try:
            return await asyncio.shield(self._future)
        except asyncio.CancelledError:
            if self._aborted is not None:
                raise SessionStateError(ErrorCode.TURN_ABORTED, self._aborted) from None
            raise

    def abort(self, reason: str = "turn abandoned") -> None:
        """Stop listening and fail any waiter; no-op once the turn is done."""
        if self._future.done():
            return
        self._detach()
        self._parts.clear()
        self._aborted = reason
        self._future.cancel()
        LOGGER.debug("Turn aborted: %s", reason)

    def _on_content(self, fragment: InboundFragment) -> None:
        if self._future.done():
            return
        if isinstance(fragment, ModelTurnPart):
            self._parts.append(fragment.text)
            if self._on_partial is not None:
                self._on_partial(self.partial_text)
        elif isinstance(fragment, TurnComplete):
            self._finish()

    def _on_close(self, reason: str = "transport closed") -> None:
        self.abort(reason)

    def _finish(self) -> None:
        text = "".join(self._parts)
        self._parts.clear()
        self._detach()
        self._future.set_result(text)
        if self._on_complete is not None:
            self._on_complete(text)

    def _detach(self) -> None:
        if not self._attached:
            return
        self._attached = False
        self._source.off("content", self._on_content)
        self._source.off("close", self._on_close)


__all__ = ["TurnAccumulator"]
