"""Bidirectional live transport session."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Optional, Sequence, Set

from tutor_live.backend.core.events import EventEmitter
from tutor_live.backend.core.metrics import SessionMetrics
from tutor_live.backend.core.types import (
    ConnectionState,
    MediaChunk,
    OutboundPart,
    SessionConfig,
)
from tutor_live.backend.runtime.capabilities import OpenTransport, TransportConnection
from tutor_live.backend.transport.wire import (
    decode_server_message,
    encode_client_content,
    encode_realtime_input,
    encode_setup,
)
from tutor_live.errors import (
    ErrorCode,
    LiveSessionError,
    TransportConnectionError,
    TransportSendError,
    WireFormatError,
)
from tutor_live.utils.logger import set_session_id

LOGGER = logging.getLogger("tutor_live.transport")


class TransportSession(EventEmitter):
    """Owns one live connection at a time.

    Events: ``open``, ``close(reason)``, ``content(fragment)``, ``error(exc)``.
    Outbound messages go through a single FIFO drained by one writer task, so
    they reach the wire in call order. ``send``/``send_realtime_input`` never
    raise on a closed transport; failures are reported as ``error`` events.
    """

    def __init__(
        self,
        open_transport: OpenTransport,
        *,
        handshake_timeout_sec: float = 10.0,
        metrics: Optional[SessionMetrics] = None,
    ) -> None:
        super().__init__()
        self._open_transport = open_transport
        self._handshake_timeout_sec = handshake_timeout_sec
        self._metrics = metrics
        self._state = ConnectionState.DISCONNECTED
        self._connection: Optional[TransportConnection] = None
        self._outbound: Optional["asyncio.Queue[str]"] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._writer_task: Optional[asyncio.Task] = None
        self._closing_tasks: Set[asyncio.Task] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._attempt = 0
        self.session_id: Optional[str] = None
        self.config: Optional[SessionConfig] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    async def connect(self, config: SessionConfig) -> None:
        """Open the transport, send the setup handshake and wait for it to be accepted."""
        if self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            self.disconnect()
        self._loop = asyncio.get_running_loop()
        self._attempt += 1
        attempt = self._attempt
        self._state = ConnectionState.CONNECTING
        self.config = config
        if self._metrics:
            self._metrics.record_connect_attempt()

        try:
            connection = await self._open_transport()
        except asyncio.CancelledError:
            self._reset_attempt(attempt)
            raise
        except LiveSessionError as exc:
            self._reset_attempt(attempt)
            raise self._connect_failure(exc.code, exc.detail) from exc
        except Exception as exc:
            self._reset_attempt(attempt)
            raise self._connect_failure(ErrorCode.CONNECT_FAILED, str(exc)) from exc

        try:
            await connection.send(encode_setup(config))
            raw = await asyncio.wait_for(
                connection.recv(), timeout=self._handshake_timeout_sec
            )
            message = decode_server_message(raw)
        except asyncio.CancelledError:
            self._reset_attempt(attempt)
            self._close_in_background(connection)
            raise
        except asyncio.TimeoutError as exc:
            self._reset_attempt(attempt)
            self._close_in_background(connection)
            raise self._connect_failure(ErrorCode.HANDSHAKE_TIMEOUT) from exc
        except Exception as exc:
            self._reset_attempt(attempt)
            self._close_in_background(connection)
            raise self._connect_failure(ErrorCode.HANDSHAKE_REJECTED, str(exc)) from exc

        if not message.setup_complete:
            self._reset_attempt(attempt)
            self._close_in_background(connection)
            raise self._connect_failure(
                ErrorCode.HANDSHAKE_REJECTED, "first message was not setupComplete"
            )

        if attempt != self._attempt or self._state is not ConnectionState.CONNECTING:
            # disconnect() or a newer connect() ran while the handshake was pending.
            self._close_in_background(connection)
            raise self._connect_failure(ErrorCode.CONNECT_CANCELLED)

        self.session_id = uuid.uuid4().hex[:12]
        set_session_id(self.session_id)
        self._connection = connection
        self._outbound = asyncio.Queue()
        self._state = ConnectionState.CONNECTED
        self._writer_task = self._loop.create_task(
            self._write_loop(connection, self._outbound)
        )
        self._reader_task = self._loop.create_task(self._read_loop(connection))
        LOGGER.info("Live transport open (model=%s)", config.model)
        self.emit("open")

    def disconnect(self) -> None:
        """Close unconditionally; a no-op when already disconnected."""
        if self._state in (ConnectionState.DISCONNECTED, ConnectionState.CLOSING):
            return
        was_open = self._state is ConnectionState.CONNECTED
        self._attempt += 1
        self._teardown()
        if was_open:
            LOGGER.info("Live transport closed by client")
            self.emit("close", "client disconnect")

    def send(self, parts: Sequence[OutboundPart], turn_complete: bool = True) -> bool:
        """Queue one clientContent message; returns False if it was dropped."""
        return self._enqueue(encode_client_content(parts, turn_complete), "clientContent")

    def send_realtime_input(self, items: Sequence[MediaChunk]) -> bool:
        """Queue high-frequency media; returns False if it was dropped."""
        return self._enqueue(encode_realtime_input(items), "realtimeInput")

    async def wait_closed(self) -> None:
        """Wait for background connection closes to finish."""
        if self._closing_tasks:
            await asyncio.gather(*list(self._closing_tasks), return_exceptions=True)

    def _enqueue(self, message: str, kind: str) -> bool:
        if self._state is not ConnectionState.CONNECTED or self._outbound is None:
            self._report_error(
                TransportSendError(ErrorCode.SEND_NOT_OPEN, f"{kind} dropped")
            )
            return False
        self._outbound.put_nowait(message)
        return True

    async def _write_loop(
        self, connection: TransportConnection, outbound: "asyncio.Queue[str]"
    ) -> None:
        while True:
            message = await outbound.get()
            try:
                await connection.send(message)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self._report_error(TransportSendError(ErrorCode.SEND_FAILED, str(exc)))

    async def _read_loop(self, connection: TransportConnection) -> None:
        reason = "peer closed"
        try:
            while True:
                raw = await connection.recv()
                try:
                    message = decode_server_message(raw)
                except WireFormatError as exc:
                    self._report_error(exc)
                    continue
                for fragment in message.fragments:
                    self.emit("content", fragment)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            reason = f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
        if connection is self._connection and self._state is ConnectionState.CONNECTED:
            LOGGER.info("Live transport closed by peer (%s)", reason)
            self._teardown()
            self.emit("close", reason)

    def _teardown(self) -> None:
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        for task in (self._reader_task, self._writer_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._reader_task = None
        self._writer_task = None
        self._outbound = None
        connection = self._connection
        self._connection = None
        if connection is None:
            self._state = ConnectionState.DISCONNECTED
            return
        self._state = ConnectionState.CLOSING
        self._close_in_background(connection)

    def _close_in_background(self, connection: TransportConnection) -> None:
        if self._loop is None:
            return
        task = self._loop.create_task(self._close_connection(connection))
        self._closing_tasks.add(task)
        task.add_done_callback(self._closing_tasks.discard)

    async def _close_connection(self, connection: TransportConnection) -> None:
        try:
            await connection.close()
        except Exception:
            LOGGER.debug("Transport close raised", exc_info=True)
        finally:
            if self._state is ConnectionState.CLOSING and self._connection is None:
                self._state = ConnectionState.DISCONNECTED

    def _reset_attempt(self, attempt: int) -> None:
        if attempt == self._attempt and self._state is ConnectionState.CONNECTING:
            self._state = ConnectionState.DISCONNECTED

    def _connect_failure(
        self, code: ErrorCode, detail: Optional[str] = None
    ) -> TransportConnectionError:
        if self._metrics:
            self._metrics.record_connect_failure()
            self._metrics.record_error(code)
        error = TransportConnectionError(code, detail)
        LOGGER.warning("Live transport connect failed: %s", error)
        return error

    def _report_error(self, error: LiveSessionError) -> None:
        if self._metrics:
            self._metrics.record_error(error.code)
        LOGGER.warning("Live transport error: %s", error)
        self.emit("error", error)


__all__ = ["TransportSession"]
