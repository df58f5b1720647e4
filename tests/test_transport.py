import asyncio
import json

import pytest
from fakes import FakeOpener, model_text, settle

from tutor_live.backend.core.metrics import SessionMetrics
from tutor_live.backend.core.types import (
    AudioChunk,
    ConnectionState,
    ModelTurnPart,
    SessionConfig,
    TextPart,
    TurnComplete,
)
from tutor_live.backend.transport.live_transport import TransportSession
from tutor_live.errors import (
    ErrorCode,
    TransportConnectionError,
    TransportSendError,
    WireFormatError,
)

CONFIG = SessionConfig(model="models/test-model")


def _record(transport: TransportSession):
    events = {"open": 0, "close": [], "content": [], "error": []}

    def on_open():
        events["open"] += 1

    transport.on("open", on_open)
    transport.on("close", events["close"].append)
    transport.on("content", events["content"].append)
    transport.on("error", events["error"].append)
    return events


def test_connect_sends_setup_first_and_opens():
    """Test the handshake is the first frame and open fires once."""

    async def scenario():
        opener = FakeOpener()
        transport = TransportSession(opener)
        events = _record(transport)
        await transport.connect(CONFIG)
        state = transport.state
        transport.disconnect()
        await transport.wait_closed()
        return opener, transport, events, state

    opener, transport, events, state = asyncio.run(scenario())

    assert state is ConnectionState.CONNECTED
    assert json.loads(opener.latest.sent[0]) == {"setup": {"model": "models/test-model"}}
    assert events["open"] == 1
    assert transport.state is ConnectionState.DISCONNECTED
    assert opener.latest.closed is True


def test_handshake_rejected_when_first_message_is_not_setup_complete():
    """Test a non-setupComplete reply fails the connect."""

    async def scenario():
        opener = FakeOpener(handshake=model_text("hi"))
        metrics = SessionMetrics()
        transport = TransportSession(opener, metrics=metrics)
        with pytest.raises(TransportConnectionError) as exc_info:
            await transport.connect(CONFIG)
        await transport.wait_closed()
        return opener, transport, metrics, exc_info.value

    opener, transport, metrics, error = asyncio.run(scenario())

    assert error.code == ErrorCode.HANDSHAKE_REJECTED
    assert transport.state is ConnectionState.DISCONNECTED
    assert opener.latest.closed is True
    assert metrics.snapshot()["connect_failures"] == 1


def test_handshake_timeout():
    """Test a silent peer times out the handshake."""

    async def scenario():
        transport = TransportSession(FakeOpener(handshake=None), handshake_timeout_sec=0.05)
        with pytest.raises(TransportConnectionError) as exc_info:
            await transport.connect(CONFIG)
        return transport, exc_info.value

    transport, error = asyncio.run(scenario())

    assert error.code == ErrorCode.HANDSHAKE_TIMEOUT
    assert error.retryable is True
    assert transport.connected is False


def test_open_failure_is_a_connection_error():
    """Test transport open errors are wrapped."""

    async def scenario():
        opener = FakeOpener()
        opener.failure = OSError("network unreachable")
        transport = TransportSession(opener)
        with pytest.raises(TransportConnectionError) as exc_info:
            await transport.connect(CONFIG)
        return exc_info.value

    error = asyncio.run(scenario())

    assert error.code == ErrorCode.CONNECT_FAILED
    assert "network unreachable" in str(error)


def test_send_while_closed_reports_error_without_raising():
    """Test sends on a closed transport are dropped and observable."""
    transport = TransportSession(FakeOpener())
    events = _record(transport)

    assert transport.send([TextPart("hello")], True) is False
    assert transport.send_realtime_input([AudioChunk(data="AAA=")]) is False

    assert len(events["error"]) == 2
    assert all(isinstance(err, TransportSendError) for err in events["error"])
    assert events["error"][0].code == ErrorCode.SEND_NOT_OPEN


def test_outbound_messages_keep_call_order():
    """Test the single outbound FIFO preserves order across send kinds."""

    async def scenario():
        opener = FakeOpener()
        transport = TransportSession(opener)
        await transport.connect(CONFIG)
        transport.send([TextPart("one")], True)
        transport.send_realtime_input([AudioChunk(data="AAA=")])
        transport.send([TextPart("two")], False)
        await settle()
        transport.disconnect()
        return opener.latest.decoded()

    sent = asyncio.run(scenario())

    kinds = [next(iter(message)) for message in sent]
    assert kinds == ["setup", "clientContent", "realtimeInput", "clientContent"]
    assert sent[1]["clientContent"]["turns"][0]["parts"] == [{"text": "one"}]
    assert sent[3]["clientContent"]["turnComplete"] is False


def test_inbound_fragments_are_emitted_in_arrival_order():
    """Test content events follow wire order."""

    async def scenario():
        opener = FakeOpener()
        transport = TransportSession(opener)
        events = _record(transport)
        await transport.connect(CONFIG)
        opener.latest.push(model_text("a"))
        opener.latest.push(model_text("b", turn_complete=True))
        await settle()
        transport.disconnect()
        return events

    events = asyncio.run(scenario())

    assert events["content"] == [ModelTurnPart("a"), ModelTurnPart("b"), TurnComplete()]


def test_malformed_inbound_frame_is_reported_and_reading_continues():
    """Test a bad frame produces an error event but the stream survives."""

    async def scenario():
        opener = FakeOpener()
        transport = TransportSession(opener)
        events = _record(transport)
        await transport.connect(CONFIG)
        opener.latest.push("{broken")
        opener.latest.push('{"serverContent": {"modelTurn": ["oops"]}}')
        opener.latest.push('{"serverContent": {"modelTurn": {"parts": 3}}}')
        opener.latest.push(model_text("still here"))
        await settle()
        connected = transport.connected
        transport.disconnect()
        return events, connected

    events, connected = asyncio.run(scenario())

    assert connected is True
    assert len(events["error"]) == 3
    assert all(isinstance(error, WireFormatError) for error in events["error"])
    assert events["content"] == [ModelTurnPart("still here")]


def test_write_failure_is_reported_and_writer_keeps_running():
    """Test a failed socket write surfaces as an error event."""

    async def scenario():
        opener = FakeOpener()
        transport = TransportSession(opener)
        events = _record(transport)
        await transport.connect(CONFIG)
        opener.latest.fail_sends = True
        transport.send([TextPart("lost")], True)
        await settle()
        opener.latest.fail_sends = False
        transport.send([TextPart("kept")], True)
        await settle()
        transport.disconnect()
        return opener.latest.decoded(), events

    sent, events = asyncio.run(scenario())

    assert events["error"][0].code == ErrorCode.SEND_FAILED
    assert sent[-1]["clientContent"]["turns"][0]["parts"] == [{"text": "kept"}]


def test_peer_close_emits_close_and_stops_sends():
    """Test a dropped connection closes the session."""

    async def scenario():
        opener = FakeOpener()
        transport = TransportSession(opener)
        events = _record(transport)
        await transport.connect(CONFIG)
        opener.latest.push(ConnectionResetError("peer went away"))
        await settle()
        accepted = transport.send([TextPart("late")], True)
        await transport.wait_closed()
        return transport, events, accepted

    transport, events, accepted = asyncio.run(scenario())

    assert len(events["close"]) == 1
    assert "peer went away" in events["close"][0]
    assert accepted is False
    assert transport.state is ConnectionState.DISCONNECTED


def test_disconnect_twice_emits_single_close():
    """Test disconnect is idempotent."""

    async def scenario():
        transport = TransportSession(FakeOpener())
        events = _record(transport)
        await transport.connect(CONFIG)
        transport.disconnect()
        transport.disconnect()
        await transport.wait_closed()
        transport.disconnect()
        return events

    events = asyncio.run(scenario())

    assert events["close"] == ["client disconnect"]


def test_connect_while_connected_replaces_connection():
    """Test reconnecting tears down the previous connection first."""

    async def scenario():
        opener = FakeOpener()
        transport = TransportSession(opener)
        events = _record(transport)
        await transport.connect(CONFIG)
        first_session = transport.session_id
        await transport.connect(CONFIG)
        await settle()
        second_session = transport.session_id
        transport.disconnect()
        await transport.wait_closed()
        return opener, events, first_session, second_session

    opener, events, first_session, second_session = asyncio.run(scenario())

    assert len(opener.connections) == 2
    assert opener.connections[0].closed is True
    assert events["open"] == 2
    assert len(events["close"]) == 2
    assert first_session != second_session


def test_disconnect_during_handshake_cancels_connect():
    """Test a disconnect while the handshake is pending wins."""

    async def scenario():
        opener = FakeOpener(handshake=None)
        transport = TransportSession(opener)
        events = _record(transport)
        task = asyncio.get_running_loop().create_task(transport.connect(CONFIG))
        await settle()
        transport.disconnect()
        opener.latest.push(json.dumps({"setupComplete": {}}))
        with pytest.raises(TransportConnectionError) as exc_info:
            await task
        await transport.wait_closed()
        return transport, events, exc_info.value

    transport, events, error = asyncio.run(scenario())

    assert error.code == ErrorCode.CONNECT_CANCELLED
    assert events["open"] == 0
    assert events["close"] == []
    assert transport.state is ConnectionState.DISCONNECTED
