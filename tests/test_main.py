import asyncio
import io
from unittest.mock import AsyncMock, MagicMock

from tutor_live.backend.application.session_coordinator import CoordinatorState
from tutor_live.backend.core.events import EventEmitter
from tutor_live.config.loader import LiveConfig
from tutor_live.errors import ErrorCode, SessionStateError, TransportConnectionError
from tutor_live.main import ConsoleView, handle_command, obtain_solution, repl


def _coordinator(muted: bool = False) -> MagicMock:
    coordinator = MagicMock()
    coordinator.muted = muted
    coordinator.toggle_mute = AsyncMock()
    coordinator.select_video_source = AsyncMock()
    coordinator.connect = AsyncMock()
    coordinator.ask = AsyncMock(return_value="answer")
    return coordinator


def test_video_and_mic_commands():
    """Test slash commands map onto coordinator operations."""
    coordinator = _coordinator(muted=True)

    async def _run():
        assert await handle_command(coordinator, "/camera\n")
        assert await handle_command(coordinator, "/screen")
        assert await handle_command(coordinator, "/novideo")
        assert await handle_command(coordinator, "/unmute")
        assert await handle_command(coordinator, "/mute")

    asyncio.run(_run())

    calls = [call.args[0] for call in coordinator.select_video_source.await_args_list]
    assert calls == ["camera", "screen", None]
    coordinator.toggle_mute.assert_awaited_once()
    coordinator.set_muted.assert_called_once_with(True)


def test_unmute_when_live_is_a_noop():
    """Test /unmute does not toggle an already live microphone."""
    coordinator = _coordinator(muted=False)

    asyncio.run(handle_command(coordinator, "/unmute"))

    coordinator.toggle_mute.assert_not_awaited()


def test_quit_and_blank_lines():
    """Test /quit ends the loop and blank lines are ignored."""
    coordinator = _coordinator()

    assert asyncio.run(handle_command(coordinator, "   ")) is True
    assert asyncio.run(handle_command(coordinator, "/quit")) is False
    coordinator.ask.assert_not_awaited()


def test_connect_failure_is_reported_not_raised(capsys):
    """Test a failed /connect keeps the console running."""
    coordinator = _coordinator()
    coordinator.connect.side_effect = TransportConnectionError(
        ErrorCode.HANDSHAKE_TIMEOUT, "no setupComplete"
    )

    assert asyncio.run(handle_command(coordinator, "/connect")) is True

    assert "ERR1003" in capsys.readouterr().err


def test_plain_text_is_asked_and_not_live_is_reported(capsys):
    """Test free text goes to the tutor."""
    coordinator = _coordinator()

    asyncio.run(handle_command(coordinator, "what is x?"))
    coordinator.ask.assert_awaited_once_with("what is x?")

    coordinator.ask.side_effect = SessionStateError(ErrorCode.SESSION_NOT_LIVE)
    assert asyncio.run(handle_command(coordinator, "again")) is True
    assert "ERR4003" in capsys.readouterr().err


def test_unknown_command_prints_help(capsys):
    """Test unknown slash commands show help."""
    coordinator = _coordinator()

    asyncio.run(handle_command(coordinator, "/dance"))

    assert "Commands:" in capsys.readouterr().out


def test_repl_stops_at_end_of_input():
    """Test the loop ends on EOF."""
    coordinator = _coordinator()
    lines = iter(["/disconnect\n", ""])

    async def _read_line():
        return next(lines)

    asyncio.run(repl(coordinator, read_line=_read_line))

    coordinator.disconnect.assert_called_once()


def test_console_view_streams_partials_without_repeating():
    """Test partial text is printed incrementally and finished by the turn."""
    emitter = EventEmitter()
    out = io.StringIO()
    err = io.StringIO()
    ConsoleView(emitter, out=out, err=err)

    emitter.emit("state", CoordinatorState.LIVE)
    emitter.emit("turn_partial", "x ")
    emitter.emit("turn_partial", "x = 5")
    emitter.emit("turn", "x = 5.")
    emitter.emit("turn", "done")
    emitter.emit("video_source", None)
    emitter.emit("error", SessionStateError(ErrorCode.TURN_ABORTED, "closed"))

    assert out.getvalue() == (
        "[SESSION] live\n[TUTOR] x = 5.\n[TUTOR] done\n[VIDEO] off\n"
    )
    assert "ERR4002" in err.getvalue()


def test_solution_file_skips_solver(tmp_path):
    """Test a prepared solution is read verbatim."""
    path = tmp_path / "solution.txt"
    path.write_text("x = 5", encoding="utf-8")

    text = asyncio.run(obtain_solution(LiveConfig(), [], "q", str(path)))

    assert text == "x = 5"
