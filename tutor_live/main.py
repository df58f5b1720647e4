import argparse
import asyncio
import sys
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence

from tutor_live.backend.application.session_coordinator import (
    CoordinatorState,
    SessionCoordinator,
)
from tutor_live.backend.runtime.devices import platform_capabilities
from tutor_live.backend.runtime.runtime import LiveRuntime
from tutor_live.client.images import load_images
from tutor_live.client.solver import GenerativeSolver, RetryConfig, build_context_payload
from tutor_live.config import DEFAULT_CONFIG_PATH, LiveConfig, load_config
from tutor_live.config.default import VIDEO_SOURCES
from tutor_live.errors import (
    ErrorCode,
    ImageValidationError,
    LiveSessionError,
    SessionStateError,
    TransportConnectionError,
)
from tutor_live.utils.logger import LOGGER, configure_logging

HELP_TEXT = (
    "Commands: /mute /unmute /camera /screen /novideo /connect /disconnect "
    "/metrics /quit; any other text is sent to the tutor."
)

ReadLine = Callable[[], Awaitable[str]]


class ConsoleView:
    """Prints coordinator events; model turns stream as they arrive."""

    def __init__(self, coordinator: SessionCoordinator, out=None, err=None) -> None:
        self._out = out or sys.stdout
        self._err = err or sys.stderr
        self._printed = 0
        coordinator.on("turn_partial", self.on_partial)
        coordinator.on("turn", self.on_turn)
        coordinator.on("state", self.on_state)
        coordinator.on("muted", self.on_muted)
        coordinator.on("video_source", self.on_video_source)
        coordinator.on("error", self.on_error)

    def on_partial(self, text: str) -> None:
        if self._printed == 0:
            self._out.write("[TUTOR] ")
        self._out.write(text[self._printed :])
        self._out.flush()
        self._printed = len(text)

    def on_turn(self, text: str) -> None:
        if self._printed == 0:
            self._out.write(f"[TUTOR] {text}\n")
        else:
            self._out.write(text[self._printed :] + "\n")
        self._out.flush()
        self._printed = 0

    def on_state(self, state: CoordinatorState) -> None:
        self._out.write(f"[SESSION] {state.value}\n")

    def on_muted(self, muted: bool) -> None:
        self._out.write(f"[MIC] {'muted' if muted else 'live'}\n")

    def on_video_source(self, kind: Optional[str]) -> None:
        self._out.write(f"[VIDEO] {kind or 'off'}\n")

    def on_error(self, error: LiveSessionError) -> None:
        self._err.write(f"[ERROR] {error}\n")


async def handle_command(
    coordinator: SessionCoordinator, line: str, runtime: Optional[LiveRuntime] = None
) -> bool:
    """Run one console line; returns False when the session should end."""
    text = line.strip()
    if not text:
        return True
    if text == "/quit":
        return False
    if text == "/mute":
        coordinator.set_muted(True)
    elif text == "/unmute":
        if coordinator.muted:
            await coordinator.toggle_mute()
    elif text in ("/camera", "/screen"):
        await coordinator.select_video_source(text[1:])
    elif text == "/novideo":
        await coordinator.select_video_source(None)
    elif text == "/connect":
        try:
            await coordinator.connect()
        except (TransportConnectionError, SessionStateError) as exc:
            print(f"[SESSION] connect failed: {exc}", file=sys.stderr)
    elif text == "/disconnect":
        coordinator.disconnect()
    elif text == "/metrics":
        if runtime is not None:
            print(runtime.metrics.render(), end="")
    elif text.startswith("/"):
        print(HELP_TEXT)
    else:
        try:
            await coordinator.ask(text)
        except SessionStateError as exc:
            print(f"[SESSION] {exc}", file=sys.stderr)
    return True


async def _stdin_line() -> str:
    return await asyncio.to_thread(sys.stdin.readline)


async def repl(
    coordinator: SessionCoordinator,
    runtime: Optional[LiveRuntime] = None,
    read_line: ReadLine = _stdin_line,
) -> None:
    print(HELP_TEXT)
    while True:
        line = await read_line()
        if line == "":
            break
        if not await handle_command(coordinator, line, runtime):
            break


async def obtain_solution(
    config: LiveConfig,
    images,
    question: str,
    solution_file: Optional[str] = None,
) -> str:
    if solution_file:
        return Path(solution_file).expanduser().read_text(encoding="utf-8")
    solver = GenerativeSolver(
        config.api_key,
        model=config.solver_model,
        base_url=config.solver_base_url,
        prompt_template=config.solver_prompt,
        timeout_sec=config.solver_timeout_sec,
        retry=RetryConfig(attempts=config.solver_retries),
    )
    try:
        print(f"[SOLVER] sending {len(images)} image(s) to {config.solver_model}")
        return await solver.solve(images, question)
    finally:
        solver.close()


async def run(
    config: LiveConfig,
    image_paths: Sequence[str],
    question: str,
    *,
    solution_file: Optional[str] = None,
    auto_connect: bool = True,
) -> None:
    """Solve the staged images, then hold a live session until /quit."""
    images = load_images(list(image_paths), config.max_image_mb)
    if not images:
        raise ImageValidationError(ErrorCode.IMAGE_NOT_FOUND, "no images to solve")
    solution = await obtain_solution(config, images, question, solution_file)
    print(f"[SOLUTION]\n{solution}\n")

    runtime = LiveRuntime(config, platform_capabilities(config))
    coordinator = runtime.coordinator
    ConsoleView(coordinator)
    coordinator.set_context(build_context_payload(solution, images[0]))
    try:
        if config.video_source != "none":
            await coordinator.select_video_source(config.video_source)
        if auto_connect:
            await handle_command(coordinator, "/connect")
        await repl(coordinator, runtime)
    finally:
        await runtime.shutdown()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Live multimodal tutor session")
    parser.add_argument(
        "images",
        nargs="*",
        default=["input_images"],
        help="Image files or directories to solve (default: ./input_images)",
    )
    parser.add_argument(
        "--config",
        type=str,
        help=f"Path to YAML config (default search: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("--question", default=None, help="Question sent with the images")
    parser.add_argument(
        "--solution-file",
        default=None,
        help="Use this text as the solution instead of calling the solver",
    )
    parser.add_argument("--model", default=None, help="Live session model")
    parser.add_argument("--solver-model", default=None, help="One-shot solver model")
    parser.add_argument("--api-key", default=None, help="API key (default: $GEMINI_API_KEY)")
    parser.add_argument(
        "--video",
        choices=VIDEO_SOURCES,
        default=None,
        help="Video source to share once live",
    )
    parser.add_argument(
        "--video-interval",
        type=float,
        default=None,
        help="Seconds between video frames",
    )
    parser.add_argument("--camera-index", type=int, default=None, help="OpenCV camera index")
    parser.add_argument("--audio-device", default=None, help="sounddevice input device")
    parser.add_argument(
        "--muted",
        dest="start_muted",
        action="store_true",
        help="Start with the microphone muted",
    )
    parser.add_argument(
        "--no-muted",
        dest="start_muted",
        action="store_false",
        help="Start with the microphone live (overrides config)",
    )
    parser.add_argument(
        "--no-connect",
        dest="auto_connect",
        action="store_false",
        help="Wait for /connect instead of connecting after the solve",
    )
    parser.set_defaults(start_muted=None, auto_connect=True)
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO, TRACE); overrides config",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional log file path; overrides config",
    )
    parser.add_argument(
        "--transcript-log",
        default=None,
        help="Write model and user turns to this file",
    )
    return parser.parse_args(argv)


def configure_from_args(args: argparse.Namespace) -> LiveConfig:
    config_arg_path = Path(args.config).expanduser() if args.config else None
    effective_config_path = config_arg_path or DEFAULT_CONFIG_PATH
    config = load_config(effective_config_path)

    if args.model is not None:
        config.model = args.model
    if args.solver_model is not None:
        config.solver_model = args.solver_model
    if args.api_key is not None:
        config.api_key = args.api_key
    if args.question is not None:
        config.solver_question = args.question
    if args.video is not None:
        config.video_source = args.video
    if args.video_interval is not None:
        config.video_interval_sec = args.video_interval
    if args.camera_index is not None:
        config.camera_index = args.camera_index
    if args.audio_device is not None:
        config.audio_device = args.audio_device
    if args.start_muted is not None:
        config.start_muted = args.start_muted
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.log_file is not None:
        config.log_file = args.log_file
    if args.transcript_log is not None:
        config.transcript_log_file = args.transcript_log

    configure_logging(config.log_level, config.log_file, config.transcript_log_file)
    if effective_config_path.exists():
        LOGGER.info("Loaded live config from %s", effective_config_path)
    else:
        LOGGER.info(
            "Live config file not found at %s; using defaults/CLI overrides",
            effective_config_path,
        )
    return config


def main() -> None:
    args = parse_args()
    config = configure_from_args(args)
    try:
        asyncio.run(
            run(
                config,
                args.images,
                config.solver_question,
                solution_file=args.solution_file,
                auto_connect=args.auto_connect,
            )
        )
    except KeyboardInterrupt:
        print("\n[SESSION] interrupted by user")
    except LiveSessionError as exc:
        LOGGER.error("Session failed: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
