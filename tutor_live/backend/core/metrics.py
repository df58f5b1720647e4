import threading
from collections import defaultdict
from typing import Dict

from tutor_live.errors import ErrorCode


class SessionMetrics:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._connect_attempts = 0
        self._connect_failures = 0
        self._context_injections = 0
        self._audio_chunks_sent = 0
        self._audio_bytes_sent = 0
        self._video_frames_sent = 0
        self._video_frames_skipped = 0
        self._permission_denials = 0
        self._turns_completed = 0
        self._error_counts: Dict[str, int] = defaultdict(int)

    def record_connect_attempt(self) -> None:
        with self._lock:
            self._connect_attempts += 1

    def record_connect_failure(self) -> None:
        with self._lock:
            self._connect_failures += 1

    def record_context_injection(self) -> None:
        with self._lock:
            self._context_injections += 1

    def record_audio_chunk(self, byte_length: int) -> None:
        with self._lock:
            self._audio_chunks_sent += 1
            self._audio_bytes_sent += max(0, byte_length)

    def record_video_frame(self) -> None:
        with self._lock:
            self._video_frames_sent += 1

    def record_video_skip(self) -> None:
        with self._lock:
            self._video_frames_skipped += 1

    def record_permission_denial(self) -> None:
        with self._lock:
            self._permission_denials += 1

    def record_turn(self) -> None:
        with self._lock:
            self._turns_completed += 1

    def record_error(self, code: ErrorCode) -> None:
        with self._lock:
            self._error_counts[code.value] += 1

    def render(self) -> str:
        with self._lock:
            lines = [
                f"connect_attempts_total {self._connect_attempts}",
                f"connect_failures_total {self._connect_failures}",
                f"context_injections_total {self._context_injections}",
                f"audio_chunks_sent_total {self._audio_chunks_sent}",
                f"audio_bytes_sent_total {self._audio_bytes_sent}",
                f"video_frames_sent_total {self._video_frames_sent}",
                f"video_frames_skipped_total {self._video_frames_skipped}",
                f"permission_denials_total {self._permission_denials}",
                f"turns_completed_total {self._turns_completed}",
            ]
            for code, count in sorted(self._error_counts.items()):
                lines.append(f'error_count{{code="{code}"}} {count}')
            return "\n".join(lines) + "\n"

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return {
                "connect_attempts": self._connect_attempts,
                "connect_failures": self._connect_failures,
                "context_injections": self._context_injections,
                "audio_chunks_sent": self._audio_chunks_sent,
                "audio_bytes_sent": self._audio_bytes_sent,
                "video_frames_sent": self._video_frames_sent,
                "video_frames_skipped": self._video_frames_skipped,
                "permission_denials": self._permission_denials,
                "turns_completed": self._turns_completed,
                "errors": sum(self._error_counts.values()),
            }
