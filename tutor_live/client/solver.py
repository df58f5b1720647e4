"""One-shot image-to-text solve over the generateContent REST endpoint."""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests

from tutor_live.backend.core.types import ContextPayload, InlineImage
from tutor_live.backend.transport.websocket import resolve_api_key
from tutor_live.config.default import (
    DEFAULT_SOLVER_BASE_URL,
    DEFAULT_SOLVER_MODEL,
    DEFAULT_SOLVER_PROMPT,
    DEFAULT_SOLVER_RETRIES,
    DEFAULT_SOLVER_TIMEOUT_SEC,
)
from tutor_live.errors import ErrorCode, SolverError
from tutor_live.utils.logger import LOGGER


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy for solver requests."""

    attempts: int = DEFAULT_SOLVER_RETRIES
    base_backoff_sec: float = 0.5
    max_backoff_sec: float = 8.0
    retryable_status: Sequence[int] = (429, 500, 502, 503, 504)


def _backoff_delay(retry: RetryConfig, attempt: int) -> float:
    base = max(0.0, retry.base_backoff_sec)
    delay = min(retry.max_backoff_sec, base * (2**attempt))
    jitter = delay * 0.2
    return max(0.0, delay + random.uniform(-jitter, jitter))


def build_request_body(
    images: Sequence[InlineImage], question: str, prompt_template: str
) -> Dict[str, Any]:
    parts: List[Dict[str, Any]] = [{"text": prompt_template.format(question=question)}]
    for image in images:
        parts.append({"inlineData": {"mimeType": image.mime_type, "data": image.base64}})
    return {"contents": [{"role": "user", "parts": parts}]}


def extract_text(payload: Dict[str, Any]) -> str:
    """Join the text parts of the first candidate."""
    candidates = payload.get("candidates") or []
    if not candidates:
        feedback = payload.get("promptFeedback") or {}
        raise SolverError(
            ErrorCode.SOLVER_EMPTY_RESPONSE,
            f"no candidates (blockReason={feedback.get('blockReason', 'none')})",
        )
    content = candidates[0].get("content") or {}
    text = "".join(
        part["text"]
        for part in content.get("parts") or []
        if isinstance(part, dict) and isinstance(part.get("text"), str)
    )
    if not text.strip():
        raise SolverError(ErrorCode.SOLVER_EMPTY_RESPONSE)
    return text


class GenerativeSolver:
    """Stateless client: one request per ``solve`` call."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        model: str = DEFAULT_SOLVER_MODEL,
        base_url: str = DEFAULT_SOLVER_BASE_URL,
        prompt_template: str = DEFAULT_SOLVER_PROMPT,
        timeout_sec: float = DEFAULT_SOLVER_TIMEOUT_SEC,
        retry: Optional[RetryConfig] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._api_key = api_key
        self._model = model[len("models/") :] if model.startswith("models/") else model
        self._base_url = base_url.rstrip("/")
        self._prompt_template = prompt_template
        self._timeout_sec = timeout_sec
        self._retry = retry or RetryConfig()
        self._session = session or requests.Session()
        self._sleep = sleep

    @property
    def endpoint(self) -> str:
        return f"{self._base_url}/models/{self._model}:generateContent"

    def solve_sync(self, images: Sequence[InlineImage], question: str) -> str:
        key = resolve_api_key(self._api_key)
        body = build_request_body(images, question, self._prompt_template)
        retry = self._retry
        attempt = 0
        while True:
            try:
                response = self._session.post(
                    self.endpoint,
                    params={"key": key},
                    json=body,
                    timeout=self._timeout_sec,
                )
            except requests.RequestException as exc:
                if attempt >= max(0, retry.attempts):
                    raise SolverError(ErrorCode.SOLVER_REQUEST_FAILED, str(exc)) from exc
                LOGGER.warning("Solver request failed (%s); retrying", exc)
                self._sleep(_backoff_delay(retry, attempt))
                attempt += 1
                continue

            status = response.status_code
            if status in retry.retryable_status and attempt < max(0, retry.attempts):
                LOGGER.warning("Solver returned HTTP %d; retrying", status)
                self._sleep(_backoff_delay(retry, attempt))
                attempt += 1
                continue
            if status >= 400:
                raise SolverError(
                    ErrorCode.SOLVER_REQUEST_FAILED,
                    f"HTTP {status}: {response.text[:200]}",
                )
            try:
                payload = response.json()
            except ValueError as exc:
                raise SolverError(
                    ErrorCode.SOLVER_REQUEST_FAILED, "response was not JSON"
                ) from exc
            text = extract_text(payload)
            LOGGER.info(
                "Solver answered (%d chars, %d images, attempt %d)",
                len(text),
                len(images),
                attempt + 1,
            )
            return text

    async def solve(self, images: Sequence[InlineImage], question: str) -> str:
        """Run the blocking request on a worker thread."""
        return await asyncio.to_thread(self.solve_sync, images, question)

    def close(self) -> None:
        self._session.close()


def build_context_payload(
    text: str, image: Optional[InlineImage] = None
) -> ContextPayload:
    return ContextPayload(content=text, image_data=image)


__all__ = [
    "GenerativeSolver",
    "RetryConfig",
    "build_context_payload",
    "build_request_body",
    "extract_text",
]
