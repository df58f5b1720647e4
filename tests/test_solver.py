import asyncio
from unittest.mock import MagicMock

import pytest
import requests

from tutor_live.backend.core.types import InlineImage
from tutor_live.client.solver import (
    GenerativeSolver,
    RetryConfig,
    build_context_payload,
    build_request_body,
    extract_text,
)
from tutor_live.errors import ErrorCode, SolverError, TransportConnectionError

IMAGE = InlineImage(base64="Zm9v", mime_type="image/png")


def _response(status: int, payload=None):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = payload or {}
    response.text = "error body"
    return response


def _answer(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def test_request_body_puts_prompt_before_images():
    """Test the tutor prompt leads and images follow."""
    body = build_request_body([IMAGE], "what is x?", "Q: {question}")

    parts = body["contents"][0]["parts"]
    assert body["contents"][0]["role"] == "user"
    assert parts[0] == {"text": "Q: what is x?"}
    assert parts[1] == {"inlineData": {"mimeType": "image/png", "data": "Zm9v"}}


def test_solve_posts_to_generate_content_with_key():
    """Test the REST call targets the model endpoint."""
    session = MagicMock()
    session.post.return_value = _response(200, _answer("x = 5"))
    solver = GenerativeSolver(
        "secret", model="models/gemini-test", base_url="https://api.test/v1beta/", session=session
    )

    text = asyncio.run(solver.solve([IMAGE], "solve it"))

    assert text == "x = 5"
    url = session.post.call_args.args[0]
    kwargs = session.post.call_args.kwargs
    assert url == "https://api.test/v1beta/models/gemini-test:generateContent"
    assert kwargs["params"] == {"key": "secret"}
    assert kwargs["timeout"] == 60.0


def test_retryable_status_backs_off_then_succeeds():
    """Test 503 responses are retried with backoff."""
    session = MagicMock()
    session.post.side_effect = [_response(503), _response(429), _response(200, _answer("ok"))]
    sleeps = []
    solver = GenerativeSolver("key", session=session, sleep=sleeps.append)

    assert solver.solve_sync([IMAGE], "q") == "ok"
    assert session.post.call_count == 3
    assert len(sleeps) == 2
    assert all(delay >= 0 for delay in sleeps)


def test_client_error_is_not_retried():
    """Test 4xx responses fail immediately."""
    session = MagicMock()
    session.post.return_value = _response(400)
    solver = GenerativeSolver("key", session=session, sleep=lambda _: None)

    with pytest.raises(SolverError) as exc_info:
        solver.solve_sync([IMAGE], "q")

    assert exc_info.value.code == ErrorCode.SOLVER_REQUEST_FAILED
    assert "HTTP 400" in str(exc_info.value)
    assert session.post.call_count == 1


def test_network_errors_exhaust_retries():
    """Test repeated connection errors give up after the configured attempts."""
    session = MagicMock()
    session.post.side_effect = requests.ConnectionError("down")
    solver = GenerativeSolver(
        "key", session=session, retry=RetryConfig(attempts=2), sleep=lambda _: None
    )

    with pytest.raises(SolverError) as exc_info:
        solver.solve_sync([IMAGE], "q")

    assert exc_info.value.retryable is True
    assert session.post.call_count == 3


def test_empty_candidates_raise_empty_response():
    """Test a blocked or empty answer is an error."""
    with pytest.raises(SolverError) as exc_info:
        extract_text({"promptFeedback": {"blockReason": "SAFETY"}})
    assert exc_info.value.code == ErrorCode.SOLVER_EMPTY_RESPONSE
    assert "SAFETY" in str(exc_info.value)

    with pytest.raises(SolverError):
        extract_text(_answer("   "))


def test_missing_api_key(monkeypatch):
    """Test solving without any key fails before sending."""
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    session = MagicMock()
    solver = GenerativeSolver(None, session=session)

    with pytest.raises(TransportConnectionError) as exc_info:
        solver.solve_sync([IMAGE], "q")

    assert exc_info.value.code == ErrorCode.API_KEY_MISSING
    session.post.assert_not_called()


def test_api_key_from_environment(monkeypatch):
    """Test the key falls back to GEMINI_API_KEY."""
    monkeypatch.setenv("GEMINI_API_KEY", "from-env")
    session = MagicMock()
    session.post.return_value = _response(200, _answer("fine"))

    GenerativeSolver(session=session).solve_sync([], "q")

    assert session.post.call_args.kwargs["params"] == {"key": "from-env"}


def test_build_context_payload_packages_text_and_image():
    """Test the solver result becomes a context payload."""
    payload = build_context_payload("x = 5", IMAGE)

    assert payload.content == "x = 5"
    assert payload.image_data == IMAGE
    assert payload.timestamp > 0
