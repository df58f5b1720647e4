"""Default values for the live session, solver and logging."""

from typing import Dict, List

DEFAULT_LIVE_MODEL = "models/gemini-2.0-flash-exp"
DEFAULT_RESPONSE_MODALITIES: List[str] = ["TEXT"]
DEFAULT_VOICE = None
DEFAULT_SYSTEM_INSTRUCTION = None
DEFAULT_LIVE_HOST = "generativelanguage.googleapis.com"
DEFAULT_HANDSHAKE_TIMEOUT_SEC = 10.0
DEFAULT_API_KEY_ENV = "GEMINI_API_KEY"

DEFAULT_SOLVER_MODEL = "gemini-2.0-flash-exp"
DEFAULT_SOLVER_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_SOLVER_TIMEOUT_SEC = 60.0
DEFAULT_SOLVER_RETRIES = 3
DEFAULT_SOLVER_QUESTION = "Please solve this problem and explain in detail."
DEFAULT_MAX_IMAGE_MB = 10.0

DEFAULT_SOLVER_PROMPT = (
    "You are a helpful tutor. Provide detailed, accurate, and easy-to-understand "
    "answers. Explain concepts thoroughly but avoid showing your internal "
    "reasoning process. If you're not completely sure about something, say so.\n"
    "\n"
    "Student question: {question}"
)

DEFAULT_CONTEXT_PROMPT = (
    "User has sent you a question; use the provided solution to answer it. "
    "The original question is also given as image input to you. Before starting "
    "to solve the problem, ask the user if they have any specific questions "
    "about the problem.\n"
    "Solution: {content}"
)

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FILE = None
DEFAULT_TRANSCRIPT_LOG_FILE = None

SESSION_SECTION_MAP: Dict[str, Dict[str, str]] = {
    "live": {
        "model": "model",
        "response_modalities": "response_modalities",
        "voice": "voice",
        "system_instruction": "system_instruction",
        "host": "host",
        "api_key": "api_key",
        "handshake_timeout_sec": "handshake_timeout_sec",
    },
    "solver": {
        "model": "solver_model",
        "base_url": "solver_base_url",
        "timeout_sec": "solver_timeout_sec",
        "retries": "solver_retries",
        "question": "solver_question",
        "prompt": "solver_prompt",
        "max_image_mb": "max_image_mb",
    },
    "prompt": {
        "context": "context_prompt",
    },
    "logging": {
        "level": "log_level",
        "file": "log_file",
        "transcript_file": "transcript_log_file",
    },
}

__all__ = [
    "DEFAULT_API_KEY_ENV",
    "DEFAULT_CONTEXT_PROMPT",
    "DEFAULT_HANDSHAKE_TIMEOUT_SEC",
    "DEFAULT_LIVE_HOST",
    "DEFAULT_LIVE_MODEL",
    "DEFAULT_LOG_FILE",
    "DEFAULT_LOG_LEVEL",
    "DEFAULT_MAX_IMAGE_MB",
    "DEFAULT_RESPONSE_MODALITIES",
    "DEFAULT_SOLVER_BASE_URL",
    "DEFAULT_SOLVER_MODEL",
    "DEFAULT_SOLVER_PROMPT",
    "DEFAULT_SOLVER_QUESTION",
    "DEFAULT_SOLVER_RETRIES",
    "DEFAULT_SOLVER_TIMEOUT_SEC",
    "DEFAULT_SYSTEM_INSTRUCTION",
    "DEFAULT_TRANSCRIPT_LOG_FILE",
    "DEFAULT_VOICE",
    "SESSION_SECTION_MAP",
]
