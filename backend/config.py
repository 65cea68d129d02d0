"""
Rubber-Duck Trivia Configuration
================================
Process configuration read from the environment (and an optional
backend/.env file). The completion-service credential only ever lives here.

Environment variables:
  - GROQ_API_KEY                Bearer token for the completion service
  - COMPLETION_URL              OpenAI-compatible chat-completions endpoint
  - COMPLETION_MODEL            Model identifier sent with every request
  - COMPLETION_TIMEOUT_SECONDS  Optional request timeout (unset = none)
  - QUESTIONS_FILE              Path to the question bank JSON (defaults to the bundled bank)
  - QUIZ_SERVER_URL             Base URL the console client talks to
  - PORT                        Port for `python main.py`
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent

load_dotenv(BASE_DIR / ".env")

DEFAULT_COMPLETION_URL = "https://api.groq.com/openai/v1/chat/completions"
DEFAULT_COMPLETION_MODEL = "llama-3.1-8b-instant"
DEFAULT_SERVER_URL = "http://localhost:3000"
DEFAULT_PORT = 3000


def default_questions_file(base_dir: Path = BASE_DIR, prefix: str = sys.prefix) -> Path:
    """The bundled bank: beside the source in a checkout, under share/ once installed."""
    local = base_dir / "data" / "questions.json"
    if local.exists():
        return local
    return Path(prefix) / "share" / "rubber-duck-trivia" / "questions.json"


DEFAULT_QUESTIONS_FILE = default_questions_file()

# Maximum number of questions drawn for one session
POOL_SIZE = 10


@dataclass(frozen=True)
class GatewayMessages:
    """Texts the AI gateway returns instead of a completion."""

    no_question_chat: str = "No question received by server."
    no_question_explain: str = "No question received."
    bad_history: str = "Chat history was malformed; starting over."
    no_message: str = "No message received by server."
    bad_answer_index: str = "No valid answer index received."
    contact_failed: str = "Server failed to contact AI."
    no_content: str = "AI returned no content."


@dataclass(frozen=True)
class ControllerMessages:
    """Texts the game controller writes to the chat log on its own."""

    hint_request: str = "🦆 Hint please (no spoilers)."
    hint_prompt: str = "Give me a hint (no spoilers). Ask me 1–2 guiding questions."
    hint_empty: str = "No hint from AI."
    hint_failed: str = "Hint failed."
    chat_empty: str = "No response from AI."
    chat_failed: str = "AI chat failed."
    explain_request: str = "Explain my answer."
    explain_before_answer: str = "Answer first, then I can explain."
    explain_empty: str = "No explanation from AI."
    explain_failed: str = "Explain failed."
    no_questions: str = "No questions for this topic."
    load_failed: str = "Failed to load questions."


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or not value.strip():
        return None
    try:
        return float(value)
    except ValueError:
        return None


@dataclass(frozen=True)
class Settings:
    api_key: str = ""
    completion_url: str = DEFAULT_COMPLETION_URL
    completion_model: str = DEFAULT_COMPLETION_MODEL
    completion_timeout: Optional[float] = None
    questions_file: Path = DEFAULT_QUESTIONS_FILE
    server_url: str = DEFAULT_SERVER_URL
    port: int = DEFAULT_PORT
    gateway_messages: GatewayMessages = field(default_factory=GatewayMessages)
    controller_messages: ControllerMessages = field(default_factory=ControllerMessages)

    @property
    def ai_configured(self) -> bool:
        return bool(self.api_key)


def get_settings() -> Settings:
    """Build settings from the current environment."""
    try:
        port = int(os.environ.get("PORT", DEFAULT_PORT))
    except ValueError:
        port = DEFAULT_PORT

    return Settings(
        api_key=os.environ.get("GROQ_API_KEY", ""),
        completion_url=os.environ.get("COMPLETION_URL", DEFAULT_COMPLETION_URL),
        completion_model=os.environ.get("COMPLETION_MODEL", DEFAULT_COMPLETION_MODEL),
        completion_timeout=_optional_float(os.environ.get("COMPLETION_TIMEOUT_SECONDS")),
        questions_file=Path(os.environ.get("QUESTIONS_FILE", DEFAULT_QUESTIONS_FILE)),
        server_url=os.environ.get("QUIZ_SERVER_URL", DEFAULT_SERVER_URL).rstrip("/"),
        port=port,
    )
