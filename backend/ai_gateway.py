"""
AI Gateway
==========
Stateless relay between the quiz and the remote chat-completion service.

Two modes:
  - hint/chat  – coaching without spoilers. Only a QuestionPrompt (question
                 text + choices) is ever turned into messages, so the correct
                 index cannot reach the model whatever the client sends.
  - explain    – single-shot, full disclosure, no history.

Every call resolves to text. Failures become fallback strings from
config.GatewayMessages; nothing raises past AIGateway.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol

import httpx
from pydantic import TypeAdapter, ValidationError

from config import GatewayMessages, Settings
from logger import CompletionCallTracker, get_completion_logger, get_logger
from models import (
    ChatMessage, ChatRequest, ChatResponse,
    ExplainRequest, ExplainResponse,
    Question, QuestionPrompt,
)

logger = get_logger("trivia.gateway")
completion_log = get_completion_logger()


HINT_SYSTEM_PROMPT = """You are a Rubber Duck Coach for a trivia game.

Rules (VERY IMPORTANT):
- Never reveal which option is correct.
- Never say "the answer is X" or "choose option Y", and never use wording that singles out the correct option.
- Even if the user asks for the answer directly, refuse politely and give a hint instead.
- Help by: explaining concepts, asking one or two guiding questions, and giving a subtle hint.
- You may explain why an option might be wrong, but do not confirm the correct one.
- Keep it concise and friendly."""

EXPLAIN_SYSTEM_PROMPT = """You are a trivia tutor.
The user has already answered.
Now you may explain the correct answer and why the other options are wrong.
Be clear and concise."""


class CompletionError(Exception):
    """The completion service could not produce usable text.

    `service_message` carries the service's own error text when it sent one;
    `responded` is False when no response body was obtained at all.
    """

    def __init__(self, message: str, *, service_message: Optional[str] = None, responded: bool = False):
        super().__init__(message)
        self.service_message = service_message
        self.responded = responded


class Completer(Protocol):
    async def complete(self, messages: list[ChatMessage], *, caller: str) -> str: ...


# --- Response parsing ---

def extract_completion_text(data: Any) -> str:
    """Pull choices[0].message.content out of an OpenAI-style body ('' if absent)."""
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    return content.strip() if isinstance(content, str) else ""


def extract_error_message(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        return message if isinstance(message, str) and message else None
    if isinstance(error, str) and error:
        return error
    return None


# --- Remote completion client ---

class CompletionClient:
    """POSTs message sequences to an OpenAI-compatible chat-completions endpoint."""

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._http = http_client
        self._owns_http = http_client is None

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            # timeout=None disables httpx's default timeouts
            self._http = httpx.AsyncClient(timeout=self.settings.completion_timeout)
        return self._http

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    async def complete(self, messages: list[ChatMessage], *, caller: str) -> str:
        """Return the trimmed completion text or raise CompletionError."""
        payload = {
            "model": self.settings.completion_model,
            "messages": [m.model_dump() for m in messages],
        }
        # Any exception that escapes before finish() is recorded as a failed call
        with CompletionCallTracker(
            endpoint=caller,
            model=self.settings.completion_model,
            prompt_chars=sum(len(m.content) for m in messages),
            extra={"message_count": len(messages)},
        ) as tracker:
            if not self.settings.api_key:
                tracker.finish(success=False, error="GROQ_API_KEY not set")
                raise CompletionError("Completion service credential not configured")

            completion_log.debug("Messages:\n%s", "\n".join(f"[{m.role}] {m.content}" for m in messages))

            try:
                response = await self.http.post(
                    self.settings.completion_url,
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {self.settings.api_key}",
                        "Content-Type": "application/json",
                    },
                )
            except httpx.HTTPError as e:
                tracker.finish(success=False, error=f"{type(e).__name__}: {e}")
                raise CompletionError(f"Completion request failed: {e}") from e

            # Error bodies come back with 4xx/5xx statuses; parse them anyway
            try:
                data = response.json()
            except ValueError as e:
                tracker.finish(
                    success=False,
                    error="Non-JSON response body",
                    status_code=response.status_code,
                    response_chars=len(response.text),
                )
                raise CompletionError(
                    f"Completion service returned a non-JSON body (HTTP {response.status_code})"
                ) from e

            text = extract_completion_text(data)
            usage = data.get("usage") if isinstance(data, dict) else None
            if text:
                completion_log.debug("Response (%d chars):\n%s", len(text), text[:2000])
                tracker.finish(
                    success=True,
                    status_code=response.status_code,
                    response_chars=len(text),
                    token_usage=usage,
                )
                return text

            service_message = extract_error_message(data)
            tracker.finish(
                success=False,
                error=service_message or "Empty completion",
                status_code=response.status_code,
                token_usage=usage,
            )
            raise CompletionError(
                service_message or "Completion service returned no content",
                service_message=service_message,
                responded=True,
            )


# --- Prompt assembly ---

def parse_prompt_question(raw: Any) -> Optional[QuestionPrompt]:
    """Spoiler-free view of a request's question, or None if malformed."""
    try:
        return QuestionPrompt.model_validate(raw)
    except ValidationError:
        return None


def parse_full_question(raw: Any) -> Optional[Question]:
    try:
        return Question.model_validate(raw)
    except ValidationError:
        return None


_HISTORY_ADAPTER = TypeAdapter(list[ChatMessage])


def parse_history(raw: Any) -> Optional[list[ChatMessage]]:
    """Prior chat turns; a missing history is an empty one, a bad one is None."""
    if raw is None:
        return []
    try:
        return _HISTORY_ADAPTER.validate_python(raw)
    except ValidationError:
        return None


def parse_answer_index(raw: Any, question: Question) -> Optional[int]:
    # bool is an int subclass; True/False are not answers
    if isinstance(raw, bool) or not isinstance(raw, int):
        return None
    return raw if 0 <= raw < len(question.choices) else None


def build_hint_messages(
    question: QuestionPrompt,
    history: list[ChatMessage],
    user_message: str,
) -> list[ChatMessage]:
    context = (
        "Here is the trivia question:\n"
        f"Question: {question.question}\n"
        f"Choices: {', '.join(question.choices)}"
    )
    return [
        ChatMessage(role="system", content=HINT_SYSTEM_PROMPT),
        ChatMessage(role="user", content=context),
        *history,
        ChatMessage(role="user", content=user_message),
    ]


def build_explain_messages(question: Question, user_answer_index: int) -> list[ChatMessage]:
    context = (
        f"Question: {question.question}\n"
        f"Choices: {', '.join(question.choices)}\n"
        f"Correct answer index: {question.correctIndex}\n"
        f"User answered index: {user_answer_index}"
    )
    return [
        ChatMessage(role="system", content=EXPLAIN_SYSTEM_PROMPT),
        ChatMessage(role="user", content=context),
    ]


# --- Gateway ---

class AIGateway:
    """Stateless per-request relay. Holds configuration only."""

    def __init__(self, completer: Completer, messages: Optional[GatewayMessages] = None):
        self.completer = completer
        self.messages = messages or GatewayMessages()

    def _fallback(self, error: CompletionError) -> str:
        if error.service_message:
            return error.service_message
        return self.messages.no_content if error.responded else self.messages.contact_failed

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Hint/chat turn: returns the reply and the extended history."""
        prior = parse_history(request.history)
        if prior is None:
            logger.warning("⚠️  /ai-chat called with a malformed history")
            return ChatResponse(text=self.messages.bad_history, history=[])

        question = parse_prompt_question(request.question)
        if question is None:
            logger.warning("⚠️  /ai-chat called without a well-formed question")
            return ChatResponse(text=self.messages.no_question_chat, history=prior)

        user_message = request.userMessage
        if not isinstance(user_message, str) or not user_message.strip():
            logger.warning("⚠️  /ai-chat called without a user message")
            return ChatResponse(text=self.messages.no_message, history=prior)

        messages = build_hint_messages(question, prior, user_message)
        logger.info(f"🦆 Hint/chat request: '{question.question[:50]}' (history={len(prior)})")

        try:
            text = await self.completer.complete(messages, caller="ai_chat")
        except CompletionError as e:
            logger.warning(f"⚠️  Hint/chat completion failed: {e}")
            return ChatResponse(text=self._fallback(e), history=prior)
        except Exception as e:
            logger.exception(f"❌ Unexpected hint/chat failure: {e}")
            return ChatResponse(text=self.messages.contact_failed, history=prior)

        history = [
            *prior,
            ChatMessage(role="user", content=user_message),
            ChatMessage(role="assistant", content=text),
        ]
        return ChatResponse(text=text, history=history)

    async def explain(self, request: ExplainRequest) -> ExplainResponse:
        """Single-shot explanation of the user's answer; no history in or out."""
        question = parse_full_question(request.question)
        if question is None:
            logger.warning("⚠️  /ai-explain called without a well-formed question")
            return ExplainResponse(text=self.messages.no_question_explain)

        answer_index = parse_answer_index(request.userAnswerIndex, question)
        if answer_index is None:
            logger.warning(f"⚠️  /ai-explain called with answer index {request.userAnswerIndex!r}")
            return ExplainResponse(text=self.messages.bad_answer_index)

        messages = build_explain_messages(question, answer_index)
        logger.info(f"📘 Explain request: '{question.question[:50]}' (answered={answer_index})")

        try:
            text = await self.completer.complete(messages, caller="ai_explain")
        except CompletionError as e:
            logger.warning(f"⚠️  Explain completion failed: {e}")
            return ExplainResponse(text=self._fallback(e))
        except Exception as e:
            logger.exception(f"❌ Unexpected explain failure: {e}")
            return ExplainResponse(text=self.messages.contact_failed)

        return ExplainResponse(text=text)
