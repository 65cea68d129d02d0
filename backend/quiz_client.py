"""HTTP client the game controller uses to reach the quiz server."""

from __future__ import annotations

from typing import Optional

import httpx
from pydantic import ValidationError

from logger import get_logger
from models import (
    ChatMessage, ChatRequest, ChatResponse,
    ExplainRequest, ExplainResponse,
    Question, QuestionPrompt,
)
from question_bank import QuestionBank, QuestionBankError, parse_question_bank

logger = get_logger("trivia.client")


class QuizClientError(Exception):
    """The server could not be reached or answered with something unusable."""


class QuizClient:
    """Thin async wrapper over the server's read and AI endpoints.

    No explicit timeout: a slow AI reply only stalls the action awaiting it.
    """

    def __init__(self, base_url: str, http_client: Optional[httpx.AsyncClient] = None):
        self._owns_http = http_client is None
        self.http = http_client or httpx.AsyncClient(base_url=base_url, timeout=None)

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> object:
        try:
            response = await self.http.request(method, url, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            raise QuizClientError(f"{method} {url} failed: {e}") from e
        except ValueError as e:
            raise QuizClientError(f"{method} {url} returned invalid JSON") from e

    async def fetch_questions(self) -> QuestionBank:
        data = await self._request("GET", "/questions")
        try:
            return parse_question_bank(data)
        except QuestionBankError as e:
            raise QuizClientError(str(e)) from e

    async def fetch_topics(self) -> list[tuple[str, int]]:
        data = await self._request("GET", "/api/topics")
        topics = data.get("topics", []) if isinstance(data, dict) else []
        return [(t["name"], t["count"]) for t in topics if isinstance(t, dict) and "name" in t]

    async def ai_chat(
        self,
        question: QuestionPrompt,
        user_message: str,
        history: list[ChatMessage],
    ) -> ChatResponse:
        payload = ChatRequest(
            question=question.model_dump(),
            userMessage=user_message,
            history=[m.model_dump() for m in history],
        )
        data = await self._request("POST", "/ai-chat", json=payload.model_dump())
        try:
            return ChatResponse.model_validate(data)
        except ValidationError as e:
            raise QuizClientError(f"Malformed /ai-chat response: {e}") from e

    async def ai_explain(self, question: Question, user_answer_index: int) -> ExplainResponse:
        payload = ExplainRequest(question=question.model_dump(), userAnswerIndex=user_answer_index)
        data = await self._request("POST", "/ai-explain", json=payload.model_dump())
        try:
            return ExplainResponse.model_validate(data)
        except ValidationError as e:
            raise QuizClientError(f"Malformed /ai-explain response: {e}") from e
