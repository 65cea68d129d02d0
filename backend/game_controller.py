"""
Game Controller
===============
Client-side quiz state machine.

    idle ──START──▶ in_progress ──ADVANCE past last──▶ ended
      ▲                 │ unanswered ──SELECT──▶ answered ──ADVANCE──▶ unanswered
      └──────EXIT───────┴──────────────────────────────────────────────────┘

All actions go through QuizController.dispatch(). State changes happen
synchronously inside a handler; the AI handlers only suspend on the network
call and re-check that their session/question is still current before
writing anything back.
"""

from __future__ import annotations

import inspect
import random
from enum import Enum
from typing import Any, Optional, Protocol, Sequence, TypeVar

from config import POOL_SIZE, ControllerMessages
from logger import get_logger, log_game_event
from models import (
    ChatLogEntry, ChatMessage, ChatResponse, ExplainResponse,
    Question, QuestionPrompt, QuizSession,
)
from question_bank import QuestionBank
from quiz_client import QuizClientError

logger = get_logger("trivia.controller")

T = TypeVar("T")

YOU = "You"
AI = "AI"


class GameStatus(str, Enum):
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    ENDED = "ended"


class Action(str, Enum):
    START = "start"        # arg: topic name
    SELECT = "select"      # arg: choice index
    ADVANCE = "advance"
    HINT = "hint"
    CHAT = "chat"          # arg: user text
    EXPLAIN = "explain"
    EXIT = "exit"


class QuizStartError(Exception):
    """A game could not be started; the controller stays where it was."""


class QuizBackend(Protocol):
    async def fetch_questions(self) -> QuestionBank: ...

    async def ai_chat(
        self, question: QuestionPrompt, user_message: str, history: list[ChatMessage]
    ) -> ChatResponse: ...

    async def ai_explain(self, question: Question, user_answer_index: int) -> ExplainResponse: ...


def fisher_yates_shuffle(items: list[T], rng: random.Random) -> list[T]:
    """Shuffle in place: for i from last to first, swap with uniform j in [0, i]."""
    for i in range(len(items) - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]
    return items


def sample_question_pool(
    questions: Sequence[Question],
    rng: random.Random,
    size: int = POOL_SIZE,
) -> list[Question]:
    """Up to `size` questions, without replacement, in random order."""
    return fisher_yates_shuffle(list(questions), rng)[:size]


class QuizController:
    def __init__(
        self,
        backend: QuizBackend,
        *,
        rng: Optional[random.Random] = None,
        messages: Optional[ControllerMessages] = None,
        pool_size: int = POOL_SIZE,
    ):
        self.backend = backend
        self.rng = rng or random.Random()
        self.messages = messages or ControllerMessages()
        self.pool_size = pool_size
        self.session: Optional[QuizSession] = None
        self.chat_log: list[ChatLogEntry] = []
        self._handlers = {
            Action.START: self.start,
            Action.SELECT: self.select,
            Action.ADVANCE: self.advance,
            Action.HINT: self.hint,
            Action.CHAT: self.chat,
            Action.EXPLAIN: self.explain,
            Action.EXIT: self.exit,
        }

    # --- Views ---

    @property
    def status(self) -> GameStatus:
        if self.session is None:
            return GameStatus.IDLE
        if self.session.is_finished:
            return GameStatus.ENDED
        return GameStatus.IN_PROGRESS

    @property
    def answered(self) -> bool:
        return self.session is not None and self.session.answered_locked

    @property
    def current_question(self) -> Optional[Question]:
        return self.session.current_question if self.session else None

    @property
    def score(self) -> int:
        return self.session.score if self.session else 0

    @property
    def final_score(self) -> Optional[tuple[int, int]]:
        """(score, total) once the session has ended."""
        if self.status is not GameStatus.ENDED:
            return None
        return self.session.score, self.session.total

    # --- Dispatch ---

    async def dispatch(self, action: Action, arg: Any = None) -> None:
        """Single entry point for every user action."""
        action = Action(action)
        handler = self._handlers[action]
        if action in (Action.START, Action.SELECT, Action.CHAT):
            result = handler(arg)
        else:
            result = handler()
        if inspect.isawaitable(result):
            await result

    # --- Session lifecycle ---

    async def start(self, topic: str) -> None:
        try:
            bank = await self.backend.fetch_questions()
        except QuizClientError as e:
            logger.error(f"❌ Failed to load questions: {e}")
            raise QuizStartError(self.messages.load_failed) from e

        questions = bank.get(topic) or []
        if not questions:
            logger.warning(f"⚠️  No questions for topic '{topic}'")
            raise QuizStartError(self.messages.no_questions)

        pool = sample_question_pool(questions, self.rng, self.pool_size)
        self.session = QuizSession(topic=topic, question_pool=pool)
        self._load_question()

        logger.info(f"🚀 Game started: topic={topic}, {len(pool)} of {len(questions)} questions")
        log_game_event("session_started", topic=topic, data={
            "pool_size": len(pool),
            "topic_size": len(questions),
        })

    def _load_question(self) -> None:
        self.session.reset_question_state()
        self.chat_log = []

    def select(self, index: int) -> None:
        """Answer the current question. Ignored unless it is still unanswered."""
        session = self.session
        if self.status is not GameStatus.IN_PROGRESS or session.answered_locked:
            return
        question = session.current_question
        if not 0 <= index < len(question.choices):
            logger.debug(f"Ignoring out-of-range choice {index}")
            return

        session.answered_locked = True
        session.last_user_answer_index = index
        is_correct = index == question.correctIndex
        if is_correct:
            session.score += 1

        log_game_event("answer_submitted", topic=session.topic, data={
            "question_index": session.current_index,
            "choice": index,
            "correct": is_correct,
            "score": session.score,
        })

    def advance(self) -> None:
        """Move to the next question, or end the game after the last one."""
        session = self.session
        if self.status is not GameStatus.IN_PROGRESS or not session.answered_locked:
            return

        session.current_index += 1
        if session.is_finished:
            logger.info(f"🏁 Game ended: {session.score}/{session.total}")
            log_game_event("session_ended", topic=session.topic, data={
                "score": session.score,
                "total": session.total,
            })
            return
        self._load_question()

    def exit(self) -> None:
        """Drop everything and go back to the topic picker."""
        if self.session is not None:
            log_game_event("session_exited", topic=self.session.topic, data={
                "question_index": self.session.current_index,
                "score": self.session.score,
            })
        self.session = None
        self.chat_log = []

    # --- AI sub-flows ---

    def _append(self, sender: str, text: str) -> None:
        self.chat_log.append(ChatLogEntry(sender=sender, text=text))

    def _still_current(self, session: QuizSession, index: int) -> bool:
        return self.session is session and session.current_index == index

    async def hint(self) -> None:
        await self._hint_turn(
            display=self.messages.hint_request,
            prompt=self.messages.hint_prompt,
            empty=self.messages.hint_empty,
            failed=self.messages.hint_failed,
        )

    async def chat(self, text: str) -> None:
        text = (text or "").strip()
        if not text:
            return
        await self._hint_turn(
            display=text,
            prompt=text,
            empty=self.messages.chat_empty,
            failed=self.messages.chat_failed,
        )

    async def _hint_turn(self, *, display: str, prompt: str, empty: str, failed: str) -> None:
        session = self.session
        if session is None:
            return
        index = session.current_index
        question = session.current_question

        self._append(YOU, display)
        try:
            response = await self.backend.ai_chat(question.to_prompt(), prompt, list(session.chat_history))
        except QuizClientError as e:
            logger.warning(f"⚠️  Hint/chat call failed: {e}")
            if self._still_current(session, index):
                self._append(AI, failed)
            return

        if not self._still_current(session, index):
            logger.debug("Discarding hint/chat reply for a question no longer shown")
            return
        session.chat_history = list(response.history)
        self._append(AI, response.text or empty)

    async def explain(self) -> None:
        session = self.session
        if session is None:
            return
        if session.last_user_answer_index is None:
            self._append(AI, self.messages.explain_before_answer)
            return

        index = session.current_index
        self._append(YOU, self.messages.explain_request)
        try:
            response = await self.backend.ai_explain(session.current_question, session.last_user_answer_index)
        except QuizClientError as e:
            logger.warning(f"⚠️  Explain call failed: {e}")
            if self._still_current(session, index):
                self._append(AI, self.messages.explain_failed)
            return

        if self._still_current(session, index):
            self._append(AI, response.text or self.messages.explain_empty)
