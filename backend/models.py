from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Any, Literal, Optional
from dataclasses import dataclass, field


class QuestionPrompt(BaseModel):
    """What hint mode is allowed to see of a question (no correct index)."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    question: str = Field(min_length=1)
    choices: list[str] = Field(min_length=2)


class Question(BaseModel):
    model_config = ConfigDict(frozen=True)

    question: str = Field(min_length=1)
    choices: list[str] = Field(min_length=2)
    correctIndex: int  # 0-indexed

    @model_validator(mode="after")
    def _check_correct_index(self) -> "Question":
        if not 0 <= self.correctIndex < len(self.choices):
            raise ValueError(
                f"correctIndex {self.correctIndex} out of range for {len(self.choices)} choices"
            )
        return self

    def to_prompt(self) -> QuestionPrompt:
        """Spoiler-free projection sent to hint/chat mode."""
        return QuestionPrompt(question=self.question, choices=list(self.choices))


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


# --- AI Gateway wire models ---
# Request fields stay loosely typed so a malformed payload reaches the
# gateway and gets a diagnostic text instead of a 422.

class ChatRequest(BaseModel):
    question: Optional[Any] = None
    userMessage: Optional[Any] = None
    history: Optional[Any] = None


class ChatResponse(BaseModel):
    text: str
    history: list[ChatMessage] = []


class ExplainRequest(BaseModel):
    question: Optional[Any] = None
    userAnswerIndex: Optional[Any] = None


class ExplainResponse(BaseModel):
    text: str


class TopicSummary(BaseModel):
    name: str
    count: int


# --- Client-side session state ---

@dataclass
class ChatLogEntry:
    sender: str  # 'You' | 'AI'
    text: str


@dataclass
class QuizSession:
    topic: str
    question_pool: list[Question]
    current_index: int = 0
    score: int = 0
    answered_locked: bool = False
    last_user_answer_index: Optional[int] = None
    chat_history: list[ChatMessage] = field(default_factory=list)  # current question only

    @property
    def total(self) -> int:
        return len(self.question_pool)

    @property
    def is_finished(self) -> bool:
        return self.current_index >= len(self.question_pool)

    @property
    def current_question(self) -> Optional[Question]:
        """The question on screen, or the last one shown once the pool is exhausted."""
        if not self.question_pool:
            return None
        return self.question_pool[min(self.current_index, len(self.question_pool) - 1)]

    def reset_question_state(self) -> None:
        """Clear per-question state when a new question loads."""
        self.answered_locked = False
        self.last_user_answer_index = None
        self.chat_history = []
