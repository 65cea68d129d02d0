"""Static question bank: topic name -> ordered list of questions."""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import ValidationError

from logger import get_logger
from models import Question

logger = get_logger("trivia.questions")

QuestionBank = dict[str, list[Question]]


class QuestionBankError(Exception):
    """The question bank is missing or corrupt."""


def parse_question_bank(data: object) -> QuestionBank:
    """Validate a decoded JSON document into a QuestionBank.

    The whole document is rejected on the first bad record; callers never
    get partial data.
    """
    if not isinstance(data, dict):
        raise QuestionBankError("Question bank must be a mapping of topic -> questions")

    bank: QuestionBank = {}
    for topic, records in data.items():
        if not isinstance(records, list):
            raise QuestionBankError(f"Topic '{topic}' is not a list of questions")
        try:
            bank[str(topic)] = [Question.model_validate(r) for r in records]
        except ValidationError as e:
            raise QuestionBankError(f"Invalid question in topic '{topic}': {e}") from e
    return bank


def load_question_bank(path: Path) -> QuestionBank:
    """Read and validate the question bank from disk. Read fresh on every call."""
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        logger.error(f"❌ Question bank not found: {path}")
        raise QuestionBankError(f"Question bank not found: {path}") from e
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"❌ Failed to read question bank {path}: {e}")
        raise QuestionBankError(f"Failed to read question bank: {e}") from e

    bank = parse_question_bank(data)
    logger.debug(
        f"📚 Loaded question bank: {len(bank)} topics, "
        f"{sum(len(qs) for qs in bank.values())} questions"
    )
    return bank
