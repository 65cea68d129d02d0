"""Unit tests for question validation and the question bank loader."""

import json
import tempfile
import unittest
from pathlib import Path

from pydantic import ValidationError

from config import DEFAULT_QUESTIONS_FILE, POOL_SIZE, default_questions_file
from models import Question
from question_bank import QuestionBankError, load_question_bank, parse_question_bank


class TestQuestionModel(unittest.TestCase):

    def test_valid_question(self):
        q = Question(question="2 + 2?", choices=["3", "4"], correctIndex=1)
        self.assertEqual(q.choices[q.correctIndex], "4")

    def test_correct_index_out_of_range(self):
        with self.assertRaises(ValidationError):
            Question(question="Q?", choices=["a", "b"], correctIndex=2)
        with self.assertRaises(ValidationError):
            Question(question="Q?", choices=["a", "b"], correctIndex=-1)

    def test_needs_two_choices(self):
        with self.assertRaises(ValidationError):
            Question(question="Q?", choices=["a"], correctIndex=0)

    def test_question_is_frozen(self):
        q = Question(question="Q?", choices=["a", "b"], correctIndex=0)
        with self.assertRaises(ValidationError):
            q.correctIndex = 1

    def test_prompt_projection_hides_answer(self):
        q = Question(question="Q?", choices=["a", "b"], correctIndex=0)
        self.assertEqual(q.to_prompt().model_dump(), {"question": "Q?", "choices": ["a", "b"]})


class TestParseQuestionBank(unittest.TestCase):

    def test_parse_preserves_topic_order(self):
        bank = parse_question_bank({
            "B": [{"question": "b?", "choices": ["x", "y"], "correctIndex": 0}],
            "A": [],
        })
        self.assertEqual(list(bank), ["B", "A"])
        self.assertEqual(bank["A"], [])

    def test_rejects_non_mapping(self):
        with self.assertRaises(QuestionBankError):
            parse_question_bank([1, 2, 3])

    def test_rejects_non_list_topic(self):
        with self.assertRaises(QuestionBankError):
            parse_question_bank({"Python": {"question": "Q?"}})

    def test_one_bad_record_rejects_everything(self):
        with self.assertRaises(QuestionBankError):
            parse_question_bank({
                "Python": [
                    {"question": "ok?", "choices": ["a", "b"], "correctIndex": 0},
                    {"question": "bad?", "choices": ["a", "b"], "correctIndex": 9},
                ],
            })


class TestLoadQuestionBank(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.path = Path(self.tmp.name) / "questions.json"

    def test_missing_file(self):
        with self.assertRaises(QuestionBankError):
            load_question_bank(self.path)

    def test_invalid_json(self):
        self.path.write_text("{not json", encoding="utf-8")
        with self.assertRaises(QuestionBankError):
            load_question_bank(self.path)

    def test_reads_fresh_each_time(self):
        self.path.write_text(json.dumps({"A": []}), encoding="utf-8")
        self.assertEqual(list(load_question_bank(self.path)), ["A"])
        self.path.write_text(json.dumps({"B": []}), encoding="utf-8")
        self.assertEqual(list(load_question_bank(self.path)), ["B"])

    def test_shipped_bank_is_valid(self):
        bank = load_question_bank(DEFAULT_QUESTIONS_FILE)
        self.assertIn("Python", bank)
        self.assertGreater(len(bank["Python"]), POOL_SIZE)


class TestDefaultQuestionsFile(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.root = Path(self.tmp.name)

    def test_checkout_uses_bank_beside_the_source(self):
        local = self.root / "src" / "data" / "questions.json"
        local.parent.mkdir(parents=True)
        local.write_text("{}", encoding="utf-8")

        self.assertEqual(default_questions_file(self.root / "src", str(self.root / "venv")), local)

    def test_install_falls_back_to_shared_data(self):
        path = default_questions_file(self.root / "site-packages", str(self.root / "venv"))
        self.assertEqual(path, self.root / "venv" / "share" / "rubber-duck-trivia" / "questions.json")


if __name__ == "__main__":
    unittest.main()
