"""HTTP tests for the FastAPI app."""

import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import httpx
from fastapi.testclient import TestClient

from ai_gateway import AIGateway, CompletionClient
from config import Settings, get_settings
from main import app, get_gateway


BANK = {
    "Python": [
        {"question": "What keyword defines a function?", "choices": ["func", "def"], "correctIndex": 1},
        {"question": "Which type is immutable?", "choices": ["list", "tuple"], "correctIndex": 1},
    ],
    "Empty": [],
}

QUESTION = BANK["Python"][0]


class RecordingCompleter:
    def __init__(self, reply="What does 'def' sound like?"):
        self.reply = reply
        self.calls = []

    async def complete(self, messages, *, caller):
        self.calls.append((caller, messages))
        return self.reply


class AppTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.questions_file = Path(self.tmp.name) / "questions.json"
        self.questions_file.write_text(json.dumps(BANK), encoding="utf-8")
        self.settings = Settings(questions_file=self.questions_file, api_key="test-key")
        self.completer = RecordingCompleter()
        self.gateway = AIGateway(self.completer)

        app.dependency_overrides[get_settings] = lambda: self.settings
        app.dependency_overrides[get_gateway] = lambda: self.gateway
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()
        self.tmp.cleanup()


class TestQuestionEndpoints(AppTestCase):

    def test_get_questions_returns_full_mapping(self):
        response = self.client.get("/questions")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), BANK)

    def test_missing_bank_is_a_server_error(self):
        self.questions_file.unlink()
        response = self.client.get("/questions")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["detail"], "Failed to load questions")

    def test_corrupt_bank_is_a_server_error(self):
        bad = {"Python": [{"question": "Q?", "choices": ["a", "b"], "correctIndex": 5}]}
        self.questions_file.write_text(json.dumps(bad), encoding="utf-8")
        response = self.client.get("/questions")
        self.assertEqual(response.status_code, 500)

    def test_topics(self):
        response = self.client.get("/api/topics")
        self.assertEqual(response.json(), {"topics": [
            {"name": "Python", "count": 2},
            {"name": "Empty", "count": 0},
        ]})


class TestAIEndpoints(AppTestCase):

    def test_ai_chat_round_trip(self):
        history = [{"role": "user", "content": "hint?"}, {"role": "assistant", "content": "Think."}]
        response = self.client.post("/ai-chat", json={
            "question": QUESTION,
            "userMessage": "one more",
            "history": history,
        })

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["text"], "What does 'def' sound like?")
        self.assertEqual(body["history"][:2], history)
        self.assertEqual(body["history"][2:], [
            {"role": "user", "content": "one more"},
            {"role": "assistant", "content": "What does 'def' sound like?"},
        ])

    def test_ai_chat_drops_correct_index_before_the_model(self):
        self.client.post("/ai-chat", json={"question": QUESTION, "userMessage": "answer?", "history": []})

        _, messages = self.completer.calls[0]
        self.assertNotIn("correctIndex", json.dumps([m.model_dump() for m in messages]))

    def test_ai_chat_without_question(self):
        response = self.client.post("/ai-chat", json={"userMessage": "hint", "history": []})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"text": "No question received by server.", "history": []})
        self.assertEqual(self.completer.calls, [])

    def test_ai_chat_history_with_unknown_role(self):
        response = self.client.post("/ai-chat", json={
            "question": QUESTION,
            "userMessage": "hint",
            "history": [{"role": "tool", "content": "x"}],
        })

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"text": "Chat history was malformed; starting over.", "history": []})
        self.assertEqual(self.completer.calls, [])

    def test_ai_chat_null_history_is_an_empty_one(self):
        response = self.client.post("/ai-chat", json={"question": QUESTION, "userMessage": "hint", "history": None})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()["history"]), 2)
        self.assertEqual(len(self.completer.calls), 1)

    def test_ai_chat_history_not_a_list(self):
        response = self.client.post("/ai-chat", json={"question": QUESTION, "userMessage": "hint", "history": "hi"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["text"], "Chat history was malformed; starting over.")
        self.assertEqual(self.completer.calls, [])

    def test_ai_chat_null_user_message_keeps_history(self):
        history = [{"role": "user", "content": "hint?"}]
        response = self.client.post("/ai-chat", json={"question": QUESTION, "userMessage": None, "history": history})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"text": "No message received by server.", "history": history})
        self.assertEqual(self.completer.calls, [])

    def test_ai_chat_non_string_user_message(self):
        response = self.client.post("/ai-chat", json={"question": QUESTION, "userMessage": 42, "history": []})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["text"], "No message received by server.")
        self.assertEqual(self.completer.calls, [])

    def test_ai_explain(self):
        response = self.client.post("/ai-explain", json={"question": QUESTION, "userAnswerIndex": 0})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"text": "What does 'def' sound like?"})
        caller, _ = self.completer.calls[0]
        self.assertEqual(caller, "ai_explain")

    def test_ai_explain_without_question(self):
        response = self.client.post("/ai-explain", json={"userAnswerIndex": 0})
        self.assertEqual(response.json(), {"text": "No question received."})
        self.assertEqual(self.completer.calls, [])

    def test_ai_explain_bad_answer_index(self):
        for index in ("first", None, 1.5, True, 7, -1):
            response = self.client.post("/ai-explain", json={"question": QUESTION, "userAnswerIndex": index})
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.json(), {"text": "No valid answer index received."})

        response = self.client.post("/ai-explain", json={"question": QUESTION})
        self.assertEqual(response.json(), {"text": "No valid answer index received."})
        self.assertEqual(self.completer.calls, [])

    def test_remote_error_field_becomes_text(self):
        def handler(request):
            return httpx.Response(400, json={"error": {"message": "model_decommissioned"}})

        completion = CompletionClient(
            self.settings,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        self.gateway = AIGateway(completion)

        response = self.client.post("/ai-explain", json={"question": QUESTION, "userAnswerIndex": 1})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"text": "model_decommissioned"})


class TestServiceEndpoints(AppTestCase):

    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.json(), {"status": "ok", "ai_configured": True})

    def test_request_id_is_echoed(self):
        response = self.client.get("/health", headers={"X-Request-ID": "abc123"})
        self.assertEqual(response.headers["X-Request-ID"], "abc123")

    def test_request_id_is_generated(self):
        response = self.client.get("/health")
        self.assertTrue(response.headers["X-Request-ID"])


class TestGatewayLifespan(unittest.TestCase):
    """The completion client exists only while the app lifespan runs."""

    def setUp(self):
        app.dependency_overrides.clear()

    def test_gateway_requires_lifespan(self):
        client = TestClient(app)
        with self.assertRaises(RuntimeError):
            client.post("/ai-chat", json={"question": QUESTION, "userMessage": "hint", "history": []})

    def test_lifespan_owns_and_releases_gateway(self):
        with mock.patch.dict(os.environ, {"GROQ_API_KEY": ""}):
            with TestClient(app) as client:
                self.assertIsInstance(app.state.gateway, AIGateway)
                response = client.post("/ai-chat", json={"question": QUESTION, "userMessage": "hint", "history": []})

        self.assertEqual(response.json(), {"text": "Server failed to contact AI.", "history": []})
        self.assertIsNone(app.state.gateway)


if __name__ == "__main__":
    unittest.main()
