import json
from unittest import TestCase
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError

from calmspace.api.dependencies import get_db, get_model_pool
from calmspace.main import app
from calmspace.models.message import Sender
from calmspace.services.conversation_store import ConversationStore
from calmspace.services.model_pool import ModelClientPool
from calmspace.services.safety_policy import SAFETY_MESSAGE
from tests.helpers import FakeHandle, auth_headers, make_session_factory, make_user


def _verdict(risk: int) -> str:
    return json.dumps({
        "emotionalState": "neutral",
        "themes": ["testing"],
        "riskLevel": risk,
        "recommendedApproach": "chat",
    })


class AiChatApiTests(TestCase):
    def setUp(self) -> None:
        self.SessionLocal = make_session_factory()
        self.handle = FakeHandle()

        def override_get_db():
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_model_pool] = lambda: ModelClientPool([self.handle])
        self.client = TestClient(app)

        db = self.SessionLocal()
        try:
            self.student_id = make_user(db, "student1").id
            self.intruder_id = make_user(db, "student2").id
        finally:
            db.close()

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def _auth(self, user_id=None) -> dict:
        return auth_headers(user_id or self.student_id)

    def _create_conversation(self) -> dict:
        response = self.client.post("/ai-chat/conversations", headers=self._auth())
        self.assertEqual(response.status_code, 201)
        return response.json()

    def test_create_conversation_returns_empty_conversation(self) -> None:
        body = self._create_conversation()

        self.assertEqual(body["userId"], self.student_id)
        self.assertIsNone(body["title"])
        self.assertEqual(body["messages"], [])
        self.assertIn("lastActivityAt", body)

    def test_send_message_returns_both_messages_and_analysis(self) -> None:
        conv = self._create_conversation()
        self.handle.replies = ["Test Conversation Title", _verdict(0), "Hello, I am here to help."]

        response = self.client.post(
            f"/ai-chat/conversations/{conv['id']}/message",
            headers=self._auth(),
            json={"content": "Hello AI"},
        )

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["userMessage"]["content"], "Hello AI")
        self.assertEqual(body["userMessage"]["sender"], "USER")
        self.assertEqual(body["aiMessage"]["content"], "Hello, I am here to help.")
        self.assertEqual(body["aiMessage"]["sender"], "AI")
        self.assertEqual(body["aiMessage"]["conversationId"], conv["id"])
        self.assertEqual(
            body["analysis"],
            {
                "emotionalState": "neutral",
                "themes": ["testing"],
                "riskLevel": 0,
                "recommendedApproach": "chat",
            },
        )

        detail = self.client.get(f"/ai-chat/conversations/{conv['id']}", headers=self._auth()).json()
        self.assertEqual(detail["title"], "Test Conversation Title")
        self.assertEqual([m["sender"] for m in detail["messages"]], ["USER", "AI"])

    def test_high_risk_message_gets_safety_guidance(self) -> None:
        conv = self._create_conversation()
        self.handle.replies = ["Crisis Title", _verdict(9), "I'm really glad you told me."]

        response = self.client.post(
            f"/ai-chat/conversations/{conv['id']}/message",
            headers=self._auth(),
            json={"content": "I don't want to be here anymore"},
        )

        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.json()["aiMessage"]["content"].endswith(SAFETY_MESSAGE))

    def test_model_outage_still_answers(self) -> None:
        conv = self._create_conversation()
        self.handle.replies = [ConnectionError("down"), ConnectionError("down"), ConnectionError("down")]

        response = self.client.post(
            f"/ai-chat/conversations/{conv['id']}/message",
            headers=self._auth(),
            json={"content": "anyone there?"},
        )

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["analysis"]["riskLevel"], 0)
        self.assertIn("having trouble responding", body["aiMessage"]["content"])

    def test_list_conversations_has_latest_message_preview(self) -> None:
        first = self._create_conversation()
        second = self._create_conversation()
        self.handle.replies = ["Title", _verdict(1), "latest reply"]
        self.client.post(
            f"/ai-chat/conversations/{first['id']}/message",
            headers=self._auth(),
            json={"content": "hi"},
        )

        response = self.client.get("/ai-chat/conversations", headers=self._auth())

        self.assertEqual(response.status_code, 200)
        items = response.json()
        self.assertEqual([c["id"] for c in items], [first["id"], second["id"]])
        self.assertEqual(len(items[0]["messages"]), 1)
        self.assertEqual(items[0]["messages"][0]["content"], "latest reply")
        self.assertEqual(items[1]["messages"], [])

    def test_other_users_conversation_is_not_found(self) -> None:
        conv = self._create_conversation()

        detail = self.client.get(f"/ai-chat/conversations/{conv['id']}", headers=self._auth(self.intruder_id))
        send = self.client.post(
            f"/ai-chat/conversations/{conv['id']}/message",
            headers=self._auth(self.intruder_id),
            json={"content": "hello"},
        )

        self.assertEqual(detail.status_code, 404)
        self.assertEqual(detail.json()["statusCode"], 404)
        self.assertEqual(detail.json()["message"], "Conversation not found")
        self.assertEqual(send.status_code, 404)
        self.assertEqual(self.handle.calls, [])

        own = self.client.get(f"/ai-chat/conversations/{conv['id']}", headers=self._auth()).json()
        self.assertEqual(own["messages"], [])

    def test_content_length_is_validated(self) -> None:
        conv = self._create_conversation()
        url = f"/ai-chat/conversations/{conv['id']}/message"

        empty = self.client.post(url, headers=self._auth(), json={"content": ""})
        too_long = self.client.post(url, headers=self._auth(), json={"content": "x" * 1001})

        self.assertEqual(empty.status_code, 422)
        self.assertEqual(too_long.status_code, 422)
        self.assertEqual(too_long.json()["statusCode"], 422)
        self.assertEqual(self.handle.calls, [])

    def test_requires_authentication(self) -> None:
        response = self.client.get("/ai-chat/conversations")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["path"], "/ai-chat/conversations")

    def test_ai_message_write_failure_is_internal_error(self) -> None:
        conv = self._create_conversation()
        self.handle.replies = ["Title", _verdict(1), "reply"]
        create_message = ConversationStore.create_message

        def failing_ai_write(store, conversation_id, sender, content):
            if sender == Sender.AI:
                raise SQLAlchemyError("db down")
            return create_message(store, conversation_id, sender, content)

        client = TestClient(app, raise_server_exceptions=False)
        with patch.object(ConversationStore, "create_message", autospec=True, side_effect=failing_ai_write):
            response = client.post(
                f"/ai-chat/conversations/{conv['id']}/message",
                headers=self._auth(),
                json={"content": "hello"},
            )

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["statusCode"], 500)
        self.assertEqual(response.json()["message"], "Internal server error")
