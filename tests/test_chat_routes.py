"""HTTP tests for the chat routes with stubbed storage and orchestration."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.dependencies import get_chat_store, get_gemini_service, get_orchestrator
from app.middleware.auth_middleware import get_current_uid
from app.models.chat import Chat, Message, MessageRole
from app.routers import chat
from app.services.chat_orchestrator import LLM_UNAVAILABLE, ConversationOrchestrator, TurnOutcome
from app.services.firestore_service import ChatStore
from app.services.gemini_service import GeminiService

UID = "user-1"


@pytest.fixture
def store() -> MagicMock:
    store = MagicMock(spec=ChatStore)
    store.get_chat.return_value = Chat(id="chat-1", title="Segments")
    store.create_chat.return_value = Chat(id="chat-new", title="New Chat")
    store.get_history.return_value = [Message(id="m1", chat_id="chat-1", role=MessageRole.USER, content="hi")]
    store.append_message.side_effect = lambda uid, chat_id, role, content: Message(
        id=f"{role.value}-msg", chat_id=chat_id, role=role, content=content
    )
    return store


@pytest.fixture
def orchestrator() -> MagicMock:
    orchestrator = MagicMock(spec=ConversationOrchestrator)
    orchestrator.handle_user_turn.return_value = TurnOutcome(content="Hello there")
    return orchestrator


@pytest.fixture
def llm() -> MagicMock:
    llm = MagicMock(spec=GeminiService)
    llm.generate_chat_title.return_value = "Greeting"
    return llm


@pytest.fixture
def client(store: MagicMock, orchestrator: MagicMock, llm: MagicMock) -> TestClient:
    app = FastAPI()
    app.include_router(chat.router, prefix="/api/chats")
    app.dependency_overrides[get_current_uid] = lambda: UID
    app.dependency_overrides[get_chat_store] = lambda: store
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_gemini_service] = lambda: llm
    return TestClient(app)


def _unavailable() -> TurnOutcome:
    return TurnOutcome(
        error_type=LLM_UNAVAILABLE,
        error_message="The AI service is temporarily unavailable. Please try again in a few moments.",
        retry_after=60,
    )


class TestPostMessage:
    def test_reply_is_persisted_and_returned(self, client: TestClient, store: MagicMock,
                                             orchestrator: MagicMock) -> None:
        response = client.post("/api/chats/chat-1/messages", json={"content": " hi "})

        assert response.status_code == 200
        assert response.json()["content"] == "Hello there"
        assert response.json()["role"] == "assistant"
        orchestrator.handle_user_turn.assert_called_once_with("hi", store.get_history.return_value)
        roles = [c.args[2] for c in store.append_message.call_args_list]
        assert roles == [MessageRole.USER, MessageRole.ASSISTANT]

    def test_blank_content_is_rejected(self, client: TestClient, orchestrator: MagicMock) -> None:
        response = client.post("/api/chats/chat-1/messages", json={"content": "   "})

        assert response.status_code == 400
        orchestrator.handle_user_turn.assert_not_called()

    def test_unknown_chat(self, client: TestClient, store: MagicMock) -> None:
        store.get_chat.return_value = None

        response = client.post("/api/chats/missing/messages", json={"content": "hi"})

        assert response.status_code == 404
        store.append_message.assert_not_called()

    def test_llm_unavailable_returns_503_and_keeps_user_message(
        self, client: TestClient, store: MagicMock, orchestrator: MagicMock
    ) -> None:
        orchestrator.handle_user_turn.return_value = _unavailable()

        response = client.post("/api/chats/chat-1/messages", json={"content": "hi"})

        assert response.status_code == 503
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "AI_SERVICE_UNAVAILABLE"
        assert body["errorType"] == LLM_UNAVAILABLE
        assert body["retryAfter"] == 60
        store.append_message.assert_called_once_with(UID, "chat-1", MessageRole.USER, "hi")


class TestQuickSend:
    def test_new_conversation(self, client: TestClient, store: MagicMock, llm: MagicMock) -> None:
        response = client.post("/api/chats/send", json={"message": "hello"})

        assert response.status_code == 200
        assert response.json()["chat_id"] == "chat-new"
        assert response.json()["message"]["content"] == "Hello there"
        store.update_chat_title.assert_called_once_with(UID, "chat-new", "Greeting")

    def test_existing_conversation_keeps_title(self, client: TestClient, store: MagicMock) -> None:
        response = client.post("/api/chats/send", json={"message": "hello", "conversation_id": "chat-1"})

        assert response.status_code == 200
        store.create_chat.assert_not_called()
        store.update_chat_title.assert_not_called()

    def test_failure_reports_chat_id(self, client: TestClient, orchestrator: MagicMock) -> None:
        orchestrator.handle_user_turn.return_value = _unavailable()

        response = client.post("/api/chats/send", json={"message": "hello"})

        assert response.status_code == 503
        assert response.json()["chatId"] == "chat-new"


class TestChatCrud:
    def test_create_with_initial_message_failure(self, client: TestClient, orchestrator: MagicMock) -> None:
        orchestrator.handle_user_turn.return_value = _unavailable()

        response = client.post("/api/chats", json={"initial_message": "hi"})

        assert response.status_code == 503
        assert response.json()["chatId"] == "chat-new"
        assert "chat was created" in response.json()["message"]

    def test_create_without_message(self, client: TestClient, store: MagicMock, orchestrator: MagicMock) -> None:
        store.get_chat.return_value = Chat(id="chat-new", title="New Chat")

        response = client.post("/api/chats", json={})

        assert response.status_code == 201
        assert response.json()["id"] == "chat-new"
        orchestrator.handle_user_turn.assert_not_called()

    def test_rename_requires_title(self, client: TestClient) -> None:
        assert client.patch("/api/chats/chat-1", json={"title": " "}).status_code == 400

    def test_delete(self, client: TestClient, store: MagicMock) -> None:
        assert client.delete("/api/chats/chat-1").status_code == 200
        store.delete_chat.assert_called_once_with(UID, "chat-1")

    def test_list(self, client: TestClient, store: MagicMock) -> None:
        store.get_chats.return_value = [Chat(id="chat-1", title="Segments")]

        response = client.get("/api/chats")

        assert [c["id"] for c in response.json()["chats"]] == ["chat-1"]
