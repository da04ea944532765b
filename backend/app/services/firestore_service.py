import logging
from datetime import datetime, timezone
from typing import Optional

from google.cloud import firestore

from app.models.chat import Chat, Message, MessageRole

logger = logging.getLogger(__name__)

DEFAULT_CHAT_TITLE = "New Chat"


def _to_message(chat_id: str, doc_id: str, data: dict) -> Message:
    return Message(
        id=doc_id,
        chat_id=chat_id,
        role=MessageRole(data.get("role", "user")),
        content=data.get("content") or "",
        created_at=data.get("createdAt"),
    )


def _to_chat(doc_id: str, data: dict, messages: Optional[list[Message]] = None) -> Chat:
    return Chat(
        id=doc_id,
        title=data.get("title") or DEFAULT_CHAT_TITLE,
        created_at=data.get("createdAt"),
        updated_at=data.get("updatedAt"),
        messages=messages or [],
    )


class ChatStore:
    """Chats and messages under users/{uid}/chats/{chatId}/messages."""

    def __init__(self, db: firestore.Client):
        self._db = db

    # ── Helpers ────────────────────────────────────────────────────────────────

    def _chats(self, uid: str):
        return self._db.collection("users").document(uid).collection("chats")

    def _messages(self, uid: str, chat_id: str):
        return self._chats(uid).document(chat_id).collection("messages")

    # ── Chats ──────────────────────────────────────────────────────────────────

    def create_chat(self, uid: str, title: Optional[str] = None) -> Chat:
        now = datetime.now(timezone.utc)
        data = {"title": title or DEFAULT_CHAT_TITLE, "createdAt": now, "updatedAt": now}
        ref = self._chats(uid).document()
        ref.set(data)
        logger.info("chat_created", extra={"uid": uid, "chat_id": ref.id})
        return _to_chat(ref.id, data)

    def get_chats(self, uid: str) -> list[Chat]:
        docs = self._chats(uid).order_by("updatedAt", direction=firestore.Query.DESCENDING).get()
        return [_to_chat(d.id, d.to_dict()) for d in docs]

    def get_chat(self, uid: str, chat_id: str, include_messages: bool = True) -> Optional[Chat]:
        doc = self._chats(uid).document(chat_id).get()
        if not doc.exists:
            return None
        messages = self.get_history(uid, chat_id) if include_messages else None
        return _to_chat(doc.id, doc.to_dict(), messages)

    def update_chat_title(self, uid: str, chat_id: str, title: str) -> None:
        self._chats(uid).document(chat_id).set(
            {"title": title, "updatedAt": datetime.now(timezone.utc)}, merge=True
        )

    def touch_chat(self, uid: str, chat_id: str) -> None:
        self._chats(uid).document(chat_id).set(
            {"updatedAt": datetime.now(timezone.utc)}, merge=True
        )

    def delete_chat(self, uid: str, chat_id: str) -> None:
        # Delete all messages in subcollection first
        msgs = self._messages(uid, chat_id).get()
        for msg in msgs:
            msg.reference.delete()
        self._chats(uid).document(chat_id).delete()
        logger.info("chat_deleted", extra={"uid": uid, "chat_id": chat_id})

    # ── Messages ───────────────────────────────────────────────────────────────

    def append_message(self, uid: str, chat_id: str, role: MessageRole, content: str) -> Message:
        now = datetime.now(timezone.utc)
        data = {"role": MessageRole(role).value, "content": content, "createdAt": now}
        ref = self._messages(uid, chat_id).document()
        ref.set(data)
        self.touch_chat(uid, chat_id)
        return _to_message(chat_id, ref.id, data)

    def get_history(self, uid: str, chat_id: str) -> list[Message]:
        docs = self._messages(uid, chat_id).order_by("createdAt").get()
        return [_to_message(chat_id, d.id, d.to_dict()) for d in docs]

    def test_connection(self) -> bool:
        try:
            list(self._db.collection("users").limit(1).get())
            return True
        except Exception as e:
            logger.error("firestore_connection_test_failed", extra={"error": str(e)})
            return False
