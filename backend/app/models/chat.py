from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    chat_id: str
    role: MessageRole
    content: str
    created_at: Optional[datetime] = None


class Chat(BaseModel):
    id: str
    title: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    messages: list[Message] = []


# ── Request / Response schemas for API ────────────────────────────────────────

class ChatListResponse(BaseModel):
    chats: list[Chat]


class CreateChatRequest(BaseModel):
    title: Optional[str] = None
    initial_message: Optional[str] = None


class UpdateChatRequest(BaseModel):
    title: str


class SendMessageRequest(BaseModel):
    content: str


class QuickSendRequest(BaseModel):
    message: str
    conversation_id: Optional[str] = None


class QuickSendResponse(BaseModel):
    chat_id: str
    message: Message
