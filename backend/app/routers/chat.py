import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from app.dependencies import get_chat_store, get_gemini_service, get_orchestrator
from app.middleware.auth_middleware import get_current_uid
from app.models.chat import (
    Chat,
    ChatListResponse,
    CreateChatRequest,
    Message,
    MessageRole,
    QuickSendRequest,
    QuickSendResponse,
    SendMessageRequest,
    UpdateChatRequest,
)
from app.services.chat_orchestrator import ConversationOrchestrator, TurnOutcome
from app.services.firestore_service import ChatStore
from app.services.gemini_service import GeminiService

logger = logging.getLogger(__name__)
router = APIRouter()

_CHAT_CREATED_NO_REPLY = "The AI service is temporarily unavailable. The chat was created but the AI could not respond."


def _unavailable(outcome: TurnOutcome, chat_id: Optional[str] = None, message: Optional[str] = None) -> JSONResponse:
    content = {
        "success": False,
        "error": "AI_SERVICE_UNAVAILABLE",
        "errorType": outcome.error_type,
        "message": message or outcome.error_message,
    }
    if outcome.retry_after:
        content["retryAfter"] = outcome.retry_after
    if chat_id:
        content["chatId"] = chat_id
    return JSONResponse(status_code=503, content=content)


def _run_turn(
    uid: str,
    chat_id: str,
    user_text: str,
    store: ChatStore,
    orchestrator: ConversationOrchestrator,
) -> tuple[Optional[Message], TurnOutcome]:
    """Answer the already-persisted user message and persist the reply."""
    history = store.get_history(uid, chat_id)
    outcome = orchestrator.handle_user_turn(user_text, history)
    if not outcome.ok:
        logger.warning(
            "assistant_reply_unavailable",
            extra={"uid": uid, "chat_id": chat_id, "error_type": outcome.error_type},
        )
        return None, outcome

    assistant = store.append_message(uid, chat_id, MessageRole.ASSISTANT, outcome.content)
    logger.info("assistant_reply_saved", extra={"uid": uid, "chat_id": chat_id, "tool_calls": outcome.tool_calls})
    return assistant, outcome


def _require_chat(store: ChatStore, uid: str, chat_id: str, include_messages: bool = False) -> Chat:
    chat = store.get_chat(uid, chat_id, include_messages=include_messages)
    if not chat:
        raise HTTPException(status_code=404, detail="Chat not found")
    return chat


@router.get("", response_model=ChatListResponse)
def list_chats(uid: str = Depends(get_current_uid), store: ChatStore = Depends(get_chat_store)):
    return ChatListResponse(chats=store.get_chats(uid))


@router.post("", status_code=201, response_model=Chat)
def create_chat(
    body: CreateChatRequest,
    uid: str = Depends(get_current_uid),
    store: ChatStore = Depends(get_chat_store),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    chat = store.create_chat(uid, body.title)

    initial = (body.initial_message or "").strip()
    if initial:
        store.append_message(uid, chat.id, MessageRole.USER, initial)
        _, outcome = _run_turn(uid, chat.id, initial, store, orchestrator)
        if not outcome.ok:
            return _unavailable(outcome, chat_id=chat.id, message=_CHAT_CREATED_NO_REPLY)

    return store.get_chat(uid, chat.id) or chat


@router.post("/send", response_model=QuickSendResponse)
def send_message(
    body: QuickSendRequest,
    uid: str = Depends(get_current_uid),
    store: ChatStore = Depends(get_chat_store),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
    llm: GeminiService = Depends(get_gemini_service),
):
    """Send a message, creating the conversation on first interaction."""
    text = body.message.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Message content is required")

    chat_id = body.conversation_id
    is_new_chat = chat_id is None
    if is_new_chat:
        chat_id = store.create_chat(uid, text[:50]).id
    else:
        _require_chat(store, uid, chat_id)

    # Persist user message before answering so it survives a failed turn
    store.append_message(uid, chat_id, MessageRole.USER, text)

    assistant, outcome = _run_turn(uid, chat_id, text, store, orchestrator)

    # Generate a better title for new chats
    if is_new_chat:
        store.update_chat_title(uid, chat_id, llm.generate_chat_title(text))

    if assistant is None:
        return _unavailable(outcome, chat_id=chat_id)
    return QuickSendResponse(chat_id=chat_id, message=assistant)


@router.get("/{chat_id}", response_model=Chat)
def get_chat(chat_id: str, uid: str = Depends(get_current_uid), store: ChatStore = Depends(get_chat_store)):
    return _require_chat(store, uid, chat_id, include_messages=True)


@router.patch("/{chat_id}", response_model=Chat)
def update_chat(
    chat_id: str,
    body: UpdateChatRequest,
    uid: str = Depends(get_current_uid),
    store: ChatStore = Depends(get_chat_store),
):
    title = body.title.strip()
    if not title:
        raise HTTPException(status_code=400, detail="Title is required")
    _require_chat(store, uid, chat_id)
    store.update_chat_title(uid, chat_id, title)
    return _require_chat(store, uid, chat_id, include_messages=True)


@router.delete("/{chat_id}")
def delete_chat(chat_id: str, uid: str = Depends(get_current_uid), store: ChatStore = Depends(get_chat_store)):
    _require_chat(store, uid, chat_id)
    store.delete_chat(uid, chat_id)
    return {"detail": "Chat deleted"}


@router.get("/{chat_id}/messages", response_model=list[Message])
def get_messages(chat_id: str, uid: str = Depends(get_current_uid), store: ChatStore = Depends(get_chat_store)):
    _require_chat(store, uid, chat_id)
    return store.get_history(uid, chat_id)


@router.post("/{chat_id}/messages", response_model=Message)
def post_message(
    chat_id: str,
    body: SendMessageRequest,
    uid: str = Depends(get_current_uid),
    store: ChatStore = Depends(get_chat_store),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    content = body.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Message content is required")
    _require_chat(store, uid, chat_id)

    store.append_message(uid, chat_id, MessageRole.USER, content)
    assistant, outcome = _run_turn(uid, chat_id, content, store, orchestrator)
    if assistant is None:
        return _unavailable(outcome)
    return assistant
