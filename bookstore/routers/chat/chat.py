# 📄 bookstore/routers/chat/chat.py
# Page: support chat (REST only)
# Stage: v1.0

from __future__ import annotations

from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from bookstore.db.session import get_sync_session
from bookstore.routers.common import ActionResponse, PingResponse, ok, ping as ping_page
from bookstore.security.guard import require_admin, require_user
from bookstore.services.chat.chat_service import CONTENT_MAX_LENGTH, ChatService

PAGE_ID = "chat.main"
PAGE_VERSION = "v1.0"

ROUTE_PREFIX = "/api/chat"
ROUTE_TAGS = ["chat"]

chat = APIRouter(prefix=ROUTE_PREFIX, tags=ROUTE_TAGS)
__all__ = ["chat"]


def get_service(
    user: Dict[str, Any] = Depends(require_user),
    session: Session = Depends(get_sync_session),
) -> ChatService:
    return ChatService(session=session, user=user)


def get_admin_service(
    user: Dict[str, Any] = Depends(require_admin),
    session: Session = Depends(get_sync_session),
) -> ChatService:
    return ChatService(session=session, user=user)


class MessageSendRequest(BaseModel):
    content: str = Field(..., max_length=CONTENT_MAX_LENGTH)
    conversation_id: Optional[int] = Field(default=None, description="required for support replies")


@chat.get("/ping", response_model=PingResponse, summary="[system] chat health check")
def ping():
    return ping_page(PAGE_ID, PAGE_VERSION)


@chat.get(
    "/conversation",
    response_model=ActionResponse,
    summary="[read] my conversation (created on demand)",
    responses={403: {"description": "DENY - support accounts"}},
)
def my_conversation(svc: ChatService = Depends(get_service)):
    return ok(svc.my_conversation())


@chat.get("/conversations", response_model=ActionResponse, summary="[read] all conversations (admin)")
def conversations(svc: ChatService = Depends(get_admin_service)):
    return ok(svc.conversations())


@chat.get(
    "/conversations/{conversation_id}/messages",
    response_model=ActionResponse,
    summary="[read] messages (marks the other side's messages read)",
    responses={403: {"description": "DENY"}, 404: {"description": "NOTFOUND"}},
)
def messages(conversation_id: int, svc: ChatService = Depends(get_service)):
    return ok(svc.messages(conversation_id=conversation_id))


@chat.post("/messages", response_model=ActionResponse, status_code=201, summary="[write] send a message")
def send(payload: MessageSendRequest, svc: ChatService = Depends(get_service)):
    return ok(svc.send(content=payload.content, conversation_id=payload.conversation_id))


@chat.delete("/messages/{message_id}", response_model=ActionResponse, summary="[write] delete my message")
def delete_message(message_id: int, svc: ChatService = Depends(get_service)):
    return ok(svc.delete_message(message_id=message_id))


@chat.put("/conversations/{conversation_id}/close", response_model=ActionResponse, summary="[write] close conversation")
def close(conversation_id: int, svc: ChatService = Depends(get_service)):
    return ok(svc.close(conversation_id=conversation_id))
