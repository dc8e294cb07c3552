# 📄 bookstore/services/chat/chat_service.py
# Page: support chat (REST persistence only, no live relay)
# Role:
#   - customer: own conversation (created on demand), send, read messages
#   - admin: conversation list with last message + unread count, reply, close
#   - everyone: soft delete of own messages
# Stage: v1.0

from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from bookstore import models as m
from bookstore.services.common import commit, is_admin, iso, user_id_of
from bookstore.system.error_codes import DomainError

PAGE_ID = "chat.main"
PAGE_VERSION = "v1.0"

CONTENT_MAX_LENGTH = 2000


def serialize_message(message: m.Message) -> Dict[str, Any]:
    return {
        "id": message.id,
        "conversation_id": message.conversation_id,
        "sender_id": message.sender_id,
        "sender_name": message.sender.name if message.sender is not None else None,
        "sender_type": message.sender_type,
        "content": message.content,
        "is_read": message.is_read,
        "created_at": iso(message.created_at),
    }


def serialize_conversation(conversation: m.Conversation) -> Dict[str, Any]:
    user = conversation.user
    return {
        "id": conversation.id,
        "user": {"id": user.id, "name": user.name, "email": user.email} if user is not None else None,
        "status": conversation.status,
        "last_message_at": iso(conversation.last_message_at),
        "created_at": iso(conversation.created_at),
    }


class ChatService:
    page_id: str = PAGE_ID
    page_version: str = PAGE_VERSION

    def __init__(self, *, session: Session, user: Dict[str, Any]):
        self.session = session
        self.user = user
        self.user_id = user_id_of(user)
        self.is_admin = is_admin(user)

    # -----------------------------------------------------
    # internal
    # -----------------------------------------------------
    def _get(self, conversation_id: int) -> m.Conversation:
        conversation = self.session.get(m.Conversation, conversation_id)
        if conversation is None:
            raise DomainError(
                "CHAT-NOTFOUND-101",
                detail="Conversation not found.",
                ctx={"conversation_id": conversation_id},
            )
        return conversation

    def _get_visible(self, conversation_id: int) -> m.Conversation:
        conversation = self._get(conversation_id)
        if conversation.user_id != self.user_id and not self.is_admin:
            raise DomainError(
                "CHAT-DENY-301",
                detail="Access denied to this conversation.",
                ctx={"conversation_id": conversation_id},
            )
        return conversation

    def _own_conversation(self, *, create: bool) -> Optional[m.Conversation]:
        conversation = self.session.execute(
            select(m.Conversation)
            .where(m.Conversation.user_id == self.user_id)
            .order_by(m.Conversation.id.desc())
            .limit(1)
        ).scalar_one_or_none()
        if conversation is None and create:
            conversation = m.Conversation(user_id=self.user_id, status="OPEN")
            self.session.add(conversation)
            self.session.flush()
        return conversation

    @staticmethod
    def _clean_content(content: Optional[str]) -> str:
        value = (content or "").strip()
        if not value:
            raise DomainError("CHAT-VALID-001", detail="Message content is required.", ctx={"field": "content"})
        if len(value) > CONTENT_MAX_LENGTH:
            raise DomainError(
                "CHAT-VALID-002",
                detail=f"Message cannot exceed {CONTENT_MAX_LENGTH} characters.",
                ctx={"length": len(value)},
            )
        return value

    # -----------------------------------------------------
    # [read]
    # -----------------------------------------------------
    def my_conversation(self) -> Dict[str, Any]:
        if self.is_admin:
            raise DomainError(
                "CHAT-DENY-304",
                detail="Support accounts do not have a customer conversation.",
                ctx={"user_id": self.user_id},
            )
        conversation = self._own_conversation(create=True)
        commit(self.session, page_id=PAGE_ID)
        return {"conversation": serialize_conversation(conversation)}

    def messages(self, *, conversation_id: int) -> Dict[str, Any]:
        conversation = self._get_visible(conversation_id)

        # reading marks the other side's messages as read
        unread_from = "USER" if self.is_admin else "SUPPORT"
        rows = self.session.execute(
            select(m.Message)
            .where(m.Message.conversation_id == conversation.id, m.Message.is_deleted.is_(False))
            .order_by(m.Message.created_at.asc(), m.Message.id.asc())
        ).scalars().all()

        changed = False
        for msg in rows:
            if msg.sender_type == unread_from and not msg.is_read:
                msg.is_read = True
                changed = True
        if changed:
            commit(self.session, page_id=PAGE_ID)

        items = [serialize_message(msg) for msg in rows]
        return {"conversation": serialize_conversation(conversation), "items": items, "total": len(items)}

    def conversations(self) -> Dict[str, Any]:
        if not self.is_admin:
            raise DomainError("CHAT-DENY-302", detail="Admin only.", ctx={})

        rows = self.session.execute(
            select(m.Conversation).order_by(
                m.Conversation.last_message_at.desc().nulls_last(), m.Conversation.id.desc()
            )
        ).scalars().all()

        items = []
        for conversation in rows:
            last = self.session.execute(
                select(m.Message)
                .where(m.Message.conversation_id == conversation.id, m.Message.is_deleted.is_(False))
                .order_by(m.Message.id.desc())
                .limit(1)
            ).scalar_one_or_none()
            unread = self.session.execute(
                select(func.count(m.Message.id)).where(
                    m.Message.conversation_id == conversation.id,
                    m.Message.is_deleted.is_(False),
                    m.Message.sender_type == "USER",
                    m.Message.is_read.is_(False),
                )
            ).scalar_one()
            items.append(
                {
                    **serialize_conversation(conversation),
                    "last_message": serialize_message(last) if last is not None else None,
                    "unread_count": unread,
                }
            )
        return {"items": items, "total": len(items)}

    # -----------------------------------------------------
    # [write]
    # -----------------------------------------------------
    def send(self, *, content: str, conversation_id: Optional[int] = None) -> Dict[str, Any]:
        body = self._clean_content(content)

        if self.is_admin:
            if conversation_id is None:
                raise DomainError(
                    "CHAT-VALID-003",
                    detail="conversation_id is required for support replies.",
                    ctx={"field": "conversation_id"},
                )
            conversation = self._get(conversation_id)
            sender_type = "SUPPORT"
        else:
            if conversation_id is not None:
                conversation = self._get_visible(conversation_id)
            else:
                conversation = self._own_conversation(create=True)
            sender_type = "USER"

        if conversation.status == "CLOSED":
            if sender_type == "SUPPORT":
                raise DomainError(
                    "CHAT-STATE-451",
                    detail="Conversation is closed.",
                    ctx={"conversation_id": conversation.id},
                )
            # a customer writing again reopens their conversation
            conversation.status = "OPEN"

        message = m.Message(
            conversation=conversation,
            sender_id=self.user_id,
            sender_type=sender_type,
            content=body,
            is_read=False,
        )
        self.session.add(message)
        conversation.last_message_at = m.utcnow()

        commit(self.session, page_id=PAGE_ID)
        return {"message": serialize_message(message)}

    def delete_message(self, *, message_id: int) -> Dict[str, Any]:
        message = self.session.get(m.Message, message_id)
        if message is None or message.is_deleted:
            raise DomainError("CHAT-NOTFOUND-102", detail="Message not found.", ctx={"message_id": message_id})
        if message.sender_id != self.user_id:
            raise DomainError(
                "CHAT-DENY-303",
                detail="Only the sender can delete this message.",
                ctx={"message_id": message_id},
            )
        message.is_deleted = True
        commit(self.session, page_id=PAGE_ID)
        return {"deleted": True, "message_id": message_id}

    def close(self, *, conversation_id: int) -> Dict[str, Any]:
        conversation = self._get_visible(conversation_id)
        conversation.status = "CLOSED"
        commit(self.session, page_id=PAGE_ID)
        return {"conversation": serialize_conversation(conversation)}
