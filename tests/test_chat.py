import pytest

from bookstore import models as m
from bookstore.services.chat.chat_service import ChatService
from bookstore.system.error_codes import DomainError

from conftest import auth_header, payload_for


def _result(res):
    return res.json()["data"]["result"]


def _send(client, headers, content, conversation_id=None):
    body = {"content": content}
    if conversation_id is not None:
        body["conversation_id"] = conversation_id
    return client.post("/api/chat/messages", json=body, headers=headers)


def test_conversation_is_created_once(client, user_headers):
    first = _result(client.get("/api/chat/conversation", headers=user_headers))["conversation"]
    second = _result(client.get("/api/chat/conversation", headers=user_headers))["conversation"]
    assert first["id"] == second["id"]
    assert first["status"] == "OPEN"
    assert first["user"]["email"] == "reader@example.com"


def test_support_account_has_no_own_conversation(client, session, admin_headers):
    res = client.get("/api/chat/conversation", headers=admin_headers)
    assert res.status_code == 403
    assert res.json()["error"]["code"] == "CHAT-DENY-304"
    assert session.query(m.Conversation).count() == 0


def test_customer_and_support_exchange(client, user_headers, admin_headers):
    res = _send(client, user_headers, "  Where is my order?  ")
    assert res.status_code == 201
    message = _result(res)["message"]
    assert message["sender_type"] == "USER"
    assert message["content"] == "Where is my order?"
    conversation_id = message["conversation_id"]

    inbox = _result(client.get("/api/chat/conversations", headers=admin_headers))
    assert inbox["total"] == 1
    assert inbox["items"][0]["unread_count"] == 1
    assert inbox["items"][0]["last_message"]["content"] == "Where is my order?"

    # support reads the thread, which marks the customer's message read
    thread = _result(client.get(f"/api/chat/conversations/{conversation_id}/messages", headers=admin_headers))
    assert [msg["content"] for msg in thread["items"]] == ["Where is my order?"]
    assert _result(client.get("/api/chat/conversations", headers=admin_headers))["items"][0]["unread_count"] == 0

    reply = _result(_send(client, admin_headers, "It ships tomorrow.", conversation_id))["message"]
    assert reply["sender_type"] == "SUPPORT"
    assert reply["sender_name"] == "Admin"

    customer_view = _result(client.get(f"/api/chat/conversations/{conversation_id}/messages", headers=user_headers))
    assert [msg["sender_type"] for msg in customer_view["items"]] == ["USER", "SUPPORT"]
    assert customer_view["items"][1]["is_read"] is True


def test_support_reply_needs_conversation(client, admin_headers):
    res = _send(client, admin_headers, "Hello?")
    assert res.status_code == 422
    assert res.json()["error"]["code"] == "CHAT-VALID-003"


def test_empty_message(client, user_headers):
    res = _send(client, user_headers, "   ")
    assert res.json()["error"]["code"] == "CHAT-VALID-001"


def test_closed_conversation(client, user_headers, admin_headers):
    conversation_id = _result(_send(client, user_headers, "Hi"))["message"]["conversation_id"]

    closed = _result(client.put(f"/api/chat/conversations/{conversation_id}/close", headers=admin_headers))
    assert closed["conversation"]["status"] == "CLOSED"

    blocked = _send(client, admin_headers, "One more thing", conversation_id)
    assert blocked.status_code == 409
    assert blocked.json()["error"]["code"] == "CHAT-STATE-451"

    _send(client, user_headers, "Actually, one more question")
    reopened = _result(client.get("/api/chat/conversation", headers=user_headers))["conversation"]
    assert reopened["id"] == conversation_id
    assert reopened["status"] == "OPEN"


def test_foreign_conversation_is_denied(client, user_headers, other_user):
    conversation_id = _result(_send(client, user_headers, "Private"))["message"]["conversation_id"]
    res = client.get(f"/api/chat/conversations/{conversation_id}/messages", headers=auth_header(other_user))
    assert res.status_code == 403
    assert res.json()["error"]["code"] == "CHAT-DENY-301"


def test_only_sender_deletes(client, session, user_headers, admin_headers):
    message = _result(_send(client, user_headers, "Oops"))["message"]

    denied = client.delete(f"/api/chat/messages/{message['id']}", headers=admin_headers)
    assert denied.status_code == 403
    assert denied.json()["error"]["code"] == "CHAT-DENY-303"

    deleted = _result(client.delete(f"/api/chat/messages/{message['id']}", headers=user_headers))
    assert deleted == {"deleted": True, "message_id": message["id"]}

    thread = _result(client.get(f"/api/chat/conversations/{message['conversation_id']}/messages", headers=user_headers))
    assert thread["items"] == []
    assert session.get(m.Message, message["id"]) is not None


def test_inbox_is_admin_only(client, session, user, user_headers):
    assert client.get("/api/chat/conversations", headers=user_headers).status_code == 403

    with pytest.raises(DomainError) as exc:
        ChatService(session=session, user=payload_for(user)).conversations()
    assert exc.value.code == "CHAT-DENY-302"
