import pytest

from bookstore import models as m

from conftest import auth_header, place_order


def _result(res):
    return res.json()["data"]["result"]


@pytest.fixture
def order(client, user_headers, book, address, provider):
    res = place_order(
        client, user_headers, address=address, provider=provider,
        items=[{"book_id": book.id, "quantity": 1}], payment_method="MOMO",
    )
    return _result(res)["order"]


def test_methods_are_public(client):
    assert _result(client.get("/api/payments/methods")) == {"methods": ["COD", "VNPAY", "MOMO"]}


def test_checkout_creates_pending_payment(client, user_headers, order):
    result = _result(client.get(f"/api/payments/order/{order['id']}", headers=user_headers))
    assert result["order_code"] == order["order_code"]
    assert result["total"] == 1

    payment = result["items"][0]
    assert payment["transaction_code"].startswith("TXN-")
    assert payment["method"] == "MOMO"
    assert payment["status"] == "PENDING"
    assert payment["amount"] == 115.0
    assert payment["customer_email"] == "reader@example.com"


def test_payments_of_someone_elses_order(client, other_user, order):
    res = client.get(f"/api/payments/order/{order['id']}", headers=auth_header(other_user))
    assert res.status_code == 403
    assert res.json()["error"]["code"] == "PAYMENT-DENY-301"


def test_confirm_payment(client, session, admin_headers, order):
    res = client.post(f"/api/payments/order/{order['id']}/confirm", json={"transaction_id": "MOMO-123"}, headers=admin_headers)
    assert res.status_code == 200
    result = _result(res)
    assert result["changed"] is True
    assert result["order"]["status"] == "CONFIRMED"
    assert result["order"]["payment_status"] == "COMPLETED"
    assert result["order"]["transaction_id"] == "MOMO-123"

    session.expire_all()
    payment = session.query(m.Payment).one()
    assert payment.status == "COMPLETED"
    assert payment.transaction_id == "MOMO-123"
    assert payment.paid_at is not None

    again = _result(client.post(f"/api/payments/order/{order['id']}/confirm", headers=admin_headers))
    assert again["changed"] is False


def test_cancelled_order_cannot_be_paid(client, user_headers, admin_headers, order):
    client.put(f"/api/orders/{order['id']}/cancel", headers=user_headers)
    res = client.post(f"/api/payments/order/{order['id']}/confirm", headers=admin_headers)
    assert res.status_code == 409
    assert res.json()["error"]["code"] == "ORDER-STATE-454"


def test_admin_list_and_filters(client, admin_headers, order):
    listing = _result(client.get("/api/payments", headers=admin_headers))
    assert listing["pagination"]["total"] == 1

    by_order = _result(client.get("/api/payments", params={"search": order["order_code"].lower()}, headers=admin_headers))
    assert len(by_order["items"]) == 1

    completed = _result(client.get("/api/payments", params={"status": "completed"}, headers=admin_headers))
    assert completed["items"] == []

    bad = client.get("/api/payments", params={"status": "LOST"}, headers=admin_headers)
    assert bad.status_code == 422
    assert bad.json()["error"]["code"] == "PAYMENT-VALID-001"


def test_payment_export(client, admin_headers, order):
    res = client.get("/api/payments/export", headers=admin_headers)
    assert res.status_code == 200
    assert res.content[:2] == b"PK"


def test_customer_cannot_list_payments(client, user_headers):
    assert client.get("/api/payments", headers=user_headers).status_code == 403
