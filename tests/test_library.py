import pytest

from bookstore import models as m
from bookstore.services.library.library_service import grant_for_order

from conftest import auth_header, place_order


def _result(res):
    return res.json()["data"]["result"]


@pytest.fixture
def owned_ebook(client, user_headers, admin_headers, ebook, book, address, provider):
    """Paid order with one ebook and one paperback; returns the library entry id."""
    order = _result(
        place_order(
            client,
            user_headers,
            address=address,
            provider=provider,
            items=[{"book_id": ebook.id, "quantity": 1}, {"book_id": book.id, "quantity": 1}],
        )
    )["order"]
    client.post(f"/api/payments/order/{order['id']}/confirm", json={"transaction_id": "GW-77"}, headers=admin_headers)

    items = _result(client.get("/api/library", headers=user_headers))["items"]
    assert len(items) == 1
    return items[0]["id"]


def test_unpaid_order_grants_nothing(client, user_headers, ebook, address, provider):
    place_order(client, user_headers, address=address, provider=provider, items=[{"book_id": ebook.id, "quantity": 1}])
    assert _result(client.get("/api/library", headers=user_headers)) == {"items": [], "total": 0}


def test_paid_order_grants_only_digital_books(client, user_headers, owned_ebook, ebook):
    entry = _result(client.get(f"/api/library/{owned_ebook}", headers=user_headers))["item"]
    assert entry["book"]["id"] == ebook.id
    assert entry["book"]["format"] == "EBOOK"
    assert entry["download_count"] == 0
    assert entry["remaining_downloads"] == 3
    assert entry["mime_type"] == "application/epub+zip"


def test_grant_is_idempotent(session, user, owned_ebook):
    order = session.query(m.Order).one()
    assert grant_for_order(session, order) == []
    assert session.query(m.UserBook).count() == 1


def test_download_link(client, user_headers, owned_ebook):
    link = _result(client.get(f"/api/library/{owned_ebook}/download-link", headers=user_headers))
    assert link["remaining_downloads"] == 3
    assert link["download_url"] == f"/api/library/download/file/{owned_ebook}?token={link['token']}"
    assert link["stream_url"].startswith(f"/api/library/stream/{owned_ebook}?token=")


def test_download_limit(client, session, user_headers, owned_ebook):
    for expected_remaining in (2, 1, 0):
        res = client.post(f"/api/library/{owned_ebook}/download", json={"download_type": "DOWNLOAD"}, headers=user_headers)
        assert _result(res)["remaining_downloads"] == expected_remaining

    info = _result(client.get(f"/api/library/{owned_ebook}/download-info", headers=user_headers))
    assert info["download_count"] == 3
    assert info["max_downloads"] == 3
    assert info["can_download"] is False

    blocked = client.post(f"/api/library/{owned_ebook}/download", headers=user_headers)
    assert blocked.status_code == 400
    assert blocked.json()["error"]["code"] == "LIBRARY-STATE-451"

    link = client.get(f"/api/library/{owned_ebook}/download-link", headers=user_headers)
    assert link.json()["error"]["code"] == "LIBRARY-STATE-451"

    assert session.query(m.DownloadHistory).filter_by(download_type="DOWNLOAD").count() == 3


def test_streaming_is_not_counted(client, session, user_headers, owned_ebook):
    res = client.post(f"/api/library/{owned_ebook}/download", json={"download_type": "stream"}, headers=user_headers)
    assert _result(res)["download_count"] == 0
    assert session.query(m.DownloadHistory).one().download_type == "STREAM"

    bad = client.post(f"/api/library/{owned_ebook}/download", json={"download_type": "PRINT"}, headers=user_headers)
    assert bad.json()["error"]["code"] == "LIBRARY-VALID-001"


def test_offline_info(client, user_headers, owned_ebook):
    before = _result(client.get(f"/api/library/{owned_ebook}/offline-info", headers=user_headers))
    assert before["available_offline"] is False
    assert before["title"] == "Digital Dreams"

    client.post(f"/api/library/{owned_ebook}/download", headers=user_headers)
    after = _result(client.get(f"/api/library/{owned_ebook}/offline-info", headers=user_headers))
    assert after["available_offline"] is True
    assert after["remaining_downloads"] == 2


def test_other_users_entry_is_hidden(client, other_user, owned_ebook):
    res = client.get(f"/api/library/{owned_ebook}", headers=auth_header(other_user))
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "LIBRARY-NOTFOUND-101"
