import pytest

from bookstore import models as m

from conftest import make_book


def _result(res):
    return res.json()["data"]["result"]


# ─────────────────────────────────────────────
# categories
# ─────────────────────────────────────────────
def test_category_list_counts_books(client, category, other_category, book, cheap_book):
    result = _result(client.get("/api/categories"))
    assert result["total"] == 2
    counts = {c["name"]: c["book_count"] for c in result["items"]}
    assert counts == {"Fiction": 2, "Science": 0}


def test_admin_category_crud(client, admin_headers):
    created = client.post("/api/categories", json={"name": " Poetry ", "description": "Verse"}, headers=admin_headers)
    assert created.status_code == 201
    category = _result(created)["category"]
    assert category["name"] == "Poetry"

    duplicate = client.post("/api/categories", json={"name": "poetry"}, headers=admin_headers)
    assert duplicate.status_code == 409
    assert duplicate.json()["error"]["code"] == "CATEGORY-CONFLICT-201"

    renamed = client.put(f"/api/categories/{category['id']}", json={"name": "Poems"}, headers=admin_headers)
    assert _result(renamed)["category"]["name"] == "Poems"

    deleted = client.delete(f"/api/categories/{category['id']}", headers=admin_headers)
    assert _result(deleted) == {"deleted": True, "category_id": category["id"]}

    gone = client.get(f"/api/categories/{category['id']}")
    assert gone.status_code == 404
    assert gone.json()["error"]["code"] == "CATEGORY-NOTFOUND-101"


def test_blank_category_name(client, admin_headers):
    res = client.post("/api/categories", json={"name": "   "}, headers=admin_headers)
    assert res.status_code == 422
    assert res.json()["error"]["code"] == "CATEGORY-VALID-001"


def test_customer_cannot_create_category(client, user_headers):
    res = client.post("/api/categories", json={"name": "Nope"}, headers=user_headers)
    assert res.status_code == 403


# ─────────────────────────────────────────────
# books: listing
# ─────────────────────────────────────────────
def test_public_list_hides_inactive(client, session, category, book, cheap_book):
    make_book(session, category, title="Hidden", price="5.00", is_active=False)

    result = _result(client.get("/api/books"))
    titles = {b["title"] for b in result["items"]}
    assert titles == {"The Long Road", "Pocket Poems"}
    assert result["pagination"] == {"current_page": 1, "total_pages": 1, "total_items": 2, "page_size": 10}


def test_admin_can_include_inactive(client, session, admin_headers, category, book):
    make_book(session, category, title="Hidden", price="5.00", is_active=False)

    anonymous = _result(client.get("/api/books", params={"include_inactive": True}))
    assert anonymous["pagination"]["total_items"] == 1

    as_admin = _result(client.get("/api/books", params={"include_inactive": True}, headers=admin_headers))
    assert as_admin["pagination"]["total_items"] == 2


def test_search_and_filters(client, session, category, other_category, book, cheap_book, ebook):
    make_book(session, other_category, title="Stars Above", price="60.00", stock=3, isbn="9780000000001")

    by_title = _result(client.get("/api/books", params={"search": "long"}))
    assert [b["title"] for b in by_title["items"]] == ["The Long Road"]

    by_isbn = _result(client.get("/api/books", params={"search": "97800000"}))
    assert [b["title"] for b in by_isbn["items"]] == ["Stars Above"]

    by_category = _result(client.get("/api/books", params={"category_id": other_category.id}))
    assert by_category["pagination"]["total_items"] == 1

    by_price = _result(client.get("/api/books", params={"min_price": 30, "max_price": 60, "sort_by": "price", "sort_order": "asc"}))
    assert [b["title"] for b in by_price["items"]] == ["Digital Dreams", "Stars Above"]

    ebooks = _result(client.get("/api/books", params={"format": "ebook"}))
    assert [b["title"] for b in ebooks["items"]] == ["Digital Dreams"]


def test_stock_filters(client, session, category, book, cheap_book, ebook):
    low = _result(client.get("/api/books", params={"stock_filter": "low_stock"}))
    assert [b["title"] for b in low["items"]] == ["Pocket Poems"]

    out = _result(client.get("/api/books", params={"stock_filter": "out_of_stock"}))
    assert [b["title"] for b in out["items"]] == ["Digital Dreams"]

    in_stock = _result(client.get("/api/books", params={"stock_filter": "in_stock", "sort_by": "title", "sort_order": "asc"}))
    assert [b["title"] for b in in_stock["items"]] == ["Pocket Poems", "The Long Road"]


@pytest.mark.parametrize(
    "params, code",
    [
        ({"stock_filter": "plenty"}, "BOOK-VALID-006"),
        ({"sort_by": "author"}, "BOOK-VALID-007"),
        ({"page": 0}, "BOOK-VALID-001"),
        ({"format": "SCROLL"}, "BOOK-VALID-004"),
    ],
)
def test_list_rejects_bad_params(client, book, params, code):
    res = client.get("/api/books", params=params)
    assert res.status_code == 422
    assert res.json()["error"]["code"] == code


def test_pagination(client, session, category):
    for i in range(12):
        make_book(session, category, title=f"Volume {i:02d}", price="10.00")

    second = _result(client.get("/api/books", params={"page": 2, "limit": 5, "sort_by": "title", "sort_order": "asc"}))
    assert [b["title"] for b in second["items"]] == [f"Volume {i:02d}" for i in range(5, 10)]
    assert second["pagination"]["total_pages"] == 3


# ─────────────────────────────────────────────
# books: detail and admin writes
# ─────────────────────────────────────────────
def test_detail_counts_views(client, session, book):
    client.get(f"/api/books/{book.id}")
    detail = _result(client.get(f"/api/books/{book.id}"))["book"]
    assert detail["view_count"] == 2
    assert detail["category"]["name"] == "Fiction"

    session.expire_all()
    assert session.get(m.Book, book.id).view_count == 2


def test_admin_creates_book(client, admin_headers, category, book):
    payload = {
        "title": "New Arrivals",
        "author": "Someone",
        "price": 42.5,
        "stock": 3,
        "category_id": category.id,
        "isbn": "9781234567897",
        "format": "hardcover",
        "publication_date": "2023-05-01",
    }
    res = client.post("/api/books", json=payload, headers=admin_headers)
    assert res.status_code == 201
    created = _result(res)["book"]
    assert created["format"] == "HARDCOVER"
    assert created["price"] == 42.5
    assert created["status"] == "AVAILABLE"
    assert created["publication_date"] == "2023-05-01"

    duplicate = client.post("/api/books", json={**payload, "title": "Copy"}, headers=admin_headers)
    assert duplicate.status_code == 409
    assert duplicate.json()["error"]["code"] == "BOOK-CONFLICT-201"

    no_category = client.post("/api/books", json={**payload, "isbn": None, "category_id": 999}, headers=admin_headers)
    assert no_category.status_code == 404
    assert no_category.json()["error"]["code"] == "BOOK-NOTFOUND-102"


def test_new_book_without_stock_is_hidden(client, admin_headers, category):
    res = client.post(
        "/api/books",
        json={"title": "Preorder", "price": 10, "category_id": category.id},
        headers=admin_headers,
    )
    created = _result(res)["book"]
    assert created["status"] == "OUT_OF_STOCK"
    assert created["is_active"] is False


def test_stock_update_drives_status(client, admin_headers, book):
    emptied = _result(client.put(f"/api/books/{book.id}", json={"stock": 0}, headers=admin_headers))["book"]
    assert emptied["status"] == "OUT_OF_STOCK"
    assert emptied["is_active"] is False

    restocked = _result(client.put(f"/api/books/{book.id}", json={"stock": 4, "price": 90}, headers=admin_headers))["book"]
    assert restocked["status"] == "AVAILABLE"
    assert restocked["is_active"] is True
    assert restocked["price"] == 90.0


def test_soft_delete(client, session, admin_headers, book):
    res = client.delete(f"/api/books/{book.id}", headers=admin_headers)
    assert _result(res) == {"deleted": True, "book_id": book.id}

    missing = client.get(f"/api/books/{book.id}")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "BOOK-NOTFOUND-101"

    session.expire_all()
    assert session.get(m.Book, book.id).is_deleted is True


def test_customer_cannot_write_books(client, user_headers, book):
    res = client.put(f"/api/books/{book.id}", json={"price": 1}, headers=user_headers)
    assert res.status_code == 403
    assert res.json()["error"]["code"] == "AUTH-DENY-003"
