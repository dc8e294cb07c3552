from bookstore import models as m

from conftest import auth_header


def _cart(res):
    return res.json()["data"]["result"]["cart"]


def test_empty_cart(client, user_headers):
    cart = _cart(client.get("/api/cart", headers=user_headers))
    assert cart == {"id": None, "items": [], "total_items": 0, "total_price": 0.0}


def test_add_and_accumulate(client, user_headers, book, cheap_book):
    client.post("/api/cart/add", json={"book_id": book.id, "quantity": 2}, headers=user_headers)
    client.post("/api/cart/add", json={"book_id": cheap_book.id}, headers=user_headers)
    res = client.post("/api/cart/add", json={"book_id": book.id, "quantity": 1}, headers=user_headers)

    assert res.status_code == 200
    cart = _cart(res)
    lines = {item["book_id"]: item for item in cart["items"]}
    assert lines[book.id]["quantity"] == 3
    assert lines[book.id]["subtotal"] == 300.0
    assert cart["total_items"] == 4
    assert cart["total_price"] == 320.0


def test_add_beyond_stock(client, user_headers, cheap_book):
    client.post("/api/cart/add", json={"book_id": cheap_book.id, "quantity": 4}, headers=user_headers)
    res = client.post("/api/cart/add", json={"book_id": cheap_book.id, "quantity": 2}, headers=user_headers)
    assert res.status_code == 409
    assert res.json()["error"]["code"] == "CART-STATE-451"

    cart = _cart(client.get("/api/cart", headers=user_headers))
    assert cart["items"][0]["quantity"] == 4


def test_add_inactive_or_missing_book(client, session, user_headers, book):
    book.is_active = False
    session.commit()

    inactive = client.post("/api/cart/add", json={"book_id": book.id}, headers=user_headers)
    assert inactive.json()["error"]["code"] == "CART-STATE-452"

    missing = client.post("/api/cart/add", json={"book_id": 999}, headers=user_headers)
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "CART-NOTFOUND-102"


def test_ebook_ignores_stock(client, user_headers, ebook):
    res = client.post("/api/cart/add", json={"book_id": ebook.id, "quantity": 2}, headers=user_headers)
    assert res.status_code == 200
    assert _cart(res)["total_price"] == 100.0


def test_update_quantity_and_zero_removes(client, user_headers, book, cheap_book):
    client.post("/api/cart/add", json={"book_id": book.id}, headers=user_headers)
    client.post("/api/cart/add", json={"book_id": cheap_book.id}, headers=user_headers)

    updated = _cart(client.put("/api/cart/update", json={"book_id": book.id, "quantity": 5}, headers=user_headers))
    assert updated["total_items"] == 6
    assert updated["total_price"] == 520.0

    removed = _cart(client.put("/api/cart/update", json={"book_id": book.id, "quantity": 0}, headers=user_headers))
    assert [item["book_id"] for item in removed["items"]] == [cheap_book.id]
    assert removed["total_price"] == 20.0


def test_update_errors(client, user_headers, book, cheap_book):
    client.post("/api/cart/add", json={"book_id": book.id}, headers=user_headers)

    not_in_cart = client.put("/api/cart/update", json={"book_id": cheap_book.id, "quantity": 1}, headers=user_headers)
    assert not_in_cart.status_code == 404
    assert not_in_cart.json()["error"]["code"] == "CART-NOTFOUND-103"

    too_many = client.put("/api/cart/update", json={"book_id": book.id, "quantity": 11}, headers=user_headers)
    assert too_many.json()["error"]["code"] == "CART-STATE-451"

    negative = client.put("/api/cart/update", json={"book_id": book.id, "quantity": -1}, headers=user_headers)
    assert negative.json()["error"]["code"] == "CART-VALID-002"


def test_remove_clear_and_check(client, session, user, user_headers, book, cheap_book):
    client.post("/api/cart/add", json={"book_id": book.id}, headers=user_headers)
    client.post("/api/cart/add", json={"book_id": cheap_book.id, "quantity": 2}, headers=user_headers)

    check = client.get(f"/api/cart/check/{cheap_book.id}", headers=user_headers).json()["data"]["result"]
    assert check == {"book_id": cheap_book.id, "in_cart": True, "quantity": 2}

    removed = _cart(client.delete(f"/api/cart/remove/{book.id}", headers=user_headers))
    assert removed["total_items"] == 2

    missing = client.delete(f"/api/cart/remove/{book.id}", headers=user_headers)
    assert missing.json()["error"]["code"] == "CART-NOTFOUND-103"

    cleared = _cart(client.delete("/api/cart/clear", headers=user_headers))
    assert cleared["items"] == []
    assert cleared["total_price"] == 0.0

    session.expire_all()
    stored = session.query(m.Cart).filter_by(user_id=user.id).one()
    assert stored.total_items == 0
    assert session.query(m.CartItem).count() == 0


def test_carts_are_per_user(client, user_headers, other_user, book):
    client.post("/api/cart/add", json={"book_id": book.id}, headers=user_headers)
    theirs = _cart(client.get("/api/cart", headers=auth_header(other_user)))
    assert theirs["items"] == []


def test_cart_requires_login(client):
    assert client.get("/api/cart").status_code == 401
