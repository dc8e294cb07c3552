from conftest import auth_header

NEW_ADDRESS = {
    "name": "Reader",
    "phone": "0987654321",
    "address": "99 Lake Rd",
    "city": "Da Nang",
    "district": "Hai Chau",
    "ward": "Thach Thang",
}


def _result(res):
    return res.json()["data"]["result"]


def test_first_address_becomes_default(client, user_headers):
    res = client.post("/api/addresses", json=NEW_ADDRESS, headers=user_headers)
    assert res.status_code == 201
    address = _result(res)["address"]
    assert address["is_default"] is True
    assert address["full_address"] == "99 Lake Rd, Thach Thang, Hai Chau, Da Nang"

    default = _result(client.get("/api/addresses/default", headers=user_headers))["address"]
    assert default["id"] == address["id"]


def test_no_default_yet(client, user_headers):
    assert _result(client.get("/api/addresses/default", headers=user_headers)) == {"address": None}


def test_new_default_replaces_old(client, user_headers, address):
    created = _result(client.post("/api/addresses", json={**NEW_ADDRESS, "is_default": True}, headers=user_headers))

    listing = _result(client.get("/api/addresses", headers=user_headers))
    assert listing["total"] == 2
    assert listing["items"][0]["id"] == created["address"]["id"]
    assert [a["is_default"] for a in listing["items"]] == [True, False]


def test_second_address_is_not_default(client, user_headers, address):
    created = _result(client.post("/api/addresses", json=NEW_ADDRESS, headers=user_headers))["address"]
    assert created["is_default"] is False


def test_set_default(client, user_headers, address):
    created = _result(client.post("/api/addresses", json=NEW_ADDRESS, headers=user_headers))["address"]
    res = client.patch(f"/api/addresses/{created['id']}/default", headers=user_headers)
    assert _result(res)["address"]["is_default"] is True

    old = _result(client.get(f"/api/addresses/{address.id}", headers=user_headers))["address"]
    assert old["is_default"] is False


def test_deleting_default_promotes_another(client, user_headers, address):
    created = _result(client.post("/api/addresses", json=NEW_ADDRESS, headers=user_headers))["address"]

    res = client.delete(f"/api/addresses/{address.id}", headers=user_headers)
    assert _result(res) == {"deleted": True, "address_id": address.id}

    listing = _result(client.get("/api/addresses", headers=user_headers))
    assert [a["id"] for a in listing["items"]] == [created["id"]]
    assert listing["items"][0]["is_default"] is True


def test_update_address(client, user_headers, address):
    res = client.put(f"/api/addresses/{address.id}", json={"city": "  Hue  "}, headers=user_headers)
    updated = _result(res)["address"]
    assert updated["city"] == "Hue"
    assert updated["phone"] == "0912345678"


def test_validation(client, user_headers):
    missing = client.post("/api/addresses", json={**NEW_ADDRESS, "ward": "  "}, headers=user_headers)
    assert missing.status_code == 422
    assert missing.json()["error"]["code"] == "ADDRESS-VALID-001"

    bad_phone = client.post("/api/addresses", json={**NEW_ADDRESS, "phone": "12-ab"}, headers=user_headers)
    assert bad_phone.status_code == 422
    assert bad_phone.json()["error"]["code"] == "ADDRESS-VALID-003"


def test_other_users_address_is_invisible(client, other_user, address):
    headers = auth_header(other_user)
    res = client.get(f"/api/addresses/{address.id}", headers=headers)
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "ADDRESS-NOTFOUND-101"

    delete = client.delete(f"/api/addresses/{address.id}", headers=headers)
    assert delete.status_code == 404
