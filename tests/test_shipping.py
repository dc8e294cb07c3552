from decimal import Decimal

from bookstore import models as m


def _result(res):
    return res.json()["data"]["result"]


def _provider(session, name, code, fee, active=True):
    provider = m.ShippingProvider(name=name, code=code, base_fee=Decimal(fee), is_active=active)
    session.add(provider)
    session.commit()
    return provider


def test_active_list_is_ordered_by_fee(client, session, provider):
    _provider(session, "Economy", "ECO", "5.00")
    _provider(session, "Paused", "OFF", "1.00", active=False)

    result = _result(client.get("/api/shipping-providers/active"))
    assert [p["code"] for p in result["items"]] == ["ECO", "FAST"]


def test_lookup_by_code_is_case_insensitive(client, provider):
    found = _result(client.get("/api/shipping-providers/code/fast"))["provider"]
    assert found["id"] == provider.id
    assert found["base_fee"] == 15.0

    missing = client.get("/api/shipping-providers/code/none")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "SHIPPING-NOTFOUND-101"


def test_admin_list_filters(client, session, admin_headers, provider):
    _provider(session, "Paused", "OFF", "1.00", active=False)

    inactive = _result(client.get("/api/shipping-providers", params={"status": "inactive"}, headers=admin_headers))
    assert [p["code"] for p in inactive["items"]] == ["OFF"]

    search = _result(client.get("/api/shipping-providers", params={"search": "fast"}, headers=admin_headers))
    assert [p["code"] for p in search["items"]] == ["FAST"]


def test_admin_create_update_delete(client, admin_headers, provider):
    res = client.post(
        "/api/shipping-providers",
        json={"name": "Express", "code": "exp", "base_fee": 30, "estimated_time": "1 day", "contact_phone": "19001234"},
        headers=admin_headers,
    )
    assert res.status_code == 201
    created = _result(res)["provider"]
    assert created["code"] == "EXP"
    assert created["contact_info"]["phone"] == "19001234"

    duplicate = client.post("/api/shipping-providers", json={"name": "Copy", "code": "fast"}, headers=admin_headers)
    assert duplicate.status_code == 409
    assert duplicate.json()["error"]["code"] == "SHIPPING-CONFLICT-201"

    updated = _result(
        client.put(f"/api/shipping-providers/{created['id']}", json={"base_fee": 25, "is_active": False}, headers=admin_headers)
    )["provider"]
    assert updated["base_fee"] == 25.0
    assert updated["is_active"] is False

    deleted = client.delete(f"/api/shipping-providers/{created['id']}", headers=admin_headers)
    assert _result(deleted) == {"deleted": True, "provider_id": created["id"]}
    assert client.get(f"/api/shipping-providers/{created['id']}").status_code == 404


def test_customer_cannot_manage_providers(client, user_headers):
    res = client.post("/api/shipping-providers", json={"name": "X", "code": "X"}, headers=user_headers)
    assert res.status_code == 403
