from bookstore import models as m
from bookstore.security.password import verify_password

from conftest import PASSWORD, auth_header


def _result(res):
    return res.json()["data"]["result"]


def _login(client, email, password=PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password})


# ─────────────────────────────────────────────
# register / login
# ─────────────────────────────────────────────
def test_register_then_login(client, session):
    res = client.post(
        "/api/auth/register",
        json={"name": "New Reader", "email": "  New@Example.com ", "password": "hunter22"},
    )
    assert res.status_code == 201
    user = _result(res)["user"]
    assert user["email"] == "new@example.com"
    assert user["role"] == "user"
    assert "password_hash" not in user

    stored = session.query(m.User).filter_by(email="new@example.com").one()
    assert stored.password_hash != "hunter22"
    assert verify_password("hunter22", stored.password_hash)

    login = _result(_login(client, "new@example.com", "hunter22"))
    assert login["token_type"] == "bearer"
    assert login["access_token"] and login["refresh_token"]
    assert login["user"]["last_login_at"] is not None


def test_register_duplicate_email(client, user):
    res = client.post("/api/auth/register", json={"name": "Dup", "email": "READER@example.com", "password": "hunter22"})
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "AUTH-CONFLICT-201"


def test_register_short_password(client):
    res = client.post("/api/auth/register", json={"name": "Short", "email": "s@example.com", "password": "123"})
    assert res.status_code == 422
    assert res.json()["error"]["code"] == "AUTH-VALID-001"


def test_login_failures_share_one_code(client, session, user):
    wrong_password = _login(client, user.email, "not-the-one")
    unknown = _login(client, "ghost@example.com")

    user.is_active = False
    user.status = "INACTIVE"
    session.commit()
    disabled = _login(client, user.email)

    for res in (wrong_password, unknown, disabled):
        assert res.status_code == 401
        assert res.json()["error"]["code"] == "AUTH-DENY-002"
    assert wrong_password.json()["error"]["detail"] == unknown.json()["error"]["detail"]


def test_refresh_issues_new_access_token(client, user):
    tokens = _result(_login(client, user.email))
    res = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    refreshed = _result(res)
    assert refreshed["token_type"] == "bearer"

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {refreshed['access_token']}"})
    assert _result(me)["user"]["id"] == user.id


def test_access_token_cannot_refresh(client, user):
    tokens = _result(_login(client, user.email))
    res = client.post("/api/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert res.status_code == 401
    assert res.json()["error"]["code"] == "AUTH-DENY-005"


# ─────────────────────────────────────────────
# profile
# ─────────────────────────────────────────────
def test_me_and_profile_update(client, user_headers):
    me = _result(client.get("/api/auth/me", headers=user_headers))["user"]
    assert me["email"] == "reader@example.com"

    res = client.put("/api/auth/profile", json={"full_name": "Avid Reader", "phone": "0900000000"}, headers=user_headers)
    updated = _result(res)["user"]
    assert updated["full_name"] == "Avid Reader"
    assert updated["phone"] == "0900000000"
    assert updated["name"] == "Reader"


def test_change_password(client, user, user_headers):
    wrong = client.put(
        "/api/auth/password",
        json={"current_password": "nope-nope", "new_password": "brandnew1"},
        headers=user_headers,
    )
    assert wrong.status_code == 401
    assert wrong.json()["error"]["code"] == "AUTH-DENY-002"

    res = client.put(
        "/api/auth/password",
        json={"current_password": PASSWORD, "new_password": "brandnew1"},
        headers=user_headers,
    )
    assert _result(res) == {"changed": True}
    assert _login(client, user.email, "brandnew1").status_code == 200
    assert _login(client, user.email).status_code == 401


# ─────────────────────────────────────────────
# admin user management
# ─────────────────────────────────────────────
def test_admin_lists_and_searches_users(client, user, other_user, admin_headers):
    everyone = _result(client.get("/api/admin/users", headers=admin_headers))
    assert everyone["pagination"] == {"page": 1, "limit": 10, "total": 3, "total_pages": 1}

    found = _result(client.get("/api/admin/users", params={"search": "other@"}, headers=admin_headers))
    assert [u["email"] for u in found["items"]] == ["other@example.com"]

    admins = _result(client.get("/api/admin/users", params={"role": "admin"}, headers=admin_headers))
    assert [u["email"] for u in admins["items"]] == ["admin@example.com"]


def test_admin_creates_user(client, user, admin_headers):
    res = client.post(
        "/api/admin/users",
        json={"name": "Staff", "email": "staff@example.com", "password": "staffpass", "role": "admin"},
        headers=admin_headers,
    )
    assert res.status_code == 201
    assert _result(res)["user"]["role"] == "admin"

    duplicate = client.post(
        "/api/admin/users",
        json={"name": "Dup", "email": "reader@example.com", "password": "staffpass"},
        headers=admin_headers,
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["error"]["code"] == "USER-CONFLICT-201"

    bad_role = client.post(
        "/api/admin/users",
        json={"name": "Odd", "email": "odd@example.com", "password": "staffpass", "role": "owner"},
        headers=admin_headers,
    )
    assert bad_role.json()["error"]["code"] == "USER-VALID-003"


def test_toggle_status_blocks_login(client, user, admin_headers):
    res = client.patch(f"/api/admin/users/{user.id}/toggle-status", headers=admin_headers)
    assert _result(res)["user"]["status"] == "INACTIVE"
    assert _login(client, user.email).status_code == 401

    client.patch(f"/api/admin/users/{user.id}/toggle-status", headers=admin_headers)
    assert _login(client, user.email).status_code == 200


def test_delete_user(client, admin, user, admin_headers):
    own = client.delete(f"/api/admin/users/{admin.id}", headers=admin_headers)
    assert own.status_code == 409
    assert own.json()["error"]["code"] == "USER-STATE-451"

    res = client.delete(f"/api/admin/users/{user.id}", headers=admin_headers)
    assert _result(res) == {"deleted": True, "user_id": user.id}
    assert client.get(f"/api/admin/users/{user.id}", headers=admin_headers).status_code == 404
    assert _login(client, user.email).status_code == 401


def test_customers_cannot_manage_users(client, user):
    res = client.get("/api/admin/users", headers=auth_header(user))
    assert res.status_code == 403
    assert res.json()["error"]["code"] == "AUTH-DENY-003"
