from datetime import timedelta
from decimal import Decimal

import pytest

from bookstore import models as m
from bookstore.services.vouchers.voucher_service import OrderContext, VoucherService, compute_discount
from bookstore.system.error_codes import DomainError

from conftest import make_voucher, payload_for


def _voucher(type, value, max_discount=None):
    return m.Voucher(
        type=type,
        value=Decimal(value),
        max_discount_amount=Decimal(max_discount) if max_discount is not None else None,
    )


# ─────────────────────────────────────────────
# discount math
# ─────────────────────────────────────────────
def test_percentage_discount():
    assert compute_discount(_voucher("PERCENTAGE", "10"), Decimal("250.00"), Decimal("15")) == Decimal("25.00")


def test_percentage_discount_is_capped():
    voucher = _voucher("PERCENTAGE", "50", max_discount="30")
    assert compute_discount(voucher, Decimal("200.00"), Decimal("0")) == Decimal("30.00")


def test_percentage_rounds_half_up_to_cents():
    assert compute_discount(_voucher("PERCENTAGE", "15"), Decimal("33.33"), Decimal("0")) == Decimal("5.00")


def test_fixed_amount_never_exceeds_subtotal():
    assert compute_discount(_voucher("FIXED_AMOUNT", "80"), Decimal("50.00"), Decimal("10")) == Decimal("50.00")
    assert compute_discount(_voucher("FIXED_AMOUNT", "20"), Decimal("50.00"), Decimal("10")) == Decimal("20.00")


def test_free_shipping_discount_equals_shipping_fee():
    assert compute_discount(_voucher("FREE_SHIPPING", "0"), Decimal("100.00"), Decimal("15.00")) == Decimal("15.00")


def test_free_shipping_is_clamped_by_subtotal():
    assert compute_discount(_voucher("FREE_SHIPPING", "0"), Decimal("5.00"), Decimal("15.00")) == Decimal("5.00")


# ─────────────────────────────────────────────
# eligibility
# ─────────────────────────────────────────────
def _ctx(user, subtotal="100", categories=(), books=()):
    return OrderContext(
        user_id=user.id,
        subtotal=Decimal(subtotal),
        category_ids=set(categories),
        book_ids=set(books),
    )


def _check(session, user, code, ctx):
    return VoucherService(session=session, user=payload_for(user)).validate_for_order(code, ctx)


def _error_code(session, user, code, ctx):
    with pytest.raises(DomainError) as exc:
        _check(session, user, code, ctx)
    return exc.value.code


def test_valid_voucher_passes(session, user, voucher):
    assert _check(session, user, "save10", _ctx(user)).id == voucher.id


def test_unknown_code(session, user):
    assert _error_code(session, user, "NOPE", _ctx(user)) == "VOUCHER-NOTFOUND-101"


def test_inactive_voucher(session, user):
    make_voucher(session, code="OFF", is_active=False)
    assert _error_code(session, user, "OFF", _ctx(user)) == "VOUCHER-STATE-452"


def test_not_started_and_expired(session, user):
    now = m.utcnow()
    make_voucher(session, code="SOON", valid_from=now + timedelta(days=1), valid_to=now + timedelta(days=5))
    make_voucher(session, code="OLD", valid_from=now - timedelta(days=10), valid_to=now - timedelta(days=1))
    assert _error_code(session, user, "SOON", _ctx(user)) == "VOUCHER-STATE-453"
    assert _error_code(session, user, "OLD", _ctx(user)) == "VOUCHER-STATE-454"


def test_minimum_order_amount(session, user):
    make_voucher(session, code="MIN200", min_order_amount=Decimal("200"))
    assert _error_code(session, user, "MIN200", _ctx(user, subtotal="199.99")) == "VOUCHER-STATE-455"
    assert _check(session, user, "MIN200", _ctx(user, subtotal="200")).code == "MIN200"


def _usage(session, voucher, user, *, refunded=False):
    order = m.Order(
        order_code=f"ORD-TEST-{voucher.code}-{user.id}-{refunded}",
        user_id=user.id,
        total_price=Decimal("90"),
        original_amount=Decimal("100"),
        discount_amount=Decimal("10"),
        voucher_id=voucher.id,
    )
    session.add(order)
    session.flush()
    session.add(
        m.VoucherUsage(
            voucher_id=voucher.id,
            user_id=user.id,
            order_id=order.id,
            voucher_code=voucher.code,
            discount_amount=Decimal("10"),
            order_amount=Decimal("100"),
            is_refunded=refunded,
        )
    )
    session.commit()


def test_usage_limit_counts_only_live_usages(session, user, other_user):
    voucher = make_voucher(session, code="ONCE", usage_limit=1)
    _usage(session, voucher, other_user, refunded=True)
    assert _check(session, user, "ONCE", _ctx(user)).code == "ONCE"

    _usage(session, voucher, other_user)
    assert _error_code(session, user, "ONCE", _ctx(user)) == "VOUCHER-STATE-456"


def test_one_use_per_user(session, user, voucher):
    _usage(session, voucher, user)
    assert _error_code(session, user, "SAVE10", _ctx(user)) == "VOUCHER-STATE-457"


def test_refunded_usage_allows_reuse(session, user, voucher):
    _usage(session, voucher, user, refunded=True)
    assert _check(session, user, "SAVE10", _ctx(user)).id == voucher.id


def test_user_scope(session, user, other_user):
    voucher = make_voucher(session, code="VIP")
    voucher.applicable_users = [other_user]
    session.commit()
    assert _error_code(session, user, "VIP", _ctx(user)) == "VOUCHER-STATE-458"
    assert _check(session, other_user, "VIP", _ctx(other_user)).code == "VIP"


def test_category_and_book_scope(session, user, category, other_category, book):
    scoped = make_voucher(session, code="SCI")
    scoped.applicable_categories = [other_category]
    by_book = make_voucher(session, code="ONEBOOK")
    by_book.applicable_books = [book]
    session.commit()

    ctx = _ctx(user, categories=[category.id], books=[book.id])
    assert _error_code(session, user, "SCI", ctx) == "VOUCHER-STATE-458"
    assert _check(session, user, "ONEBOOK", ctx).code == "ONEBOOK"
    assert _error_code(session, user, "ONEBOOK", _ctx(user, categories=[category.id], books=[999])) == "VOUCHER-STATE-458"


# ─────────────────────────────────────────────
# API
# ─────────────────────────────────────────────
def test_preview_discount(client, user_headers, voucher, book, provider):
    res = client.post(
        "/api/vouchers/validate",
        json={"code": "save10", "items": [{"book_id": book.id, "quantity": 2}], "shipping_provider_id": provider.id},
        headers=user_headers,
    )
    assert res.status_code == 200
    result = res.json()["data"]["result"]
    assert result["subtotal"] == 200.0
    assert result["discount"] == 20.0
    assert result["shipping_fee"] == 15.0
    assert result["final_amount"] == 195.0


def test_preview_has_no_side_effects(client, session, user_headers, voucher, book):
    client.post(
        "/api/vouchers/validate",
        json={"code": "SAVE10", "items": [{"book_id": book.id}]},
        headers=user_headers,
    )
    session.expire_all()
    assert session.get(m.Voucher, voucher.id).used_count == 0
    assert session.query(m.VoucherUsage).count() == 0


def test_preview_below_minimum_is_rejected(client, session, user_headers, cheap_book):
    make_voucher(session, code="BIG", min_order_amount=Decimal("500"))
    res = client.post(
        "/api/vouchers/validate",
        json={"code": "BIG", "items": [{"book_id": cheap_book.id}]},
        headers=user_headers,
    )
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "VOUCHER-STATE-455"


def test_available_skips_used_and_scoped(client, session, user, other_user, user_headers, voucher):
    vip = make_voucher(session, code="VIP")
    vip.applicable_users = [other_user]
    session.commit()

    res = client.get("/api/vouchers/available", headers=user_headers)
    codes = [v["code"] for v in res.json()["data"]["result"]["items"]]
    assert codes == ["SAVE10"]


def test_admin_creates_voucher(client, admin_headers, category):
    now = m.utcnow()
    res = client.post(
        "/api/vouchers",
        json={
            "code": "summer25",
            "name": "Summer",
            "type": "PERCENTAGE",
            "value": 25,
            "max_discount_amount": 50,
            "usage_limit": 100,
            "valid_from": now.isoformat(),
            "valid_to": (now + timedelta(days=30)).isoformat(),
            "applicable_categories": [category.id],
        },
        headers=admin_headers,
    )
    assert res.status_code == 201
    voucher = res.json()["data"]["result"]["voucher"]
    assert voucher["code"] == "SUMMER25"
    assert voucher["applicable_categories"] == [category.id]
    assert voucher["remaining_uses"] == 100


def test_admin_create_rejects_bad_rules(client, admin_headers, voucher):
    now = m.utcnow()
    base = {
        "name": "Bad",
        "valid_from": now.isoformat(),
        "valid_to": (now + timedelta(days=1)).isoformat(),
    }
    too_much = client.post("/api/vouchers", json={**base, "code": "PCT", "type": "PERCENTAGE", "value": 150}, headers=admin_headers)
    assert too_much.json()["error"]["code"] == "VOUCHER-VALID-005"

    backwards = client.post(
        "/api/vouchers",
        json={**base, "code": "BACK", "type": "FIXED_AMOUNT", "value": 10, "valid_to": (now - timedelta(days=1)).isoformat()},
        headers=admin_headers,
    )
    assert backwards.json()["error"]["code"] == "VOUCHER-VALID-007"

    duplicate = client.post("/api/vouchers", json={**base, "code": "save10", "type": "FIXED_AMOUNT", "value": 5}, headers=admin_headers)
    assert duplicate.status_code == 409
    assert duplicate.json()["error"]["code"] == "VOUCHER-CONFLICT-201"


def test_deleted_code_can_be_reused(client, session, admin_headers):
    now = m.utcnow()
    body = {
        "code": "REUSE1",
        "name": "Reusable",
        "type": "FIXED_AMOUNT",
        "value": 5,
        "valid_from": now.isoformat(),
        "valid_to": (now + timedelta(days=7)).isoformat(),
    }
    first = client.post("/api/vouchers", json=body, headers=admin_headers).json()["data"]["result"]["voucher"]
    assert client.delete(f"/api/vouchers/{first['id']}", headers=admin_headers).status_code == 200

    again = client.post("/api/vouchers", json=body, headers=admin_headers)
    assert again.status_code == 201
    assert again.json()["data"]["result"]["voucher"]["id"] != first["id"]
    assert session.query(m.Voucher).filter_by(code="REUSE1").count() == 2

    clash = client.post("/api/vouchers", json=body, headers=admin_headers)
    assert clash.status_code == 409
    assert clash.json()["error"]["code"] == "VOUCHER-CONFLICT-201"


# ─────────────────────────────────────────────
# admin updates
# ─────────────────────────────────────────────
def test_update_renames_and_edits(client, admin_headers, voucher):
    res = client.put(
        f"/api/vouchers/{voucher.id}",
        json={"code": "save15", "name": "Save more", "value": 15, "min_order_amount": 50},
        headers=admin_headers,
    )
    assert res.status_code == 200
    updated = res.json()["data"]["result"]["voucher"]
    assert updated["code"] == "SAVE15"
    assert updated["name"] == "Save more"
    assert updated["value"] == 15.0
    assert updated["min_order_amount"] == 50.0


def test_update_rejects_taken_code(client, session, admin_headers, voucher):
    other = make_voucher(session, code="OTHER5", type="FIXED_AMOUNT", value="5")

    res = client.put(f"/api/vouchers/{other.id}", json={"code": "save10"}, headers=admin_headers)
    assert res.status_code == 409
    assert res.json()["error"]["code"] == "VOUCHER-CONFLICT-201"

    # keeping its own code is not a conflict
    same = client.put(f"/api/vouchers/{other.id}", json={"code": "OTHER5", "name": "Other"}, headers=admin_headers)
    assert same.status_code == 200


def test_update_may_take_a_deleted_code(client, session, admin_headers, voucher):
    retired = make_voucher(session, code="OLD10", is_deleted=True, is_active=False)

    res = client.put(f"/api/vouchers/{voucher.id}", json={"code": "old10"}, headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["data"]["result"]["voucher"]["code"] == "OLD10"
    session.expire_all()
    assert session.get(m.Voucher, retired.id).is_deleted is True


def test_usage_limit_cannot_drop_below_uses(client, session, user, other_user, admin_headers, voucher):
    _usage(session, voucher, user)
    _usage(session, voucher, other_user)

    too_low = client.put(f"/api/vouchers/{voucher.id}", json={"usage_limit": 1}, headers=admin_headers)
    assert too_low.status_code == 422
    assert too_low.json()["error"]["code"] == "VOUCHER-VALID-008"
    session.expire_all()
    assert session.get(m.Voucher, voucher.id).usage_limit == 10

    exact = client.put(f"/api/vouchers/{voucher.id}", json={"usage_limit": 2}, headers=admin_headers)
    assert exact.status_code == 200
    assert exact.json()["data"]["result"]["voucher"]["remaining_uses"] == 0


def test_usage_limit_ignores_refunded_uses(client, session, user, other_user, admin_headers, voucher):
    _usage(session, voucher, user)
    _usage(session, voucher, other_user, refunded=True)

    res = client.put(f"/api/vouchers/{voucher.id}", json={"usage_limit": 1}, headers=admin_headers)
    assert res.status_code == 200


def test_switch_to_free_shipping_zeroes_value(client, admin_headers, voucher):
    res = client.put(f"/api/vouchers/{voucher.id}", json={"type": "free_shipping"}, headers=admin_headers)
    assert res.status_code == 200
    updated = res.json()["data"]["result"]["voucher"]
    assert updated["type"] == "FREE_SHIPPING"
    assert updated["value"] == 0.0


def test_update_validates_rules(client, admin_headers, voucher):
    res = client.put(f"/api/vouchers/{voucher.id}", json={"value": 120}, headers=admin_headers)
    assert res.json()["error"]["code"] == "VOUCHER-VALID-005"

    missing = client.put("/api/vouchers/9999", json={"name": "Ghost"}, headers=admin_headers)
    assert missing.status_code == 404


def test_customer_cannot_manage_vouchers(client, user_headers):
    res = client.get("/api/vouchers", headers=user_headers)
    assert res.status_code == 403
    assert res.json()["error"]["code"] == "AUTH-DENY-003"


def test_used_voucher_cannot_be_deleted(client, session, user, admin_headers, voucher):
    _usage(session, voucher, user)
    res = client.delete(f"/api/vouchers/{voucher.id}", headers=admin_headers)
    assert res.status_code == 409
    assert res.json()["error"]["code"] == "VOUCHER-STATE-451"


def test_voucher_stats(client, session, user, other_user, admin_headers, voucher):
    _usage(session, voucher, user)
    _usage(session, voucher, other_user, refunded=True)
    stats = client.get(f"/api/vouchers/{voucher.id}/stats", headers=admin_headers).json()["data"]["result"]
    assert stats["usage_count"] == 1
    assert stats["refunded_count"] == 1
    assert stats["total_discount"] == 10.0
    assert stats["remaining_uses"] == 9
