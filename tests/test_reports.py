from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from bookstore import models as m
from bookstore.services.reports.reports_service import ReportsService, growth, windows

from conftest import payload_for

NOW = datetime(2024, 6, 30, 12, 0, 0)


def _order(session, user, *, code, total, days_ago, status="PENDING", payment_status="PENDING"):
    order = m.Order(
        order_code=code,
        user_id=user.id,
        total_price=Decimal(total),
        original_amount=Decimal(total),
        discount_amount=Decimal("0"),
        status=status,
        payment_status=payment_status,
        created_at=NOW - timedelta(days=days_ago),
    )
    session.add(order)
    session.commit()
    return order


def test_growth():
    assert growth(150, 100) == 50.0
    assert growth(50, 200) == -75.0
    assert growth(10, 0) == 100.0
    assert growth(0, 0) == 0.0
    assert growth(1, 3) == -66.67


def test_windows_are_adjacent():
    prev_start, start, end = windows("7days", NOW)
    assert end == NOW
    assert start == NOW - timedelta(days=7)
    assert prev_start == NOW - timedelta(days=14)


def test_unknown_window_falls_back_to_thirty_days():
    prev_start, start, end = windows("decade", NOW)
    assert end - start == timedelta(days=30)


@pytest.mark.anyio
async def test_analytics_figures(session, user, other_user, admin, book, cheap_book):
    _order(session, user, code="ORD-A", total="100.00", days_ago=2, status="DELIVERED", payment_status="COMPLETED")
    _order(session, user, code="ORD-B", total="50.00", days_ago=3, status="CONFIRMED", payment_status="COMPLETED")
    _order(session, other_user, code="ORD-C", total="70.00", days_ago=4)
    _order(session, other_user, code="ORD-D", total="999.00", days_ago=5, status="CANCELLED", payment_status="REFUNDED")
    _order(session, user, code="ORD-E", total="40.00", days_ago=10, status="DELIVERED", payment_status="COMPLETED")

    book.view_count = 12
    cheap_book.view_count = 30
    session.commit()

    svc = ReportsService(session=session, user=payload_for(admin))
    result = await svc.analytics(range_key="7days", now=NOW)

    assert result["range"] == "7days"
    assert result["sales"] == {"total": 150.0, "previous": 40.0, "growth": 275.0}
    assert result["orders"]["total"] == 4
    assert result["orders"]["previous"] == 1
    assert result["orders"]["growth"] == 300.0
    assert result["orders"]["status"] == {"completed": 1, "pending": 1, "cancelled": 1}
    assert result["customers"]["total"] == 2
    assert [b["name"] for b in result["top_books"]] == ["Pocket Poems", "The Long Road"]
    assert result["top_books"][0] == {"id": cheap_book.id, "name": "Pocket Poems", "views": 30, "price": 20.0}


@pytest.mark.anyio
async def test_unknown_range_is_reported_as_default(session, admin):
    result = await ReportsService(session=session, user=payload_for(admin)).analytics(range_key="forever", now=NOW)
    assert result["range"] == "30days"
    assert result["sales"]["growth"] == 0.0


def test_analytics_endpoint(client, admin_headers, user, book):
    res = client.get("/api/reports/analytics", params={"range": "90days"}, headers=admin_headers)
    assert res.status_code == 200
    result = res.json()["data"]["result"]
    assert result["range"] == "90days"
    assert result["customers"]["new"] == 1
    assert result["customers"]["growth"] == 100.0
    assert set(result) == {"range", "period", "sales", "orders", "customers", "top_books"}


def test_analytics_requires_admin(client, user_headers):
    res = client.get("/api/reports/analytics", headers=user_headers)
    assert res.status_code == 403
