# 📄 bookstore/services/reports/reports_service.py
# Page: admin dashboard / analytics
# Role: revenue / order / customer figures for a window compared to the previous
#       window of equal length, plus the most viewed books
# Stage: v1.0

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.ext.asyncio import AsyncSession

from bookstore import models as m
from bookstore.services.common import as_float
from bookstore.system.error_codes import DomainError

PAGE_ID = "reports.analytics"
PAGE_VERSION = "v1.0"

RANGES: Dict[str, timedelta] = {
    "7days": timedelta(days=7),
    "30days": timedelta(days=30),
    "90days": timedelta(days=90),
    "1year": timedelta(days=365),
}
DEFAULT_RANGE = "30days"
TOP_BOOKS_LIMIT = 5


def _get_session_adapter(session: Any) -> Any:
    if isinstance(session, (Session, AsyncSession)):
        return session

    raise DomainError(
        "SYSTEM-DB-901",
        detail="Unsupported database session type.",
        ctx={"page_id": PAGE_ID, "session_type": str(type(session))},
        stage="service",
        domain=PAGE_ID,
    )


def growth(current: float, previous: float) -> float:
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round((current - previous) / previous * 100.0, 2)


def windows(range_key: str, now: Optional[datetime] = None) -> Tuple[datetime, datetime, datetime]:
    """(previous_start, start, end); the previous window ends where the current one starts."""
    span = RANGES.get(range_key, RANGES[DEFAULT_RANGE])
    end = now or m.utcnow()
    start = end - span
    return start - span, start, end


class ReportsService:
    """
    Admin analytics.
    Read-only; runs on either the async session from get_async_session or a plain Session.
    """

    page_id: str = PAGE_ID
    page_version: str = PAGE_VERSION

    def __init__(self, *, session: Any, user: Dict[str, Any]):
        self.session = _get_session_adapter(session)
        self.user = user

    async def _scalar(self, stmt) -> Any:
        if isinstance(self.session, AsyncSession):
            return (await self.session.execute(stmt)).scalar_one()
        return self.session.execute(stmt).scalar_one()

    async def _scalars(self, stmt) -> List[Any]:
        if isinstance(self.session, AsyncSession):
            return list((await self.session.execute(stmt)).scalars().all())
        return list(self.session.execute(stmt).scalars().all())

    # -----------------------------------------------------
    # queries
    # -----------------------------------------------------
    async def _revenue(self, start: datetime, end: datetime) -> float:
        stmt = select(func.coalesce(func.sum(m.Order.total_price), 0)).where(
            m.Order.is_deleted.is_(False),
            m.Order.status != "CANCELLED",
            or_(m.Order.status == "DELIVERED", m.Order.payment_status == "COMPLETED"),
            m.Order.created_at >= start,
            m.Order.created_at < end,
        )
        return as_float(await self._scalar(stmt))

    async def _order_count(self, start: datetime, end: datetime, status: Optional[str] = None) -> int:
        conditions = [
            m.Order.is_deleted.is_(False),
            m.Order.created_at >= start,
            m.Order.created_at < end,
        ]
        if status:
            conditions.append(m.Order.status == status)
        stmt = select(func.count(m.Order.id)).where(and_(*conditions))
        return int(await self._scalar(stmt))

    async def _customer_count(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> int:
        conditions = [m.User.is_deleted.is_(False), m.User.role == "user"]
        if start is not None:
            conditions.append(m.User.created_at >= start)
        if end is not None:
            conditions.append(m.User.created_at < end)
        return int(await self._scalar(select(func.count(m.User.id)).where(*conditions)))

    async def _top_books(self) -> List[Dict[str, Any]]:
        books = await self._scalars(
            select(m.Book)
            .where(m.Book.is_deleted.is_(False))
            .order_by(m.Book.view_count.desc(), m.Book.id.asc())
            .limit(TOP_BOOKS_LIMIT)
        )
        return [
            {"id": b.id, "name": b.title, "views": b.view_count, "price": as_float(b.price)}
            for b in books
        ]

    # -----------------------------------------------------
    # [read] analytics
    # -----------------------------------------------------
    async def analytics(self, *, range_key: str = DEFAULT_RANGE, now: Optional[datetime] = None) -> Dict[str, Any]:
        if range_key not in RANGES:
            range_key = DEFAULT_RANGE
        prev_start, start, end = windows(range_key, now)

        revenue = await self._revenue(start, end)
        prev_revenue = await self._revenue(prev_start, start)

        orders_total = await self._order_count(start, end)
        prev_orders_total = await self._order_count(prev_start, start)

        new_customers = await self._customer_count(start, end)
        prev_new_customers = await self._customer_count(prev_start, start)

        return {
            "range": range_key,
            "period": {"start": start.isoformat(), "end": end.isoformat()},
            "sales": {
                "total": revenue,
                "previous": prev_revenue,
                "growth": growth(revenue, prev_revenue),
            },
            "orders": {
                "total": orders_total,
                "previous": prev_orders_total,
                "growth": growth(orders_total, prev_orders_total),
                "status": {
                    "completed": await self._order_count(start, end, "DELIVERED"),
                    "pending": await self._order_count(start, end, "PENDING"),
                    "cancelled": await self._order_count(start, end, "CANCELLED"),
                },
            },
            "customers": {
                "new": new_customers,
                "total": await self._customer_count(),
                "growth": growth(new_customers, prev_new_customers),
            },
            "top_books": await self._top_books(),
        }
