# 📄 bookstore/routers/reports/reports.py
# Page: admin dashboard / analytics
# Role: request → service call → response wrap (async session, read only)
# Stage: v1.0
# Rule: routers never compute, validate, query or change state

from __future__ import annotations

from typing import Dict, Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bookstore.db.session import get_async_session
from bookstore.routers.common import ActionResponse, PingResponse, ok, ping as ping_page
from bookstore.security.guard import require_admin
from bookstore.services.reports.reports_service import DEFAULT_RANGE, ReportsService

PAGE_ID = "reports.analytics"
PAGE_VERSION = "v1.0"

ROUTE_PREFIX = "/api/reports"
ROUTE_TAGS = ["reports"]

reports = APIRouter(prefix=ROUTE_PREFIX, tags=ROUTE_TAGS)
__all__ = ["reports"]


def get_service(
    user: Dict[str, Any] = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
) -> ReportsService:
    return ReportsService(session=session, user=user)


@reports.get("/ping", response_model=PingResponse, summary="[system] reports health check")
def ping():
    return ping_page(PAGE_ID, PAGE_VERSION)


@reports.get(
    "/analytics",
    response_model=ActionResponse,
    summary="[read] sales / orders / customers vs. previous period",
)
async def analytics(
    range: str = Query(DEFAULT_RANGE, description="7days | 30days | 90days | 1year"),
    svc: ReportsService = Depends(get_service),
):
    return ok(await svc.analytics(range_key=range))
