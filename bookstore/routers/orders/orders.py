# 📄 bookstore/routers/orders/orders.py
# Page: checkout / orders
# Role: receive request → validate DTO → call OrderService → wrap response
# Stage: v2.1
#
# ✅ Rules
# - checkout, cancellation and status changes are one service call each (one transaction)
# - no stock/voucher/payment logic here

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional, Dict, Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from bookstore.db.session import get_sync_session
from bookstore.routers.common import ActionResponse, PingResponse, ok, ping as ping_page, xlsx_response
from bookstore.security.guard import require_admin, require_user
from bookstore.services.orders.order_service import DEFAULT_PENDING_TIMEOUT_MINUTES, OrderService
from bookstore.system.error_codes import DomainError

PAGE_ID = "orders.main"
PAGE_VERSION = "v2.1"

ROUTE_PREFIX = "/api/orders"
ROUTE_TAGS = ["orders"]

orders = APIRouter(prefix=ROUTE_PREFIX, tags=ROUTE_TAGS)
__all__ = ["orders"]


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise DomainError(
            "ORDER-VALID-009",
            detail="Dates must be YYYY-MM-DD.",
            ctx={"value": value},
            stage="router",
        )


# ─────────────────────────────────────────────────────────
# Dependencies
# ─────────────────────────────────────────────────────────
def get_service(
    user: Dict[str, Any] = Depends(require_user),
    session: Session = Depends(get_sync_session),
) -> OrderService:
    return OrderService(session=session, user=user)


def get_admin_service(
    user: Dict[str, Any] = Depends(require_admin),
    session: Session = Depends(get_sync_session),
) -> OrderService:
    return OrderService(session=session, user=user)


# ─────────────────────────────────────────────────────────
# DTO
# ─────────────────────────────────────────────────────────
class OrderLine(BaseModel):
    book_id: int
    quantity: int = Field(..., ge=1)


class OrderCreateRequest(BaseModel):
    items: List[OrderLine] = Field(..., description="Same book on several lines is merged")
    shipping_address_id: int
    shipping_provider_id: int
    voucher_code: Optional[str] = None
    payment_method: str = Field(default="COD", description="COD | BANK_TRANSFER | MOMO | ZALOPAY")
    note: Optional[str] = Field(default=None, max_length=500)


class OrderCancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=255)


class OrderStatusRequest(BaseModel):
    status: str = Field(..., description="PENDING | CONFIRMED | SHIPPED | DELIVERED | CANCELLED")


class StaleCancelRequest(BaseModel):
    older_than_minutes: int = Field(default=DEFAULT_PENDING_TIMEOUT_MINUTES, ge=1)


# ─────────────────────────────────────────────────────────
# [system] ping
# ─────────────────────────────────────────────────────────
@orders.get("/ping", response_model=PingResponse, summary="[system] orders health check")
def ping():
    return ping_page(PAGE_ID, PAGE_VERSION)


# ─────────────────────────────────────────────────────────
# 1) checkout
# ─────────────────────────────────────────────────────────
@orders.post(
    "",
    response_model=ActionResponse,
    status_code=201,
    summary="[write] place an order",
    responses={
        400: {"description": "STATE - insufficient stock / voucher not applicable"},
        404: {"description": "NOTFOUND - address / book / voucher"},
        422: {"description": "VALID"},
    },
)
def create_order(payload: OrderCreateRequest, svc: OrderService = Depends(get_service)):
    result = svc.create_order(
        items=[line.model_dump() for line in payload.items],
        shipping_address_id=payload.shipping_address_id,
        shipping_provider_id=payload.shipping_provider_id,
        voucher_code=payload.voucher_code,
        payment_method=payload.payment_method,
        note=payload.note,
    )
    return ok(result)


# ─────────────────────────────────────────────────────────
# 2) read
# ─────────────────────────────────────────────────────────
@orders.get("/my", response_model=ActionResponse, summary="[read] my orders")
def list_my_orders(
    page: int = Query(1),
    limit: int = Query(10),
    status: Optional[str] = None,
    svc: OrderService = Depends(get_service),
):
    return ok(svc.list_mine(page=page, limit=limit, status=status))


@orders.get("/admin", response_model=ActionResponse, summary="[read] all orders (admin)")
def list_all_orders(
    page: int = Query(1),
    limit: int = Query(10),
    status: Optional[str] = None,
    user_id: Optional[int] = None,
    search: Optional[str] = Query(None, description="order code / customer name / email"),
    svc: OrderService = Depends(get_admin_service),
):
    return ok(svc.list_all(page=page, limit=limit, status=status, user_id=user_id, search=search))


@orders.get("/admin/export", summary="[read] order export xlsx (admin)")
def export_orders(
    status: Optional[str] = None,
    from_date: Optional[str] = None,
    to_date: Optional[str] = None,
    svc: OrderService = Depends(get_admin_service),
):
    filename, content = svc.export_xlsx(
        status=status,
        date_from=_parse_date(from_date),
        date_to=_parse_date(to_date),
    )
    return xlsx_response(filename, content)


@orders.get(
    "/{order_id}",
    response_model=ActionResponse,
    summary="[read] order detail (owner or admin)",
    responses={403: {"description": "DENY"}, 404: {"description": "NOTFOUND"}},
)
def get_order(order_id: int, svc: OrderService = Depends(get_service)):
    return ok(svc.get_order(order_id=order_id))


# ─────────────────────────────────────────────────────────
# 3) state changes
# ─────────────────────────────────────────────────────────
@orders.put(
    "/{order_id}/cancel",
    response_model=ActionResponse,
    summary="[write] cancel my order",
    responses={400: {"description": "STATE - not cancellable"}, 403: {"description": "DENY"}},
)
def cancel_order(
    order_id: int,
    payload: Optional[OrderCancelRequest] = None,
    svc: OrderService = Depends(get_service),
):
    reason = payload.reason if payload is not None else None
    return ok(svc.cancel_order(order_id=order_id, reason=reason))


@orders.put(
    "/{order_id}/status",
    response_model=ActionResponse,
    summary="[write] change order status (admin)",
    responses={400: {"description": "STATE - transition not allowed"}, 422: {"description": "VALID"}},
)
def update_status(order_id: int, payload: OrderStatusRequest, svc: OrderService = Depends(get_admin_service)):
    return ok(svc.update_status(order_id=order_id, status=payload.status))


@orders.post(
    "/admin/cancel-stale",
    response_model=ActionResponse,
    summary="[write] cancel unpaid PENDING orders older than N minutes (admin)",
)
def cancel_stale(payload: Optional[StaleCancelRequest] = None, svc: OrderService = Depends(get_admin_service)):
    minutes = payload.older_than_minutes if payload is not None else DEFAULT_PENDING_TIMEOUT_MINUTES
    return ok(svc.cancel_stale_pending(older_than_minutes=minutes))
