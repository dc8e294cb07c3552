# 📄 bookstore/routers/payments/payments.py
# Page: payments
# Role: method list, admin list/export, payments of one order, payment confirmation
# Stage: v1.0

from __future__ import annotations

from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from bookstore.db.session import get_sync_session
from bookstore.routers.common import ActionResponse, PingResponse, ok, ping as ping_page, xlsx_response
from bookstore.security.guard import guard, require_admin, require_user
from bookstore.services.orders.order_service import OrderService
from bookstore.services.payments.payment_service import PaymentService

PAGE_ID = "payments.main"
PAGE_VERSION = "v1.0"

ROUTE_PREFIX = "/api/payments"
ROUTE_TAGS = ["payments"]

payments = APIRouter(prefix=ROUTE_PREFIX, tags=ROUTE_TAGS)
__all__ = ["payments"]


def get_public_service(
    user: Optional[Dict[str, Any]] = Depends(guard),
    session: Session = Depends(get_sync_session),
) -> PaymentService:
    return PaymentService(session=session, user=user)


def get_service(
    user: Dict[str, Any] = Depends(require_user),
    session: Session = Depends(get_sync_session),
) -> PaymentService:
    return PaymentService(session=session, user=user)


def get_admin_service(
    user: Dict[str, Any] = Depends(require_admin),
    session: Session = Depends(get_sync_session),
) -> PaymentService:
    return PaymentService(session=session, user=user)


def get_order_service(
    user: Dict[str, Any] = Depends(require_admin),
    session: Session = Depends(get_sync_session),
) -> OrderService:
    return OrderService(session=session, user=user)


class PaymentConfirmRequest(BaseModel):
    transaction_id: Optional[str] = None


@payments.get("/ping", response_model=PingResponse, summary="[system] payments health check")
def ping():
    return ping_page(PAGE_ID, PAGE_VERSION)


@payments.get("/methods", response_model=ActionResponse, summary="[read] supported payment methods")
def methods(svc: PaymentService = Depends(get_public_service)):
    return ok(svc.methods())


@payments.get("", response_model=ActionResponse, summary="[read] payment list (admin)")
def list_payments(
    page: int = Query(1),
    limit: int = Query(10),
    search: Optional[str] = Query(None, description="transaction code / order code / customer"),
    status: Optional[str] = None,
    svc: PaymentService = Depends(get_admin_service),
):
    return ok(svc.list_payments(page=page, limit=limit, search=search, status=status))


@payments.get("/export", summary="[read] payment export xlsx (admin)")
def export_payments(status: Optional[str] = None, svc: PaymentService = Depends(get_admin_service)):
    filename, content = svc.export_xlsx(status=status)
    return xlsx_response(filename, content)


@payments.get(
    "/order/{order_id}",
    response_model=ActionResponse,
    summary="[read] payments of an order (owner or admin)",
    responses={403: {"description": "DENY"}, 404: {"description": "NOTFOUND"}},
)
def get_for_order(order_id: int, svc: PaymentService = Depends(get_service)):
    return ok(svc.get_for_order(order_id=order_id))


@payments.post(
    "/order/{order_id}/confirm",
    response_model=ActionResponse,
    summary="[write] mark an order as paid (admin / gateway callback)",
    responses={409: {"description": "STATE - cancelled order"}},
)
def confirm_payment(
    order_id: int,
    payload: Optional[PaymentConfirmRequest] = None,
    svc: OrderService = Depends(get_order_service),
):
    transaction_id = payload.transaction_id if payload is not None else None
    return ok(svc.confirm_payment(order_id=order_id, transaction_id=transaction_id))
