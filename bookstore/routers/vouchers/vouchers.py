# 📄 bookstore/routers/vouchers/vouchers.py
# Page: vouchers
# Role:
#   - customer: vouchers available to me, checkout preview (validate + discount)
#   - admin: list/detail/by-code, create/update/delete, usage stats
# Stage: v2.0

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Dict, Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from bookstore.db.session import get_sync_session
from bookstore.routers.common import ActionResponse, PingResponse, ok, ping as ping_page
from bookstore.security.guard import require_admin, require_user
from bookstore.services.vouchers.voucher_service import VoucherService

PAGE_ID = "vouchers.main"
PAGE_VERSION = "v2.0"

ROUTE_PREFIX = "/api/vouchers"
ROUTE_TAGS = ["vouchers"]

vouchers = APIRouter(prefix=ROUTE_PREFIX, tags=ROUTE_TAGS)
__all__ = ["vouchers"]


# ─────────────────────────────────────────────────────────
# Dependencies
# ─────────────────────────────────────────────────────────
def get_service(
    user: Dict[str, Any] = Depends(require_user),
    session: Session = Depends(get_sync_session),
) -> VoucherService:
    return VoucherService(session=session, user=user)


def get_admin_service(
    user: Dict[str, Any] = Depends(require_admin),
    session: Session = Depends(get_sync_session),
) -> VoucherService:
    return VoucherService(session=session, user=user)


# ─────────────────────────────────────────────────────────
# DTO
# ─────────────────────────────────────────────────────────
class VoucherFields(BaseModel):
    description: Optional[str] = None
    min_order_amount: Optional[float] = Field(default=None, ge=0)
    max_discount_amount: Optional[float] = Field(default=None, ge=0, description="PERCENTAGE cap")
    is_active: Optional[bool] = None
    applicable_categories: Optional[List[int]] = None
    applicable_books: Optional[List[int]] = None
    applicable_users: Optional[List[int]] = None


class VoucherCreateRequest(VoucherFields):
    code: str = Field(..., max_length=20)
    name: str
    type: str = Field(..., description="PERCENTAGE | FIXED_AMOUNT | FREE_SHIPPING")
    value: float = Field(default=0, ge=0)
    usage_limit: int = Field(default=1, ge=1)
    valid_from: datetime
    valid_to: datetime


class VoucherUpdateRequest(VoucherFields):
    code: Optional[str] = Field(default=None, max_length=20)
    name: Optional[str] = None
    type: Optional[str] = None
    value: Optional[float] = Field(default=None, ge=0)
    usage_limit: Optional[int] = Field(default=None, ge=1)
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None


class PreviewLine(BaseModel):
    book_id: int
    quantity: int = Field(default=1, ge=1)


class VoucherPreviewRequest(BaseModel):
    code: str
    items: List[PreviewLine]
    shipping_provider_id: Optional[int] = None


# ─────────────────────────────────────────────────────────
# [system] ping
# ─────────────────────────────────────────────────────────
@vouchers.get("/ping", response_model=PingResponse, summary="[system] vouchers health check")
def ping():
    return ping_page(PAGE_ID, PAGE_VERSION)


# ─────────────────────────────────────────────────────────
# 1) customer
# ─────────────────────────────────────────────────────────
@vouchers.get("/available", response_model=ActionResponse, summary="[read] vouchers I can apply now")
def available(svc: VoucherService = Depends(get_service)):
    return ok(svc.available_for_me())


@vouchers.post(
    "/validate",
    response_model=ActionResponse,
    summary="[read] check a code against a cart and preview the discount",
    responses={400: {"description": "STATE - voucher not applicable"}, 404: {"description": "NOTFOUND"}},
)
def preview(payload: VoucherPreviewRequest, svc: VoucherService = Depends(get_service)):
    """
    No side effects: nothing is reserved until checkout records the usage.
    """
    result = svc.preview(
        code=payload.code,
        items=[line.model_dump() for line in payload.items],
        shipping_provider_id=payload.shipping_provider_id,
    )
    return ok(result)


# ─────────────────────────────────────────────────────────
# 2) admin
# ─────────────────────────────────────────────────────────
@vouchers.get("", response_model=ActionResponse, summary="[read] voucher list (admin)")
def list_vouchers(
    page: int = Query(1),
    limit: int = Query(10),
    search: Optional[str] = None,
    status: str = Query("all", description="all | active | inactive"),
    type: Optional[str] = None,
    svc: VoucherService = Depends(get_admin_service),
):
    return ok(svc.list_vouchers(page=page, limit=limit, search=search, status=status, voucher_type=type))


@vouchers.get("/code/{code}", response_model=ActionResponse, summary="[read] voucher by code (admin)")
def get_by_code(code: str, svc: VoucherService = Depends(get_admin_service)):
    return ok(svc.get_by_code(code=code))


@vouchers.get(
    "/{voucher_id}",
    response_model=ActionResponse,
    summary="[read] voucher detail (admin)",
    responses={404: {"description": "NOTFOUND"}},
)
def get_voucher(voucher_id: int, svc: VoucherService = Depends(get_admin_service)):
    return ok(svc.get_voucher(voucher_id=voucher_id))


@vouchers.get("/{voucher_id}/stats", response_model=ActionResponse, summary="[read] usage stats (admin)")
def voucher_stats(voucher_id: int, svc: VoucherService = Depends(get_admin_service)):
    return ok(svc.stats(voucher_id=voucher_id))


@vouchers.post(
    "",
    response_model=ActionResponse,
    status_code=201,
    summary="[write] create voucher",
    responses={409: {"description": "CONFLICT - code"}, 422: {"description": "VALID"}},
)
def create_voucher(payload: VoucherCreateRequest, svc: VoucherService = Depends(get_admin_service)):
    return ok(svc.create_voucher(data=payload.model_dump(exclude_none=True)))


@vouchers.put("/{voucher_id}", response_model=ActionResponse, summary="[write] update voucher")
def update_voucher(voucher_id: int, payload: VoucherUpdateRequest, svc: VoucherService = Depends(get_admin_service)):
    return ok(svc.update_voucher(voucher_id=voucher_id, data=payload.model_dump(exclude_none=True)))


@vouchers.delete(
    "/{voucher_id}",
    response_model=ActionResponse,
    summary="[write] delete an unused voucher",
    responses={409: {"description": "STATE - already used"}},
)
def delete_voucher(voucher_id: int, svc: VoucherService = Depends(get_admin_service)):
    return ok(svc.delete_voucher(voucher_id=voucher_id))
