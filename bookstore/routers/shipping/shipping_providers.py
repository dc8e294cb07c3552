# 📄 bookstore/routers/shipping/shipping_providers.py
# Page: shipping providers
# Role: public active list for checkout; admin list/detail/create/update/delete
# Stage: v1.0

from __future__ import annotations

from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from bookstore.db.session import get_sync_session
from bookstore.routers.common import ActionResponse, PingResponse, ok, ping as ping_page
from bookstore.security.guard import guard, require_admin
from bookstore.services.shipping.shipping_provider_service import ShippingProviderService

PAGE_ID = "shipping.providers"
PAGE_VERSION = "v1.0"

ROUTE_PREFIX = "/api/shipping-providers"
ROUTE_TAGS = ["shipping-providers"]

shipping_providers = APIRouter(prefix=ROUTE_PREFIX, tags=ROUTE_TAGS)
__all__ = ["shipping_providers"]


def get_service(
    user: Optional[Dict[str, Any]] = Depends(guard),
    session: Session = Depends(get_sync_session),
) -> ShippingProviderService:
    return ShippingProviderService(session=session, user=user)


def get_admin_service(
    user: Dict[str, Any] = Depends(require_admin),
    session: Session = Depends(get_sync_session),
) -> ShippingProviderService:
    return ShippingProviderService(session=session, user=user)


class ProviderFields(BaseModel):
    estimated_time: Optional[str] = Field(default=None, description='e.g. "2-3 days"')
    description: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_email: Optional[str] = None
    contact_website: Optional[str] = None
    is_active: Optional[bool] = None


class ProviderCreateRequest(ProviderFields):
    name: str
    code: str = Field(..., max_length=10)
    base_fee: float = Field(default=0, ge=0)


class ProviderUpdateRequest(ProviderFields):
    name: Optional[str] = None
    code: Optional[str] = Field(default=None, max_length=10)
    base_fee: Optional[float] = Field(default=None, ge=0)


@shipping_providers.get("/ping", response_model=PingResponse, summary="[system] shipping providers health check")
def ping():
    return ping_page(PAGE_ID, PAGE_VERSION)


@shipping_providers.get("/active", response_model=ActionResponse, summary="[read] active providers (checkout)")
def list_active(svc: ShippingProviderService = Depends(get_service)):
    return ok(svc.list_active())


@shipping_providers.get("/code/{code}", response_model=ActionResponse, summary="[read] provider by code")
def get_by_code(code: str, svc: ShippingProviderService = Depends(get_service)):
    return ok(svc.get_by_code(code=code))


@shipping_providers.get("", response_model=ActionResponse, summary="[read] all providers (admin)")
def list_providers(
    search: Optional[str] = None,
    status: Optional[str] = Query(None, description="active | inactive"),
    sort_by: str = Query("name"),
    sort_order: str = Query("asc"),
    svc: ShippingProviderService = Depends(get_admin_service),
):
    return ok(svc.list_providers(search=search, status=status, sort_by=sort_by, sort_order=sort_order))


@shipping_providers.get(
    "/{provider_id}",
    response_model=ActionResponse,
    summary="[read] provider detail",
    responses={404: {"description": "NOTFOUND"}},
)
def get_provider(provider_id: int, svc: ShippingProviderService = Depends(get_service)):
    return ok(svc.get_provider(provider_id=provider_id))


@shipping_providers.post(
    "",
    response_model=ActionResponse,
    status_code=201,
    summary="[write] create provider",
    responses={409: {"description": "CONFLICT - code"}},
)
def create_provider(payload: ProviderCreateRequest, svc: ShippingProviderService = Depends(get_admin_service)):
    return ok(svc.create_provider(data=payload.model_dump(exclude_none=True)))


@shipping_providers.put("/{provider_id}", response_model=ActionResponse, summary="[write] update provider")
def update_provider(
    provider_id: int,
    payload: ProviderUpdateRequest,
    svc: ShippingProviderService = Depends(get_admin_service),
):
    return ok(svc.update_provider(provider_id=provider_id, data=payload.model_dump(exclude_none=True)))


@shipping_providers.delete("/{provider_id}", response_model=ActionResponse, summary="[write] delete provider")
def delete_provider(provider_id: int, svc: ShippingProviderService = Depends(get_admin_service)):
    return ok(svc.delete_provider(provider_id=provider_id))
