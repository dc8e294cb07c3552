# 📄 bookstore/routers/addresses/addresses.py
# Page: my page / shipping addresses
# Role: receive request → call AddressService → wrap response
# Stage: v1.0

from __future__ import annotations

from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from bookstore.db.session import get_sync_session
from bookstore.routers.common import ActionResponse, PingResponse, ok, ping as ping_page
from bookstore.security.guard import require_user
from bookstore.services.addresses.address_service import AddressService

PAGE_ID = "addresses.main"
PAGE_VERSION = "v1.0"

ROUTE_PREFIX = "/api/addresses"
ROUTE_TAGS = ["addresses"]

addresses = APIRouter(prefix=ROUTE_PREFIX, tags=ROUTE_TAGS)
__all__ = ["addresses"]


def get_service(
    user: Dict[str, Any] = Depends(require_user),
    session: Session = Depends(get_sync_session),
) -> AddressService:
    return AddressService(session=session, user=user)


class AddressCreateRequest(BaseModel):
    name: str
    phone: str
    address: str
    city: str
    district: str
    ward: str
    is_default: bool = False


class AddressUpdateRequest(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    ward: Optional[str] = None
    is_default: Optional[bool] = None


@addresses.get("/ping", response_model=PingResponse, summary="[system] addresses health check")
def ping():
    return ping_page(PAGE_ID, PAGE_VERSION)


@addresses.get("", response_model=ActionResponse, summary="[read] my addresses (default first)")
def list_addresses(svc: AddressService = Depends(get_service)):
    return ok(svc.list_addresses())


@addresses.get("/default", response_model=ActionResponse, summary="[read] my default address")
def get_default(svc: AddressService = Depends(get_service)):
    return ok(svc.get_default())


@addresses.get(
    "/{address_id}",
    response_model=ActionResponse,
    summary="[read] address detail",
    responses={404: {"description": "NOTFOUND"}},
)
def get_address(address_id: int, svc: AddressService = Depends(get_service)):
    return ok(svc.get_address(address_id=address_id))


@addresses.post("", response_model=ActionResponse, status_code=201, summary="[write] add address")
def create_address(payload: AddressCreateRequest, svc: AddressService = Depends(get_service)):
    return ok(svc.create_address(data=payload.model_dump()))


@addresses.put("/{address_id}", response_model=ActionResponse, summary="[write] update address")
def update_address(address_id: int, payload: AddressUpdateRequest, svc: AddressService = Depends(get_service)):
    return ok(svc.update_address(address_id=address_id, data=payload.model_dump(exclude_none=True)))


@addresses.delete("/{address_id}", response_model=ActionResponse, summary="[write] delete address")
def delete_address(address_id: int, svc: AddressService = Depends(get_service)):
    return ok(svc.delete_address(address_id=address_id))


@addresses.patch("/{address_id}/default", response_model=ActionResponse, summary="[write] make default")
def set_default(address_id: int, svc: AddressService = Depends(get_service)):
    return ok(svc.set_default(address_id=address_id))
