# 📄 bookstore/routers/cart/cart.py
# Page: cart
# Role: receive request → call CartService → wrap response
# Stage: v1.0

from __future__ import annotations

from typing import Dict, Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from bookstore.db.session import get_sync_session
from bookstore.routers.common import ActionResponse, PingResponse, ok, ping as ping_page
from bookstore.security.guard import require_user
from bookstore.services.cart.cart_service import CartService

PAGE_ID = "cart.main"
PAGE_VERSION = "v1.0"

ROUTE_PREFIX = "/api/cart"
ROUTE_TAGS = ["cart"]

cart = APIRouter(prefix=ROUTE_PREFIX, tags=ROUTE_TAGS)
__all__ = ["cart"]


def get_service(
    user: Dict[str, Any] = Depends(require_user),
    session: Session = Depends(get_sync_session),
) -> CartService:
    return CartService(session=session, user=user)


class CartAddRequest(BaseModel):
    book_id: int
    quantity: int = Field(default=1, ge=1)


class CartUpdateRequest(BaseModel):
    book_id: int
    quantity: int = Field(..., description="0 removes the line")


@cart.get("/ping", response_model=PingResponse, summary="[system] cart health check")
def ping():
    return ping_page(PAGE_ID, PAGE_VERSION)


@cart.get("", response_model=ActionResponse, summary="[read] my cart")
def get_cart(svc: CartService = Depends(get_service)):
    return ok(svc.get_cart())


@cart.post(
    "/add",
    response_model=ActionResponse,
    summary="[write] add a book",
    responses={400: {"description": "STATE - insufficient stock / unavailable"}, 404: {"description": "NOTFOUND"}},
)
def add_item(payload: CartAddRequest, svc: CartService = Depends(get_service)):
    return ok(svc.add_item(book_id=payload.book_id, quantity=payload.quantity))


@cart.put("/update", response_model=ActionResponse, summary="[write] set line quantity")
def update_item(payload: CartUpdateRequest, svc: CartService = Depends(get_service)):
    return ok(svc.update_item(book_id=payload.book_id, quantity=payload.quantity))


@cart.delete("/remove/{book_id}", response_model=ActionResponse, summary="[write] remove a line")
def remove_item(book_id: int, svc: CartService = Depends(get_service)):
    return ok(svc.remove_item(book_id=book_id))


@cart.delete("/clear", response_model=ActionResponse, summary="[write] empty the cart")
def clear(svc: CartService = Depends(get_service)):
    return ok(svc.clear())


@cart.get("/check/{book_id}", response_model=ActionResponse, summary="[read] is the book in my cart")
def check(book_id: int, svc: CartService = Depends(get_service)):
    return ok(svc.check(book_id=book_id))
