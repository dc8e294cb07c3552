# 📄 bookstore/routers/catalog/books.py
# Page: catalog / books
# Role: receive request → parse filters → call BookService → wrap response
# Stage: v1.1
# Rule: routers never compute, validate business rules or touch the DB

from __future__ import annotations

from datetime import date
from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from bookstore.db.session import get_sync_session
from bookstore.routers.common import ActionResponse, PingResponse, ok, ping as ping_page
from bookstore.security.guard import guard, require_admin
from bookstore.services.catalog.book_service import BookService

PAGE_ID = "catalog.books"
PAGE_VERSION = "v1.1"

ROUTE_PREFIX = "/api/books"
ROUTE_TAGS = ["books"]

books = APIRouter(prefix=ROUTE_PREFIX, tags=ROUTE_TAGS)
__all__ = ["books"]


# ─────────────────────────────────────────────────────────
# Dependencies
# ─────────────────────────────────────────────────────────
def get_service(
    user: Optional[Dict[str, Any]] = Depends(guard),
    session: Session = Depends(get_sync_session),
) -> BookService:
    """Public pages: anonymous callers allowed, admins see inactive books on request."""
    return BookService(session=session, user=user)


def get_admin_service(
    user: Dict[str, Any] = Depends(require_admin),
    session: Session = Depends(get_sync_session),
) -> BookService:
    return BookService(session=session, user=user)


# ─────────────────────────────────────────────────────────
# DTO
# ─────────────────────────────────────────────────────────
class BookFields(BaseModel):
    author: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    isbn: Optional[str] = None
    publisher: Optional[str] = None
    publication_date: Optional[date] = None
    pages: Optional[int] = None
    format: Optional[str] = Field(default=None, description="HARDCOVER | PAPERBACK | EBOOK | AUDIOBOOK")
    dimensions: Optional[str] = None
    weight: Optional[float] = None
    file_url: Optional[str] = None
    file_path: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    duration: Optional[int] = Field(default=None, description="Audiobook length in seconds")


class BookCreateRequest(BookFields):
    title: str
    price: float = Field(..., ge=0)
    stock: int = Field(default=0, ge=0)
    category_id: int


class BookUpdateRequest(BookFields):
    title: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    stock: Optional[int] = Field(default=None, ge=0)
    category_id: Optional[int] = None
    status: Optional[str] = None
    is_active: Optional[bool] = None


# ─────────────────────────────────────────────────────────
# [system] ping
# ─────────────────────────────────────────────────────────
@books.get("/ping", response_model=PingResponse, summary="[system] books health check")
def ping():
    return ping_page(PAGE_ID, PAGE_VERSION)


# ─────────────────────────────────────────────────────────
# 1) read
# ─────────────────────────────────────────────────────────
@books.get(
    "",
    response_model=ActionResponse,
    summary="[read] book list",
    responses={422: {"description": "VALID"}},
)
def list_books(
    page: int = Query(1),
    limit: int = Query(10),
    search: Optional[str] = None,
    category_id: Optional[int] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    stock_filter: Optional[str] = Query(None, description="in_stock | out_of_stock | low_stock"),
    format: Optional[str] = None,
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    include_inactive: bool = False,
    svc: BookService = Depends(get_service),
):
    result = svc.list_books(
        page=page,
        limit=limit,
        search=search,
        category_id=category_id,
        min_price=min_price,
        max_price=max_price,
        stock_filter=stock_filter,
        book_format=format,
        sort_by=sort_by,
        sort_order=sort_order,
        include_inactive=include_inactive,
    )
    return ok(result)


@books.get(
    "/{book_id}",
    response_model=ActionResponse,
    summary="[read] book detail (+1 view)",
    responses={404: {"description": "NOTFOUND"}},
)
def get_book(book_id: int, svc: BookService = Depends(get_service)):
    return ok(svc.get_book(book_id=book_id))


# ─────────────────────────────────────────────────────────
# 2) admin write
# ─────────────────────────────────────────────────────────
@books.post(
    "",
    response_model=ActionResponse,
    status_code=201,
    summary="[write] create book",
    responses={404: {"description": "NOTFOUND - category"}, 409: {"description": "CONFLICT - isbn"}},
)
def create_book(payload: BookCreateRequest, svc: BookService = Depends(get_admin_service)):
    return ok(svc.create_book(data=payload.model_dump()))


@books.put(
    "/{book_id}",
    response_model=ActionResponse,
    summary="[write] partial update",
    responses={404: {"description": "NOTFOUND"}},
)
def update_book(book_id: int, payload: BookUpdateRequest, svc: BookService = Depends(get_admin_service)):
    return ok(svc.update_book(book_id=book_id, data=payload.model_dump(exclude_none=True)))


@books.delete(
    "/{book_id}",
    response_model=ActionResponse,
    summary="[write] soft delete",
    responses={404: {"description": "NOTFOUND"}},
)
def delete_book(book_id: int, svc: BookService = Depends(get_admin_service)):
    return ok(svc.delete_book(book_id=book_id))
