# 📄 bookstore/services/catalog/book_service.py
# Page: catalog / books
# Role:
#   1) filtered/sorted/paginated list (search, category, price range, stock band, format)
#   2) detail (+ view_count)
#   3) admin create / partial update / soft delete
#   4) stock → status rule shared with checkout
#
# Stage: v1.1 (digital formats are never stock-limited)

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from bookstore import models as m
from bookstore.services.common import (
    as_float,
    commit,
    is_admin,
    iso,
    money,
    page_window,
    total_pages,
)
from bookstore.system.error_codes import DomainError

PAGE_ID = "catalog.books"
PAGE_VERSION = "v1.1"

LOW_STOCK_THRESHOLD = 10

SORT_COLUMNS = {
    "created_at": m.Book.created_at,
    "title": m.Book.title,
    "price": m.Book.price,
    "stock": m.Book.stock,
    "view_count": m.Book.view_count,
}
STOCK_FILTERS = ("in_stock", "out_of_stock", "low_stock")

EDITABLE_FIELDS = (
    "title", "author", "description", "image_url", "isbn", "publisher",
    "publication_date", "pages", "format", "dimensions", "weight",
    "file_url", "file_path", "file_size", "mime_type", "duration",
)


# ─────────────────────────────────────────────────────────
# Stock status rule
# ─────────────────────────────────────────────────────────
def apply_stock_status(book: m.Book) -> None:
    """stock ≤ 0 → OUT_OF_STOCK and hidden, otherwise AVAILABLE and visible."""
    if book.is_digital:
        return
    if (book.stock or 0) <= 0:
        book.status = "OUT_OF_STOCK"
        book.is_active = False
    else:
        book.status = "AVAILABLE"
        book.is_active = True


def serialize_book(book: m.Book) -> Dict[str, Any]:
    return {
        "id": book.id,
        "title": book.title,
        "author": book.author,
        "price": as_float(book.price),
        "stock": book.stock,
        "description": book.description,
        "image_url": book.image_url,
        "category": (
            {"id": book.category.id, "name": book.category.name} if book.category is not None else None
        ),
        "isbn": book.isbn,
        "publisher": book.publisher,
        "publication_date": iso(book.publication_date),
        "pages": book.pages,
        "format": book.format,
        "dimensions": book.dimensions,
        "weight": float(book.weight) if book.weight is not None else None,
        "is_digital": book.is_digital,
        "file_size": book.file_size,
        "mime_type": book.mime_type,
        "duration": book.duration,
        "view_count": book.view_count,
        "is_active": book.is_active,
        "status": book.status,
        "created_at": iso(book.created_at),
        "updated_at": iso(book.updated_at),
    }


def _parse_price(value: Any, *, field: str = "price") -> Decimal:
    try:
        price = money(value)
    except (InvalidOperation, ValueError):
        raise DomainError("BOOK-VALID-002", detail=f"Invalid {field}.", ctx={field: value})
    if price < 0:
        raise DomainError("BOOK-VALID-002", detail=f"{field} cannot be negative.", ctx={field: str(value)})
    return price


def _parse_date(value: Any) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise DomainError("BOOK-VALID-005", detail="publication_date must be YYYY-MM-DD.", ctx={"value": value})


class BookService:
    """
    Catalog book service.
    Anonymous and regular callers only see active books; admins may include inactive ones.
    """

    page_id: str = PAGE_ID
    page_version: str = PAGE_VERSION

    def __init__(self, *, session: Session, user: Optional[Dict[str, Any]] = None):
        self.session = session
        self.user = user

    def _get(self, book_id: int) -> m.Book:
        book = self.session.get(m.Book, book_id)
        if book is None or book.is_deleted:
            raise DomainError("BOOK-NOTFOUND-101", detail="Book not found.", ctx={"book_id": book_id})
        return book

    def _require_category(self, category_id: Any) -> m.Category:
        if category_id is None:
            raise DomainError("BOOK-VALID-003", detail="Category is required.", ctx={"field": "category_id"})
        category = self.session.get(m.Category, category_id)
        if category is None or category.is_deleted:
            raise DomainError(
                "BOOK-NOTFOUND-102",
                detail="Category not found.",
                ctx={"category_id": category_id},
            )
        return category

    def _ensure_unique_isbn(self, isbn: Optional[str], *, exclude_id: Optional[int] = None) -> None:
        if not isbn:
            return
        stmt = select(m.Book.id).where(m.Book.isbn == isbn)
        if exclude_id is not None:
            stmt = stmt.where(m.Book.id != exclude_id)
        if self.session.execute(stmt).first():
            raise DomainError("BOOK-CONFLICT-201", detail="ISBN already exists.", ctx={"isbn": isbn})

    def _check_format(self, fmt: Optional[str]) -> str:
        value = (fmt or "PAPERBACK").upper()
        if value not in m.BOOK_FORMATS:
            raise DomainError(
                "BOOK-VALID-004",
                detail="Unknown book format.",
                ctx={"format": fmt, "allowed": list(m.BOOK_FORMATS)},
            )
        return value

    # ─────────────────────────────────────────────────────
    # 1) list
    # ─────────────────────────────────────────────────────
    def list_books(
        self,
        *,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        category_id: Optional[int] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        stock_filter: Optional[str] = None,
        book_format: Optional[str] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        include_inactive: bool = False,
    ) -> Dict[str, Any]:
        page, limit = page_window(page, limit, code="BOOK-VALID-001")

        conditions = [m.Book.is_deleted.is_(False)]
        if not (include_inactive and is_admin(self.user)):
            conditions.append(m.Book.is_active.is_(True))

        if search and search.strip():
            like = f"%{search.strip().lower()}%"
            conditions.append(
                or_(
                    func.lower(m.Book.title).like(like),
                    func.lower(m.Book.author).like(like),
                    m.Book.isbn.like(like),
                )
            )
        if category_id is not None:
            conditions.append(m.Book.category_id == category_id)
        if min_price is not None:
            conditions.append(m.Book.price >= _parse_price(min_price, field="min_price"))
        if max_price is not None:
            conditions.append(m.Book.price <= _parse_price(max_price, field="max_price"))
        if book_format:
            conditions.append(m.Book.format == self._check_format(book_format))

        if stock_filter:
            if stock_filter not in STOCK_FILTERS:
                raise DomainError(
                    "BOOK-VALID-006",
                    detail="Unknown stock filter.",
                    ctx={"stock_filter": stock_filter, "allowed": list(STOCK_FILTERS)},
                )
            if stock_filter == "in_stock":
                conditions.append(m.Book.stock > 0)
            elif stock_filter == "out_of_stock":
                conditions.append(m.Book.stock <= 0)
            else:
                conditions.append(m.Book.stock > 0)
                conditions.append(m.Book.stock < LOW_STOCK_THRESHOLD)

        sort_col = SORT_COLUMNS.get(sort_by)
        if sort_col is None:
            raise DomainError(
                "BOOK-VALID-007",
                detail="Unknown sort field.",
                ctx={"sort_by": sort_by, "allowed": list(SORT_COLUMNS)},
            )
        order = sort_col.asc() if sort_order.lower() == "asc" else sort_col.desc()

        total = self.session.execute(
            select(func.count()).select_from(m.Book).where(*conditions)
        ).scalar_one()

        rows = self.session.execute(
            select(m.Book)
            .where(*conditions)
            .order_by(order, m.Book.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()

        return {
            "items": [serialize_book(b) for b in rows],
            "pagination": {
                "current_page": page,
                "total_pages": total_pages(total, limit),
                "total_items": total,
                "page_size": limit,
            },
        }

    # ─────────────────────────────────────────────────────
    # 2) detail
    # ─────────────────────────────────────────────────────
    def get_book(self, *, book_id: int) -> Dict[str, Any]:
        book = self._get(book_id)
        book.view_count = (book.view_count or 0) + 1
        commit(self.session, page_id=PAGE_ID)
        return {"book": serialize_book(book)}

    # ─────────────────────────────────────────────────────
    # 3) admin create / update / delete
    # ─────────────────────────────────────────────────────
    def create_book(self, *, data: Dict[str, Any]) -> Dict[str, Any]:
        title = (data.get("title") or "").strip()
        if not title:
            raise DomainError("BOOK-VALID-003", detail="Title is required.", ctx={"field": "title"})

        category = self._require_category(data.get("category_id"))
        stock = int(data.get("stock") or 0)
        if stock < 0:
            raise DomainError("BOOK-VALID-008", detail="Stock cannot be negative.", ctx={"stock": stock})

        isbn = data.get("isbn") or None
        self._ensure_unique_isbn(isbn)

        book = m.Book(
            title=title,
            price=_parse_price(data.get("price", 0)),
            stock=stock,
            category=category,
            format=self._check_format(data.get("format")),
            view_count=0,
            is_active=True,
            status="AVAILABLE",
        )
        for key in EDITABLE_FIELDS:
            if key in ("title", "format"):
                continue
            if data.get(key) is not None:
                setattr(book, key, data[key])
        book.isbn = isbn
        book.publication_date = _parse_date(data.get("publication_date"))
        apply_stock_status(book)

        self.session.add(book)
        commit(self.session, page_id=PAGE_ID)
        return {"book": serialize_book(book)}

    def update_book(self, *, book_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        book = self._get(book_id)

        if "title" in data and data["title"] is not None:
            title = data["title"].strip()
            if not title:
                raise DomainError("BOOK-VALID-003", detail="Title is required.", ctx={"field": "title"})
            book.title = title
        if data.get("category_id") is not None:
            book.category = self._require_category(data["category_id"])
        if data.get("price") is not None:
            book.price = _parse_price(data["price"])
        if data.get("format") is not None:
            book.format = self._check_format(data["format"])
        if data.get("isbn") is not None:
            self._ensure_unique_isbn(data["isbn"], exclude_id=book.id)
            book.isbn = data["isbn"]
        if "publication_date" in data and data["publication_date"] is not None:
            book.publication_date = _parse_date(data["publication_date"])

        for key in EDITABLE_FIELDS:
            if key in ("title", "format", "isbn", "publication_date"):
                continue
            if data.get(key) is not None:
                setattr(book, key, data[key])

        if data.get("status") is not None:
            status = data["status"].upper()
            if status not in m.BOOK_STATUSES:
                raise DomainError("BOOK-VALID-009", detail="Unknown status.", ctx={"status": data["status"]})
            book.status = status
        if data.get("is_active") is not None:
            book.is_active = bool(data["is_active"])

        if data.get("stock") is not None:
            stock = int(data["stock"])
            if stock < 0:
                raise DomainError("BOOK-VALID-008", detail="Stock cannot be negative.", ctx={"stock": stock})
            book.stock = stock
            apply_stock_status(book)

        commit(self.session, page_id=PAGE_ID)
        return {"book": serialize_book(book)}

    def delete_book(self, *, book_id: int) -> Dict[str, Any]:
        book = self._get(book_id)
        book.is_deleted = True
        book.is_active = False
        commit(self.session, page_id=PAGE_ID)
        return {"deleted": True, "book_id": book_id}
