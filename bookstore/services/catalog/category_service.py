# 📄 bookstore/services/catalog/category_service.py
# Page: catalog / categories
# Role: list (name order, book counts), get, create, rename, soft delete
# Stage: v1.0

from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from bookstore import models as m
from bookstore.services.common import commit, iso
from bookstore.system.error_codes import DomainError

PAGE_ID = "catalog.categories"
PAGE_VERSION = "v1.0"


def serialize_category(category: m.Category, *, book_count: Optional[int] = None) -> Dict[str, Any]:
    data = {
        "id": category.id,
        "name": category.name,
        "description": category.description,
        "status": category.status,
        "created_at": iso(category.created_at),
        "updated_at": iso(category.updated_at),
    }
    if book_count is not None:
        data["book_count"] = book_count
    return data


class CategoryService:
    page_id: str = PAGE_ID
    page_version: str = PAGE_VERSION

    def __init__(self, *, session: Session, user: Dict[str, Any] | None = None):
        self.session = session
        self.user = user

    def _get(self, category_id: int) -> m.Category:
        category = self.session.get(m.Category, category_id)
        if category is None or category.is_deleted:
            raise DomainError(
                "CATEGORY-NOTFOUND-101",
                detail="Category not found.",
                ctx={"category_id": category_id},
            )
        return category

    def _ensure_unique_name(self, name: str, *, exclude_id: Optional[int] = None) -> None:
        stmt = select(m.Category.id).where(
            func.lower(m.Category.name) == name.lower(),
            m.Category.is_deleted.is_(False),
        )
        if exclude_id is not None:
            stmt = stmt.where(m.Category.id != exclude_id)
        if self.session.execute(stmt).first():
            raise DomainError(
                "CATEGORY-CONFLICT-201",
                detail="Category already exists.",
                ctx={"name": name},
            )

    # [read] list
    def list_categories(self) -> Dict[str, Any]:
        counts = (
            select(m.Book.category_id, func.count(m.Book.id).label("book_count"))
            .where(m.Book.is_deleted.is_(False))
            .group_by(m.Book.category_id)
            .subquery()
        )
        rows = self.session.execute(
            select(m.Category, func.coalesce(counts.c.book_count, 0))
            .outerjoin(counts, counts.c.category_id == m.Category.id)
            .where(m.Category.is_deleted.is_(False))
            .order_by(m.Category.name.asc())
        ).all()

        items = [serialize_category(c, book_count=int(n)) for c, n in rows]
        return {"items": items, "total": len(items)}

    # [read] detail
    def get_category(self, *, category_id: int) -> Dict[str, Any]:
        return {"category": serialize_category(self._get(category_id))}

    # [write] create
    def create_category(self, *, name: str, description: Optional[str] = None) -> Dict[str, Any]:
        name = (name or "").strip()
        if not name:
            raise DomainError("CATEGORY-VALID-001", detail="Category name is required.", ctx={"field": "name"})

        self._ensure_unique_name(name)

        category = m.Category(name=name, description=description, status="active")
        self.session.add(category)
        commit(self.session, page_id=PAGE_ID)
        return {"category": serialize_category(category)}

    # [write] update
    def update_category(
        self,
        *,
        category_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Dict[str, Any]:
        category = self._get(category_id)

        if name is not None:
            name = name.strip()
            if not name:
                raise DomainError("CATEGORY-VALID-001", detail="Category name is required.", ctx={"field": "name"})
            if name.lower() != category.name.lower():
                self._ensure_unique_name(name, exclude_id=category.id)
            category.name = name
        if description is not None:
            category.description = description
        if status is not None:
            category.status = status

        commit(self.session, page_id=PAGE_ID)
        return {"category": serialize_category(category)}

    # [write] soft delete
    def delete_category(self, *, category_id: int) -> Dict[str, Any]:
        category = self._get(category_id)
        category.is_deleted = True
        commit(self.session, page_id=PAGE_ID)
        return {"deleted": True, "category_id": category_id}
