# 📄 bookstore/services/favorites/favorite_service.py
# Page: my page / favourite books
# Role: add (re-enables an old row), remove, list, check
# Stage: v1.0

from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from bookstore import models as m
from bookstore.services.catalog.book_service import serialize_book
from bookstore.services.common import commit, iso, user_id_of
from bookstore.system.error_codes import DomainError

PAGE_ID = "favorites.main"
PAGE_VERSION = "v1.0"


class FavoriteService:
    page_id: str = PAGE_ID
    page_version: str = PAGE_VERSION

    def __init__(self, *, session: Session, user: Dict[str, Any]):
        self.session = session
        self.user = user
        self.user_id = user_id_of(user)

    def _get_book(self, book_id: int) -> m.Book:
        book = self.session.get(m.Book, book_id)
        if book is None or book.is_deleted:
            raise DomainError("FAVORITE-NOTFOUND-101", detail="Book not found.", ctx={"book_id": book_id})
        return book

    def _find(self, book_id: int) -> Optional[m.Favorite]:
        return self.session.execute(
            select(m.Favorite).where(m.Favorite.user_id == self.user_id, m.Favorite.book_id == book_id)
        ).scalar_one_or_none()

    @staticmethod
    def _is_live(fav: Optional[m.Favorite]) -> bool:
        return fav is not None and fav.is_favourite and not fav.is_deleted

    def add(self, *, book_id: int) -> Dict[str, Any]:
        book = self._get_book(book_id)
        fav = self._find(book_id)

        if self._is_live(fav):
            raise DomainError(
                "FAVORITE-CONFLICT-201",
                detail="Book is already in favourites.",
                ctx={"book_id": book_id},
            )

        if fav is None:
            fav = m.Favorite(user_id=self.user_id, book=book, is_favourite=True, is_deleted=False)
            self.session.add(fav)
        else:
            fav.is_favourite = True
            fav.is_deleted = False

        commit(self.session, page_id=PAGE_ID)
        return {"book_id": book_id, "is_favourite": True}

    def remove(self, *, book_id: int) -> Dict[str, Any]:
        self._get_book(book_id)
        fav = self._find(book_id)

        if not self._is_live(fav):
            raise DomainError(
                "FAVORITE-CONFLICT-202",
                detail="Book is not in favourites.",
                ctx={"book_id": book_id},
            )

        fav.is_favourite = False
        commit(self.session, page_id=PAGE_ID)
        return {"book_id": book_id, "is_favourite": False}

    def list_favorites(self) -> Dict[str, Any]:
        rows = self.session.execute(
            select(m.Favorite)
            .join(m.Book, m.Book.id == m.Favorite.book_id)
            .where(
                m.Favorite.user_id == self.user_id,
                m.Favorite.is_favourite.is_(True),
                m.Favorite.is_deleted.is_(False),
                m.Book.is_deleted.is_(False),
            )
            .order_by(m.Favorite.updated_at.desc(), m.Favorite.id.desc())
        ).scalars().all()

        items = [
            {"id": fav.id, "added_at": iso(fav.updated_at), "book": serialize_book(fav.book)}
            for fav in rows
        ]
        return {"items": items, "total": len(items)}

    def check(self, *, book_id: int) -> Dict[str, Any]:
        return {"book_id": book_id, "is_favourite": self._is_live(self._find(book_id))}
