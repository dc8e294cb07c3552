# 📄 bookstore/services/library/library_service.py
# Page: my library / purchased ebooks / audiobooks
# Role:
#   1) grant UserBook entitlements once an order's payment is COMPLETED
#   2) library list / detail for the current user
#   3) download link issue, download counting (+ history), download/offline info
#
# Stage: v1.0

from __future__ import annotations

import os
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from bookstore import models as m
from bookstore.services.common import commit, iso, user_id_of
from bookstore.system.error_codes import DomainError
from bookstore.system.logging import get_logger

PAGE_ID = "library.main"
PAGE_VERSION = "v1.0"

logger = get_logger(__name__)

MAX_DOWNLOAD_COUNT = int(os.getenv("MAX_DOWNLOAD_COUNT", "3"))
DOWNLOAD_URL_TEMPLATE = "/api/library/download/file/{user_book_id}?token={token}"
STREAM_URL_TEMPLATE = "/api/library/stream/{user_book_id}?token={token}"


def grant_for_order(session: Session, order: m.Order) -> List[m.UserBook]:
    """
    Create one active UserBook per digital item of a paid order.
    Existing active entitlements for the same user+book are kept as they are.
    The caller owns the transaction.
    """
    if order.payment_status != "COMPLETED":
        return []

    granted: List[m.UserBook] = []
    for item in order.items:
        book = item.book
        if not book.is_digital:
            continue

        existing = session.execute(
            select(m.UserBook.id).where(
                m.UserBook.user_id == order.user_id,
                m.UserBook.book_id == book.id,
                m.UserBook.is_active.is_(True),
            )
        ).first()
        if existing:
            continue

        user_book = m.UserBook(
            user_id=order.user_id,
            book_id=book.id,
            order_id=order.id,
            purchase_date=m.utcnow(),
            download_count=0,
            file_url=book.file_url,
            file_path=book.file_path,
            file_size=book.file_size,
            mime_type=book.mime_type,
            is_active=True,
        )
        session.add(user_book)
        granted.append(user_book)

    if granted:
        logger.info(
            "Library entitlements granted",
            order_id=order.id,
            user_id=order.user_id,
            book_ids=[ub.book_id for ub in granted],
        )
    return granted


def _serialize_user_book(user_book: m.UserBook) -> Dict[str, Any]:
    book = user_book.book
    return {
        "id": user_book.id,
        "book": {
            "id": book.id,
            "title": book.title,
            "author": book.author,
            "format": book.format,
            "image_url": book.image_url,
            "duration": book.duration,
        },
        "order_id": user_book.order_id,
        "purchase_date": iso(user_book.purchase_date),
        "download_count": user_book.download_count,
        "remaining_downloads": max(0, MAX_DOWNLOAD_COUNT - user_book.download_count),
        "last_download_at": iso(user_book.last_download_at),
        "file_size": user_book.file_size,
        "mime_type": user_book.mime_type,
    }


class LibraryService:
    page_id: str = PAGE_ID
    page_version: str = PAGE_VERSION

    def __init__(self, *, session: Session, user: Dict[str, Any]):
        self.session = session
        self.user = user
        self.user_id = user_id_of(user)

    def _get_owned(self, user_book_id: int) -> m.UserBook:
        user_book = self.session.get(m.UserBook, user_book_id)
        if user_book is None or not user_book.is_active or user_book.user_id != self.user_id:
            raise DomainError(
                "LIBRARY-NOTFOUND-101",
                detail="Book not found in your library.",
                ctx={"user_book_id": user_book_id},
            )
        return user_book

    # [read]
    def list_library(self) -> Dict[str, Any]:
        rows = self.session.execute(
            select(m.UserBook)
            .where(m.UserBook.user_id == self.user_id, m.UserBook.is_active.is_(True))
            .order_by(m.UserBook.purchase_date.desc(), m.UserBook.id.desc())
        ).scalars().all()
        items = [_serialize_user_book(ub) for ub in rows]
        return {"items": items, "total": len(items)}

    def get_entry(self, *, user_book_id: int) -> Dict[str, Any]:
        return {"item": _serialize_user_book(self._get_owned(user_book_id))}

    # [write] link
    def download_link(self, *, user_book_id: int) -> Dict[str, Any]:
        user_book = self._get_owned(user_book_id)
        if user_book.download_count >= MAX_DOWNLOAD_COUNT:
            raise DomainError(
                "LIBRARY-STATE-451",
                detail=f"Download limit reached ({MAX_DOWNLOAD_COUNT}).",
                ctx={"user_book_id": user_book_id, "download_count": user_book.download_count},
            )

        token = uuid4().hex
        return {
            "user_book_id": user_book.id,
            "token": token,
            "download_url": DOWNLOAD_URL_TEMPLATE.format(user_book_id=user_book.id, token=token),
            "stream_url": STREAM_URL_TEMPLATE.format(user_book_id=user_book.id, token=token),
            "remaining_downloads": MAX_DOWNLOAD_COUNT - user_book.download_count,
        }

    # [write] count a download
    def record_download(
        self,
        *,
        user_book_id: int,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        download_type: str = "DOWNLOAD",
    ) -> Dict[str, Any]:
        user_book = self._get_owned(user_book_id)
        download_type = (download_type or "DOWNLOAD").upper()
        if download_type not in m.DOWNLOAD_TYPES:
            raise DomainError(
                "LIBRARY-VALID-001",
                detail="Unknown download type.",
                ctx={"download_type": download_type, "allowed": list(m.DOWNLOAD_TYPES)},
            )

        if download_type == "DOWNLOAD":
            if user_book.download_count >= MAX_DOWNLOAD_COUNT:
                raise DomainError(
                    "LIBRARY-STATE-451",
                    detail=f"Download limit reached ({MAX_DOWNLOAD_COUNT}).",
                    ctx={"user_book_id": user_book_id, "download_count": user_book.download_count},
                )
            user_book.download_count += 1
            user_book.last_download_at = m.utcnow()

        self.session.add(
            m.DownloadHistory(
                user_book_id=user_book.id,
                user_id=self.user_id,
                book_id=user_book.book_id,
                download_type=download_type,
                ip_address=ip_address or "unknown",
                user_agent=user_agent,
                status="COMPLETED",
            )
        )
        commit(self.session, page_id=PAGE_ID)
        return self._info(user_book)

    # [read] counters
    def _info(self, user_book: m.UserBook) -> Dict[str, Any]:
        remaining = max(0, MAX_DOWNLOAD_COUNT - user_book.download_count)
        return {
            "user_book_id": user_book.id,
            "download_count": user_book.download_count,
            "max_downloads": MAX_DOWNLOAD_COUNT,
            "remaining_downloads": remaining,
            "last_download_at": iso(user_book.last_download_at),
            "can_download": remaining > 0,
        }

    def download_info(self, *, user_book_id: int) -> Dict[str, Any]:
        return self._info(self._get_owned(user_book_id))

    def offline_info(self, *, user_book_id: int) -> Dict[str, Any]:
        user_book = self._get_owned(user_book_id)
        book = user_book.book
        return {
            "user_book_id": user_book.id,
            "book_id": book.id,
            "title": book.title,
            "format": book.format,
            "file_size": user_book.file_size,
            "mime_type": user_book.mime_type,
            "duration": book.duration,
            "available_offline": user_book.download_count > 0,
            **{k: v for k, v in self._info(user_book).items() if k != "user_book_id"},
        }
