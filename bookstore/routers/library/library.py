# 📄 bookstore/routers/library/library.py
# Page: my library / purchased ebooks / audiobooks
# Role: list/detail, download link, download counting, download/offline info
# Stage: v1.0

from __future__ import annotations

from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from bookstore.db.session import get_sync_session
from bookstore.routers.common import ActionResponse, PingResponse, ok, ping as ping_page
from bookstore.security.guard import require_user
from bookstore.services.library.library_service import LibraryService

PAGE_ID = "library.main"
PAGE_VERSION = "v1.0"

ROUTE_PREFIX = "/api/library"
ROUTE_TAGS = ["library"]

library = APIRouter(prefix=ROUTE_PREFIX, tags=ROUTE_TAGS)
__all__ = ["library"]


def get_service(
    user: Dict[str, Any] = Depends(require_user),
    session: Session = Depends(get_sync_session),
) -> LibraryService:
    return LibraryService(session=session, user=user)


class DownloadRecordRequest(BaseModel):
    download_type: str = Field(default="DOWNLOAD", description="DOWNLOAD | STREAM")


@library.get("/ping", response_model=PingResponse, summary="[system] library health check")
def ping():
    return ping_page(PAGE_ID, PAGE_VERSION)


@library.get("", response_model=ActionResponse, summary="[read] my library")
def list_library(svc: LibraryService = Depends(get_service)):
    return ok(svc.list_library())


@library.get(
    "/{user_book_id}",
    response_model=ActionResponse,
    summary="[read] library entry",
    responses={404: {"description": "NOTFOUND"}},
)
def get_entry(user_book_id: int, svc: LibraryService = Depends(get_service)):
    return ok(svc.get_entry(user_book_id=user_book_id))


@library.get(
    "/{user_book_id}/download-link",
    response_model=ActionResponse,
    summary="[read] issue a download / stream link",
    responses={400: {"description": "STATE - download limit reached"}},
)
def download_link(user_book_id: int, svc: LibraryService = Depends(get_service)):
    return ok(svc.download_link(user_book_id=user_book_id))


@library.post(
    "/{user_book_id}/download",
    response_model=ActionResponse,
    summary="[write] count a download",
    responses={400: {"description": "STATE - download limit reached"}},
)
def record_download(
    user_book_id: int,
    request: Request,
    payload: Optional[DownloadRecordRequest] = None,
    svc: LibraryService = Depends(get_service),
):
    result = svc.record_download(
        user_book_id=user_book_id,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        download_type=payload.download_type if payload is not None else "DOWNLOAD",
    )
    return ok(result)


@library.get("/{user_book_id}/download-info", response_model=ActionResponse, summary="[read] download counters")
def download_info(user_book_id: int, svc: LibraryService = Depends(get_service)):
    return ok(svc.download_info(user_book_id=user_book_id))


@library.get("/{user_book_id}/offline-info", response_model=ActionResponse, summary="[read] offline reading info")
def offline_info(user_book_id: int, svc: LibraryService = Depends(get_service)):
    return ok(svc.offline_info(user_book_id=user_book_id))
