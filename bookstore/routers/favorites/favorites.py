# 📄 bookstore/routers/favorites/favorites.py
# Page: my page / favourite books
# Stage: v1.0

from __future__ import annotations

from typing import Dict, Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bookstore.db.session import get_sync_session
from bookstore.routers.common import ActionResponse, PingResponse, ok, ping as ping_page
from bookstore.security.guard import require_user
from bookstore.services.favorites.favorite_service import FavoriteService

PAGE_ID = "favorites.main"
PAGE_VERSION = "v1.0"

ROUTE_PREFIX = "/api/favorites"
ROUTE_TAGS = ["favorites"]

favorites = APIRouter(prefix=ROUTE_PREFIX, tags=ROUTE_TAGS)
__all__ = ["favorites"]


def get_service(
    user: Dict[str, Any] = Depends(require_user),
    session: Session = Depends(get_sync_session),
) -> FavoriteService:
    return FavoriteService(session=session, user=user)


@favorites.get("/ping", response_model=PingResponse, summary="[system] favourites health check")
def ping():
    return ping_page(PAGE_ID, PAGE_VERSION)


@favorites.get("", response_model=ActionResponse, summary="[read] my favourites")
def list_favorites(svc: FavoriteService = Depends(get_service)):
    return ok(svc.list_favorites())


@favorites.post(
    "/{book_id}",
    response_model=ActionResponse,
    summary="[write] add to favourites",
    responses={409: {"description": "CONFLICT - already a favourite"}},
)
def add_favorite(book_id: int, svc: FavoriteService = Depends(get_service)):
    return ok(svc.add(book_id=book_id))


@favorites.delete(
    "/{book_id}",
    response_model=ActionResponse,
    summary="[write] remove from favourites",
    responses={409: {"description": "CONFLICT - not a favourite"}},
)
def remove_favorite(book_id: int, svc: FavoriteService = Depends(get_service)):
    return ok(svc.remove(book_id=book_id))


@favorites.get("/check/{book_id}", response_model=ActionResponse, summary="[read] is the book a favourite")
def check_favorite(book_id: int, svc: FavoriteService = Depends(get_service)):
    return ok(svc.check(book_id=book_id))
