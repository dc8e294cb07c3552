# 📄 bookstore/routers/catalog/categories.py
# Page: catalog / categories
# Role: public list/detail, admin create/update/delete
# Stage: v1.0

from __future__ import annotations

from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from bookstore.db.session import get_sync_session
from bookstore.routers.common import ActionResponse, PingResponse, ok, ping as ping_page
from bookstore.security.guard import guard, require_admin
from bookstore.services.catalog.category_service import CategoryService

PAGE_ID = "catalog.categories"
PAGE_VERSION = "v1.0"

ROUTE_PREFIX = "/api/categories"
ROUTE_TAGS = ["categories"]

categories = APIRouter(prefix=ROUTE_PREFIX, tags=ROUTE_TAGS)
__all__ = ["categories"]


def get_service(
    user: Optional[Dict[str, Any]] = Depends(guard),
    session: Session = Depends(get_sync_session),
) -> CategoryService:
    return CategoryService(session=session, user=user)


def get_admin_service(
    user: Dict[str, Any] = Depends(require_admin),
    session: Session = Depends(get_sync_session),
) -> CategoryService:
    return CategoryService(session=session, user=user)


class CategoryCreateRequest(BaseModel):
    name: str
    description: Optional[str] = None


class CategoryUpdateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None


@categories.get("/ping", response_model=PingResponse, summary="[system] categories health check")
def ping():
    return ping_page(PAGE_ID, PAGE_VERSION)


@categories.get("", response_model=ActionResponse, summary="[read] category list with book counts")
def list_categories(svc: CategoryService = Depends(get_service)):
    return ok(svc.list_categories())


@categories.get(
    "/{category_id}",
    response_model=ActionResponse,
    summary="[read] category detail",
    responses={404: {"description": "NOTFOUND"}},
)
def get_category(category_id: int, svc: CategoryService = Depends(get_service)):
    return ok(svc.get_category(category_id=category_id))


@categories.post(
    "",
    response_model=ActionResponse,
    status_code=201,
    summary="[write] create category",
    responses={409: {"description": "CONFLICT"}},
)
def create_category(payload: CategoryCreateRequest, svc: CategoryService = Depends(get_admin_service)):
    return ok(svc.create_category(name=payload.name, description=payload.description))


@categories.put("/{category_id}", response_model=ActionResponse, summary="[write] update category")
def update_category(
    category_id: int,
    payload: CategoryUpdateRequest,
    svc: CategoryService = Depends(get_admin_service),
):
    return ok(
        svc.update_category(
            category_id=category_id,
            name=payload.name,
            description=payload.description,
            status=payload.status,
        )
    )


@categories.delete("/{category_id}", response_model=ActionResponse, summary="[write] soft delete category")
def delete_category(category_id: int, svc: CategoryService = Depends(get_admin_service)):
    return ok(svc.delete_category(category_id=category_id))
