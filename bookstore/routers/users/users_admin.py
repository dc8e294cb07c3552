# 📄 bookstore/routers/users/users_admin.py
# Page: admin / user management
# Role: receive request → call UserAdminService → wrap response
# Stage: v1.0

from __future__ import annotations

from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from bookstore.db.session import get_sync_session
from bookstore.routers.common import ActionResponse, PingResponse, ok, ping as ping_page
from bookstore.security.guard import require_admin
from bookstore.services.users.user_admin_service import UserAdminService

PAGE_ID = "users.admin"
PAGE_VERSION = "v1.0"

ROUTE_PREFIX = "/api/admin/users"
ROUTE_TAGS = ["users-admin"]

users_admin = APIRouter(prefix=ROUTE_PREFIX, tags=ROUTE_TAGS)
__all__ = ["users_admin"]


def get_service(
    user: Dict[str, Any] = Depends(require_admin),
    session: Session = Depends(get_sync_session),
) -> UserAdminService:
    return UserAdminService(session=session, user=user)


class UserCreateRequest(BaseModel):
    name: str
    email: str
    password: str
    role: str = Field(default="user", description="user | admin")
    phone: Optional[str] = None


@users_admin.get("/ping", response_model=PingResponse, summary="[system] user admin health check")
def ping():
    return ping_page(PAGE_ID, PAGE_VERSION)


@users_admin.get("", response_model=ActionResponse, summary="[read] user list")
def list_users(
    page: int = Query(1),
    limit: int = Query(10),
    search: Optional[str] = None,
    role: Optional[str] = None,
    svc: UserAdminService = Depends(get_service),
):
    return ok(svc.list_users(page=page, limit=limit, search=search, role=role))


@users_admin.get(
    "/{user_id}",
    response_model=ActionResponse,
    summary="[read] user detail",
    responses={404: {"description": "NOTFOUND"}},
)
def get_user(user_id: int, svc: UserAdminService = Depends(get_service)):
    return ok(svc.get_user(user_id=user_id))


@users_admin.post(
    "",
    response_model=ActionResponse,
    status_code=201,
    summary="[write] create user",
    responses={409: {"description": "CONFLICT"}},
)
def create_user(payload: UserCreateRequest, svc: UserAdminService = Depends(get_service)):
    return ok(
        svc.create_user(
            name=payload.name,
            email=payload.email,
            password=payload.password,
            role=payload.role,
            phone=payload.phone,
        )
    )


@users_admin.patch("/{user_id}/toggle-status", response_model=ActionResponse, summary="[write] toggle ACTIVE/INACTIVE")
def toggle_status(user_id: int, svc: UserAdminService = Depends(get_service)):
    return ok(svc.toggle_status(user_id=user_id))


@users_admin.delete("/{user_id}", response_model=ActionResponse, summary="[write] soft delete user")
def delete_user(user_id: int, svc: UserAdminService = Depends(get_service)):
    return ok(svc.delete_user(user_id=user_id))
