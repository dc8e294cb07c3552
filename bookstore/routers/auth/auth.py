# 📄 bookstore/routers/auth/auth.py
# Page: sign-up / sign-in / profile
# Role: receive request → validate DTO → call AuthService → wrap response
# Stage: v1.0
#
# ✅ This file only routes.
#   - credential checks, hashing and token issue live in AuthService
#   - DomainError is converted by the global handler

from __future__ import annotations

from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from bookstore.db.session import get_sync_session
from bookstore.routers.common import ActionResponse, PingResponse, ok, ping as ping_page
from bookstore.security.guard import guard, require_user
from bookstore.services.auth.auth_service import AuthService

# ─────────────────────────────────────────────────────────
# Page meta
# ─────────────────────────────────────────────────────────
PAGE_ID = "auth.main"
PAGE_VERSION = "v1.0"

ROUTE_PREFIX = "/api/auth"
ROUTE_TAGS = ["auth"]

auth = APIRouter(prefix=ROUTE_PREFIX, tags=ROUTE_TAGS)
__all__ = ["auth"]


# ─────────────────────────────────────────────────────────
# Dependencies
# ─────────────────────────────────────────────────────────
def get_public_service(
    user: Optional[Dict[str, Any]] = Depends(guard),
    session: Session = Depends(get_sync_session),
) -> AuthService:
    return AuthService(session=session, user=user)


def get_service(
    user: Dict[str, Any] = Depends(require_user),
    session: Session = Depends(get_sync_session),
) -> AuthService:
    return AuthService(session=session, user=user)


# ─────────────────────────────────────────────────────────
# DTO
# ─────────────────────────────────────────────────────────
class RegisterRequest(BaseModel):
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Login email")
    password: str = Field(..., description="6 characters or more")
    phone: Optional[str] = None
    address: Optional[str] = None


class LoginRequest(BaseModel):
    email: str = Field(..., description="Login email")
    password: str = Field(..., description="Password")


class RefreshRequest(BaseModel):
    refresh_token: str


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    avatar: Optional[str] = None


class PasswordChangeRequest(BaseModel):
    current_password: str
    new_password: str


# ─────────────────────────────────────────────────────────
# [system] ping
# ─────────────────────────────────────────────────────────
@auth.get("/ping", response_model=PingResponse, summary="[system] auth page health check")
def ping():
    return ping_page(PAGE_ID, PAGE_VERSION)


# ─────────────────────────────────────────────────────────
# 1) register / login / refresh
# ─────────────────────────────────────────────────────────
@auth.post(
    "/register",
    response_model=ActionResponse,
    status_code=201,
    summary="[write] register a customer account",
    responses={400: {"description": "CONFLICT - email already registered"}, 422: {"description": "VALID"}},
)
def register(payload: RegisterRequest, svc: AuthService = Depends(get_public_service)):
    result = svc.register(
        name=payload.name,
        email=payload.email,
        password=payload.password,
        phone=payload.phone,
        address=payload.address,
    )
    return ok(result)


@auth.post(
    "/login",
    response_model=ActionResponse,
    summary="[login] email/password sign-in",
    responses={401: {"description": "DENY - sign-in failed"}},
)
def login(payload: LoginRequest, svc: AuthService = Depends(get_public_service)):
    """
    Sign-in.
    Unknown email, wrong password and disabled accounts all answer AUTH-DENY-002.
    """
    return ok(svc.login(email=payload.email, password=payload.password))


@auth.post(
    "/refresh",
    response_model=ActionResponse,
    summary="[login] exchange a refresh token for a new access token",
    responses={401: {"description": "DENY"}},
)
def refresh(payload: RefreshRequest, svc: AuthService = Depends(get_public_service)):
    return ok(svc.refresh(refresh_token=payload.refresh_token))


# ─────────────────────────────────────────────────────────
# 2) profile
# ─────────────────────────────────────────────────────────
@auth.get("/me", response_model=ActionResponse, summary="[read] current user")
def me(svc: AuthService = Depends(get_service)):
    return ok(svc.me())


@auth.put("/profile", response_model=ActionResponse, summary="[write] update own profile")
def update_profile(payload: ProfileUpdateRequest, svc: AuthService = Depends(get_service)):
    return ok(svc.update_profile(fields=payload.model_dump(exclude_none=True)))


@auth.put(
    "/password",
    response_model=ActionResponse,
    summary="[write] change own password",
    responses={401: {"description": "DENY - current password mismatch"}},
)
def change_password(payload: PasswordChangeRequest, svc: AuthService = Depends(get_service)):
    return ok(
        svc.change_password(
            current_password=payload.current_password,
            new_password=payload.new_password,
        )
    )
