# 📄 bookstore/services/auth/auth_service.py
# Page: sign-up / sign-in / profile
# Role:
#   - registration (duplicate email check, bcrypt hash)
#   - email/password verification, account state check
#   - last_login_at update, JWT access_token / refresh_token issue
#   - profile read/update, password change
#
# Stage: v1.0 (sign-in failures collapse to AUTH-DENY-002)

from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from bookstore import models as m
from bookstore.security.password import hash_password, verify_password, MAX_PASSWORD_BYTES
from bookstore.security.jwt_tokens import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
)
from bookstore.services.common import commit, iso, user_id_of
from bookstore.system.error_codes import DomainError
from bookstore.system.logging import get_logger

PAGE_ID = "auth.main"
PAGE_VERSION = "v1.0"

logger = get_logger(__name__)

LOGIN_FAIL_CODE = "AUTH-DENY-002"
LOGIN_FAIL_MESSAGE = "Check your email or password."
MIN_PASSWORD_LENGTH = 6


def serialize_user(user: m.User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "full_name": user.full_name,
        "email": user.email,
        "role": user.role,
        "avatar": user.avatar,
        "phone": user.phone,
        "address": user.address,
        "is_active": user.is_active,
        "status": user.status,
        "is_email_verified": user.is_email_verified,
        "last_login_at": iso(user.last_login_at),
        "created_at": iso(user.created_at),
    }


def validate_password(password: Optional[str], *, code: str = "AUTH-VALID-001") -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise DomainError(
            code,
            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters.",
            ctx={"min_length": MIN_PASSWORD_LENGTH},
        )
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise DomainError(
            code,
            detail="Password cannot exceed 72 bytes.",
            ctx={"max_bytes": MAX_PASSWORD_BYTES},
        )
    return password


def normalize_email(email: Optional[str], *, code: str = "AUTH-VALID-002") -> str:
    value = (email or "").strip().lower()
    if not value or "@" not in value or value.startswith("@") or value.endswith("@"):
        raise DomainError(code, detail="A valid email is required.", ctx={"email": email})
    return value


class AuthService:
    """
    Auth service.
    - any sign-in failure is reported with the single AUTH-DENY-002 code and message
    """

    page_id: str = PAGE_ID
    page_version: str = PAGE_VERSION

    def __init__(self, *, session: Session, user: Dict[str, Any] | None = None):
        self.session: Session = session
        self.user: Dict[str, Any] = user or {}

    # -----------------------------------------------------
    # internal
    # -----------------------------------------------------
    def _deny_login(self, *, step: str, email: str | None = None) -> None:
        # step only goes to logs, the caller always sees one message
        logger.info("Login denied", step=step, email=email)
        ctx: Dict[str, Any] = {"page_id": PAGE_ID, "step": step}
        raise DomainError(LOGIN_FAIL_CODE, detail=LOGIN_FAIL_MESSAGE, ctx=ctx)

    def _find_by_email(self, email: str) -> Optional[m.User]:
        stmt = select(m.User).where(m.User.email == email)
        return self.session.execute(stmt).scalar_one_or_none()

    def _current(self) -> m.User:
        uid = user_id_of(self.user)
        user_obj = self.session.get(m.User, uid) if uid is not None else None
        if user_obj is None or user_obj.is_deleted:
            raise DomainError(
                "USER-NOTFOUND-101",
                detail="User not found.",
                ctx={"user_id": uid},
            )
        return user_obj

    def _tokens(self, user_obj: m.User) -> Dict[str, Any]:
        subject = str(user_obj.id)
        return {
            "access_token": create_access_token(subject=subject, email=user_obj.email, role=user_obj.role),
            "refresh_token": create_refresh_token(subject=subject, email=user_obj.email, role=user_obj.role),
            "token_type": "bearer",
        }

    # -----------------------------------------------------
    # [write] register
    # -----------------------------------------------------
    def register(
        self,
        *,
        name: str,
        email: str,
        password: str,
        phone: Optional[str] = None,
        address: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not name or not name.strip():
            raise DomainError("AUTH-VALID-003", detail="Name is required.", ctx={"field": "name"})

        email_norm = normalize_email(email)
        validate_password(password)

        if self._find_by_email(email_norm) is not None:
            raise DomainError(
                "AUTH-CONFLICT-201",
                detail="User already exists.",
                ctx={"email": email_norm},
            )

        user_obj = m.User(
            name=name.strip(),
            email=email_norm,
            password_hash=hash_password(password),
            phone=phone,
            address=address,
            role="user",
            status="ACTIVE",
            is_active=True,
            is_email_verified=False,
        )
        self.session.add(user_obj)
        commit(self.session, page_id=PAGE_ID)

        logger.info("User registered", user_id=user_obj.id, email=email_norm)
        return {"user": serialize_user(user_obj)}

    # -----------------------------------------------------
    # [write] login
    # -----------------------------------------------------
    def login(self, *, email: str, password: str) -> Dict[str, Any]:
        if not email or not email.strip():
            self._deny_login(step="missing_email")
        if not password:
            self._deny_login(step="missing_password", email=email)

        email_norm = email.strip().lower()
        user_obj = self._find_by_email(email_norm)

        if user_obj is None or user_obj.is_deleted:
            self._deny_login(step="user_not_found", email=email_norm)

        if not verify_password(password, user_obj.password_hash):
            self._deny_login(step="password_mismatch", email=email_norm)

        if not user_obj.is_active or user_obj.status != "ACTIVE":
            self._deny_login(step="inactive_account", email=email_norm)

        user_obj.last_login_at = m.utcnow()
        commit(self.session, page_id=PAGE_ID)

        logger.info("User logged in", user_id=user_obj.id)
        return {**self._tokens(user_obj), "user": serialize_user(user_obj)}

    # -----------------------------------------------------
    # [write] refresh
    # -----------------------------------------------------
    def refresh(self, *, refresh_token: str) -> Dict[str, Any]:
        payload = decode_refresh_token(refresh_token)
        user_obj = self.session.get(m.User, int(payload["sub"]))
        if user_obj is None or user_obj.is_deleted or not user_obj.is_active:
            raise DomainError(
                "AUTH-DENY-001",
                detail="The account behind this token is no longer active.",
                ctx={"sub": payload.get("sub")},
            )
        return {
            "access_token": create_access_token(
                subject=str(user_obj.id), email=user_obj.email, role=user_obj.role
            ),
            "token_type": "bearer",
        }

    # -----------------------------------------------------
    # [read] me
    # -----------------------------------------------------
    def me(self) -> Dict[str, Any]:
        return {"user": serialize_user(self._current())}

    # -----------------------------------------------------
    # [write] profile
    # -----------------------------------------------------
    def update_profile(self, *, fields: Dict[str, Any]) -> Dict[str, Any]:
        user_obj = self._current()

        allowed = ("name", "full_name", "phone", "address", "avatar")
        for key in allowed:
            if key in fields and fields[key] is not None:
                setattr(user_obj, key, fields[key])

        if not user_obj.name or not user_obj.name.strip():
            raise DomainError("AUTH-VALID-003", detail="Name is required.", ctx={"field": "name"})

        commit(self.session, page_id=PAGE_ID)
        return {"user": serialize_user(user_obj)}

    # -----------------------------------------------------
    # [write] change password
    # -----------------------------------------------------
    def change_password(self, *, current_password: str, new_password: str) -> Dict[str, Any]:
        user_obj = self._current()

        if not verify_password(current_password or "", user_obj.password_hash):
            raise DomainError(
                LOGIN_FAIL_CODE,
                detail="Current password is incorrect.",
                ctx={"page_id": PAGE_ID, "step": "change_password"},
            )

        validate_password(new_password)
        user_obj.password_hash = hash_password(new_password)
        commit(self.session, page_id=PAGE_ID)

        logger.info("Password changed", user_id=user_obj.id)
        return {"changed": True}
