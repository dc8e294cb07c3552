# 📄 bookstore/services/users/user_admin_service.py
# Page: admin / user management
# Role: list/search, create, toggle ACTIVE/INACTIVE, soft delete
# Stage: v1.0

from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from bookstore import models as m
from bookstore.security.password import hash_password
from bookstore.services.auth.auth_service import normalize_email, serialize_user, validate_password
from bookstore.services.common import commit, page_window, total_pages, user_id_of
from bookstore.system.error_codes import DomainError
from bookstore.system.logging import get_logger

PAGE_ID = "users.admin"
PAGE_VERSION = "v1.0"

logger = get_logger(__name__)


class UserAdminService:
    page_id: str = PAGE_ID
    page_version: str = PAGE_VERSION

    def __init__(self, *, session: Session, user: Dict[str, Any]):
        self.session = session
        self.user = user

    def _get(self, user_id: int) -> m.User:
        user_obj = self.session.get(m.User, user_id)
        if user_obj is None or user_obj.is_deleted:
            raise DomainError("USER-NOTFOUND-101", detail="User not found.", ctx={"user_id": user_id})
        return user_obj

    # -----------------------------------------------------
    # [read] list
    # -----------------------------------------------------
    def list_users(
        self,
        *,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        role: Optional[str] = None,
    ) -> Dict[str, Any]:
        page, limit = page_window(page, limit, code="USER-VALID-001")

        conditions = [m.User.is_deleted.is_(False)]
        if search and search.strip():
            like = f"%{search.strip().lower()}%"
            conditions.append(
                or_(
                    func.lower(m.User.name).like(like),
                    func.lower(m.User.email).like(like),
                    m.User.phone.like(like),
                )
            )
        if role:
            conditions.append(m.User.role == role.lower())

        total = self.session.execute(
            select(func.count()).select_from(m.User).where(*conditions)
        ).scalar_one()

        rows = self.session.execute(
            select(m.User)
            .where(*conditions)
            .order_by(m.User.created_at.desc(), m.User.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()

        return {
            "items": [serialize_user(u) for u in rows],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": total_pages(total, limit),
            },
        }

    def get_user(self, *, user_id: int) -> Dict[str, Any]:
        return {"user": serialize_user(self._get(user_id))}

    # -----------------------------------------------------
    # [write] create
    # -----------------------------------------------------
    def create_user(
        self,
        *,
        name: str,
        email: str,
        password: str,
        role: str = "user",
        phone: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not name or not name.strip():
            raise DomainError("USER-VALID-002", detail="Name is required.", ctx={"field": "name"})
        if role not in m.ROLES:
            raise DomainError("USER-VALID-003", detail="Unknown role.", ctx={"role": role, "allowed": list(m.ROLES)})

        email_norm = normalize_email(email, code="USER-VALID-004")
        validate_password(password, code="USER-VALID-005")

        exists = self.session.execute(
            select(m.User.id).where(m.User.email == email_norm)
        ).first()
        if exists:
            raise DomainError(
                "USER-CONFLICT-201",
                detail="User already exists.",
                ctx={"email": email_norm},
            )

        user_obj = m.User(
            name=name.strip(),
            email=email_norm,
            password_hash=hash_password(password),
            role=role,
            phone=phone,
            status="ACTIVE",
            is_active=True,
        )
        self.session.add(user_obj)
        commit(self.session, page_id=PAGE_ID)

        logger.info("User created by admin", user_id=user_obj.id, role=role, admin_id=user_id_of(self.user))
        return {"user": serialize_user(user_obj)}

    # -----------------------------------------------------
    # [write] toggle status
    # -----------------------------------------------------
    def toggle_status(self, *, user_id: int) -> Dict[str, Any]:
        user_obj = self._get(user_id)

        if user_obj.status == "ACTIVE":
            user_obj.status = "INACTIVE"
            user_obj.is_active = False
        else:
            user_obj.status = "ACTIVE"
            user_obj.is_active = True

        commit(self.session, page_id=PAGE_ID)
        logger.info("User status toggled", user_id=user_id, status=user_obj.status)
        return {"user": serialize_user(user_obj)}

    # -----------------------------------------------------
    # [write] soft delete
    # -----------------------------------------------------
    def delete_user(self, *, user_id: int) -> Dict[str, Any]:
        if user_id == user_id_of(self.user):
            raise DomainError(
                "USER-STATE-451",
                detail="You cannot delete your own account.",
                ctx={"user_id": user_id},
            )

        user_obj = self._get(user_id)
        user_obj.is_deleted = True
        user_obj.is_active = False
        user_obj.status = "INACTIVE"
        commit(self.session, page_id=PAGE_ID)

        logger.info("User deleted", user_id=user_id)
        return {"deleted": True, "user_id": user_id}
