# 📄 bookstore/services/common.py
# Role: helpers shared by every service class
#   - current_user normalisation (JWT payload → id / role)
#   - Decimal money rounding
#   - commit with rollback → SYSTEM-DB-901

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bookstore.system.error_codes import DomainError
from bookstore.system.logging import get_logger

logger = get_logger(__name__)

CENT = Decimal("0.01")


def user_id_of(user: Optional[Dict[str, Any]]) -> Optional[int]:
    """JWT payload (or None) → users.id"""
    if not user:
        return None
    sub = user.get("sub")
    if sub is None:
        return None
    try:
        return int(sub)
    except (TypeError, ValueError):
        raise DomainError(
            "AUTH-DENY-005",
            detail="Token subject is not a user id.",
            ctx={"sub": sub},
        )


def is_admin(user: Optional[Dict[str, Any]]) -> bool:
    return bool(user) and user.get("role") == "admin"


def money(value: Any) -> Decimal:
    """Any numeric → Decimal rounded half-up to cents."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def as_float(value: Any) -> float:
    return float(money(value))


def page_window(page: int, limit: int, *, code: str) -> tuple[int, int]:
    if page <= 0 or limit <= 0:
        raise DomainError(
            code,
            detail="page and limit must be 1 or greater.",
            ctx={"page": page, "limit": limit},
        )
    return page, limit


def total_pages(total: int, limit: int) -> int:
    return (total + limit - 1) // limit if limit else 0


def commit(session: Session, *, page_id: str) -> None:
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Commit failed", page_id=page_id, error=str(e))
        raise DomainError(
            "SYSTEM-DB-901",
            detail="Saving changes failed.",
            ctx={"page_id": page_id, "error": str(e)},
            domain=page_id,
        )


def iso(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None
