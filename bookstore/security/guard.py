# 📄 bookstore/security/guard.py
# Role: JWT based auth guards
# - guard:         optional bearer token → payload dict or None (public pages)
# - require_user:  bearer token mandatory → payload dict
# - require_admin: bearer token mandatory and role == "admin"
# Failures are always DomainError.

from __future__ import annotations

from typing import Optional, Dict, Any

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from bookstore.security.jwt_tokens import decode_access_token
from bookstore.system.error_codes import DomainError

ADMIN_ROLE = "admin"

_bearer = HTTPBearer(auto_error=False)


def guard(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Optional[Dict[str, Any]]:
    """
    Shared auth guard.

    - no Authorization header: returns None (anonymous caller)
    - header present: the access token must decode, otherwise AUTH-DENY-004/005
    - success: the JWT payload, e.g. {"sub": "3", "email": "a@b.c", "role": "user", ...}
    """
    if credentials is None or not credentials.credentials:
        return None

    return decode_access_token(credentials.credentials)


def require_user(
    user: Optional[Dict[str, Any]] = Depends(guard),
) -> Dict[str, Any]:
    if user is None:
        raise DomainError(
            "AUTH-DENY-001",
            detail="An access token is required.",
            ctx={"location": "header.Authorization"},
        )
    return user


def require_admin(
    user: Dict[str, Any] = Depends(require_user),
) -> Dict[str, Any]:
    if user.get("role") != ADMIN_ROLE:
        raise DomainError(
            "AUTH-DENY-003",
            detail="Administrator role required.",
            ctx={"role": user.get("role")},
        )
    return user
