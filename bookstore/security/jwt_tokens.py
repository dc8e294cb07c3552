# 📄 bookstore/security/jwt_tokens.py
# Role: issue and verify JWT access / refresh tokens
# Notes:
# - configured from env (JWT_SECRET_KEY, JWT_ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES, REFRESH_TOKEN_EXPIRE_DAYS)
# - PyJWT

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt

from bookstore.system.error_codes import DomainError

# ─────────────────────────────────────────────────────────
# Environment
# ─────────────────────────────────────────────────────────

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))


def _get_secret() -> str:
    if not JWT_SECRET_KEY:
        raise DomainError(
            "SYSTEM-DISABLED-401",
            detail="JWT_SECRET_KEY is not configured.",
            ctx={"env": "JWT_SECRET_KEY"},
        )
    return JWT_SECRET_KEY


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _encode(*, subject: str, email: str, role: str | None, token_type: str, ttl: timedelta) -> str:
    now = _now_utc()
    payload: Dict[str, Any] = {
        "sub": subject,
        "email": email,
        "role": role,
        "type": token_type,
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
    }
    return jwt.encode(payload, _get_secret(), algorithm=JWT_ALGORITHM)


# ─────────────────────────────────────────────────────────
# Issue
# ─────────────────────────────────────────────────────────

def create_access_token(*, subject: str, email: str, role: str | None) -> str:
    """subject is the user id as a string."""
    return _encode(
        subject=subject,
        email=email,
        role=role,
        token_type="access",
        ttl=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_refresh_token(*, subject: str, email: str, role: str | None) -> str:
    return _encode(
        subject=subject,
        email=email,
        role=role,
        token_type="refresh",
        ttl=timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS),
    )


# ─────────────────────────────────────────────────────────
# Verify
# ─────────────────────────────────────────────────────────

def _decode_token(token: str, expected_type: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, _get_secret(), algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise DomainError(
            "AUTH-DENY-004",
            detail="The token has expired.",
            ctx={"type": expected_type},
        )
    except jwt.InvalidTokenError as e:
        raise DomainError(
            "AUTH-DENY-005",
            detail="The token is invalid.",
            ctx={"type": expected_type, "error": str(e)},
        )

    token_type = payload.get("type")
    if token_type != expected_type:
        raise DomainError(
            "AUTH-DENY-005",
            detail="Wrong token type.",
            ctx={"expected": expected_type, "actual": token_type},
        )

    return payload


def decode_access_token(token: str) -> Dict[str, Any]:
    return _decode_token(token, "access")


def decode_refresh_token(token: str) -> Dict[str, Any]:
    return _decode_token(token, "refresh")
