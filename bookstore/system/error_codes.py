# 📄 bookstore/system/error_codes.py
# Purpose: shared error codes, messages and HTTP status normalisation + global handlers
# Rule: <DOMAIN>-<TYPE>-<NNN>
#   - DOMAIN: AUTH, USER, BOOK, CATEGORY, CART, ORDER, VOUCHER, PAYMENT, ADDRESS,
#             FAVORITE, SHIPPING, LIBRARY, CHAT, REPORTS, SYSTEM
#   - TYPE:   VALID, NOTFOUND, CONFLICT, DENY, DISABLED, STATE, DB, UNKNOWN
#   - NNN bands: VALID 001-099, NOTFOUND 100-199, CONFLICT 200-299,
#                DENY 300-399, DISABLED 400-450, STATE 451-499,
#                DB 900-949, UNKNOWN 950-999
# Usage:
#   - services: raise DomainError(code, detail=..., ctx=...)  → global handler converts to HTTP
#   - routers:  raise_http_exception(code, ...) when an immediate HTTP error is needed
#   - app boot: register_global_handlers(app)
# Stage: v3.0

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Literal, Optional, Tuple, Any
from datetime import datetime, timezone
from uuid import uuid4
import re

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from bookstore.system.logging import get_logger

logger = get_logger(__name__)

# ─────────────────────────────────────────────────────────
# Types
# ─────────────────────────────────────────────────────────
ErrorStage = Literal["router", "service"]
Domain = Literal[
    "AUTH", "USER", "BOOK", "CATEGORY", "CART", "ORDER", "VOUCHER", "PAYMENT",
    "ADDRESS", "FAVORITE", "SHIPPING", "LIBRARY", "CHAT", "REPORTS", "SYSTEM",
]
Type = Literal["VALID", "NOTFOUND", "CONFLICT", "DENY", "DISABLED", "STATE", "DB", "UNKNOWN"]

ERROR_SPEC_VERSION = "v3.0"
_CODE_PATTERN = re.compile(
    r"^(AUTH|USER|BOOK|CATEGORY|CART|ORDER|VOUCHER|PAYMENT|ADDRESS|FAVORITE|SHIPPING|LIBRARY|CHAT|REPORTS|SYSTEM)"
    r"-(VALID|NOTFOUND|CONFLICT|DENY|DISABLED|STATE|DB|UNKNOWN)-\d{3}$"
)


@dataclass(frozen=True)
class ErrorSpec:
    http: int
    message: str
    hint: str


# ─────────────────────────────────────────────────────────
# Per-TYPE defaults for codes without an explicit registry entry
# ─────────────────────────────────────────────────────────
TYPE_DEFAULTS: Dict[str, ErrorSpec] = {
    "VALID":    ErrorSpec(422, "The request is invalid", "Check the submitted values."),
    "NOTFOUND": ErrorSpec(404, "The requested resource was not found", "Check the identifier."),
    "CONFLICT": ErrorSpec(409, "The request conflicts with existing data", "Check for duplicates."),
    "DENY":     ErrorSpec(403, "You are not allowed to do this", "Use an account with the required role."),
    "DISABLED": ErrorSpec(501, "This feature is disabled", "Ask an administrator to enable it."),
    "STATE":    ErrorSpec(409, "Not allowed in the current state", "Check the current status."),
    "DB":       ErrorSpec(500, "A data processing error occurred", "Contact an administrator."),
    "UNKNOWN":  ErrorSpec(500, "Something went wrong", "Try again later."),
}

# ─────────────────────────────────────────────────────────
# Registry
# ─────────────────────────────────────────────────────────
REGISTRY: Dict[str, ErrorSpec] = {
    # SYSTEM
    "SYSTEM-UNKNOWN-999": ErrorSpec(500, "Something went wrong", "Try again later."),
    "SYSTEM-DB-901":      ErrorSpec(500, "A data processing error occurred", "Contact an administrator."),
    "SYSTEM-VALID-001":   ErrorSpec(422, "The request is invalid", "Check the submitted values."),
    "SYSTEM-DISABLED-401": ErrorSpec(501, "Server configuration is incomplete", "Contact an administrator."),

    # AUTH
    "AUTH-DENY-001":     ErrorSpec(401, "Authentication required", "Sign in again."),
    "AUTH-DENY-002":     ErrorSpec(401, "Check your email or password.", "Enter your email and password again."),
    "AUTH-DENY-003":     ErrorSpec(403, "You do not have permission", "Use an account with the required role."),
    "AUTH-DENY-004":     ErrorSpec(401, "The token has expired", "Sign in again."),
    "AUTH-DENY-005":     ErrorSpec(401, "The token is invalid", "Sign in again."),
    "AUTH-CONFLICT-201": ErrorSpec(400, "User already exists", "Sign in or use another email."),

    # ORDER
    "ORDER-STATE-451":  ErrorSpec(400, "Order cannot be changed in its current status", "Check the order status."),
    "ORDER-STATE-452":  ErrorSpec(400, "Insufficient stock", "Reduce the quantity or pick another book."),
    "ORDER-DENY-301":   ErrorSpec(403, "Access denied to this order", "Only the owner or an admin can view it."),

    # VOUCHER
    "VOUCHER-STATE-452": ErrorSpec(400, "Voucher is not active", "Pick another voucher."),
    "VOUCHER-STATE-453": ErrorSpec(400, "Voucher is not yet valid", "Check the validity window."),
    "VOUCHER-STATE-454": ErrorSpec(400, "Voucher has expired", "Pick another voucher."),
    "VOUCHER-STATE-455": ErrorSpec(400, "Order amount is below the voucher minimum", "Add more items."),
    "VOUCHER-STATE-456": ErrorSpec(400, "Voucher usage limit reached", "Pick another voucher."),
    "VOUCHER-STATE-457": ErrorSpec(400, "You have already used this voucher", "Pick another voucher."),
    "VOUCHER-STATE-458": ErrorSpec(400, "Voucher does not apply to this order", "Check the voucher conditions."),

    # LIBRARY
    "LIBRARY-STATE-451": ErrorSpec(400, "Download limit reached", "Contact support for more downloads."),
}

# ─────────────────────────────────────────────────────────
# Utilities
# ─────────────────────────────────────────────────────────

def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _normalize_code(code: str) -> str:
    c = (code or "").strip().upper()
    if not _CODE_PATTERN.match(c):
        return "SYSTEM-UNKNOWN-999"
    return c


def _lookup(code: str) -> Tuple[str, ErrorSpec]:
    c = _normalize_code(code)
    spec = REGISTRY.get(c)
    if spec is None:
        spec = TYPE_DEFAULTS[c.split("-")[1]]
    return c, spec


def _current_trace_id() -> Optional[str]:
    return structlog.contextvars.get_contextvars().get("trace_id")


def add_registry(overrides: Dict[str, ErrorSpec]) -> None:
    """
    Extend or override the registry at runtime.
    e.g. add_registry({"BOOK-NOTFOUND-102": ErrorSpec(404, "ISBN not found", "Check the ISBN")})
    """
    for k, v in overrides.items():
        REGISTRY[_normalize_code(k)] = v


# ─────────────────────────────────────────────────────────
# Domain exception, the only exception services raise
# ─────────────────────────────────────────────────────────
class DomainError(Exception):
    """
    Service-layer domain exception.
    It never builds messages or picks HTTP statuses itself.
    """
    def __init__(
        self,
        code: str,
        *,
        detail: str = "",
        ctx: Optional[dict] = None,
        stage: ErrorStage = "service",
        domain: Optional[str] = None,
        trace_id: Optional[str] = None,
    ) -> None:
        self.code = _normalize_code(code)
        self.detail = detail
        self.ctx = ctx or {}
        self.stage = stage
        self.domain = domain
        self.trace_id = trace_id  # filled by the handler when missing
        super().__init__(f"{self.code}: {detail}" if detail else self.code)

    @property
    def http_status(self) -> int:
        return _lookup(self.code)[1].http


# ─────────────────────────────────────────────────────────
# Error body builder
# ─────────────────────────────────────────────────────────
def build_error(
    code: str,
    *,
    detail: str = "",
    ctx: Optional[dict] = None,
    stage: ErrorStage = "service",
    domain: Optional[str] = None,
    trace_id: Optional[str] = None,
) -> Tuple[int, dict]:
    """
    Returns (http_status, body):
    {
      "ok": False,
      "error": {
        "code": "...", "message": "...", "hint": "...", "detail": "...",
        "ctx": {...}, "stage": "router" | "service", "domain": "orders.checkout",
        "trace_id": "req-...", "timestamp": "UTC ISO8601Z"
      },
      "meta": {"spec_version": "v3.0"}
    }
    """
    code_norm, spec = _lookup(code)
    body = {
        "ok": False,
        "error": {
            "code": code_norm,
            "message": spec.message,
            "hint": spec.hint,
            "detail": detail,
            "ctx": jsonable_encoder(ctx or {}),
            "stage": stage,
            "domain": domain,
            "trace_id": trace_id or _current_trace_id() or f"req-{uuid4().hex}",
            "timestamp": _utc_now_iso(),
        },
        "meta": {"spec_version": ERROR_SPEC_VERSION},
    }
    return spec.http, body


def raise_http_exception(
    code: str,
    *,
    detail: str = "",
    ctx: Optional[dict] = None,
    stage: ErrorStage = "router",
    domain: Optional[str] = None,
    trace_id: Optional[str] = None,
):
    """Raise an HTTPException that already carries the standard body."""
    status, body = build_error(
        code, detail=detail, ctx=ctx, stage=stage, domain=domain, trace_id=trace_id
    )
    raise HTTPException(status_code=status, detail=body)


# ─────────────────────────────────────────────────────────
# Exception → standard error
# ─────────────────────────────────────────────────────────
def map_exception(exc: Exception) -> Tuple[int, dict]:
    """
    Convert any exception to the standard error body.
    - DomainError: declared code
    - ValueError, TypeError, KeyError: SYSTEM VALID 422
    - PermissionError: AUTH DENY 403
    - IntegrityError (detected by name): SYSTEM DB 500
    - anything else: SYSTEM UNKNOWN 500
    """
    if isinstance(exc, DomainError):
        return build_error(
            exc.code,
            detail=exc.detail,
            ctx=exc.ctx,
            stage=exc.stage,
            domain=exc.domain,
            trace_id=exc.trace_id,
        )

    name = exc.__class__.__name__
    msg = str(exc)

    if name in ("ValueError", "TypeError", "AssertionError", "KeyError"):
        return build_error("SYSTEM-VALID-001", detail=msg, ctx={"exc": name})
    if name in ("PermissionError",):
        return build_error("AUTH-DENY-003", detail=msg, ctx={"exc": name})

    # SQLAlchemy IntegrityError without importing the driver layer here
    if "IntegrityError" in name:
        return build_error("SYSTEM-DB-901", detail=msg, ctx={"exc": name})

    return build_error("SYSTEM-UNKNOWN-999", detail=msg, ctx={"exc": name})


# ─────────────────────────────────────────────────────────
# FastAPI global handlers
# ─────────────────────────────────────────────────────────
def register_global_handlers(app: FastAPI) -> None:
    """
    Call once at boot:
        from bookstore.system.error_codes import register_global_handlers
        register_global_handlers(app)
    """

    @app.exception_handler(DomainError)
    async def _domain_error_handler(request: Request, exc: DomainError):
        status, body = map_exception(exc)
        logger.info(
            "Domain error",
            code=body["error"]["code"],
            status=status,
            path=request.url.path,
            detail=exc.detail,
        )
        return JSONResponse(status_code=status, content=body)

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request: Request, exc: RequestValidationError):
        status, body = build_error(
            "SYSTEM-VALID-001",
            detail="Request validation failed.",
            ctx={"errors": exc.errors()},
            stage="router",
        )
        return JSONResponse(status_code=status, content=body)

    @app.exception_handler(HTTPException)  # raised directly in a router
    async def _http_exception_handler(request: Request, exc: HTTPException):
        # pass our own format through untouched, wrap anything else
        if isinstance(exc.detail, dict) and "error" in exc.detail and "ok" in exc.detail:
            return JSONResponse(status_code=exc.status_code, content=exc.detail)
        _, body = build_error(
            "SYSTEM-UNKNOWN-999",
            detail=str(exc.detail),
            ctx={"status_code": exc.status_code},
            stage="router",
        )
        return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)

    @app.exception_handler(Exception)  # last resort
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        status, body = map_exception(exc)
        logger.exception("Unhandled exception", path=request.url.path, code=body["error"]["code"])
        return JSONResponse(status_code=status, content=body)
