# 📄 bookstore/services/vouchers/voucher_service.py
# Page: vouchers
# Role:
#   1) admin CRUD (code rules, value/window/limit validation, category/book/user scoping)
#   2) eligibility check for an order (window, minimum, usage limits, one use per user, scoping)
#   3) discount computation (PERCENTAGE capped, FIXED_AMOUNT, FREE_SHIPPING) clamped to the subtotal
#   4) usage bookkeeping: record on checkout, refund on cancellation, stats
#   5) checkout preview without side effects
#
# Stage: v2.0 (refunded usages no longer count toward limits)

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from bookstore import models as m
from bookstore.services.common import (
    as_float,
    commit,
    iso,
    money,
    page_window,
    total_pages,
    user_id_of,
)
from bookstore.system.error_codes import DomainError
from bookstore.system.logging import get_logger

PAGE_ID = "vouchers.main"
PAGE_VERSION = "v2.0"

logger = get_logger(__name__)

CODE_MAX_LENGTH = 20
STATUS_FILTERS = ("all", "active", "inactive")


# ─────────────────────────────────────────────────────────
# Order context used by the eligibility check
# ─────────────────────────────────────────────────────────
@dataclass
class OrderContext:
    user_id: int
    subtotal: Decimal
    shipping_fee: Decimal = Decimal("0")
    category_ids: Set[int] = field(default_factory=set)
    book_ids: Set[int] = field(default_factory=set)


# ─────────────────────────────────────────────────────────
# Discount math
# ─────────────────────────────────────────────────────────
def compute_discount(voucher: m.Voucher, subtotal: Decimal, shipping_fee: Decimal) -> Decimal:
    """
    PERCENTAGE:    subtotal × value / 100, capped by max_discount_amount when set
    FIXED_AMOUNT:  value
    FREE_SHIPPING: the shipping fee
    The result never exceeds the subtotal and is never negative.
    """
    subtotal = money(subtotal)
    value = money(voucher.value)

    if voucher.type == "PERCENTAGE":
        discount = subtotal * value / Decimal("100")
        if voucher.max_discount_amount is not None:
            discount = min(discount, money(voucher.max_discount_amount))
    elif voucher.type == "FIXED_AMOUNT":
        discount = value
    elif voucher.type == "FREE_SHIPPING":
        discount = money(shipping_fee)
    else:
        discount = Decimal("0")

    discount = max(Decimal("0"), min(discount, subtotal))
    return money(discount)


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def serialize_voucher(voucher: m.Voucher, *, active_usages: Optional[int] = None) -> Dict[str, Any]:
    data = {
        "id": voucher.id,
        "code": voucher.code,
        "name": voucher.name,
        "description": voucher.description,
        "type": voucher.type,
        "value": as_float(voucher.value),
        "min_order_amount": as_float(voucher.min_order_amount),
        "max_discount_amount": (
            as_float(voucher.max_discount_amount) if voucher.max_discount_amount is not None else None
        ),
        "usage_limit": voucher.usage_limit,
        "used_count": voucher.used_count,
        "valid_from": iso(voucher.valid_from),
        "valid_to": iso(voucher.valid_to),
        "is_active": voucher.is_active,
        "applicable_categories": [c.id for c in voucher.applicable_categories],
        "applicable_books": [b.id for b in voucher.applicable_books],
        "applicable_users": [u.id for u in voucher.applicable_users],
        "created_by": voucher.created_by,
        "created_at": iso(voucher.created_at),
    }
    if active_usages is not None:
        data["remaining_uses"] = max(0, voucher.usage_limit - active_usages)
    return data


class VoucherService:
    """
    Voucher service.
    Checkout calls validate_for_order → compute_discount → record_usage inside its own transaction,
    so those three never commit.
    """

    page_id: str = PAGE_ID
    page_version: str = PAGE_VERSION

    def __init__(self, *, session: Session, user: Optional[Dict[str, Any]] = None):
        self.session = session
        self.user = user

    # ─────────────────────────────────────────────────────
    # internal
    # ─────────────────────────────────────────────────────
    def _get(self, voucher_id: int) -> m.Voucher:
        voucher = self.session.get(m.Voucher, voucher_id)
        if voucher is None or voucher.is_deleted:
            raise DomainError("VOUCHER-NOTFOUND-101", detail="Voucher not found.", ctx={"voucher_id": voucher_id})
        return voucher

    def _find_by_code(self, code: str, *, lock: bool = False) -> m.Voucher:
        stmt = select(m.Voucher).where(
            m.Voucher.code == (code or "").strip().upper(),
            m.Voucher.is_deleted.is_(False),
        )
        if lock:
            stmt = stmt.with_for_update()
        voucher = self.session.execute(stmt).scalar_one_or_none()
        if voucher is None:
            raise DomainError("VOUCHER-NOTFOUND-101", detail="Voucher not found.", ctx={"code": code})
        return voucher

    def active_usage_count(self, voucher_id: int) -> int:
        return self.session.execute(
            select(func.count(m.VoucherUsage.id)).where(
                m.VoucherUsage.voucher_id == voucher_id,
                m.VoucherUsage.is_refunded.is_(False),
            )
        ).scalar_one()

    def _user_has_used(self, voucher_id: int, user_id: int) -> bool:
        return self.session.execute(
            select(m.VoucherUsage.id).where(
                m.VoucherUsage.voucher_id == voucher_id,
                m.VoucherUsage.user_id == user_id,
                m.VoucherUsage.is_refunded.is_(False),
            )
        ).first() is not None

    @staticmethod
    def _clean_code(code: Optional[str]) -> str:
        value = (code or "").strip().upper()
        if not value:
            raise DomainError("VOUCHER-VALID-001", detail="Voucher code is required.", ctx={"field": "code"})
        if len(value) > CODE_MAX_LENGTH:
            raise DomainError(
                "VOUCHER-VALID-002",
                detail=f"Voucher code cannot exceed {CODE_MAX_LENGTH} characters.",
                ctx={"code": value},
            )
        return value

    def _ensure_unique_code(self, code: str, *, exclude_id: Optional[int] = None) -> None:
        stmt = select(m.Voucher.id).where(m.Voucher.code == code, m.Voucher.is_deleted.is_(False))
        if exclude_id is not None:
            stmt = stmt.where(m.Voucher.id != exclude_id)
        if self.session.execute(stmt).first():
            raise DomainError("VOUCHER-CONFLICT-201", detail="Voucher code already exists.", ctx={"code": code})

    def _load_scope(self, model: Any, ids: Optional[Iterable[int]], *, label: str) -> List[Any]:
        wanted = sorted(set(ids or []))
        if not wanted:
            return []
        rows = self.session.execute(select(model).where(model.id.in_(wanted))).scalars().all()
        found = {r.id for r in rows}
        missing = [i for i in wanted if i not in found]
        if missing:
            raise DomainError(
                "VOUCHER-NOTFOUND-102",
                detail=f"Unknown {label} in voucher scope.",
                ctx={label: missing},
            )
        return list(rows)

    @staticmethod
    def _money_field(data: Dict[str, Any], key: str, default: Any = None) -> Optional[Decimal]:
        raw = data.get(key, default)
        if raw is None:
            return None
        try:
            return money(raw)
        except (InvalidOperation, ValueError):
            raise DomainError("VOUCHER-VALID-003", detail=f"Invalid {key}.", ctx={key: raw})

    def _validate_rules(self, voucher: m.Voucher) -> None:
        if voucher.type not in m.VOUCHER_TYPES:
            raise DomainError(
                "VOUCHER-VALID-004",
                detail="Unknown voucher type.",
                ctx={"type": voucher.type, "allowed": list(m.VOUCHER_TYPES)},
            )

        value = money(voucher.value)
        if voucher.type == "PERCENTAGE" and not (Decimal("0") < value <= Decimal("100")):
            raise DomainError(
                "VOUCHER-VALID-005",
                detail="Percentage value must be between 0 and 100.",
                ctx={"value": as_float(value)},
            )
        if voucher.type == "FIXED_AMOUNT" and value <= 0:
            raise DomainError(
                "VOUCHER-VALID-005",
                detail="Fixed amount must be greater than 0.",
                ctx={"value": as_float(value)},
            )
        if voucher.type == "FREE_SHIPPING":
            voucher.value = Decimal("0")

        if money(voucher.min_order_amount) < 0:
            raise DomainError(
                "VOUCHER-VALID-006",
                detail="Minimum order amount cannot be negative.",
                ctx={"min_order_amount": as_float(voucher.min_order_amount)},
            )
        if voucher.max_discount_amount is not None and money(voucher.max_discount_amount) < 0:
            raise DomainError(
                "VOUCHER-VALID-006",
                detail="Maximum discount cannot be negative.",
                ctx={"max_discount_amount": as_float(voucher.max_discount_amount)},
            )

        if voucher.valid_from is None or voucher.valid_to is None or voucher.valid_from >= voucher.valid_to:
            raise DomainError(
                "VOUCHER-VALID-007",
                detail="valid_from must be earlier than valid_to.",
                ctx={"valid_from": iso(voucher.valid_from), "valid_to": iso(voucher.valid_to)},
            )

        if voucher.usage_limit is None or voucher.usage_limit < 1:
            raise DomainError(
                "VOUCHER-VALID-008",
                detail="Usage limit must be at least 1.",
                ctx={"usage_limit": voucher.usage_limit},
            )

    # ─────────────────────────────────────────────────────
    # 1) admin CRUD
    # ─────────────────────────────────────────────────────
    def list_vouchers(
        self,
        *,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        status: str = "all",
        voucher_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        page, limit = page_window(page, limit, code="VOUCHER-VALID-009")
        if status not in STATUS_FILTERS:
            raise DomainError(
                "VOUCHER-VALID-010",
                detail="Unknown status filter.",
                ctx={"status": status, "allowed": list(STATUS_FILTERS)},
            )

        conditions = [m.Voucher.is_deleted.is_(False)]
        if search and search.strip():
            like = f"%{search.strip().lower()}%"
            conditions.append(or_(func.lower(m.Voucher.code).like(like), func.lower(m.Voucher.name).like(like)))
        if status == "active":
            conditions.append(m.Voucher.is_active.is_(True))
        elif status == "inactive":
            conditions.append(m.Voucher.is_active.is_(False))
        if voucher_type:
            conditions.append(m.Voucher.type == voucher_type.upper())

        total = self.session.execute(
            select(func.count()).select_from(m.Voucher).where(*conditions)
        ).scalar_one()
        rows = self.session.execute(
            select(m.Voucher)
            .where(*conditions)
            .order_by(m.Voucher.created_at.desc(), m.Voucher.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()

        return {
            "items": [serialize_voucher(v) for v in rows],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": total_pages(total, limit),
            },
        }

    def get_voucher(self, *, voucher_id: int) -> Dict[str, Any]:
        voucher = self._get(voucher_id)
        return {"voucher": serialize_voucher(voucher, active_usages=self.active_usage_count(voucher.id))}

    def get_by_code(self, *, code: str) -> Dict[str, Any]:
        voucher = self._find_by_code(code)
        return {"voucher": serialize_voucher(voucher, active_usages=self.active_usage_count(voucher.id))}

    def create_voucher(self, *, data: Dict[str, Any]) -> Dict[str, Any]:
        code = self._clean_code(data.get("code"))
        name = (data.get("name") or "").strip()
        if not name:
            raise DomainError("VOUCHER-VALID-001", detail="Voucher name is required.", ctx={"field": "name"})
        self._ensure_unique_code(code)

        voucher = m.Voucher(
            code=code,
            name=name,
            description=data.get("description"),
            type=(data.get("type") or "").upper(),
            value=self._money_field(data, "value", 0),
            min_order_amount=self._money_field(data, "min_order_amount", 0),
            max_discount_amount=self._money_field(data, "max_discount_amount"),
            usage_limit=data.get("usage_limit", 1),
            used_count=0,
            valid_from=_naive_utc(data.get("valid_from")),
            valid_to=_naive_utc(data.get("valid_to")),
            is_active=bool(data.get("is_active", True)),
            created_by=user_id_of(self.user),
        )
        self._validate_rules(voucher)

        voucher.applicable_categories = self._load_scope(m.Category, data.get("applicable_categories"), label="categories")
        voucher.applicable_books = self._load_scope(m.Book, data.get("applicable_books"), label="books")
        voucher.applicable_users = self._load_scope(m.User, data.get("applicable_users"), label="users")

        self.session.add(voucher)
        commit(self.session, page_id=PAGE_ID)

        logger.info("Voucher created", voucher_id=voucher.id, code=code, type=voucher.type)
        return {"voucher": serialize_voucher(voucher, active_usages=0)}

    def update_voucher(self, *, voucher_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        voucher = self._get(voucher_id)

        if data.get("code") is not None:
            code = self._clean_code(data["code"])
            if code != voucher.code:
                self._ensure_unique_code(code, exclude_id=voucher.id)
            voucher.code = code
        if data.get("name") is not None:
            if not data["name"].strip():
                raise DomainError("VOUCHER-VALID-001", detail="Voucher name is required.", ctx={"field": "name"})
            voucher.name = data["name"].strip()
        if data.get("description") is not None:
            voucher.description = data["description"]
        if data.get("type") is not None:
            voucher.type = data["type"].upper()
        for key in ("value", "min_order_amount", "max_discount_amount"):
            if data.get(key) is not None:
                setattr(voucher, key, self._money_field(data, key))
        if data.get("usage_limit") is not None:
            voucher.usage_limit = data["usage_limit"]
        if data.get("valid_from") is not None:
            voucher.valid_from = _naive_utc(data["valid_from"])
        if data.get("valid_to") is not None:
            voucher.valid_to = _naive_utc(data["valid_to"])
        if data.get("is_active") is not None:
            voucher.is_active = bool(data["is_active"])

        self._validate_rules(voucher)

        used = self.active_usage_count(voucher.id)
        if voucher.usage_limit < used:
            raise DomainError(
                "VOUCHER-VALID-008",
                detail="Usage limit cannot be lower than the number of uses so far.",
                ctx={"usage_limit": voucher.usage_limit, "used": used},
            )

        if data.get("applicable_categories") is not None:
            voucher.applicable_categories = self._load_scope(m.Category, data["applicable_categories"], label="categories")
        if data.get("applicable_books") is not None:
            voucher.applicable_books = self._load_scope(m.Book, data["applicable_books"], label="books")
        if data.get("applicable_users") is not None:
            voucher.applicable_users = self._load_scope(m.User, data["applicable_users"], label="users")

        commit(self.session, page_id=PAGE_ID)
        return {"voucher": serialize_voucher(voucher, active_usages=used)}

    def delete_voucher(self, *, voucher_id: int) -> Dict[str, Any]:
        voucher = self._get(voucher_id)
        used = self.active_usage_count(voucher.id)
        if used > 0:
            raise DomainError(
                "VOUCHER-STATE-451",
                detail="A voucher that has been used cannot be deleted.",
                ctx={"voucher_id": voucher_id, "used": used},
            )
        voucher.is_deleted = True
        voucher.is_active = False
        commit(self.session, page_id=PAGE_ID)
        return {"deleted": True, "voucher_id": voucher_id}

    # ─────────────────────────────────────────────────────
    # 2) eligibility
    # ─────────────────────────────────────────────────────
    def validate_for_order(
        self,
        code: str,
        ctx: OrderContext,
        *,
        now: Optional[datetime] = None,
        lock: bool = False,
    ) -> m.Voucher:
        """
        Checks in order: exists → active → started → not expired → minimum amount →
        usage limit → one use per user → user / category / book scoping.
        Returns the voucher or raises the first failing rule.
        """
        now = now or m.utcnow()
        voucher = self._find_by_code(code, lock=lock)
        err_ctx = {"code": voucher.code}

        if not voucher.is_active:
            raise DomainError("VOUCHER-STATE-452", detail="Voucher is not active.", ctx=err_ctx)
        if voucher.valid_from > now:
            raise DomainError(
                "VOUCHER-STATE-453",
                detail="Voucher is not yet valid.",
                ctx={**err_ctx, "valid_from": iso(voucher.valid_from)},
            )
        if voucher.valid_to < now:
            raise DomainError(
                "VOUCHER-STATE-454",
                detail="Voucher has expired.",
                ctx={**err_ctx, "valid_to": iso(voucher.valid_to)},
            )
        if money(ctx.subtotal) < money(voucher.min_order_amount):
            raise DomainError(
                "VOUCHER-STATE-455",
                detail=f"Minimum order amount is {as_float(voucher.min_order_amount)}.",
                ctx={
                    **err_ctx,
                    "min_order_amount": as_float(voucher.min_order_amount),
                    "subtotal": as_float(ctx.subtotal),
                },
            )
        if self.active_usage_count(voucher.id) >= voucher.usage_limit:
            raise DomainError(
                "VOUCHER-STATE-456",
                detail="Voucher usage limit reached.",
                ctx={**err_ctx, "usage_limit": voucher.usage_limit},
            )
        if self._user_has_used(voucher.id, ctx.user_id):
            raise DomainError("VOUCHER-STATE-457", detail="You have already used this voucher.", ctx=err_ctx)

        user_scope = {u.id for u in voucher.applicable_users}
        if user_scope and ctx.user_id not in user_scope:
            raise DomainError(
                "VOUCHER-STATE-458",
                detail="Voucher is not available for this account.",
                ctx={**err_ctx, "scope": "users"},
            )
        category_scope = {c.id for c in voucher.applicable_categories}
        if category_scope and not (category_scope & set(ctx.category_ids)):
            raise DomainError(
                "VOUCHER-STATE-458",
                detail="Voucher does not apply to these categories.",
                ctx={**err_ctx, "scope": "categories"},
            )
        book_scope = {b.id for b in voucher.applicable_books}
        if book_scope and not (book_scope & set(ctx.book_ids)):
            raise DomainError(
                "VOUCHER-STATE-458",
                detail="Voucher does not apply to these books.",
                ctx={**err_ctx, "scope": "books"},
            )

        return voucher

    def available_for_me(self) -> Dict[str, Any]:
        """Vouchers the current user could still apply right now."""
        uid = user_id_of(self.user)
        now = m.utcnow()
        rows = self.session.execute(
            select(m.Voucher)
            .where(
                m.Voucher.is_deleted.is_(False),
                m.Voucher.is_active.is_(True),
                m.Voucher.valid_from <= now,
                m.Voucher.valid_to >= now,
            )
            .order_by(m.Voucher.valid_to.asc())
        ).scalars().all()

        items = []
        for voucher in rows:
            used = self.active_usage_count(voucher.id)
            if used >= voucher.usage_limit or self._user_has_used(voucher.id, uid):
                continue
            user_scope = {u.id for u in voucher.applicable_users}
            if user_scope and uid not in user_scope:
                continue
            items.append(serialize_voucher(voucher, active_usages=used))
        return {"items": items, "total": len(items)}

    # ─────────────────────────────────────────────────────
    # 3) preview
    # ─────────────────────────────────────────────────────
    def preview(
        self,
        *,
        code: str,
        items: List[Dict[str, Any]],
        shipping_provider_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        if not items:
            raise DomainError("VOUCHER-VALID-011", detail="At least one item is required.", ctx={})

        subtotal = Decimal("0")
        ctx = OrderContext(user_id=user_id_of(self.user), subtotal=Decimal("0"))
        for line in items:
            book = self.session.get(m.Book, line["book_id"])
            if book is None or book.is_deleted:
                raise DomainError("VOUCHER-NOTFOUND-103", detail="Book not found.", ctx={"book_id": line["book_id"]})
            subtotal += money(book.price) * int(line.get("quantity", 1))
            ctx.book_ids.add(book.id)
            ctx.category_ids.add(book.category_id)

        shipping_fee = Decimal("0")
        if shipping_provider_id is not None:
            provider = self.session.get(m.ShippingProvider, shipping_provider_id)
            if provider is None or provider.is_deleted or not provider.is_active:
                raise DomainError(
                    "VOUCHER-NOTFOUND-104",
                    detail="Shipping provider not found.",
                    ctx={"shipping_provider_id": shipping_provider_id},
                )
            shipping_fee = money(provider.base_fee)

        ctx.subtotal = money(subtotal)
        ctx.shipping_fee = shipping_fee

        voucher = self.validate_for_order(code, ctx)
        discount = compute_discount(voucher, ctx.subtotal, shipping_fee)

        return {
            "voucher": serialize_voucher(voucher),
            "subtotal": as_float(ctx.subtotal),
            "shipping_fee": as_float(shipping_fee),
            "discount": as_float(discount),
            "final_amount": as_float(ctx.subtotal - discount + shipping_fee),
        }

    # ─────────────────────────────────────────────────────
    # 4) usage bookkeeping (caller commits)
    # ─────────────────────────────────────────────────────
    def record_usage(
        self,
        *,
        voucher: m.Voucher,
        user_id: int,
        order: m.Order,
        discount: Decimal,
        order_amount: Decimal,
    ) -> m.VoucherUsage:
        usage = m.VoucherUsage(
            voucher=voucher,
            user_id=user_id,
            order_id=order.id,
            voucher_code=voucher.code,
            discount_amount=money(discount),
            order_amount=money(order_amount),
            is_refunded=False,
        )
        self.session.add(usage)
        voucher.used_count = (voucher.used_count or 0) + 1

        logger.info(
            "Voucher usage recorded",
            voucher_code=voucher.code,
            order_id=order.id,
            user_id=user_id,
            discount=as_float(discount),
        )
        return usage

    def refund_usage(self, *, order: m.Order, reason: str) -> Optional[m.VoucherUsage]:
        if order.voucher_id is None:
            return None

        usage = self.session.execute(
            select(m.VoucherUsage).where(
                m.VoucherUsage.order_id == order.id,
                m.VoucherUsage.voucher_id == order.voucher_id,
                m.VoucherUsage.is_refunded.is_(False),
            )
        ).scalar_one_or_none()
        if usage is None:
            return None

        usage.is_refunded = True
        usage.refunded_at = m.utcnow()
        usage.refund_reason = reason
        voucher = usage.voucher
        voucher.used_count = max(0, (voucher.used_count or 0) - 1)

        logger.info("Voucher usage refunded", voucher_code=usage.voucher_code, order_id=order.id, reason=reason)
        return usage

    def stats(self, *, voucher_id: int) -> Dict[str, Any]:
        voucher = self._get(voucher_id)
        usages = self.session.execute(
            select(m.VoucherUsage).where(m.VoucherUsage.voucher_id == voucher.id)
        ).scalars().all()

        active = [u for u in usages if not u.is_refunded]
        total_discount = sum((money(u.discount_amount) for u in active), Decimal("0"))
        return {
            "voucher_id": voucher.id,
            "code": voucher.code,
            "usage_count": len(active),
            "refunded_count": len(usages) - len(active),
            "total_discount": as_float(total_discount),
            "remaining_uses": max(0, voucher.usage_limit - len(active)),
        }
