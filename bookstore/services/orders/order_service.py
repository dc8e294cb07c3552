# 📄 bookstore/services/orders/order_service.py
# Page: checkout / orders
# Role:
#   1) checkout in one transaction
#      validate lines/address/provider → lock books + stock check → subtotal, shipping fee
#      → voucher check + discount → order/items → stock decrement → voucher usage
#      → payment record → cart cleanup
#   2) my orders / all orders (admin) / detail with owner-or-admin access
#   3) owner cancellation, admin status transitions, payment confirmation
#   4) stale PENDING order auto-cancel, xlsx export
#
# Stage: v2.1 (cancellation refunds voucher usage, same-status updates are no-ops)

from __future__ import annotations

import os
import random
from collections import OrderedDict
from datetime import date, datetime, timedelta
from decimal import Decimal
from io import BytesIO
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from openpyxl import Workbook
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from bookstore import models as m
from bookstore.services.addresses.address_service import serialize_address
from bookstore.services.cart.cart_service import remove_books_from_cart
from bookstore.services.catalog.book_service import apply_stock_status
from bookstore.services.common import (
    as_float,
    commit,
    is_admin,
    iso,
    money,
    page_window,
    total_pages,
    user_id_of,
)
from bookstore.services.library.library_service import grant_for_order
from bookstore.services.vouchers.voucher_service import OrderContext, VoucherService, compute_discount
from bookstore.system.error_codes import DomainError
from bookstore.system.logging import get_logger

PAGE_ID = "orders.main"
PAGE_VERSION = "v2.1"

logger = get_logger(__name__)

ALLOWED_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    "PENDING": ("CONFIRMED", "CANCELLED"),
    "CONFIRMED": ("SHIPPED", "CANCELLED"),
    "SHIPPED": ("DELIVERED",),
    "DELIVERED": (),
    "CANCELLED": (),
}
OWNER_CANCELLABLE = ("PENDING", "CONFIRMED")

# order payment method → payment record method
PAYMENT_METHOD_MAP = {
    "COD": "COD",
    "BANK_TRANSFER": "BANK_TRANSFER",
    "MOMO": "MOMO",
    "ZALOPAY": "ZALOPAY",
}

ORDER_CODE_ATTEMPTS = 10
DEFAULT_PENDING_TIMEOUT_MINUTES = int(os.getenv("PENDING_ORDER_TIMEOUT_MINUTES", "30"))


# ─────────────────────────────────────────────────────────
# Serialisation
# ─────────────────────────────────────────────────────────
def serialize_order(order: m.Order, *, with_user: bool = False) -> Dict[str, Any]:
    items = []
    for item in order.items:
        price = money(item.price_at_purchase)
        items.append(
            {
                "id": item.id,
                "book_id": item.book_id,
                "title": item.book.title,
                "format": item.book.format,
                "image_url": item.book.image_url,
                "quantity": item.quantity,
                "price": as_float(price),
                "subtotal": as_float(price * item.quantity),
            }
        )

    provider = order.shipping_provider
    data: Dict[str, Any] = {
        "id": order.id,
        "order_code": order.order_code,
        "status": order.status,
        "payment_status": order.payment_status,
        "payment_method": order.payment_method,
        "transaction_id": order.transaction_id,
        "items": items,
        "original_amount": as_float(order.original_amount),
        "discount_amount": as_float(order.discount_amount),
        "shipping_fee": as_float(order.shipping_fee),
        "total_price": as_float(order.total_price),
        "voucher": (
            {"id": order.voucher.id, "code": order.voucher.code, "type": order.voucher.type}
            if order.voucher is not None else None
        ),
        "shipping_address": serialize_address(order.shipping_address) if order.shipping_address else None,
        "shipping_provider": (
            {
                "id": provider.id,
                "name": provider.name,
                "code": provider.code,
                "estimated_time": provider.estimated_time,
            }
            if provider is not None else None
        ),
        "note": order.note,
        "cancel_reason": order.cancel_reason,
        "created_at": iso(order.created_at),
        "paid_at": iso(order.paid_at),
        "confirmed_at": iso(order.confirmed_at),
        "shipped_at": iso(order.shipped_at),
        "delivered_at": iso(order.delivered_at),
        "cancelled_at": iso(order.cancelled_at),
    }
    if with_user and order.user is not None:
        data["user"] = {"id": order.user.id, "name": order.user.name, "email": order.user.email}
    return data


def _merge_lines(items: List[Dict[str, Any]]) -> "OrderedDict[int, int]":
    """Same book on several lines → one line with the summed quantity."""
    lines: "OrderedDict[int, int]" = OrderedDict()
    for raw in items:
        book_id = raw.get("book_id")
        quantity = raw.get("quantity")
        if book_id is None:
            raise DomainError("ORDER-VALID-002", detail="book_id is required.", ctx={"item": raw})
        if quantity is None or int(quantity) < 1:
            raise DomainError(
                "ORDER-VALID-003",
                detail="Quantity must be at least 1.",
                ctx={"book_id": book_id, "quantity": quantity},
            )
        lines[int(book_id)] = lines.get(int(book_id), 0) + int(quantity)
    return lines


class OrderService:
    """
    Order service.
    Every write method is a single transaction: validation errors raise before anything is
    committed and the request session is discarded.
    """

    page_id: str = PAGE_ID
    page_version: str = PAGE_VERSION

    def __init__(self, *, session: Session, user: Optional[Dict[str, Any]]):
        self.session = session
        self.user = user
        self.user_id = user_id_of(user)
        self.vouchers = VoucherService(session=session, user=user)

    # ─────────────────────────────────────────────────────
    # internal
    # ─────────────────────────────────────────────────────
    def _get(self, order_id: int) -> m.Order:
        order = self.session.get(m.Order, order_id)
        if order is None or order.is_deleted:
            raise DomainError("ORDER-NOTFOUND-101", detail="Order not found.", ctx={"order_id": order_id})
        return order

    def _get_visible(self, order_id: int) -> m.Order:
        order = self._get(order_id)
        if order.user_id != self.user_id and not is_admin(self.user):
            raise DomainError("ORDER-DENY-301", detail="Access denied to this order.", ctx={"order_id": order_id})
        return order

    def _generate_order_code(self, today: Optional[date] = None) -> str:
        prefix = f"ORD-{(today or m.utcnow().date()).strftime('%Y%m%d')}-"
        for _ in range(ORDER_CODE_ATTEMPTS):
            candidate = f"{prefix}{random.randint(1000, 9999)}"
            taken = self.session.execute(
                select(m.Order.id).where(m.Order.order_code == candidate)
            ).first()
            if not taken:
                return candidate
        # random space exhausted for the day, fall back to a clock based suffix
        return f"{prefix}{int(datetime.now().timestamp() * 1000) % 10000:04d}"

    def _lock_books(self, book_ids: List[int]) -> Dict[int, m.Book]:
        rows = self.session.execute(
            select(m.Book).where(m.Book.id.in_(book_ids)).order_by(m.Book.id).with_for_update()
        ).scalars().all()
        return {b.id: b for b in rows}

    def _restore_stock(self, order: m.Order) -> None:
        for item in order.items:
            book = item.book
            if book.is_digital:
                continue
            book.stock = (book.stock or 0) + item.quantity
            apply_stock_status(book)

    def _complete_payment(self, order: m.Order, *, transaction_id: Optional[str] = None) -> None:
        now = m.utcnow()
        order.payment_status = "COMPLETED"
        order.paid_at = order.paid_at or now
        if transaction_id:
            order.transaction_id = transaction_id

        pending = [p for p in order.payments if p.status == "PENDING"]
        if pending:
            payment = pending[-1]
        else:
            payment = self._new_payment(order)
        payment.status = "COMPLETED"
        payment.paid_at = now
        if transaction_id:
            payment.transaction_id = transaction_id

        grant_for_order(self.session, order)

    def _new_payment(self, order: m.Order) -> m.Payment:
        payment = m.Payment(
            order=order,
            transaction_code=f"TXN-{uuid4().hex[:16].upper()}",
            amount=money(order.total_price),
            method=PAYMENT_METHOD_MAP.get(order.payment_method, "COD"),
            status="PENDING",
            description=f"Payment for order {order.order_code}",
        )
        self.session.add(payment)
        return payment

    def _cancel(self, order: m.Order, *, reason: str) -> None:
        order.status = "CANCELLED"
        order.cancelled_at = m.utcnow()
        order.cancel_reason = reason

        self._restore_stock(order)
        self.vouchers.refund_usage(order=order, reason=reason)

        if order.payment_status == "COMPLETED":
            order.payment_status = "REFUNDED"
            settled, target = "COMPLETED", "REFUNDED"
        else:
            order.payment_status = "FAILED"
            settled, target = "PENDING", "FAILED"
        for payment in order.payments:
            if payment.status == settled:
                payment.status = target

    # ─────────────────────────────────────────────────────
    # 1) checkout
    # ─────────────────────────────────────────────────────
    def create_order(
        self,
        *,
        items: List[Dict[str, Any]],
        shipping_address_id: Optional[int],
        shipping_provider_id: Optional[int],
        voucher_code: Optional[str] = None,
        payment_method: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not items:
            raise DomainError("ORDER-VALID-001", detail="Order must contain at least one item.", ctx={})

        lines = _merge_lines(items)

        method = (payment_method or "COD").upper()
        if method not in m.ORDER_PAYMENT_METHODS:
            raise DomainError(
                "ORDER-VALID-005",
                detail="Unknown payment method.",
                ctx={"payment_method": payment_method, "allowed": list(m.ORDER_PAYMENT_METHODS)},
            )

        # address
        if shipping_address_id is None:
            raise DomainError("ORDER-VALID-004", detail="Shipping address is required.", ctx={"field": "shipping_address_id"})
        address = self.session.get(m.Address, shipping_address_id)
        if address is None or address.is_deleted or address.user_id != self.user_id:
            raise DomainError(
                "ORDER-NOTFOUND-102",
                detail="Shipping address not found.",
                ctx={"shipping_address_id": shipping_address_id},
            )

        # provider
        if shipping_provider_id is None:
            raise DomainError("ORDER-VALID-004", detail="Shipping provider is required.", ctx={"field": "shipping_provider_id"})
        provider = self.session.get(m.ShippingProvider, shipping_provider_id)
        if provider is None or provider.is_deleted or not provider.is_active:
            raise DomainError(
                "ORDER-VALID-006",
                detail="Shipping provider is not available.",
                ctx={"shipping_provider_id": shipping_provider_id},
            )

        # books: lock rows, then check existence and stock
        books = self._lock_books(list(lines.keys()))
        subtotal = Decimal("0")
        ctx = OrderContext(user_id=self.user_id, subtotal=Decimal("0"))
        for book_id, quantity in lines.items():
            book = books.get(book_id)
            if book is None or book.is_deleted:
                raise DomainError("ORDER-NOTFOUND-103", detail="Book not found.", ctx={"book_id": book_id})
            if not book.is_digital and (book.stock or 0) < quantity:
                raise DomainError(
                    "ORDER-STATE-452",
                    detail=f"Insufficient stock for book: {book.title}",
                    ctx={"book_id": book_id, "requested": quantity, "available": book.stock},
                )
            if not book.is_active:
                raise DomainError("ORDER-STATE-453", detail=f"Book is not available: {book.title}", ctx={"book_id": book_id})

            subtotal += money(book.price) * quantity
            ctx.book_ids.add(book.id)
            ctx.category_ids.add(book.category_id)

        subtotal = money(subtotal)
        shipping_fee = money(provider.base_fee)
        ctx.subtotal = subtotal
        ctx.shipping_fee = shipping_fee

        # voucher
        voucher: Optional[m.Voucher] = None
        discount = Decimal("0.00")
        if voucher_code and voucher_code.strip():
            voucher = self.vouchers.validate_for_order(voucher_code, ctx, lock=True)
            discount = compute_discount(voucher, subtotal, shipping_fee)

        final_amount = money(subtotal - discount + shipping_fee)

        order = m.Order(
            order_code=self._generate_order_code(),
            user_id=self.user_id,
            total_price=final_amount,
            original_amount=subtotal,
            discount_amount=discount,
            shipping_fee=shipping_fee,
            voucher=voucher,
            payment_method=method,
            status="PENDING",
            payment_status="PENDING",
            shipping_address=address,
            shipping_provider=provider,
            note=note,
        )
        self.session.add(order)

        for book_id, quantity in lines.items():
            book = books[book_id]
            order.items.append(
                m.OrderItem(book=book, quantity=quantity, price_at_purchase=money(book.price))
            )
            if not book.is_digital:
                book.stock = (book.stock or 0) - quantity
                apply_stock_status(book)

        self.session.flush()

        if voucher is not None:
            self.vouchers.record_usage(
                voucher=voucher,
                user_id=self.user_id,
                order=order,
                discount=discount,
                order_amount=subtotal,
            )

        self._new_payment(order)
        remove_books_from_cart(self.session, user_id=self.user_id, book_ids=lines.keys())

        commit(self.session, page_id=PAGE_ID)

        logger.info(
            "Order created",
            order_code=order.order_code,
            order_id=order.id,
            user_id=self.user_id,
            subtotal=as_float(subtotal),
            discount=as_float(discount),
            total=as_float(final_amount),
            voucher_code=voucher.code if voucher is not None else None,
        )
        return {"order": serialize_order(order)}

    # ─────────────────────────────────────────────────────
    # 2) read
    # ─────────────────────────────────────────────────────
    def list_mine(self, *, page: int = 1, limit: int = 10, status: Optional[str] = None) -> Dict[str, Any]:
        return self._list(page=page, limit=limit, status=status, user_id=self.user_id)

    def list_all(
        self,
        *,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
        user_id: Optional[int] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        return self._list(page=page, limit=limit, status=status, user_id=user_id, search=search, with_user=True)

    def _list(
        self,
        *,
        page: int,
        limit: int,
        status: Optional[str],
        user_id: Optional[int],
        search: Optional[str] = None,
        with_user: bool = False,
    ) -> Dict[str, Any]:
        page, limit = page_window(page, limit, code="ORDER-VALID-007")

        conditions = [m.Order.is_deleted.is_(False)]
        if status:
            conditions.append(m.Order.status == status.upper())
        if user_id is not None:
            conditions.append(m.Order.user_id == user_id)

        stmt = select(m.Order)
        count_stmt = select(func.count(m.Order.id))
        if search and search.strip():
            like = f"%{search.strip().lower()}%"
            stmt = stmt.join(m.User, m.User.id == m.Order.user_id)
            count_stmt = count_stmt.join(m.User, m.User.id == m.Order.user_id)
            conditions.append(
                or_(
                    func.lower(m.Order.order_code).like(like),
                    func.lower(m.User.name).like(like),
                    func.lower(m.User.email).like(like),
                )
            )

        total = self.session.execute(count_stmt.where(*conditions)).scalar_one()
        rows = self.session.execute(
            stmt.where(*conditions)
            .order_by(m.Order.created_at.desc(), m.Order.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()

        return {
            "items": [serialize_order(o, with_user=with_user) for o in rows],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": total_pages(total, limit),
            },
        }

    def get_order(self, *, order_id: int) -> Dict[str, Any]:
        order = self._get_visible(order_id)
        return {"order": serialize_order(order, with_user=is_admin(self.user))}

    # ─────────────────────────────────────────────────────
    # 3) state changes
    # ─────────────────────────────────────────────────────
    def cancel_order(self, *, order_id: int, reason: Optional[str] = None) -> Dict[str, Any]:
        order = self._get(order_id)
        if order.user_id != self.user_id:
            raise DomainError("ORDER-DENY-301", detail="Only the owner can cancel this order.", ctx={"order_id": order_id})
        if order.status not in OWNER_CANCELLABLE:
            raise DomainError(
                "ORDER-STATE-451",
                detail="Order cannot be cancelled.",
                ctx={"order_id": order_id, "status": order.status},
            )

        self._cancel(order, reason=reason or "Cancelled by customer")
        commit(self.session, page_id=PAGE_ID)

        logger.info("Order cancelled", order_code=order.order_code, user_id=self.user_id, reason=order.cancel_reason)
        return {"order": serialize_order(order)}

    def update_status(self, *, order_id: int, status: str) -> Dict[str, Any]:
        target = (status or "").strip().upper()
        if target not in m.ORDER_STATUSES:
            raise DomainError(
                "ORDER-VALID-008",
                detail="Invalid status.",
                ctx={"status": status, "allowed": list(m.ORDER_STATUSES)},
            )

        order = self._get(order_id)
        current = order.status
        if target == current:
            return {"order": serialize_order(order, with_user=True), "changed": False}

        if target not in ALLOWED_TRANSITIONS.get(current, ()):
            raise DomainError(
                "ORDER-STATE-451",
                detail=f"Cannot change status from {current} to {target}.",
                ctx={"order_id": order_id, "from": current, "to": target},
            )

        now = m.utcnow()
        if target == "CONFIRMED":
            order.status = target
            order.confirmed_at = now
        elif target == "SHIPPED":
            order.status = target
            order.shipped_at = now
        elif target == "DELIVERED":
            order.status = target
            order.delivered_at = now
            if order.payment_status == "PENDING":
                self._complete_payment(order)
        elif target == "CANCELLED":
            self._cancel(order, reason="Cancelled by admin")

        commit(self.session, page_id=PAGE_ID)

        logger.info("Order status changed", order_code=order.order_code, from_status=current, to_status=target)
        return {"order": serialize_order(order, with_user=True), "changed": True}

    def confirm_payment(self, *, order_id: int, transaction_id: Optional[str] = None) -> Dict[str, Any]:
        order = self._get(order_id)
        if order.status == "CANCELLED":
            raise DomainError(
                "ORDER-STATE-454",
                detail="A cancelled order cannot be paid.",
                ctx={"order_id": order_id, "status": order.status},
            )
        if order.payment_status == "COMPLETED":
            return {"order": serialize_order(order, with_user=True), "changed": False}

        self._complete_payment(order, transaction_id=transaction_id)
        if order.status == "PENDING":
            order.status = "CONFIRMED"
            order.confirmed_at = m.utcnow()

        commit(self.session, page_id=PAGE_ID)

        logger.info("Payment confirmed", order_code=order.order_code, transaction_id=transaction_id)
        return {"order": serialize_order(order, with_user=True), "changed": True}

    # ─────────────────────────────────────────────────────
    # 4) housekeeping / export
    # ─────────────────────────────────────────────────────
    def cancel_stale_pending(self, *, older_than_minutes: int = DEFAULT_PENDING_TIMEOUT_MINUTES) -> Dict[str, Any]:
        cutoff = m.utcnow() - timedelta(minutes=older_than_minutes)
        orders = self.session.execute(
            select(m.Order).where(
                m.Order.is_deleted.is_(False),
                m.Order.status == "PENDING",
                m.Order.payment_status == "PENDING",
                m.Order.created_at < cutoff,
            )
        ).scalars().all()

        codes = []
        for order in orders:
            self._cancel(order, reason=f"Auto-cancelled: unpaid for {older_than_minutes} minutes")
            codes.append(order.order_code)

        if codes:
            commit(self.session, page_id=PAGE_ID)
            logger.info("Stale pending orders cancelled", count=len(codes), order_codes=codes)
        return {"cancelled": len(codes), "order_codes": codes}

    def export_xlsx(
        self,
        *,
        status: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> Tuple[str, bytes]:
        conditions = [m.Order.is_deleted.is_(False)]
        if status:
            conditions.append(m.Order.status == status.upper())
        if date_from:
            conditions.append(func.date(m.Order.created_at) >= date_from)
        if date_to:
            conditions.append(func.date(m.Order.created_at) <= date_to)

        rows = self.session.execute(
            select(m.Order).where(*conditions).order_by(m.Order.created_at.desc(), m.Order.id.desc())
        ).scalars().all()

        wb = Workbook()
        ws = wb.active
        ws.title = "Orders"
        ws.append([
            "Order code", "Customer", "Email", "Items", "Subtotal", "Discount",
            "Shipping fee", "Total", "Status", "Payment", "Method", "Created at",
        ])
        for order in rows:
            ws.append([
                order.order_code,
                order.user.name if order.user else "",
                order.user.email if order.user else "",
                sum(i.quantity for i in order.items),
                as_float(order.original_amount),
                as_float(order.discount_amount),
                as_float(order.shipping_fee),
                as_float(order.total_price),
                order.status,
                order.payment_status,
                order.payment_method,
                order.created_at.strftime("%Y-%m-%d %H:%M") if order.created_at else "",
            ])

        ws.column_dimensions["A"].width = 22
        ws.column_dimensions["B"].width = 24
        ws.column_dimensions["C"].width = 30

        buffer = BytesIO()
        wb.save(buffer)
        buffer.seek(0)

        filename = f"orders_{date.today().isoformat()}.xlsx"
        return filename, buffer.read()
