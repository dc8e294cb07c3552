# 📄 bookstore/services/payments/payment_service.py
# Page: payments
# Role: payment method list, admin payment list/search, payment rows of one order, xlsx export
# Stage: v1.0
#
# Payment state changes go through OrderService (confirm_payment / cancel / update_status)
# so order and payment rows always move together.

from __future__ import annotations

from datetime import date
from io import BytesIO
from typing import Any, Dict, Optional, Tuple

from openpyxl import Workbook
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from bookstore import models as m
from bookstore.services.common import as_float, is_admin, iso, page_window, total_pages, user_id_of
from bookstore.system.error_codes import DomainError

PAGE_ID = "payments.main"
PAGE_VERSION = "v1.0"

SUPPORTED_METHODS = ("COD", "VNPAY", "MOMO")


def serialize_payment(payment: m.Payment) -> Dict[str, Any]:
    order = payment.order
    customer = order.user if order is not None else None
    return {
        "id": payment.id,
        "transaction_code": payment.transaction_code,
        "transaction_id": payment.transaction_id,
        "amount": as_float(payment.amount),
        "method": payment.method,
        "status": payment.status,
        "description": payment.description,
        "paid_at": iso(payment.paid_at),
        "created_at": iso(payment.created_at),
        "order_id": payment.order_id,
        "order_code": order.order_code if order is not None else None,
        "customer_name": customer.name if customer is not None else None,
        "customer_email": customer.email if customer is not None else None,
    }


class PaymentService:
    page_id: str = PAGE_ID
    page_version: str = PAGE_VERSION

    def __init__(self, *, session: Session, user: Optional[Dict[str, Any]] = None):
        self.session = session
        self.user = user

    def methods(self) -> Dict[str, Any]:
        return {"methods": list(SUPPORTED_METHODS)}

    def _filtered(self, *, search: Optional[str], status: Optional[str]):
        stmt = (
            select(m.Payment)
            .join(m.Order, m.Order.id == m.Payment.order_id)
            .join(m.User, m.User.id == m.Order.user_id)
        )
        conditions = []
        if status:
            normalized = status.upper()
            if normalized not in m.PAYMENT_STATUSES:
                raise DomainError(
                    "PAYMENT-VALID-001",
                    detail="Unknown payment status.",
                    ctx={"status": status, "allowed": list(m.PAYMENT_STATUSES)},
                )
            conditions.append(m.Payment.status == normalized)
        if search and search.strip():
            like = f"%{search.strip().lower()}%"
            conditions.append(
                or_(
                    func.lower(m.Payment.transaction_code).like(like),
                    func.lower(m.Order.order_code).like(like),
                    func.lower(m.User.name).like(like),
                    func.lower(m.User.email).like(like),
                )
            )
        return stmt.where(*conditions)

    def list_payments(
        self,
        *,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Dict[str, Any]:
        page, limit = page_window(page, limit, code="PAYMENT-VALID-002")
        stmt = self._filtered(search=search, status=status)

        total = self.session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()
        rows = self.session.execute(
            stmt.order_by(m.Payment.created_at.desc(), m.Payment.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()

        return {
            "items": [serialize_payment(p) for p in rows],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": total_pages(total, limit),
            },
        }

    def get_for_order(self, *, order_id: int) -> Dict[str, Any]:
        order = self.session.get(m.Order, order_id)
        if order is None or order.is_deleted:
            raise DomainError("PAYMENT-NOTFOUND-101", detail="Order not found.", ctx={"order_id": order_id})
        if order.user_id != user_id_of(self.user) and not is_admin(self.user):
            raise DomainError("PAYMENT-DENY-301", detail="Access denied to this order.", ctx={"order_id": order_id})

        items = [serialize_payment(p) for p in order.payments]
        return {"order_id": order.id, "order_code": order.order_code, "items": items, "total": len(items)}

    def export_xlsx(self, *, status: Optional[str] = None) -> Tuple[str, bytes]:
        rows = self.session.execute(
            self._filtered(search=None, status=status).order_by(m.Payment.created_at.desc(), m.Payment.id.desc())
        ).scalars().all()

        wb = Workbook()
        ws = wb.active
        ws.title = "Payments"
        ws.append(["Transaction code", "Order code", "Customer", "Amount", "Method", "Status", "Paid at", "Created at"])
        for p in rows:
            data = serialize_payment(p)
            ws.append([
                data["transaction_code"],
                data["order_code"],
                data["customer_name"],
                data["amount"],
                data["method"],
                data["status"],
                p.paid_at.strftime("%Y-%m-%d %H:%M") if p.paid_at else "",
                p.created_at.strftime("%Y-%m-%d %H:%M") if p.created_at else "",
            ])
        ws.column_dimensions["A"].width = 24
        ws.column_dimensions["B"].width = 22

        buffer = BytesIO()
        wb.save(buffer)
        buffer.seek(0)
        return f"payments_{date.today().isoformat()}.xlsx", buffer.read()
