# 📄 bookstore/services/shipping/shipping_provider_service.py
# Page: shipping providers
# Role: active list for checkout, admin list/search, detail, by-code lookup,
#       create/update, soft delete (+ deactivate)
# Stage: v1.0

from __future__ import annotations

from decimal import InvalidOperation
from typing import Any, Dict, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from bookstore import models as m
from bookstore.services.common import as_float, commit, iso, money
from bookstore.system.error_codes import DomainError

PAGE_ID = "shipping.providers"
PAGE_VERSION = "v1.0"

CODE_MAX_LENGTH = 10

SORT_COLUMNS = {
    "name": m.ShippingProvider.name,
    "code": m.ShippingProvider.code,
    "base_fee": m.ShippingProvider.base_fee,
    "created_at": m.ShippingProvider.created_at,
}

EDITABLE_FIELDS = (
    "name", "estimated_time", "description", "contact_phone", "contact_email", "contact_website",
)


def serialize_provider(provider: m.ShippingProvider) -> Dict[str, Any]:
    return {
        "id": provider.id,
        "name": provider.name,
        "code": provider.code,
        "base_fee": as_float(provider.base_fee),
        "estimated_time": provider.estimated_time,
        "is_active": provider.is_active,
        "description": provider.description,
        "contact_info": {
            "phone": provider.contact_phone,
            "email": provider.contact_email,
            "website": provider.contact_website,
        },
        "created_at": iso(provider.created_at),
    }


class ShippingProviderService:
    page_id: str = PAGE_ID
    page_version: str = PAGE_VERSION

    def __init__(self, *, session: Session, user: Optional[Dict[str, Any]] = None):
        self.session = session
        self.user = user

    # -----------------------------------------------------
    # internal
    # -----------------------------------------------------
    def _get(self, provider_id: int) -> m.ShippingProvider:
        provider = self.session.get(m.ShippingProvider, provider_id)
        if provider is None or provider.is_deleted:
            raise DomainError(
                "SHIPPING-NOTFOUND-101",
                detail="Shipping provider not found.",
                ctx={"provider_id": provider_id},
            )
        return provider

    @staticmethod
    def _clean_code(code: Optional[str]) -> str:
        value = (code or "").strip().upper()
        if not value:
            raise DomainError("SHIPPING-VALID-001", detail="Provider code is required.", ctx={"field": "code"})
        if len(value) > CODE_MAX_LENGTH:
            raise DomainError(
                "SHIPPING-VALID-002",
                detail=f"Provider code cannot exceed {CODE_MAX_LENGTH} characters.",
                ctx={"code": value},
            )
        return value

    @staticmethod
    def _clean_fee(value: Any):
        try:
            fee = money(value)
        except (InvalidOperation, ValueError):
            raise DomainError("SHIPPING-VALID-003", detail="Invalid base fee.", ctx={"base_fee": value})
        if fee < 0:
            raise DomainError("SHIPPING-VALID-003", detail="Base fee cannot be negative.", ctx={"base_fee": str(value)})
        return fee

    def _ensure_unique_code(self, code: str, *, exclude_id: Optional[int] = None) -> None:
        stmt = select(m.ShippingProvider.id).where(m.ShippingProvider.code == code)
        if exclude_id is not None:
            stmt = stmt.where(m.ShippingProvider.id != exclude_id)
        if self.session.execute(stmt).first():
            raise DomainError(
                "SHIPPING-CONFLICT-201",
                detail="Provider code already exists.",
                ctx={"code": code},
            )

    # -----------------------------------------------------
    # [read]
    # -----------------------------------------------------
    def list_active(self) -> Dict[str, Any]:
        rows = self.session.execute(
            select(m.ShippingProvider)
            .where(m.ShippingProvider.is_deleted.is_(False), m.ShippingProvider.is_active.is_(True))
            .order_by(m.ShippingProvider.base_fee.asc(), m.ShippingProvider.name.asc())
        ).scalars().all()
        items = [serialize_provider(p) for p in rows]
        return {"items": items, "total": len(items)}

    def list_providers(
        self,
        *,
        search: Optional[str] = None,
        status: Optional[str] = None,
        sort_by: str = "name",
        sort_order: str = "asc",
    ) -> Dict[str, Any]:
        conditions = [m.ShippingProvider.is_deleted.is_(False)]
        if search and search.strip():
            like = f"%{search.strip().lower()}%"
            conditions.append(
                or_(
                    func.lower(m.ShippingProvider.name).like(like),
                    func.lower(m.ShippingProvider.code).like(like),
                )
            )
        if status == "active":
            conditions.append(m.ShippingProvider.is_active.is_(True))
        elif status == "inactive":
            conditions.append(m.ShippingProvider.is_active.is_(False))

        sort_col = SORT_COLUMNS.get(sort_by, m.ShippingProvider.name)
        order = sort_col.desc() if sort_order.lower() == "desc" else sort_col.asc()

        rows = self.session.execute(
            select(m.ShippingProvider).where(*conditions).order_by(order)
        ).scalars().all()
        items = [serialize_provider(p) for p in rows]
        return {"items": items, "total": len(items)}

    def get_provider(self, *, provider_id: int) -> Dict[str, Any]:
        return {"provider": serialize_provider(self._get(provider_id))}

    def get_by_code(self, *, code: str) -> Dict[str, Any]:
        provider = self.session.execute(
            select(m.ShippingProvider).where(
                m.ShippingProvider.code == (code or "").strip().upper(),
                m.ShippingProvider.is_deleted.is_(False),
            )
        ).scalar_one_or_none()
        if provider is None:
            raise DomainError("SHIPPING-NOTFOUND-101", detail="Shipping provider not found.", ctx={"code": code})
        return {"provider": serialize_provider(provider)}

    # -----------------------------------------------------
    # [write]
    # -----------------------------------------------------
    def create_provider(self, *, data: Dict[str, Any]) -> Dict[str, Any]:
        name = (data.get("name") or "").strip()
        if not name:
            raise DomainError("SHIPPING-VALID-001", detail="Provider name is required.", ctx={"field": "name"})
        code = self._clean_code(data.get("code"))
        self._ensure_unique_code(code)

        provider = m.ShippingProvider(
            name=name,
            code=code,
            base_fee=self._clean_fee(data.get("base_fee", 0)),
            is_active=bool(data.get("is_active", True)),
        )
        for key in EDITABLE_FIELDS:
            if key != "name" and data.get(key) is not None:
                setattr(provider, key, data[key])

        self.session.add(provider)
        commit(self.session, page_id=PAGE_ID)
        return {"provider": serialize_provider(provider)}

    def update_provider(self, *, provider_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        provider = self._get(provider_id)

        if data.get("code") is not None:
            code = self._clean_code(data["code"])
            if code != provider.code:
                self._ensure_unique_code(code, exclude_id=provider.id)
            provider.code = code
        if data.get("base_fee") is not None:
            provider.base_fee = self._clean_fee(data["base_fee"])
        if data.get("is_active") is not None:
            provider.is_active = bool(data["is_active"])
        if data.get("name") is not None and not data["name"].strip():
            raise DomainError("SHIPPING-VALID-001", detail="Provider name is required.", ctx={"field": "name"})

        for key in EDITABLE_FIELDS:
            if data.get(key) is not None:
                setattr(provider, key, data[key].strip() if key == "name" else data[key])

        commit(self.session, page_id=PAGE_ID)
        return {"provider": serialize_provider(provider)}

    def delete_provider(self, *, provider_id: int) -> Dict[str, Any]:
        provider = self._get(provider_id)
        provider.is_deleted = True
        provider.is_active = False
        commit(self.session, page_id=PAGE_ID)
        return {"deleted": True, "provider_id": provider_id}
