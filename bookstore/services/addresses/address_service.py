# 📄 bookstore/services/addresses/address_service.py
# Page: my page / shipping addresses
# Role: list (default first), default lookup, create/update, soft delete, set default
#       foreign or deleted addresses always answer 404
# Stage: v1.0

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from bookstore import models as m
from bookstore.services.common import commit, iso, user_id_of
from bookstore.system.error_codes import DomainError

PAGE_ID = "addresses.main"
PAGE_VERSION = "v1.0"

PHONE_PATTERN = re.compile(r"^[0-9]{10,11}$")

# field → max length
FIELD_LIMITS = {
    "name": 100,
    "phone": 11,
    "address": 200,
    "city": 50,
    "district": 50,
    "ward": 50,
}


def serialize_address(address: m.Address) -> Dict[str, Any]:
    return {
        "id": address.id,
        "name": address.name,
        "phone": address.phone,
        "address": address.address,
        "city": address.city,
        "district": address.district,
        "ward": address.ward,
        "is_default": address.is_default,
        "full_address": ", ".join([address.address, address.ward, address.district, address.city]),
        "created_at": iso(address.created_at),
    }


def _validate_fields(data: Dict[str, Any], *, partial: bool) -> Dict[str, Any]:
    cleaned: Dict[str, Any] = {}
    for field, max_len in FIELD_LIMITS.items():
        if field not in data or data[field] is None:
            if not partial:
                raise DomainError("ADDRESS-VALID-001", detail=f"{field} is required.", ctx={"field": field})
            continue
        value = str(data[field]).strip()
        if not value:
            raise DomainError("ADDRESS-VALID-001", detail=f"{field} is required.", ctx={"field": field})
        if len(value) > max_len:
            raise DomainError(
                "ADDRESS-VALID-002",
                detail=f"{field} cannot exceed {max_len} characters.",
                ctx={"field": field, "max_length": max_len},
            )
        cleaned[field] = value

    if "phone" in cleaned and not PHONE_PATTERN.match(cleaned["phone"]):
        raise DomainError("ADDRESS-VALID-003", detail="Phone must be 10-11 digits.", ctx={"phone": cleaned["phone"]})
    return cleaned


class AddressService:
    page_id: str = PAGE_ID
    page_version: str = PAGE_VERSION

    def __init__(self, *, session: Session, user: Dict[str, Any]):
        self.session = session
        self.user = user
        self.user_id = user_id_of(user)

    def _live_addresses(self) -> List[m.Address]:
        return list(
            self.session.execute(
                select(m.Address)
                .where(m.Address.user_id == self.user_id, m.Address.is_deleted.is_(False))
                .order_by(m.Address.is_default.desc(), m.Address.created_at.desc(), m.Address.id.desc())
            ).scalars()
        )

    def _get_owned(self, address_id: int) -> m.Address:
        address = self.session.get(m.Address, address_id)
        if address is None or address.is_deleted or address.user_id != self.user_id:
            raise DomainError("ADDRESS-NOTFOUND-101", detail="Address not found.", ctx={"address_id": address_id})
        return address

    def _unset_defaults(self, *, except_id: Optional[int] = None) -> None:
        stmt = (
            update(m.Address)
            .where(m.Address.user_id == self.user_id, m.Address.is_default.is_(True))
            .values(is_default=False)
            .execution_options(synchronize_session="fetch")
        )
        if except_id is not None:
            stmt = stmt.where(m.Address.id != except_id)
        self.session.execute(stmt)

    # [read]
    def list_addresses(self) -> Dict[str, Any]:
        items = [serialize_address(a) for a in self._live_addresses()]
        return {"items": items, "total": len(items)}

    def get_default(self) -> Dict[str, Any]:
        address = self.session.execute(
            select(m.Address).where(
                m.Address.user_id == self.user_id,
                m.Address.is_deleted.is_(False),
                m.Address.is_default.is_(True),
            )
        ).scalars().first()
        return {"address": serialize_address(address) if address is not None else None}

    def get_address(self, *, address_id: int) -> Dict[str, Any]:
        return {"address": serialize_address(self._get_owned(address_id))}

    # [write]
    def create_address(self, *, data: Dict[str, Any]) -> Dict[str, Any]:
        cleaned = _validate_fields(data, partial=False)

        # first address is always the default
        make_default = bool(data.get("is_default")) or not self._live_addresses()
        if make_default:
            self._unset_defaults()

        address = m.Address(user_id=self.user_id, is_default=make_default, **cleaned)
        self.session.add(address)
        commit(self.session, page_id=PAGE_ID)
        return {"address": serialize_address(address)}

    def update_address(self, *, address_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        address = self._get_owned(address_id)
        cleaned = _validate_fields(data, partial=True)

        for key, value in cleaned.items():
            setattr(address, key, value)

        if data.get("is_default") is True and not address.is_default:
            self._unset_defaults(except_id=address.id)
            address.is_default = True

        commit(self.session, page_id=PAGE_ID)
        return {"address": serialize_address(address)}

    def delete_address(self, *, address_id: int) -> Dict[str, Any]:
        address = self._get_owned(address_id)
        was_default = address.is_default

        address.is_deleted = True
        address.is_default = False

        if was_default:
            self.session.flush()
            remaining = self._live_addresses()
            if remaining:
                remaining[0].is_default = True

        commit(self.session, page_id=PAGE_ID)
        return {"deleted": True, "address_id": address_id}

    def set_default(self, *, address_id: int) -> Dict[str, Any]:
        address = self._get_owned(address_id)
        self._unset_defaults(except_id=address.id)
        address.is_default = True
        commit(self.session, page_id=PAGE_ID)
        return {"address": serialize_address(address)}
