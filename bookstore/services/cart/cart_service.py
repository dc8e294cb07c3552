# 📄 bookstore/services/cart/cart_service.py
# Page: cart
# Role: one cart per user: read, add, set quantity, remove, clear, membership check
#       totals (total_items / total_price) recomputed after every change
# Stage: v1.0

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from bookstore import models as m
from bookstore.services.common import as_float, commit, money, user_id_of
from bookstore.system.error_codes import DomainError

PAGE_ID = "cart.main"
PAGE_VERSION = "v1.0"


def recalculate_totals(cart: m.Cart) -> None:
    total_items = 0
    total_price = Decimal("0")
    for item in cart.items:
        total_items += item.quantity
        total_price += money(item.book.price) * item.quantity
    cart.total_items = total_items
    cart.total_price = money(total_price)


def remove_books_from_cart(session: Session, *, user_id: int, book_ids: Iterable[int]) -> int:
    """Drop ordered books from the user's cart. Returns the number of removed lines."""
    cart = session.execute(select(m.Cart).where(m.Cart.user_id == user_id)).scalar_one_or_none()
    if cart is None:
        return 0
    wanted = set(book_ids)
    removed = [item for item in cart.items if item.book_id in wanted]
    for item in removed:
        cart.items.remove(item)
    recalculate_totals(cart)
    return len(removed)


def _serialize_cart(cart: Optional[m.Cart]) -> Dict[str, Any]:
    if cart is None:
        return {"cart": {"id": None, "items": [], "total_items": 0, "total_price": 0.0}}

    items = []
    for item in cart.items:
        book = item.book
        items.append(
            {
                "id": item.id,
                "book_id": book.id,
                "title": book.title,
                "author": book.author,
                "image_url": book.image_url,
                "format": book.format,
                "price": as_float(book.price),
                "stock": book.stock,
                "quantity": item.quantity,
                "subtotal": as_float(money(book.price) * item.quantity),
            }
        )
    return {
        "cart": {
            "id": cart.id,
            "items": items,
            "total_items": cart.total_items,
            "total_price": as_float(cart.total_price),
        }
    }


class CartService:
    page_id: str = PAGE_ID
    page_version: str = PAGE_VERSION

    def __init__(self, *, session: Session, user: Dict[str, Any]):
        self.session = session
        self.user = user
        self.user_id = user_id_of(user)

    # -----------------------------------------------------
    # internal
    # -----------------------------------------------------
    def _find_cart(self) -> Optional[m.Cart]:
        return self.session.execute(
            select(m.Cart).where(m.Cart.user_id == self.user_id)
        ).scalar_one_or_none()

    def _require_cart(self) -> m.Cart:
        cart = self._find_cart()
        if cart is None:
            raise DomainError("CART-NOTFOUND-101", detail="Cart not found.", ctx={"user_id": self.user_id})
        return cart

    def _get_book(self, book_id: int) -> m.Book:
        book = self.session.get(m.Book, book_id)
        if book is None or book.is_deleted:
            raise DomainError("CART-NOTFOUND-102", detail="Book not found.", ctx={"book_id": book_id})
        return book

    @staticmethod
    def _find_item(cart: m.Cart, book_id: int) -> Optional[m.CartItem]:
        for item in cart.items:
            if item.book_id == book_id:
                return item
        return None

    @staticmethod
    def _check_stock(book: m.Book, quantity: int) -> None:
        if not book.is_digital and (book.stock or 0) < quantity:
            raise DomainError(
                "CART-STATE-451",
                detail=f"Insufficient stock for book: {book.title}",
                ctx={"book_id": book.id, "requested": quantity, "available": book.stock},
            )

    # -----------------------------------------------------
    # [read] cart
    # -----------------------------------------------------
    def get_cart(self) -> Dict[str, Any]:
        return _serialize_cart(self._find_cart())

    # -----------------------------------------------------
    # [write] add
    # -----------------------------------------------------
    def add_item(self, *, book_id: int, quantity: int = 1) -> Dict[str, Any]:
        if quantity is None or quantity < 1:
            raise DomainError("CART-VALID-001", detail="Quantity must be at least 1.", ctx={"quantity": quantity})

        book = self._get_book(book_id)
        if not book.is_active:
            raise DomainError("CART-STATE-452", detail="Book is not available.", ctx={"book_id": book_id})

        cart = self._find_cart()
        if cart is None:
            cart = m.Cart(user_id=self.user_id, total_items=0, total_price=Decimal("0"))
            self.session.add(cart)

        item = self._find_item(cart, book_id)
        new_quantity = quantity + (item.quantity if item is not None else 0)
        self._check_stock(book, new_quantity)

        if item is None:
            cart.items.append(m.CartItem(book=book, quantity=quantity))
        else:
            item.quantity = new_quantity

        recalculate_totals(cart)
        commit(self.session, page_id=PAGE_ID)
        return _serialize_cart(cart)

    # -----------------------------------------------------
    # [write] set quantity (0 removes)
    # -----------------------------------------------------
    def update_item(self, *, book_id: int, quantity: int) -> Dict[str, Any]:
        if quantity is None or quantity < 0:
            raise DomainError("CART-VALID-002", detail="Quantity cannot be negative.", ctx={"quantity": quantity})

        cart = self._require_cart()
        item = self._find_item(cart, book_id)
        if item is None:
            raise DomainError("CART-NOTFOUND-103", detail="Item not in cart.", ctx={"book_id": book_id})

        if quantity == 0:
            cart.items.remove(item)
        else:
            self._check_stock(item.book, quantity)
            item.quantity = quantity

        recalculate_totals(cart)
        commit(self.session, page_id=PAGE_ID)
        return _serialize_cart(cart)

    # -----------------------------------------------------
    # [write] remove / clear
    # -----------------------------------------------------
    def remove_item(self, *, book_id: int) -> Dict[str, Any]:
        cart = self._require_cart()
        item = self._find_item(cart, book_id)
        if item is None:
            raise DomainError("CART-NOTFOUND-103", detail="Item not in cart.", ctx={"book_id": book_id})

        cart.items.remove(item)
        recalculate_totals(cart)
        commit(self.session, page_id=PAGE_ID)
        return _serialize_cart(cart)

    def clear(self) -> Dict[str, Any]:
        cart = self._find_cart()
        if cart is None:
            return _serialize_cart(None)

        cart.items.clear()
        recalculate_totals(cart)
        commit(self.session, page_id=PAGE_ID)
        return _serialize_cart(cart)

    # -----------------------------------------------------
    # [read] membership
    # -----------------------------------------------------
    def check(self, *, book_id: int) -> Dict[str, Any]:
        cart = self._find_cart()
        item = self._find_item(cart, book_id) if cart is not None else None
        return {
            "book_id": book_id,
            "in_cart": item is not None,
            "quantity": item.quantity if item is not None else 0,
        }
