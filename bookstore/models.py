# 📄 bookstore/models.py
# Purpose: SQLAlchemy models for the whole bookstore schema
# Tables: users / categories / books / carts / addresses / favorites /
#         shipping_providers / vouchers(+scoping) / orders / payments /
#         user_books(+download history) / conversations / messages
#
# ✅ Ground rules
# 1) Business tables use is_deleted for soft delete; rows are never hard-deleted by services.
# 2) Enumerations are stored as upper-case strings guarded by CHECK constraints.
# 3) Money columns are NUMERIC(12,2) and handled as Decimal in services.
# 4) order_items, voucher_usages and download_history keep history and have no soft delete.

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    Date,
    DateTime,
    Numeric,
    Text,
    BigInteger,
    ForeignKey,
    CheckConstraint,
    UniqueConstraint,
    Index,
    Table,
    text,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ─────────────────────────────────────────────
# Enumerations
# ─────────────────────────────────────────────
ROLES = ("user", "admin")
USER_STATUSES = ("ACTIVE", "INACTIVE")

BOOK_FORMATS = ("HARDCOVER", "PAPERBACK", "EBOOK", "AUDIOBOOK")
DIGITAL_FORMATS = ("EBOOK", "AUDIOBOOK")
BOOK_STATUSES = ("AVAILABLE", "OUT_OF_STOCK", "DISCONTINUED", "COMING_SOON")

VOUCHER_TYPES = ("PERCENTAGE", "FIXED_AMOUNT", "FREE_SHIPPING")

ORDER_STATUSES = ("PENDING", "CONFIRMED", "SHIPPED", "DELIVERED", "CANCELLED")
ORDER_PAYMENT_METHODS = ("COD", "BANK_TRANSFER", "MOMO", "ZALOPAY")
PAYMENT_STATUSES = ("PENDING", "COMPLETED", "FAILED", "REFUNDED")
PAYMENT_METHODS = ("COD", "VNPAY", "MOMO", "ZALOPAY", "PAYPAL", "CREDIT_CARD", "BANK_TRANSFER")

DOWNLOAD_TYPES = ("DOWNLOAD", "STREAM")
CONVERSATION_STATUSES = ("OPEN", "CLOSED")
SENDER_TYPES = ("USER", "SUPPORT")


def _in_check(column: str, values: tuple, name: str) -> CheckConstraint:
    quoted = ", ".join(f"'{v}'" for v in values)
    return CheckConstraint(f"{column} IN ({quoted})", name=name)


# ─────────────────────────────────────────────
# Shared mixins
# ─────────────────────────────────────────────
class CreatedUpdatedMixin:
    """
    Tables carrying both created_at and updated_at.
    - created_at: when the row was first written
    - updated_at: refreshed on every update
    """

    created_at = Column(
        DateTime,
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    updated_at = Column(
        DateTime,
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )


class SoftDeleteMixin:
    is_deleted = Column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )


# ─────────────────────────────────────────────
# Voucher scoping (many-to-many)
# ─────────────────────────────────────────────
voucher_categories = Table(
    "voucher_categories",
    Base.metadata,
    Column("voucher_id", Integer, ForeignKey("vouchers.id", ondelete="CASCADE"), primary_key=True),
    Column("category_id", Integer, ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True),
)

voucher_books = Table(
    "voucher_books",
    Base.metadata,
    Column("voucher_id", Integer, ForeignKey("vouchers.id", ondelete="CASCADE"), primary_key=True),
    Column("book_id", Integer, ForeignKey("books.id", ondelete="CASCADE"), primary_key=True),
)

voucher_users = Table(
    "voucher_users",
    Base.metadata,
    Column("voucher_id", Integer, ForeignKey("vouchers.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


# ─────────────────────────────────────────────
# 0. Accounts: users
# ─────────────────────────────────────────────
class User(CreatedUpdatedMixin, SoftDeleteMixin, Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)                     # display name
    full_name = Column(String(150))
    email = Column(String(150), nullable=False, unique=True)       # login id, stored lower-case
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="user", server_default=text("'user'"))
    avatar = Column(String(500))
    phone = Column(String(20))
    address = Column(String(255))

    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    status = Column(String(20), nullable=False, default="ACTIVE", server_default=text("'ACTIVE'"))
    is_email_verified = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    last_login_at = Column(DateTime)

    orders = relationship("Order", back_populates="user")

    __table_args__ = (
        _in_check("role", ROLES, "ck_users_role"),
        _in_check("status", USER_STATUSES, "ck_users_status"),
        Index("idx_users_role", "role"),
    )


# ─────────────────────────────────────────────
# 1. Catalog: categories / books
# ─────────────────────────────────────────────
class Category(CreatedUpdatedMixin, SoftDeleteMixin, Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    description = Column(String(500))
    status = Column(String(20), nullable=False, default="active", server_default=text("'active'"))

    books = relationship("Book", back_populates="category")

    __table_args__ = (
        # name is unique among live rows only
        Index(
            "uq_categories_name_live",
            "name",
            unique=True,
            postgresql_where=text("is_deleted = false"),
            sqlite_where=text("is_deleted = 0"),
        ),
    )


class Book(CreatedUpdatedMixin, SoftDeleteMixin, Base):
    __tablename__ = "books"

    id = Column(Integer, primary_key=True)
    title = Column(String(200), nullable=False)
    author = Column(String(100))
    price = Column(Numeric(12, 2), nullable=False, default=0, server_default=text("0"))
    stock = Column(Integer, nullable=False, default=0, server_default=text("0"))
    description = Column(String(1000))
    image_url = Column(String(500))

    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False)

    isbn = Column(String(20), unique=True)
    publisher = Column(String(100))
    publication_date = Column(Date)
    pages = Column(Integer)
    format = Column(String(20), nullable=False, default="PAPERBACK", server_default=text("'PAPERBACK'"))
    dimensions = Column(String(50))
    weight = Column(Numeric(10, 2))

    # digital asset (EBOOK / AUDIOBOOK)
    file_url = Column(String(500))
    file_path = Column(String(500))
    file_size = Column(BigInteger)
    mime_type = Column(String(100))
    duration = Column(Integer)                                     # seconds, audiobooks only

    view_count = Column(Integer, nullable=False, default=0, server_default=text("0"))
    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    status = Column(String(20), nullable=False, default="AVAILABLE", server_default=text("'AVAILABLE'"))

    category = relationship("Category", back_populates="books")

    @property
    def is_digital(self) -> bool:
        return self.format in DIGITAL_FORMATS

    __table_args__ = (
        _in_check("format", BOOK_FORMATS, "ck_books_format"),
        _in_check("status", BOOK_STATUSES, "ck_books_status"),
        CheckConstraint("price >= 0", name="ck_books_price_non_negative"),
        Index("idx_books_category_id", "category_id"),
        Index("idx_books_title", "title"),
    )


# ─────────────────────────────────────────────
# 2. Cart
# ─────────────────────────────────────────────
class Cart(CreatedUpdatedMixin, Base):
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    total_items = Column(Integer, nullable=False, default=0, server_default=text("0"))
    total_price = Column(Numeric(12, 2), nullable=False, default=0, server_default=text("0"))

    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="CartItem.id",
    )


class CartItem(CreatedUpdatedMixin, Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1, server_default=text("1"))

    cart = relationship("Cart", back_populates="items")
    book = relationship("Book")

    __table_args__ = (
        UniqueConstraint("cart_id", "book_id", name="uq_cart_items_cart_book"),
        CheckConstraint("quantity > 0", name="ck_cart_items_quantity_positive"),
    )


# ─────────────────────────────────────────────
# 3. Addresses / favorites
# ─────────────────────────────────────────────
class Address(CreatedUpdatedMixin, SoftDeleteMixin, Base):
    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=False)                     # recipient
    phone = Column(String(11), nullable=False)
    address = Column(String(200), nullable=False)                  # street line
    city = Column(String(50), nullable=False)
    district = Column(String(50), nullable=False)
    ward = Column(String(50), nullable=False)
    is_default = Column(Boolean, nullable=False, default=False, server_default=text("false"))

    __table_args__ = (
        Index("idx_addresses_user_id", "user_id"),
    )


class Favorite(CreatedUpdatedMixin, SoftDeleteMixin, Base):
    __tablename__ = "favorites"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    book_id = Column(Integer, ForeignKey("books.id", ondelete="CASCADE"), nullable=False)
    is_favourite = Column(Boolean, nullable=False, default=True, server_default=text("true"))

    book = relationship("Book")

    __table_args__ = (
        UniqueConstraint("user_id", "book_id", name="uq_favorites_user_book"),
    )


# ─────────────────────────────────────────────
# 4. Shipping providers
# ─────────────────────────────────────────────
class ShippingProvider(CreatedUpdatedMixin, SoftDeleteMixin, Base):
    __tablename__ = "shipping_providers"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    code = Column(String(10), nullable=False, unique=True)         # e.g. GHN, GHTK
    base_fee = Column(Numeric(12, 2), nullable=False, default=0, server_default=text("0"))
    estimated_time = Column(String(50))                            # e.g. "2-3 days"
    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    description = Column(String(500))
    contact_phone = Column(String(20))
    contact_email = Column(String(100))
    contact_website = Column(String(200))

    __table_args__ = (
        CheckConstraint("base_fee >= 0", name="ck_shipping_base_fee_non_negative"),
    )


# ─────────────────────────────────────────────
# 5. Vouchers
# ─────────────────────────────────────────────
class Voucher(CreatedUpdatedMixin, SoftDeleteMixin, Base):
    __tablename__ = "vouchers"

    id = Column(Integer, primary_key=True)
    code = Column(String(20), nullable=False)                      # upper-case, unique among live rows
    name = Column(String(100), nullable=False)
    description = Column(String(500))
    type = Column(String(20), nullable=False)
    value = Column(Numeric(12, 2), nullable=False, default=0, server_default=text("0"))
    min_order_amount = Column(Numeric(12, 2), nullable=False, default=0, server_default=text("0"))
    max_discount_amount = Column(Numeric(12, 2))                   # PERCENTAGE cap, optional
    usage_limit = Column(Integer, nullable=False, default=1, server_default=text("1"))
    used_count = Column(Integer, nullable=False, default=0, server_default=text("0"))
    valid_from = Column(DateTime, nullable=False)
    valid_to = Column(DateTime, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_by = Column(Integer, ForeignKey("users.id"))

    applicable_categories = relationship("Category", secondary=voucher_categories)
    applicable_books = relationship("Book", secondary=voucher_books)
    applicable_users = relationship("User", secondary=voucher_users)
    usages = relationship("VoucherUsage", back_populates="voucher")

    __table_args__ = (
        _in_check("type", VOUCHER_TYPES, "ck_vouchers_type"),
        CheckConstraint("usage_limit >= 1", name="ck_vouchers_usage_limit_positive"),
        CheckConstraint("used_count >= 0", name="ck_vouchers_used_count_non_negative"),
        CheckConstraint("valid_from < valid_to", name="ck_vouchers_window"),
        Index(
            "uq_vouchers_code_live",
            "code",
            unique=True,
            postgresql_where=text("is_deleted = false"),
            sqlite_where=text("is_deleted = 0"),
        ),
    )


class VoucherUsage(Base):
    __tablename__ = "voucher_usages"

    id = Column(Integer, primary_key=True)
    voucher_id = Column(Integer, ForeignKey("vouchers.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    voucher_code = Column(String(20), nullable=False)
    discount_amount = Column(Numeric(12, 2), nullable=False)
    order_amount = Column(Numeric(12, 2), nullable=False)
    used_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())

    is_refunded = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    refunded_at = Column(DateTime)
    refund_reason = Column(String(255))

    voucher = relationship("Voucher", back_populates="usages")

    __table_args__ = (
        UniqueConstraint("voucher_id", "user_id", "order_id", name="uq_voucher_usages_voucher_user_order"),
        Index("idx_voucher_usages_voucher_id", "voucher_id"),
    )


# ─────────────────────────────────────────────
# 6. Orders / payments
# ─────────────────────────────────────────────
class Order(CreatedUpdatedMixin, SoftDeleteMixin, Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    order_code = Column(String(30), nullable=False, unique=True)   # ORD-YYYYMMDD-NNNN
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    total_price = Column(Numeric(12, 2), nullable=False)           # amount due
    original_amount = Column(Numeric(12, 2), nullable=False)       # items subtotal
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0, server_default=text("0"))
    shipping_fee = Column(Numeric(12, 2), nullable=False, default=0, server_default=text("0"))
    voucher_id = Column(Integer, ForeignKey("vouchers.id"))

    payment_method = Column(String(20), nullable=False, default="COD", server_default=text("'COD'"))
    status = Column(String(20), nullable=False, default="PENDING", server_default=text("'PENDING'"))
    payment_status = Column(String(20), nullable=False, default="PENDING", server_default=text("'PENDING'"))
    transaction_id = Column(String(100))

    shipping_address_id = Column(Integer, ForeignKey("addresses.id"))
    shipping_provider_id = Column(Integer, ForeignKey("shipping_providers.id"))
    note = Column(String(500))
    cancel_reason = Column(String(255))

    paid_at = Column(DateTime)
    confirmed_at = Column(DateTime)
    shipped_at = Column(DateTime)
    delivered_at = Column(DateTime)
    cancelled_at = Column(DateTime)

    user = relationship("User", back_populates="orders")
    voucher = relationship("Voucher")
    shipping_address = relationship("Address")
    shipping_provider = relationship("ShippingProvider")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    payments = relationship("Payment", back_populates="order", order_by="Payment.id")

    __table_args__ = (
        _in_check("status", ORDER_STATUSES, "ck_orders_status"),
        _in_check("payment_status", PAYMENT_STATUSES, "ck_orders_payment_status"),
        _in_check("payment_method", ORDER_PAYMENT_METHODS, "ck_orders_payment_method"),
        Index("idx_orders_user_id", "user_id"),
        Index("idx_orders_status_created", "status", "created_at"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    price_at_purchase = Column(Numeric(12, 2), nullable=False)

    order = relationship("Order", back_populates="items")
    book = relationship("Book")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        Index("idx_order_items_order_id", "order_id"),
    )


class Payment(CreatedUpdatedMixin, Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    transaction_code = Column(String(50), nullable=False, unique=True)
    amount = Column(Numeric(12, 2), nullable=False)
    method = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default="PENDING", server_default=text("'PENDING'"))
    transaction_id = Column(String(100))                           # gateway reference
    description = Column(String(255))
    paid_at = Column(DateTime)

    order = relationship("Order", back_populates="payments")

    __table_args__ = (
        _in_check("method", PAYMENT_METHODS, "ck_payments_method"),
        _in_check("status", PAYMENT_STATUSES, "ck_payments_status"),
        Index("idx_payments_order_id", "order_id"),
    )


# ─────────────────────────────────────────────
# 7. Digital library
# ─────────────────────────────────────────────
class UserBook(CreatedUpdatedMixin, Base):
    __tablename__ = "user_books"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False)
    order_id = Column(Integer, ForeignKey("orders.id"))
    purchase_date = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())

    download_count = Column(Integer, nullable=False, default=0, server_default=text("0"))
    last_download_at = Column(DateTime)

    file_url = Column(String(500))
    file_path = Column(String(500))
    file_size = Column(BigInteger)
    mime_type = Column(String(100))
    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))

    book = relationship("Book")

    __table_args__ = (
        Index("idx_user_books_user_book", "user_id", "book_id"),
    )


class DownloadHistory(Base):
    __tablename__ = "download_history"

    id = Column(Integer, primary_key=True)
    user_book_id = Column(Integer, ForeignKey("user_books.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False)
    download_type = Column(String(20), nullable=False, default="DOWNLOAD", server_default=text("'DOWNLOAD'"))
    ip_address = Column(String(64), nullable=False, default="unknown", server_default=text("'unknown'"))
    user_agent = Column(String(255))
    status = Column(String(20), nullable=False, default="COMPLETED", server_default=text("'COMPLETED'"))
    downloaded_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())

    __table_args__ = (
        _in_check("download_type", DOWNLOAD_TYPES, "ck_download_history_type"),
    )


# ─────────────────────────────────────────────
# 8. Support chat
# ─────────────────────────────────────────────
class Conversation(CreatedUpdatedMixin, Base):
    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(String(20), nullable=False, default="OPEN", server_default=text("'OPEN'"))
    last_message_at = Column(DateTime)

    user = relationship("User")
    messages = relationship("Message", back_populates="conversation", order_by="Message.id")

    __table_args__ = (
        _in_check("status", CONVERSATION_STATUSES, "ck_conversations_status"),
        Index("idx_conversations_user_id", "user_id"),
    )


class Message(CreatedUpdatedMixin, SoftDeleteMixin, Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    sender_type = Column(String(20), nullable=False)
    content = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False, server_default=text("false"))

    conversation = relationship("Conversation", back_populates="messages")
    sender = relationship("User")

    __table_args__ = (
        _in_check("sender_type", SENDER_TYPES, "ck_messages_sender_type"),
        Index("idx_messages_conversation_id", "conversation_id"),
    )
