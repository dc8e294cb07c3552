# 📄 alembic/versions/a1c3e5f70001_initial_bookstore_schema.py
# Initial bookstore schema: accounts, catalog, cart, addresses, favorites, shipping,
# vouchers (+scoping, usages), orders, payments, library, support chat
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "a1c3e5f70001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def _is_deleted():
    return sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.text("false"))


def upgrade():
    # accounts
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("full_name", sa.String(150)),
        sa.Column("email", sa.String(150), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'user'")),
        sa.Column("avatar", sa.String(500)),
        sa.Column("phone", sa.String(20)),
        sa.Column("address", sa.String(255)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'ACTIVE'")),
        sa.Column("is_email_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("last_login_at", sa.DateTime()),
        *_timestamps(),
        _is_deleted(),
        sa.CheckConstraint("role IN ('user', 'admin')", name="ck_users_role"),
        sa.CheckConstraint("status IN ('ACTIVE', 'INACTIVE')", name="ck_users_status"),
    )
    op.create_index("idx_users_role", "users", ["role"])

    # catalog
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500)),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'active'")),
        *_timestamps(),
        _is_deleted(),
    )
    op.create_index(
        "uq_categories_name_live",
        "categories",
        ["name"],
        unique=True,
        postgresql_where=sa.text("is_deleted = false"),
    )

    op.create_table(
        "books",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("author", sa.String(100)),
        sa.Column("price", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("description", sa.String(1000)),
        sa.Column("image_url", sa.String(500)),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False),
        sa.Column("isbn", sa.String(20), unique=True),
        sa.Column("publisher", sa.String(100)),
        sa.Column("publication_date", sa.Date()),
        sa.Column("pages", sa.Integer()),
        sa.Column("format", sa.String(20), nullable=False, server_default=sa.text("'PAPERBACK'")),
        sa.Column("dimensions", sa.String(50)),
        sa.Column("weight", sa.Numeric(10, 2)),
        sa.Column("file_url", sa.String(500)),
        sa.Column("file_path", sa.String(500)),
        sa.Column("file_size", sa.BigInteger()),
        sa.Column("mime_type", sa.String(100)),
        sa.Column("duration", sa.Integer()),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'AVAILABLE'")),
        *_timestamps(),
        _is_deleted(),
        sa.CheckConstraint(
            "format IN ('HARDCOVER', 'PAPERBACK', 'EBOOK', 'AUDIOBOOK')", name="ck_books_format"
        ),
        sa.CheckConstraint(
            "status IN ('AVAILABLE', 'OUT_OF_STOCK', 'DISCONTINUED', 'COMING_SOON')", name="ck_books_status"
        ),
        sa.CheckConstraint("price >= 0", name="ck_books_price_non_negative"),
    )
    op.create_index("idx_books_category_id", "books", ["category_id"])
    op.create_index("idx_books_title", "books", ["title"])

    # cart
    op.create_table(
        "carts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("total_items", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
    )
    op.create_table(
        "cart_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("cart_id", sa.Integer(), sa.ForeignKey("carts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.UniqueConstraint("cart_id", "book_id", name="uq_cart_items_cart_book"),
        sa.CheckConstraint("quantity > 0", name="ck_cart_items_quantity_positive"),
    )

    # addresses / favorites
    op.create_table(
        "addresses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("phone", sa.String(11), nullable=False),
        sa.Column("address", sa.String(200), nullable=False),
        sa.Column("city", sa.String(50), nullable=False),
        sa.Column("district", sa.String(50), nullable=False),
        sa.Column("ward", sa.String(50), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        _is_deleted(),
    )
    op.create_index("idx_addresses_user_id", "addresses", ["user_id"])

    op.create_table(
        "favorites",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id", ondelete="CASCADE"), nullable=False),
        sa.Column("is_favourite", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        _is_deleted(),
        sa.UniqueConstraint("user_id", "book_id", name="uq_favorites_user_book"),
    )

    # shipping
    op.create_table(
        "shipping_providers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("code", sa.String(10), nullable=False, unique=True),
        sa.Column("base_fee", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("estimated_time", sa.String(50)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("description", sa.String(500)),
        sa.Column("contact_phone", sa.String(20)),
        sa.Column("contact_email", sa.String(100)),
        sa.Column("contact_website", sa.String(200)),
        *_timestamps(),
        _is_deleted(),
        sa.CheckConstraint("base_fee >= 0", name="ck_shipping_base_fee_non_negative"),
    )

    # vouchers
    op.create_table(
        "vouchers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(20), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500)),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("value", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("min_order_amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("max_discount_amount", sa.Numeric(12, 2)),
        sa.Column("usage_limit", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("used_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("valid_from", sa.DateTime(), nullable=False),
        sa.Column("valid_to", sa.DateTime(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id")),
        *_timestamps(),
        _is_deleted(),
        sa.CheckConstraint("type IN ('PERCENTAGE', 'FIXED_AMOUNT', 'FREE_SHIPPING')", name="ck_vouchers_type"),
        sa.CheckConstraint("usage_limit >= 1", name="ck_vouchers_usage_limit_positive"),
        sa.CheckConstraint("used_count >= 0", name="ck_vouchers_used_count_non_negative"),
        sa.CheckConstraint("valid_from < valid_to", name="ck_vouchers_window"),
    )
    op.create_index(
        "uq_vouchers_code_live",
        "vouchers",
        ["code"],
        unique=True,
        postgresql_where=sa.text("is_deleted = false"),
    )
    for table, column, target in (
        ("voucher_categories", "category_id", "categories.id"),
        ("voucher_books", "book_id", "books.id"),
        ("voucher_users", "user_id", "users.id"),
    ):
        op.create_table(
            table,
            sa.Column("voucher_id", sa.Integer(), sa.ForeignKey("vouchers.id", ondelete="CASCADE"), primary_key=True),
            sa.Column(column, sa.Integer(), sa.ForeignKey(target, ondelete="CASCADE"), primary_key=True),
        )

    # orders / payments
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_code", sa.String(30), nullable=False, unique=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("original_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("discount_amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("shipping_fee", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("voucher_id", sa.Integer(), sa.ForeignKey("vouchers.id")),
        sa.Column("payment_method", sa.String(20), nullable=False, server_default=sa.text("'COD'")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("transaction_id", sa.String(100)),
        sa.Column("shipping_address_id", sa.Integer(), sa.ForeignKey("addresses.id")),
        sa.Column("shipping_provider_id", sa.Integer(), sa.ForeignKey("shipping_providers.id")),
        sa.Column("note", sa.String(500)),
        sa.Column("cancel_reason", sa.String(255)),
        sa.Column("paid_at", sa.DateTime()),
        sa.Column("confirmed_at", sa.DateTime()),
        sa.Column("shipped_at", sa.DateTime()),
        sa.Column("delivered_at", sa.DateTime()),
        sa.Column("cancelled_at", sa.DateTime()),
        *_timestamps(),
        _is_deleted(),
        sa.CheckConstraint(
            "status IN ('PENDING', 'CONFIRMED', 'SHIPPED', 'DELIVERED', 'CANCELLED')", name="ck_orders_status"
        ),
        sa.CheckConstraint(
            "payment_status IN ('PENDING', 'COMPLETED', 'FAILED', 'REFUNDED')", name="ck_orders_payment_status"
        ),
        sa.CheckConstraint(
            "payment_method IN ('COD', 'BANK_TRANSFER', 'MOMO', 'ZALOPAY')", name="ck_orders_payment_method"
        ),
    )
    op.create_index("idx_orders_user_id", "orders", ["user_id"])
    op.create_index("idx_orders_status_created", "orders", ["status", "created_at"])

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price_at_purchase", sa.Numeric(12, 2), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )
    op.create_index("idx_order_items_order_id", "order_items", ["order_id"])

    op.create_table(
        "voucher_usages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("voucher_id", sa.Integer(), sa.ForeignKey("vouchers.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("voucher_code", sa.String(20), nullable=False),
        sa.Column("discount_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("order_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("used_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("is_refunded", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("refunded_at", sa.DateTime()),
        sa.Column("refund_reason", sa.String(255)),
        sa.UniqueConstraint("voucher_id", "user_id", "order_id", name="uq_voucher_usages_voucher_user_order"),
    )
    op.create_index("idx_voucher_usages_voucher_id", "voucher_usages", ["voucher_id"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("transaction_code", sa.String(50), nullable=False, unique=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("method", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("transaction_id", sa.String(100)),
        sa.Column("description", sa.String(255)),
        sa.Column("paid_at", sa.DateTime()),
        *_timestamps(),
        sa.CheckConstraint(
            "method IN ('COD', 'VNPAY', 'MOMO', 'ZALOPAY', 'PAYPAL', 'CREDIT_CARD', 'BANK_TRANSFER')",
            name="ck_payments_method",
        ),
        sa.CheckConstraint(
            "status IN ('PENDING', 'COMPLETED', 'FAILED', 'REFUNDED')", name="ck_payments_status"
        ),
    )
    op.create_index("idx_payments_order_id", "payments", ["order_id"])

    # library
    op.create_table(
        "user_books",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id"), nullable=False),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id")),
        sa.Column("purchase_date", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("download_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_download_at", sa.DateTime()),
        sa.Column("file_url", sa.String(500)),
        sa.Column("file_path", sa.String(500)),
        sa.Column("file_size", sa.BigInteger()),
        sa.Column("mime_type", sa.String(100)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("idx_user_books_user_book", "user_books", ["user_id", "book_id"])

    op.create_table(
        "download_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_book_id", sa.Integer(), sa.ForeignKey("user_books.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id"), nullable=False),
        sa.Column("download_type", sa.String(20), nullable=False, server_default=sa.text("'DOWNLOAD'")),
        sa.Column("ip_address", sa.String(64), nullable=False, server_default=sa.text("'unknown'")),
        sa.Column("user_agent", sa.String(255)),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'COMPLETED'")),
        sa.Column("downloaded_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("download_type IN ('DOWNLOAD', 'STREAM')", name="ck_download_history_type"),
    )

    # support chat
    op.create_table(
        "conversations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'OPEN'")),
        sa.Column("last_message_at", sa.DateTime()),
        *_timestamps(),
        sa.CheckConstraint("status IN ('OPEN', 'CLOSED')", name="ck_conversations_status"),
    )
    op.create_index("idx_conversations_user_id", "conversations", ["user_id"])

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "conversation_id",
            sa.Integer(),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sender_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("sender_type", sa.String(20), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        _is_deleted(),
        sa.CheckConstraint("sender_type IN ('USER', 'SUPPORT')", name="ck_messages_sender_type"),
    )
    op.create_index("idx_messages_conversation_id", "messages", ["conversation_id"])


def downgrade():
    for table in (
        "messages",
        "conversations",
        "download_history",
        "user_books",
        "payments",
        "voucher_usages",
        "order_items",
        "orders",
        "voucher_users",
        "voucher_books",
        "voucher_categories",
        "vouchers",
        "shipping_providers",
        "favorites",
        "addresses",
        "cart_items",
        "carts",
        "books",
        "categories",
        "users",
    ):
        op.drop_table(table)
