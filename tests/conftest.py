import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-with-at-least-32-characters")
os.environ.setdefault("DB_URL_SYNC", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from bookstore import models as m
from bookstore.db.session import get_async_session, get_sync_session
from bookstore.main import app
from bookstore.security.jwt_tokens import create_access_token
from bookstore.security.password import hash_password

PASSWORD = "secret123"


@pytest.fixture
def anyio_backend():
    return "asyncio"


# ─────────────────────────────────────────────
# Database: one in-memory SQLite per test
# ─────────────────────────────────────────────
@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    m.Base.metadata.create_all(engine)
    yield engine
    m.Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, class_=Session)


@pytest.fixture
def session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def client(session_factory):
    def _sync_session():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    async def _async_session():
        # analytics accepts a plain Session as well
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_sync_session] = _sync_session
    app.dependency_overrides[get_async_session] = _async_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ─────────────────────────────────────────────
# Accounts
# ─────────────────────────────────────────────
def make_user(session, *, email, name="Reader", role="user"):
    user = m.User(
        name=name,
        email=email,
        password_hash=hash_password(PASSWORD),
        role=role,
        status="ACTIVE",
        is_active=True,
    )
    session.add(user)
    session.commit()
    return user


def token_for(user):
    return create_access_token(subject=str(user.id), email=user.email, role=user.role)


def auth_header(user):
    return {"Authorization": f"Bearer {token_for(user)}"}


def payload_for(user):
    return {"sub": str(user.id), "email": user.email, "role": user.role}


@pytest.fixture
def user(session):
    return make_user(session, email="reader@example.com", name="Reader")


@pytest.fixture
def other_user(session):
    return make_user(session, email="other@example.com", name="Other")


@pytest.fixture
def admin(session):
    return make_user(session, email="admin@example.com", name="Admin", role="admin")


@pytest.fixture
def user_headers(user):
    return auth_header(user)


@pytest.fixture
def admin_headers(admin):
    return auth_header(admin)


# ─────────────────────────────────────────────
# Catalog / checkout data
# ─────────────────────────────────────────────
@pytest.fixture
def category(session):
    category = m.Category(name="Fiction", description="Novels", status="active")
    session.add(category)
    session.commit()
    return category


@pytest.fixture
def other_category(session):
    category = m.Category(name="Science", status="active")
    session.add(category)
    session.commit()
    return category


def make_book(session, category, *, title, price, stock=10, fmt="PAPERBACK", **extra):
    fields = dict(
        title=title,
        author="Author",
        price=Decimal(str(price)),
        stock=stock,
        category_id=category.id,
        format=fmt,
        is_active=True,
        status="AVAILABLE",
        view_count=0,
    )
    fields.update(extra)
    book = m.Book(**fields)
    session.add(book)
    session.commit()
    return book


@pytest.fixture
def book(session, category):
    return make_book(session, category, title="The Long Road", price="100.00", stock=10)


@pytest.fixture
def cheap_book(session, category):
    return make_book(session, category, title="Pocket Poems", price="20.00", stock=5)


@pytest.fixture
def ebook(session, category):
    return make_book(
        session,
        category,
        title="Digital Dreams",
        price="50.00",
        stock=0,
        fmt="EBOOK",
        file_url="https://files.example.com/dd.epub",
        file_size=1024,
        mime_type="application/epub+zip",
    )


@pytest.fixture
def address(session, user):
    address = m.Address(
        user_id=user.id,
        name="Reader",
        phone="0912345678",
        address="12 Main St",
        city="Hanoi",
        district="Ba Dinh",
        ward="Kim Ma",
        is_default=True,
    )
    session.add(address)
    session.commit()
    return address


@pytest.fixture
def provider(session):
    provider = m.ShippingProvider(name="Fast Ship", code="FAST", base_fee=Decimal("15.00"), is_active=True)
    session.add(provider)
    session.commit()
    return provider


def make_voucher(session, *, code, type="PERCENTAGE", value="10", **extra):
    now = m.utcnow()
    fields = dict(
        code=code,
        name=f"Voucher {code}",
        type=type,
        value=Decimal(str(value)),
        min_order_amount=Decimal("0"),
        usage_limit=10,
        used_count=0,
        valid_from=now - timedelta(days=1),
        valid_to=now + timedelta(days=30),
        is_active=True,
    )
    fields.update(extra)
    voucher = m.Voucher(**fields)
    session.add(voucher)
    session.commit()
    return voucher


@pytest.fixture
def voucher(session):
    return make_voucher(session, code="SAVE10", type="PERCENTAGE", value="10")


def place_order(client, headers, *, address, provider, items, voucher_code=None, payment_method="COD"):
    body = {
        "items": items,
        "shipping_address_id": address.id,
        "shipping_provider_id": provider.id,
        "payment_method": payment_method,
    }
    if voucher_code:
        body["voucher_code"] = voucher_code
    return client.post("/api/orders", json=body, headers=headers)
