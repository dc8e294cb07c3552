# 📄 bookstore/main.py
# Purpose: FastAPI app assembly
#   - .env load + structlog config
#   - global error handlers, CORS, request trace middleware
#   - health endpoints and page routers
# Run: uvicorn bookstore.main:app --reload

from __future__ import annotations

import os
import time
from contextlib import asynccontextmanager
from uuid import uuid4

from dotenv import load_dotenv

load_dotenv()

import structlog
from fastapi import FastAPI, APIRouter, Request
from fastapi.middleware.cors import CORSMiddleware

from bookstore.db.session import dispose_async_engine, dispose_sync_engine
from bookstore.system.error_codes import register_global_handlers
from bookstore.system.logging import configure_logging, get_logger

configure_logging()
logger = get_logger("bookstore.http")


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    dispose_sync_engine()
    await dispose_async_engine()


app = FastAPI(
    title="bookstore",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

register_global_handlers(app)

# ─────────────────────────────────────────────
# CORS
#  - CORS_ORIGINS: comma separated list; localhost on any port is always allowed
# ─────────────────────────────────────────────
DEFAULT_ORIGINS = "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000"
ALLOWED_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", DEFAULT_ORIGINS).split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_origin_regex=r"^https?://localhost(:\d+)?$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Trace-Id"],
)


# ─────────────────────────────────────────────
# Request trace: trace_id in log context, response header and error bodies
# ─────────────────────────────────────────────
@app.middleware("http")
async def trace_requests(request: Request, call_next):
    trace_id = request.headers.get("X-Trace-Id") or f"req-{uuid4().hex}"
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(trace_id=trace_id)

    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = round((time.perf_counter() - started) * 1000, 1)

    response.headers["X-Trace-Id"] = trace_id
    logger.info(
        "Request handled",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=elapsed_ms,
    )
    return response


# ─────────────────────────────────────────────
# Health
# ─────────────────────────────────────────────
@app.get("/health", tags=["system"])
def health():
    return {"status": "ok"}


api = APIRouter(prefix="/api", tags=["system"])


@api.get("/health")
def api_health():
    return {"status": "ok"}


@api.get("/ready")
def api_ready():
    return {"ready": True}


app.include_router(api)

system_router = APIRouter(prefix="/api/system", tags=["system"])


@system_router.get("/ping")
def system_ping():
    return {"ok": True, "data": "pong"}


app.include_router(system_router)


# ─────────────────────────────────────────────
# Page routers
# ─────────────────────────────────────────────
from bookstore.routers.auth.auth import auth
app.include_router(auth)

from bookstore.routers.users.users_admin import users_admin
app.include_router(users_admin)

from bookstore.routers.catalog.categories import categories
app.include_router(categories)

from bookstore.routers.catalog.books import books
app.include_router(books)

from bookstore.routers.cart.cart import cart
app.include_router(cart)

from bookstore.routers.addresses.addresses import addresses
app.include_router(addresses)

from bookstore.routers.favorites.favorites import favorites
app.include_router(favorites)

from bookstore.routers.shipping.shipping_providers import shipping_providers
app.include_router(shipping_providers)

from bookstore.routers.vouchers.vouchers import vouchers
app.include_router(vouchers)

from bookstore.routers.orders.orders import orders
app.include_router(orders)

from bookstore.routers.payments.payments import payments
app.include_router(payments)

from bookstore.routers.library.library import library
app.include_router(library)

from bookstore.routers.reports.reports import reports
app.include_router(reports)

from bookstore.routers.chat.chat import chat
app.include_router(chat)
