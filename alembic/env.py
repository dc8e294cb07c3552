# 📄 alembic/env.py
# Purpose: let Alembic read bookstore.models Base.metadata so that
#          autogenerate and upgrade run against the bookstore schema

from __future__ import annotations

import os
from logging.config import fileConfig

from dotenv import load_dotenv
from sqlalchemy import create_engine, pool
from alembic import context

load_dotenv()

# ------------------------------------------------------------
# Alembic config
# ------------------------------------------------------------
config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# ------------------------------------------------------------
# models
# ------------------------------------------------------------
from bookstore.models import Base
target_metadata = Base.metadata


# ------------------------------------------------------------
# DB URL
# ------------------------------------------------------------
# Priority:
# 1) DB_URL_SYNC / DATABASE_URL environment variables
# 2) sqlalchemy.url in alembic.ini
def get_database_url() -> str:
    for key in ("DB_URL_SYNC", "DATABASE_URL"):
        env_url = os.getenv(key)
        if env_url:
            return env_url
    return config.get_main_option("sqlalchemy.url")


# ------------------------------------------------------------
# OFFLINE MODE (emit SQL only)
# ------------------------------------------------------------
def run_migrations_offline() -> None:
    context.configure(
        url=get_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


# ------------------------------------------------------------
# ONLINE MODE
# ------------------------------------------------------------
def run_migrations_online() -> None:
    connectable = create_engine(get_database_url(), poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            compare_server_default=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
