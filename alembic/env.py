"""Alembic environment for the assessment schema.

The URL comes from DATABASE_URL via app.core.config, the same source the
service reads, so migrations and the running app can't drift onto
different databases.  Migrations run synchronously through psycopg2.
"""

from __future__ import annotations

from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool

from alembic import context
from app.core.config import SETTINGS
from app.db.engine import Base

config = context.config


def sync_database_url(url: str) -> str:
    """postgresql+asyncpg://... -> postgresql+psycopg2://..."""
    return url.replace("postgresql+asyncpg", "postgresql+psycopg2", 1)


if SETTINGS.database_url:
    config.set_main_option("sqlalchemy.url", sync_database_url(SETTINGS.database_url))

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Registers every table on Base.metadata for autogenerate.
import app.db.tables  # noqa: E402, F401

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of connecting (alembic upgrade --sql)."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
