"""
Alembic Migration Environment
===============================

What:  Runs migrations for the cache and session-log tables.
How:   The URL always comes from `tasting_ai.config.settings` (DATABASE_URL),
       never from alembic.ini, so the CLI and the app agree on the database.
       SQLite gets batch mode because it cannot ALTER constraints in place.
Who:   The `alembic` CLI (upgrade, downgrade, revision), run from backend/.
"""

import asyncio
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine
from alembic import context

from tasting_ai.config import settings
from tasting_ai.database import Base

# Imported for their side effect of registering tables on Base.metadata
from tasting_ai.models.cache_entry import KeyValueEntry  # noqa: F401
from tasting_ai.models.session_log import ProcessingSessionLog  # noqa: F401

if context.config.config_file_name is not None:
    fileConfig(context.config.config_file_name)

DATABASE_URL = settings.database_url


def _configure(**options) -> None:
    context.configure(
        target_metadata=Base.metadata,
        compare_type=True,
        render_as_batch=DATABASE_URL.startswith("sqlite"),
        **options,
    )


def _run_on(connection: Connection) -> None:
    _configure(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def _run_online() -> None:
    engine = create_async_engine(DATABASE_URL, poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_on)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    # `alembic upgrade --sql`: print DDL instead of connecting
    _configure(url=DATABASE_URL, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()
else:
    asyncio.run(_run_online())
