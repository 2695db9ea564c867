from __future__ import annotations

import asyncio
import logging
import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool
from sqlalchemy.ext.asyncio import create_async_engine

from bitredict.config.db_url import sanitize_url
from bitredict.oracle.database.schema import metadata as target_metadata

# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

if config.config_file_name is not None and not config.attributes.get("skip_logging_config"):
    fileConfig(config.config_file_name, disable_existing_loggers=False)

logger = logging.getLogger("alembic.env")


def get_database_url() -> str:
    # Prefer an explicitly configured URL; fall back to the environment
    url = config.get_main_option("sqlalchemy.url")
    if url:
        return url
    env = os.getenv("BITREDICT_DATABASE__URL") or os.getenv("DATABASE_URL")
    if env:
        return env
    raise RuntimeError("DATABASE_URL is not set for Alembic migrations.")


def run_migrations_offline() -> None:
    url = get_database_url()
    logger.info({"alembic": {"mode": "offline", "phase": "start", "url": sanitize_url(url)}})
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()
    logger.info({"alembic": {"mode": "offline", "phase": "complete"}})


def _run_migrations(sync_conn) -> None:
    context.configure(
        connection=sync_conn,
        target_metadata=target_metadata,
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


async def _run_async(url: str) -> None:
    connectable = create_async_engine(url, poolclass=pool.NullPool)
    try:
        async with connectable.connect() as connection:
            await connection.run_sync(_run_migrations)
    finally:
        await connectable.dispose()


def run_migrations_online() -> None:
    url = get_database_url()
    logger.info({"alembic": {"mode": "online", "phase": "start", "url": sanitize_url(url)}})
    if "+asyncpg" in url or "+aiosqlite" in url:
        asyncio.run(_run_async(url))
    else:
        configuration = config.get_section(config.config_ini_section) or {}
        configuration["sqlalchemy.url"] = url
        connectable = engine_from_config(configuration, prefix="sqlalchemy.", poolclass=pool.NullPool)
        with connectable.connect() as connection:
            _run_migrations(connection)
    logger.info({"alembic": {"mode": "online", "phase": "complete"}})


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
