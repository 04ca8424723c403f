"""Alembic environment for the push tables.

Migrations run online against the async engine. New revisions get dated ids
(YYYYMMDD_NNNN) so the versions directory sorts in the order they were written.
"""

import asyncio
import re
from datetime import date
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config
from sqlmodel import SQLModel

from push_service.core.config import settings
from push_service.db import base  # noqa: F401  # registers the push tables on SQLModel.metadata

config = context.config

if config.config_file_name is not None and config.attributes.get("configure_logger", True):
    fileConfig(config.config_file_name)

# run_migrations() sets the URL itself; the alembic CLI falls back to settings
if not config.attributes.get("url_configured"):
    config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

VERSIONS_DIR = Path(__file__).parent / "versions"
REVISION_FILE = re.compile(r"^\d{8}_(\d{4})_")


def _next_revision_id(context, revision, directives) -> None:
    if not directives:
        return
    matches = (REVISION_FILE.match(path.name) for path in VERSIONS_DIR.glob("*.py"))
    last = max((int(match.group(1)) for match in matches if match), default=0)
    directives[0].rev_id = f"{date.today():%Y%m%d}_{last + 1:04d}"


def _migrate(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=SQLModel.metadata,
        compare_type=True,
        transaction_per_migration=True,
        process_revision_directives=_next_revision_id,
    )
    with context.begin_transaction():
        context.run_migrations()


async def _run_online() -> None:
    engine = async_engine_from_config(
        config.get_section(config.config_ini_section) or {},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    async with engine.connect() as connection:
        await connection.run_sync(_migrate)
    await engine.dispose()


if context.is_offline_mode():
    raise SystemExit("Offline (--sql) migrations are not supported for the push tables")

asyncio.run(_run_online())
