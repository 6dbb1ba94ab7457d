# Copyright (C) 2024 TenantKit Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Alembic environment. Runs migrations over the async engine from settings."""

import asyncio

from alembic import context
from sqlalchemy.engine import Connection

from tenantkit_server.config import settings
from tenantkit_server.database import Database
from tenantkit_server.models import Base

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=settings.database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    database = Database.from_url(settings.database_url)
    async with database.engine.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await database.close()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
