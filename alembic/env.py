import asyncio
from logging.config import fileConfig
import sys
import os

from sqlalchemy.engine import Connection

from alembic import context

# Make the prospector package importable when running from the repo root
sys.path.append(os.getcwd())

from prospector.core.config import settings
from prospector.core.database import Base, engine as app_engine

# Import all models to ensure they are registered in Base.metadata
from prospector.companies import database  # noqa
from prospector.funnel import database as funnel_db  # noqa
from prospector.jobs import database as jobs_db  # noqa
from prospector.signals import database as signals_db  # noqa
from prospector.sources import database as sources_db  # noqa

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def get_url():
    return settings.database_url


def run_migrations_offline() -> None:
    """Emit SQL to stdout without connecting."""
    context.configure(
        url=get_url(),
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


async def run_async_migrations() -> None:
    """Run migrations over the application's async engine."""
    async with app_engine.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await app_engine.dispose()


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
