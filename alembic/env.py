"""
Alembic environment for the AirTrack documents table.

Migrations are raw SQL (op.execute), so there is no target metadata. The
database URL comes from DATABASE_URL, the same variable the app's asyncpg
pool reads.
"""

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def _sync_url(url: str) -> str:
    """asyncpg accepts postgres:// and postgresql+asyncpg://; sync SQLAlchemy wants postgresql://."""
    for prefix in ("postgres://", "postgresql+asyncpg://"):
        if url.startswith(prefix):
            return "postgresql://" + url[len(prefix) :]
    return url


config.set_main_option("sqlalchemy.url", _sync_url(os.environ.get("DATABASE_URL", "")))


def run_migrations_offline() -> None:
    context.configure(url=config.get_main_option("sqlalchemy.url"), target_metadata=None, literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_engine(config.get_main_option("sqlalchemy.url"))
    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=None)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
