"""
Alembic environment for SpecHarvest.

The target database is DATABASE_URL when set, else ``sqlalchemy.url``
from alembic.ini. Online migrations reuse the application's engine
factory so SQLite gets the same pragmas and data directory.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context

from specharvest.persistence.db import DEFAULT_DATABASE_URL, create_db_engine
from specharvest.persistence.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def database_url() -> str:
    return os.environ.get("DATABASE_URL") or config.get_main_option("sqlalchemy.url", DEFAULT_DATABASE_URL)


def run_offline() -> None:
    """Emit SQL for the upgrade without connecting."""
    context.configure(
        url=database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    engine = create_db_engine(database_url())
    try:
        with engine.connect() as connection:
            # Batch mode lets SQLite emulate ALTER TABLE
            context.configure(
                connection=connection,
                target_metadata=target_metadata,
                compare_type=True,
                render_as_batch=True,
            )
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
