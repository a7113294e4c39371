"""Alembic migration environment configuration.

The database URL comes from the TASKYARD_STORE__ settings (url plus token
as password); alembic.ini's sqlalchemy.url is only a fallback.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from taskyard.core.config import ConfigValidationError, StoreSettings
from taskyard.db.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def get_url() -> str:
    """Synchronous URL for migrations.

    Priority:
    1. TASKYARD_STORE__URL / TASKYARD_STORE__TOKEN
    2. sqlalchemy.url from alembic.ini
    """
    try:
        return StoreSettings().sync_url()
    except ConfigValidationError:
        return config.get_main_option("sqlalchemy.url", "")


def run_migrations_offline() -> None:
    """Emit SQL without connecting to the database."""
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against a live connection."""
    connectable = create_engine(get_url(), poolclass=pool.NullPool)

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
