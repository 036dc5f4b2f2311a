"""Alembic environment for Depthcaster.

The database URL always comes from ``DATABASE_URL`` (via ``.env``); the
``sqlalchemy.url`` key in ``alembic.ini`` is only a placeholder.  Managed
Postgres hosts still hand out ``postgres://`` URLs, which SQLAlchemy 2
rejects, so those are rewritten to ``postgresql://``.
"""

from __future__ import annotations

from logging.config import fileConfig

from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool

from alembic import context

load_dotenv()

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

from depthcaster.database.engine import database_url  # noqa: E402
from depthcaster.database.models import Base  # noqa: E402

if (url := database_url()) is not None:
    config.set_main_option("sqlalchemy.url", url)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of touching a database."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        dialect_opts={"paramstyle": "named"},
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
