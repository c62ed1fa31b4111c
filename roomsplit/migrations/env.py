"""
roomsplit/migrations/env.py — Alembic environment.

The database URL comes from the same config classes the app uses:
FLASK_ENV (or ROOMSPLIT_MIGRATE_ENV, which wins) selects the class, so
`FLASK_ENV=testing alembic upgrade head` migrates TEST_DATABASE_URL.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from roomsplit.app.extensions import db
from roomsplit.app.models import (  # noqa: F401
    expense,
    notification,
    participant,
    profile,
    settlement,
)
from roomsplit.config import active_config_name, config_by_name

target_metadata = db.metadata

_config_class = config_by_name[os.getenv("ROOMSPLIT_MIGRATE_ENV") or active_config_name()]
db_url = _config_class.SQLALCHEMY_DATABASE_URI
if not db_url:
    raise RuntimeError("No database URL configured; set DATABASE_URL.")

config = context.config
config.set_main_option("sqlalchemy.url", db_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# SQLite cannot ALTER constraints in place; batch mode copies the table.
_render_as_batch = db_url.startswith("sqlite")


def run_migrations_offline() -> None:
    context.configure(
        url=db_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        render_as_batch=_render_as_batch,
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
            render_as_batch=_render_as_batch,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
