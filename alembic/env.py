"""Alembic environment for the Switchboard ``records`` store.

The database URL is resolved the same way the bot resolves it:
``database_url`` in ``config.yaml`` (``${NAME}`` placeholders expanded),
then ``DATABASE_URL`` from the environment / ``.env``, then the
``sqlalchemy.url`` in ``alembic.ini``.
"""

from __future__ import annotations

import os
from logging.config import fileConfig
from pathlib import Path

import yaml
from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool

from alembic import context
from switchboard.config import expand_env
from switchboard.database.models import Base

load_dotenv()

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _configured_url() -> str | None:
    config_path = Path(os.getenv("SWITCHBOARD_CONFIG", "config.yaml"))
    if config_path.exists():
        with open(config_path, encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
        if raw.get("database_url"):
            return expand_env("database_url", str(raw["database_url"]))
    return os.getenv("DATABASE_URL")


url = _configured_url()
if url:
    config.set_main_option("sqlalchemy.url", url)


def run_migrations_offline() -> None:
    """Emit SQL for the records table without a live connection."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with engine.connect() as connection:
        # SQLite cannot ALTER most constraints in place.
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
