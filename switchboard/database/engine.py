"""
switchboard.database.engine — Engine, Sessions & the Thread Bridge
===================================================================

SQL persistence is optional: it is only built when ``database_url`` (or
``DATABASE_URL``) is set.  SQLAlchemy sessions are blocking, while every
Switchboard handler runs on the bot's event loop, so record reads and
writes go through :func:`run_db`, which hands the blocking call to the
default thread pool and awaits the result.

Usage::

    engine = create_db_engine("sqlite:///switchboard.db")
    await run_db(init_db, engine)

    with get_session(engine) as session:     # commits on success
        session.add(Record(scope="global", key="config", value_json="{}"))
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from switchboard.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def create_db_engine(url: str | None) -> Engine:
    """Build the engine behind :class:`~switchboard.services.persistence.SqlPersistence`.

    Raises
    ------
    RuntimeError
        If *url* is empty.
    """
    if not url:
        raise RuntimeError(
            "No database URL configured.  "
            "Set 'database_url' in config.yaml or DATABASE_URL in .env."
        )

    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        # run_db hops between worker threads.
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if parsed.database in (None, "", ":memory:"):
            # One shared connection, or every thread sees its own empty DB.
            kwargs["poolclass"] = StaticPool
        engine = create_engine(parsed, **kwargs)
    else:
        engine = create_engine(
            parsed,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            pool_timeout=10,
            pool_recycle=3600,
        )
    logger.info("Database engine created → %s", engine.url.render_as_string(hide_password=True))
    return engine


def init_db(engine: Engine) -> None:
    """``CREATE TABLE IF NOT EXISTS`` for the records table.

    Deployments that run ``alembic upgrade head`` already have it; this
    keeps a fresh SQLite file usable without a migration step.
    """
    Base.metadata.create_all(engine)
    logger.info("Records table verified.")


@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """Session that commits when the block succeeds and rolls back otherwise."""
    session = Session(engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Await a blocking database call without stalling the event loop."""
    return await asyncio.to_thread(func, *args, **kwargs)
