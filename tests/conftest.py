"""
tests/conftest.py — Shared Test Fixtures
=========================================

Discord objects are faked with :class:`~types.SimpleNamespace`; only the
attributes the core touches are provided.  ``channel.send`` is an
:class:`~unittest.mock.AsyncMock` so tests can assert on replies.
"""

from __future__ import annotations

import itertools
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import Engine, create_engine

from switchboard.config import SwitchboardConfig
from switchboard.database.models import Base

OWNER_ID = 1000
GUILD_ID = 555

_ids = itertools.count(2000)


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Switchboard tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def cfg() -> SwitchboardConfig:
    return SwitchboardConfig(login_token="test-token", prefix=".")


def make_role(name: str, role_id: int | None = None) -> SimpleNamespace:
    return SimpleNamespace(id=role_id if role_id is not None else next(_ids), name=name)


def make_guild(
    *, guild_id: int = GUILD_ID, owner_id: int = OWNER_ID, roles: list | None = None,
) -> SimpleNamespace:
    return SimpleNamespace(id=guild_id, owner_id=owner_id, roles=roles or [], name="Test Guild")


def make_message(
    content: str,
    *,
    author_id: int = 42,
    roles: list | None = None,
    guild: SimpleNamespace | None = None,
    dm: bool = False,
) -> SimpleNamespace:
    """A fake message.  Guild defaults to :func:`make_guild` unless *dm*."""
    if guild is None and not dm:
        guild = make_guild()
    return SimpleNamespace(
        content=content,
        author=SimpleNamespace(id=author_id, roles=roles or []),
        guild=guild,
        channel=SimpleNamespace(send=AsyncMock()),
    )


@pytest.fixture
def message_factory():
    """Factory fixture wrapping :func:`make_message`."""
    return make_message


@pytest.fixture
def guild_factory():
    return make_guild


@pytest.fixture
def role_factory():
    return make_role
