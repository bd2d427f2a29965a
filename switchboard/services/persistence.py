"""
switchboard.services.persistence — Transactions & Persistence Modules
======================================================================

Every piece of durable state (guild config, permission tables, plugin
data) is read and written through a :class:`Transaction`: a mutable
snapshot of one record plus a ``commit()`` that writes it back.

Rules every caller follows:

* A transaction is committed **or** discarded exactly once.  Use
  :func:`open_transaction` so that happens on every exit path::

      async with open_transaction(persistence.get_guild(gid, "permissions")) as txn:
          txn.data["permissions"] = {}
      # committed here; discarded instead if the block raised

* While a transaction is open, nobody else can acquire the same record —
  :class:`PersistenceModule` holds a per-record :class:`asyncio.Lock` from
  acquire until release.

Two implementations ship with the core:

* :class:`NoopPersistence` — the default when nothing else is configured.
  Every record reads as ``{}`` and every commit reports failure.
* :class:`SqlPersistence` — JSON documents in the ``records`` table via
  SQLAlchemy, bridged onto the event loop with
  :func:`~switchboard.database.engine.run_db`.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from switchboard.constants import GLOBAL_SCOPE, LEGACY_SCOPE
from switchboard.database.engine import get_session, init_db, run_db
from switchboard.database.models import Record
from switchboard.engine.module import Capability, Module, ModuleDescriptor

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TransactionClosedError(RuntimeError):
    """A transaction was used after it was committed or discarded."""


@dataclass(frozen=True, slots=True)
class TransactionResult:
    """Outcome of :meth:`Transaction.commit`."""

    result: bool
    message: str

    def __bool__(self) -> bool:
        return self.result


# ---------------------------------------------------------------------------
# Transaction
# ---------------------------------------------------------------------------
class Transaction(Generic[T]):
    """Exclusive, mutable snapshot of one persisted record."""

    def __init__(
        self,
        data: T,
        commit: Callable[[T], Awaitable[TransactionResult]],
        release: Callable[[], None] | None = None,
    ) -> None:
        self._data = data
        self._commit = commit
        self._release = release
        self._closed = False

    @property
    def data(self) -> T:
        if self._closed:
            raise TransactionClosedError("Transaction data accessed after release")
        return self._data

    @property
    def closed(self) -> bool:
        return self._closed

    async def commit(self) -> TransactionResult:
        """Write the snapshot back and release the record."""
        if self._closed:
            raise TransactionClosedError("Transaction already committed or discarded")
        self._closed = True
        try:
            return await self._commit(self._data)
        finally:
            self._do_release()

    def discard(self) -> None:
        """Release the record without writing.  No-op once closed."""
        if self._closed:
            return
        self._closed = True
        self._do_release()

    def _do_release(self) -> None:
        if self._release is not None:
            self._release()
            self._release = None


@asynccontextmanager
async def open_transaction(acquire: Awaitable[Transaction[T]]) -> AsyncIterator[Transaction[T]]:
    """Acquire a transaction and guarantee it is released.

    Commits on normal exit (unless the body already committed), discards
    when the body raises.
    """
    txn = await acquire
    try:
        yield txn
    except BaseException:
        txn.discard()
        raise
    if not txn.closed:
        result = await txn.commit()
        if not result.result:
            logger.debug("Commit reported failure: %s", result.message)


# ---------------------------------------------------------------------------
# Persistence module base
# ---------------------------------------------------------------------------
class PersistenceModule(Module):
    """A module offering the ``persistence`` capability.

    Subclasses implement :meth:`read` and :meth:`write`; locking and
    transaction bookkeeping live here.
    """

    async def get_global(self, key: str) -> Transaction[dict[str, Any]]:
        return await self._acquire(GLOBAL_SCOPE, key)

    async def get_guild(self, guild_id: str | int, key: str) -> Transaction[dict[str, Any]]:
        return await self._acquire(str(guild_id), key)

    async def get_legacy(self, key: str) -> dict[str, Any]:
        """Read-only access to data written by older releases."""
        return {}

    async def noop(self) -> Transaction[dict[str, Any]]:
        """A throwaway transaction whose commit never writes anything."""
        return Transaction({}, _noop_commit)

    async def read(self, scope: str, key: str) -> dict[str, Any]:
        raise NotImplementedError

    async def write(self, scope: str, key: str, data: dict[str, Any]) -> TransactionResult:
        raise NotImplementedError

    async def _acquire(self, scope: str, key: str) -> Transaction[dict[str, Any]]:
        locks: dict[tuple[str, str], asyncio.Lock] = self.__dict__.setdefault("_record_locks", {})
        lock = locks.setdefault((scope, key), asyncio.Lock())
        await lock.acquire()
        try:
            data = await self.read(scope, key)
        except BaseException:
            lock.release()
            raise
        return Transaction(data, partial(self.write, scope, key), release=lock.release)


async def _noop_commit(data: Any) -> TransactionResult:
    return TransactionResult(result=False, message="No persistence.")


# ---------------------------------------------------------------------------
# Default: no persistence
# ---------------------------------------------------------------------------
class NoopPersistence(PersistenceModule):
    """Stand-in used when no persistence module is registered."""

    descriptor = ModuleDescriptor(
        name="Default No Persistence",
        capabilities=frozenset({Capability.PERSISTENCE}),
    )

    async def get_global(self, key: str) -> Transaction[dict[str, Any]]:
        return await self.noop()

    async def get_guild(self, guild_id: str | int, key: str) -> Transaction[dict[str, Any]]:
        return await self.noop()

    async def read(self, scope: str, key: str) -> dict[str, Any]:
        return {}

    async def write(self, scope: str, key: str, data: dict[str, Any]) -> TransactionResult:
        return await _noop_commit(data)


# ---------------------------------------------------------------------------
# SQL persistence
# ---------------------------------------------------------------------------
class SqlPersistence(PersistenceModule):
    """Stores each record as a JSON document in the ``records`` table."""

    descriptor = ModuleDescriptor(
        name="SQL Persistence",
        description="Stores module data in a SQL database.",
        capabilities=frozenset({Capability.PERSISTENCE}),
    )

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    async def on_load(self) -> None:
        await run_db(init_db, self.engine)

    async def on_shutdown(self) -> None:
        self.engine.dispose()
        logger.info("SQL persistence engine disposed.")

    async def get_legacy(self, key: str) -> dict[str, Any]:
        return await self.read(LEGACY_SCOPE, key)

    async def read(self, scope: str, key: str) -> dict[str, Any]:
        return await run_db(self._load, scope, key)

    async def write(self, scope: str, key: str, data: dict[str, Any]) -> TransactionResult:
        try:
            value_json = json.dumps(data)
        except (TypeError, ValueError) as exc:
            logger.error("Record %s/%s is not JSON-serialisable: %s", scope, key, exc)
            return TransactionResult(result=False, message=f"Unserialisable data: {exc}")
        try:
            await run_db(self._store, scope, key, value_json)
        except SQLAlchemyError as exc:
            logger.error("Failed to commit record %s/%s: %s", scope, key, exc)
            return TransactionResult(result=False, message=str(exc))
        return TransactionResult(result=True, message="Saved.")

    # -- sync DB helpers (run via run_db) -------------------------------
    def _load(self, scope: str, key: str) -> dict[str, Any]:
        with Session(self.engine) as session:
            row = session.get(Record, (scope, key))
            if row is None:
                return {}
            try:
                value = json.loads(row.value_json)
            except (json.JSONDecodeError, TypeError):
                logger.warning("Record %s/%s holds invalid JSON; treating as empty", scope, key)
                return {}
        return value if isinstance(value, dict) else {}

    def _store(self, scope: str, key: str, value_json: str) -> None:
        with get_session(self.engine) as session:
            row = session.get(Record, (scope, key))
            if row is None:
                session.add(Record(scope=scope, key=key, value_json=value_json))
            else:
                row.value_json = value_json
