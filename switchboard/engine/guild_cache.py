"""
switchboard.engine.guild_cache — Per-Guild Context Cache
=========================================================

One :class:`GuildContext` per guild the bot serves.  It holds:

* the guild's ``"config"`` record — acquired once when the guild is first
  seen and kept open until shutdown, when :meth:`GuildContextCache.persist_all`
  commits every guild concurrently;
* a lazily compiled prefix matcher.

The matcher is dropped whenever :meth:`GuildContextCache.set_prefix` writes
a new prefix, so the next message already sees the change.  Code that
edits ``context.persisted["prefix"]`` directly must call
:meth:`GuildContextCache.invalidate` itself.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from switchboard.constants import CONFIG_RECORD
from switchboard.services.persistence import Transaction, TransactionResult

if TYPE_CHECKING:
    from switchboard.engine.registry import ModuleRegistry

logger = logging.getLogger(__name__)


def compile_prefix_matcher(prefix: str) -> re.Pattern[str]:
    """Match *prefix* literally at the start, capturing the next non-space run."""
    return re.compile("^" + re.escape(prefix) + r"(\S*)")


@dataclass(slots=True)
class GuildContext:
    """Cached state for one guild."""

    guild_id: str
    transaction: Transaction[dict[str, Any]]
    persisted: dict[str, Any]
    prefix_matcher: re.Pattern[str] | None = None


class GuildContextCache:
    """Creates guild contexts exactly once and serves prefix lookups."""

    def __init__(self, registry: ModuleRegistry, default_prefix: str) -> None:
        self._registry = registry
        self.default_prefix = default_prefix
        self.default_matcher = compile_prefix_matcher(default_prefix)
        self._contexts: dict[str, GuildContext] = {}
        self._create_lock = asyncio.Lock()

    def __contains__(self, guild_id: object) -> bool:
        return str(guild_id) in self._contexts

    def __len__(self) -> int:
        return len(self._contexts)

    def get(self, guild_id: str | int | None) -> GuildContext | None:
        if guild_id is None:
            return None
        return self._contexts.get(str(guild_id))

    async def ensure(self, guild_id: str | int) -> GuildContext:
        """Return the guild's context, creating it on first sight."""
        key = str(guild_id)
        async with self._create_lock:
            context = self._contexts.get(key)
            if context is None:
                txn = await self._registry.persistence.get_guild(key, CONFIG_RECORD)
                context = GuildContext(guild_id=key, transaction=txn, persisted=txn.data)
                self._contexts[key] = context
                logger.debug("Guild context created for %s", key)
        return context

    # -------------------------------------------------------------------
    # Prefixes
    # -------------------------------------------------------------------
    def prefix_for(self, guild_id: str | int | None) -> str:
        context = self.get(guild_id)
        if context is not None and context.persisted.get("prefix"):
            return context.persisted["prefix"]
        return self.default_prefix

    def prefix_matcher_for(self, guild_id: str | int | None) -> re.Pattern[str]:
        context = self.get(guild_id)
        if context is None:
            return self.default_matcher
        if context.prefix_matcher is None:
            prefix = context.persisted.get("prefix")
            if not prefix:
                return self.default_matcher
            context.prefix_matcher = compile_prefix_matcher(prefix)
        return context.prefix_matcher

    async def set_prefix(self, guild_id: str | int, prefix: str) -> None:
        context = await self.ensure(guild_id)
        context.persisted["prefix"] = prefix
        self.invalidate(guild_id)
        logger.info("Prefix for guild %s set to %r", context.guild_id, prefix)

    def invalidate(self, guild_id: str | int) -> None:
        """Drop the guild's cached prefix matcher."""
        context = self.get(guild_id)
        if context is not None:
            context.prefix_matcher = None

    # -------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------
    async def persist_all(self) -> dict[str, TransactionResult]:
        """Commit every guild's config record concurrently."""
        contexts = list(self._contexts.values())
        outcomes = await asyncio.gather(
            *(self._persist(ctx) for ctx in contexts),
            return_exceptions=True,
        )

        results: dict[str, TransactionResult] = {}
        for ctx, outcome in zip(contexts, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Failed to persist config for guild %s: %s", ctx.guild_id, outcome)
                outcome = TransactionResult(result=False, message=str(outcome))
            elif not outcome.result:
                logger.warning("Config for guild %s not persisted: %s", ctx.guild_id, outcome.message)
            results[ctx.guild_id] = outcome
        return results

    @staticmethod
    async def _persist(context: GuildContext) -> TransactionResult:
        txn = context.transaction
        if txn.closed:
            return TransactionResult(result=False, message="Already persisted.")
        txn.data.update(context.persisted)
        return await txn.commit()
