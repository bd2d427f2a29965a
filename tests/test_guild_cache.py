"""
tests/test_guild_cache.py — Guild Context Cache
================================================

Covers idempotent creation, prefix lookups and matcher caching, prefix
invalidation, and the concurrent shutdown commit.
"""

from __future__ import annotations

import asyncio

from switchboard.engine.guild_cache import GuildContextCache, compile_prefix_matcher
from switchboard.engine.module import ModuleDescriptor
from switchboard.engine.registry import ModuleRegistry
from switchboard.services.persistence import PersistenceModule, TransactionResult


def run_async(coro):
    """Run an async coroutine in a fresh event loop."""
    return asyncio.run(coro)


class CountingPersistence(PersistenceModule):
    """In-memory store that counts acquisitions."""

    descriptor = ModuleDescriptor(name="Counting", capabilities=frozenset({"persistence"}))

    def __init__(self, stored: dict | None = None, fail_for: set[str] | None = None) -> None:
        self.stored: dict = stored or {}
        self.fail_for = fail_for or set()
        self.acquired: list[str] = []

    async def get_guild(self, guild_id, key):
        self.acquired.append(str(guild_id))
        await asyncio.sleep(0)
        return await super().get_guild(guild_id, key)

    async def read(self, scope, key):
        return dict(self.stored.get((scope, key), {}))

    async def write(self, scope, key, data):
        if scope in self.fail_for:
            raise RuntimeError("write failed")
        self.stored[(scope, key)] = dict(data)
        return TransactionResult(result=True, message="ok")


def _cache(store: CountingPersistence, prefix: str = ".") -> GuildContextCache:
    registry = ModuleRegistry()
    registry.register(store)
    return GuildContextCache(registry, prefix)


class TestEnsure:
    def test_concurrent_ensure_creates_once(self):
        store = CountingPersistence()
        cache = _cache(store)

        async def scenario():
            return await asyncio.gather(*(cache.ensure(555) for _ in range(5)))

        contexts = run_async(scenario())
        assert store.acquired == ["555"]
        assert all(ctx is contexts[0] for ctx in contexts)
        assert 555 in cache and "555" in cache
        assert len(cache) == 1

    def test_loads_persisted_prefix(self):
        store = CountingPersistence({("555", "config"): {"prefix": "!"}})
        cache = _cache(store)

        run_async(cache.ensure(555))

        assert cache.prefix_for(555) == "!"
        assert cache.prefix_for(999) == "."
        assert cache.prefix_for(None) == "."


class TestPrefixMatcher:
    def test_prefix_is_escaped(self):
        matcher = compile_prefix_matcher("$.")
        assert matcher.match("$.ping now").group(1) == "ping"
        assert matcher.match("$xping") is None

    def test_trigger_capture_stops_at_whitespace(self):
        match = compile_prefix_matcher(".").match(".config prefix")
        assert match.group(1) == "config"
        assert match.end() == len(".config")

    def test_unknown_guild_uses_default(self):
        cache = _cache(CountingPersistence())
        assert cache.prefix_matcher_for(123) is cache.default_matcher
        assert cache.prefix_matcher_for(None) is cache.default_matcher

    def test_matcher_is_cached(self):
        store = CountingPersistence({("555", "config"): {"prefix": "!"}})
        cache = _cache(store)
        run_async(cache.ensure(555))

        first = cache.prefix_matcher_for(555)
        assert first is cache.prefix_matcher_for(555)
        assert first.match("!ping").group(1) == "ping"

    def test_set_prefix_takes_effect_immediately(self):
        store = CountingPersistence({("555", "config"): {"prefix": "!"}})
        cache = _cache(store)

        async def scenario():
            await cache.ensure(555)
            assert cache.prefix_matcher_for(555).match("!ping")
            await cache.set_prefix(555, "?")

        run_async(scenario())
        matcher = cache.prefix_matcher_for(555)
        assert matcher.match("?ping").group(1) == "ping"
        assert matcher.match("!ping") is None
        assert cache.prefix_for(555) == "?"

    def test_set_prefix_creates_missing_context(self):
        cache = _cache(CountingPersistence())
        run_async(cache.set_prefix(777, "#"))
        assert cache.prefix_for(777) == "#"


class TestPersistAll:
    def test_commits_every_guild(self):
        store = CountingPersistence()
        cache = _cache(store)

        async def scenario():
            await cache.set_prefix(1, "!")
            await cache.ensure(2)
            return await cache.persist_all()

        results = run_async(scenario())
        assert set(results) == {"1", "2"}
        assert all(r.result for r in results.values())
        assert store.stored[("1", "config")] == {"prefix": "!"}
        assert store.stored[("2", "config")] == {}

    def test_one_failure_does_not_block_others(self):
        store = CountingPersistence(fail_for={"1"})
        cache = _cache(store)

        async def scenario():
            await cache.set_prefix(1, "!")
            await cache.set_prefix(2, "?")
            return await cache.persist_all()

        results = run_async(scenario())
        assert results["1"].result is False
        assert results["2"].result is True
        assert store.stored[("2", "config")] == {"prefix": "?"}

    def test_second_persist_is_harmless(self):
        store = CountingPersistence()
        cache = _cache(store)

        async def scenario():
            await cache.ensure(1)
            await cache.persist_all()
            return await cache.persist_all()

        results = run_async(scenario())
        assert results["1"].result is False
        assert results["1"].message == "Already persisted."
