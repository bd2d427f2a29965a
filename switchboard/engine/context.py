"""
switchboard.engine.context — Shared Bot Context
================================================

A :class:`BotContext` is built once by the bot and handed to every module
factory (``setup(context)``) and to the dispatcher.  It is the only way
modules reach shared state: configuration, the registry, guild contexts,
persistence records and the Discord client.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from typing import TYPE_CHECKING, Any

from switchboard.engine.guild_cache import GuildContextCache
from switchboard.engine.registry import ModuleRegistry
from switchboard.services.persistence import PersistenceModule, Transaction, open_transaction

if TYPE_CHECKING:
    import discord

    from switchboard.config import SwitchboardConfig
    from switchboard.engine.module import Module

PermissionCheck = Callable[[list[str], "discord.Message"], Awaitable[bool]]


class BotContext:
    """Project-wide state passed to every component that needs it."""

    def __init__(
        self,
        cfg: SwitchboardConfig,
        registry: ModuleRegistry | None = None,
        client: discord.Client | None = None,
    ) -> None:
        self.cfg = cfg
        self.registry = registry or ModuleRegistry()
        self.guilds = GuildContextCache(self.registry, cfg.prefix)
        self.client = client
        # Set once every module's load hook has run; events are dropped until then.
        self.ready = False
        # Installed by the built-in Permissions module's load hook.
        self.permission_check: PermissionCheck | None = None

    @property
    def persistence(self) -> PersistenceModule:
        return self.registry.persistence

    @property
    def modules(self) -> list[Module]:
        return self.registry.modules

    @property
    def default_prefix(self) -> str:
        return self.cfg.prefix

    def prefix_for(self, guild_id: str | int | None) -> str:
        return self.guilds.prefix_for(guild_id)

    def guild_record(
        self, guild_id: str | int | None, key: str
    ) -> AbstractAsyncContextManager[Transaction[dict[str, Any]]]:
        """Scoped transaction on a guild record (a no-op one outside guilds)."""
        if guild_id is None:
            return open_transaction(self.persistence.noop())
        return open_transaction(self.persistence.get_guild(guild_id, key))

    def global_record(self, key: str) -> AbstractAsyncContextManager[Transaction[dict[str, Any]]]:
        return open_transaction(self.persistence.get_global(key))
