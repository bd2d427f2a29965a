"""
switchboard.bot.core — Bot Instance, Bootstrap & Shutdown
==========================================================

**Why this file exists:**
:class:`SwitchboardBot` is the ``discord.Client`` that owns the
:class:`~switchboard.engine.context.BotContext` and forwards platform events
to the :class:`~switchboard.engine.dispatcher.Dispatcher`.

Bootstrap runs in this order, exactly once:

1. ``load_modules`` — plugin files from the configured directories.
2. ``load_default_modules`` — built-in Config and Permissions modules.
3. ``init_persistence`` — SQL persistence if a database is configured and
   no plugin claimed the capability; then its load hook.
4. ``load_global_config`` — guild contexts for every served guild, legacy
   config migration.  Runs on the first ``on_ready`` (guilds are unknown
   before the gateway connects).
5. ``init_all_modules`` — every module's load hook.
6. ``start_webhooks`` — the webhook listener, if any module registered a
   path.  Only then is the context marked ready; messages and reactions
   arriving earlier are dropped.

Shutdown (:meth:`SwitchboardBot.close`) persists every guild context,
runs module shutdown hooks (persistence last), stops the webhook listener
and finally releases the Discord connection.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

import discord

from switchboard.api.webhooks import WebhookServer
from switchboard.config import SwitchboardConfig
from switchboard.constants import CONFIG_RECORD
from switchboard.database.engine import create_db_engine
from switchboard.engine.context import BotContext
from switchboard.engine.dispatcher import Dispatcher
from switchboard.engine.loader import discover_module_files, load_module_file
from switchboard.engine.steps import step
from switchboard.modules import config as config_module
from switchboard.modules import permissions as permissions_module
from switchboard.services.persistence import SqlPersistence

logger = logging.getLogger(__name__)

# Built-in modules, registered after plugins.
DEFAULT_MODULES = [config_module, permissions_module]


class SwitchboardBot(discord.Client):
    """Discord client that routes events through the module registry.

    Parameters
    ----------
    cfg:
        The parsed :class:`SwitchboardConfig` from ``config.yaml``.
    """

    def __init__(self, cfg: SwitchboardConfig) -> None:
        intents = discord.Intents.default()
        intents.message_content = True    # Privileged: prefix commands need the text

        super().__init__(intents=intents)

        self.cfg = cfg
        self.context = BotContext(cfg, client=self)
        self.registry = self.context.registry
        self.dispatcher = Dispatcher(self.context)
        self.webhook_server: WebhookServer | None = None

        self._ready_once = False
        self._shut_down = False

    # -----------------------------------------------------------------------
    # Bootstrap steps
    # -----------------------------------------------------------------------
    async def load_modules(self, files: Iterable[Path]) -> None:
        async with step("Loading modules"):
            for path in files:
                async with step(f"Loading module '{path.name}'"):
                    for module in load_module_file(path, self.context):
                        self.registry.register(module, source=path.name)

    async def load_default_modules(self) -> None:
        async with step("Loading default modules"):
            for builtin in DEFAULT_MODULES:
                module = builtin.setup(self.context)
                async with step(f"Loading default module '{module.name}'"):
                    self.registry.register(module)

    async def init_persistence(self) -> None:
        async with step("Initializing persistence"):
            if not self.registry.has_persistence and self.cfg.database_url:
                engine = create_db_engine(self.cfg.database_url)
                self.registry.register(SqlPersistence(engine))
            if not self.registry.has_persistence:
                logger.warning("No persistence module registered — guild data will not be saved")
            await self.registry.initialize_persistence()

    async def load_global_config(self) -> None:
        async with step("Loading guild configuration"):
            for guild in self.guilds:
                await self.context.guilds.ensure(guild.id)
            await self._migrate_legacy_config()

    async def _migrate_legacy_config(self) -> None:
        async with self.context.global_record(CONFIG_RECORD) as txn:
            if txn.data.get("migrated") is True:
                return
            legacy = await self.context.persistence.get_legacy(CONFIG_RECORD)
            migrated = 0
            for guild_id, guild_config in (legacy.get("guilds") or {}).items():
                prefix = (guild_config or {}).get("prefix")
                if prefix and guild_id in self.context.guilds:
                    await self.context.guilds.set_prefix(guild_id, prefix)
                    migrated += 1
            txn.data["migrated"] = True
            logger.info("Legacy configuration migrated (%d guild prefixes)", migrated)

    async def init_all_modules(self) -> None:
        async with step("Initializing modules"):
            await self.registry.initialize_all()

    def start_webhooks(self) -> None:
        """Open the webhook listener if any module registered a path."""
        if not self.registry.has_webhooks or self.webhook_server is not None:
            return
        self.webhook_server = WebhookServer(
            self.dispatcher, self.cfg.webhook_host, self.cfg.webhook_port,
        )
        self.webhook_server.start()

    async def complete_startup(self) -> None:
        """Last bootstrap phase; events are only dispatched after it."""
        await self.load_global_config()
        await self.init_all_modules()
        self.start_webhooks()
        self.context.ready = True

    async def shutdown(self) -> None:
        """Two-phase drain: persist guilds, then module shutdown hooks."""
        if self._shut_down:
            return
        self._shut_down = True
        async with step("Shutting down"):
            async with step("Persisting guild configuration"):
                await self.context.guilds.persist_all()
            async with step("Shutting down modules"):
                await self.registry.shutdown_all()
            if self.webhook_server is not None:
                await self.webhook_server.stop()

    # -----------------------------------------------------------------------
    # discord.py lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Called once before the bot connects to Discord."""
        async with step("Initializing"):
            await self.load_modules(discover_module_files(self.cfg.module_dirs))
            await self.load_default_modules()
            await self.init_persistence()

    async def on_ready(self) -> None:
        """Fired when the bot has connected and the guild cache is populated."""
        assert self.user is not None  # guaranteed after on_ready
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)
        if self._ready_once:
            return
        self._ready_once = True
        await self.complete_startup()
        logger.info("Ready! Serving %d guilds", len(self.guilds))

    async def close(self) -> None:
        """Graceful shutdown — drain state before the connection closes."""
        logger.info("Bot shutting down…")
        try:
            await self.shutdown()
        finally:
            await super().close()

    # -----------------------------------------------------------------------
    # Events
    # -----------------------------------------------------------------------
    async def on_guild_join(self, guild: discord.Guild) -> None:
        logger.info("Joined guild %s (ID: %s)", guild.name, guild.id)
        await self.context.guilds.ensure(guild.id)

    async def on_message(self, message: discord.Message) -> None:
        await self.dispatcher.handle_message(message)

    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent) -> None:
        """Fire when any reaction is added, even on uncached messages."""
        if payload.emoji.name is None:
            return

        async def resolve() -> tuple[discord.Reaction, discord.abc.User]:
            return await self._resolve_reaction(payload)

        await self.dispatcher.handle_reaction(payload.emoji.name, resolve)

    async def _resolve_reaction(
        self, payload: discord.RawReactionActionEvent,
    ) -> tuple[discord.Reaction, discord.abc.User]:
        """Fetch the full reaction and user behind a raw event."""
        message = discord.utils.get(self.cached_messages, id=payload.message_id)
        if message is None:
            channel = self.get_channel(payload.channel_id)
            if channel is None:
                channel = await self.fetch_channel(payload.channel_id)
            message = await channel.fetch_message(payload.message_id)  # type: ignore[union-attr]

        reaction = discord.utils.find(
            lambda r: str(r.emoji) == str(payload.emoji), message.reactions,
        )
        if reaction is None:
            raise LookupError(f"Reaction {payload.emoji} not found on message {payload.message_id}")

        user: discord.abc.User | None = payload.member or self.get_user(payload.user_id)
        if user is None:
            user = await self.fetch_user(payload.user_id)
        return reaction, user
