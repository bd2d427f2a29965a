"""
switchboard.engine.dispatcher — Event Entry Points
===================================================

**Why this file exists:**
Discord and the webhook listener both deliver raw events; this class turns
each one into at most one routing decision and runs the chosen module(s).

Message flow::

    message ─► bootstrap unfinished / own message? ─► drop
            ─► guild prefix match ─► default prefix match
            ─► no match: "> quote" without newline ─► every quote module
            ─► empty trigger / unknown trigger ─► drop (not a command)
            ─► permission check ─► denied ─► drop
            ─► module.on_command([trigger, *args], message)

Errors raised by a module (or by the permission check) are logged and
swallowed here.  A single bad command must never take down the event loop.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any

from switchboard.constants import QUOTE_MARKER, UNHANDLED_WEBHOOK_BODY
from switchboard.engine.module import Module, WebhookRequest, WebhookResponse

if TYPE_CHECKING:
    import discord

    from switchboard.engine.context import BotContext

logger = logging.getLogger(__name__)

ReactionResolver = Callable[[], Awaitable[tuple[Any, Any]]]


class Dispatcher:
    """Routes messages, reactions and webhook calls to registered modules."""

    def __init__(self, context: BotContext) -> None:
        self.context = context
        self._warned_no_permissions = False

    # -------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------
    def match_prefix(self, message: discord.Message) -> re.Match[str] | None:
        """Match the guild prefix first, then the process default."""
        guilds = self.context.guilds
        content = message.content or ""
        guild_id = message.guild.id if message.guild is not None else None
        match = guilds.prefix_matcher_for(guild_id).match(content)
        if match is None:
            match = guilds.default_matcher.match(content)
        return match

    async def handle_message(self, message: discord.Message) -> None:
        if not self.context.ready or self._is_own_message(message):
            return

        content = message.content or ""
        match = self.match_prefix(message)
        if match is None:
            if content.startswith(QUOTE_MARKER) and "\n" not in content:
                await self.handle_quote(message)
            return

        trigger = match.group(1)
        if not trigger:
            return

        module = self.context.registry.lookup_command(trigger)
        if module is None:
            return

        command = [trigger, *content[match.end():].split()]
        try:
            if not await self._check_permission(command, message):
                logger.debug("Permission denied: %s → %s", message.author.id, command)
                return
            await module.on_command(command, message)
        except Exception:
            logger.exception(
                "Error running command '%s' in module '%s'", trigger, module.name,
            )

    async def _check_permission(self, command: list[str], message: discord.Message) -> bool:
        check = self.context.permission_check
        if check is None:
            if not self._warned_no_permissions:
                logger.warning("No permission resolver installed — denying all commands")
                self._warned_no_permissions = True
            return False
        return await check(command, message)

    def _is_own_message(self, message: discord.Message) -> bool:
        me = getattr(self.context.client, "user", None)
        return me is not None and message.author.id == me.id

    async def handle_quote(self, message: discord.Message) -> None:
        await self._fan_out(self.context.registry.all_quote_modules(), "on_quote", message)

    # -------------------------------------------------------------------
    # Reactions
    # -------------------------------------------------------------------
    async def handle_reaction(self, emoji: str, resolve: ReactionResolver) -> None:
        """Run every module registered for *emoji*.

        *resolve* fetches any partial reaction/user data.  It only runs
        when at least one module is interested.
        """
        if not self.context.ready:
            return
        modules = self.context.registry.lookup_reaction(emoji)
        if not modules:
            return
        try:
            reaction, user = await resolve()
        except Exception:
            logger.exception("Could not resolve reaction data for %r", emoji)
            return
        await self._fan_out(modules, "on_reaction", reaction, user)

    # -------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------
    async def handle_webhook(
        self, path: str, headers: Mapping[str, str], body: str, query: str = "",
    ) -> WebhookResponse:
        module = self.context.registry.lookup_webhook(path)
        if module is None:
            logger.info("Unhandled webhook call: %s", path)
            return WebhookResponse(status_code=200, body=UNHANDLED_WEBHOOK_BODY)

        request = WebhookRequest(path=path, headers=dict(headers), body=body, query=query)
        try:
            return await module.on_webhook(request)
        except Exception:
            logger.exception("Webhook handler '%s' failed for %s", module.name, path)
            return WebhookResponse(status_code=500)

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @staticmethod
    async def _fan_out(modules: list[Module], handler: str, *args: Any) -> None:
        """Run *handler* on every module concurrently, isolating failures."""
        if not modules:
            return
        outcomes = await asyncio.gather(
            *(getattr(module, handler)(*args) for module in modules),
            return_exceptions=True,
        )
        for module, outcome in zip(modules, outcomes):
            if isinstance(outcome, Exception):
                logger.error(
                    "Error in %s of module '%s'", handler, module.name, exc_info=outcome,
                )
