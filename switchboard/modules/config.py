"""
switchboard.modules.config — Built-in ``config`` Command
=========================================================

``<prefix>config``                 — show help
``<prefix>config prefix "<new>"``  — set this guild's prefix

The process-wide default prefix keeps working as a fallback after a guild
sets its own.
"""

from __future__ import annotations

import textwrap
from typing import TYPE_CHECKING

from switchboard.engine.module import Capability, Module, ModuleDescriptor, RoleClass

if TYPE_CHECKING:
    import discord

    from switchboard.engine.context import BotContext


class ConfigModule(Module):
    """Guild configuration commands."""

    descriptor = ModuleDescriptor(
        name="Configuration",
        description="Per-guild bot configuration.",
        capabilities=frozenset({Capability.COMMAND}),
        commands={"config": RoleClass.OWNER},
    )

    def __init__(self, context: BotContext) -> None:
        self.context = context

    async def on_command(self, command: list[str], message: discord.Message) -> None:
        if len(command) == 1:
            await self.help(message)
            return

        if len(command) > 2 and command[1] == "prefix":
            await self.set_prefix(" ".join(command[2:]), message)

    async def help(self, message: discord.Message) -> None:
        prefix = self.context.prefix_for(message.guild.id if message.guild else None)
        await message.channel.send(
            textwrap.dedent(
                f"""\
                ```
                Commands:
                    {prefix}config prefix "[prefix]"
                        - set prefix used to access the bot
                ```"""
            )
        )

    async def set_prefix(self, raw: str, message: discord.Message) -> None:
        if len(raw) < 2 or not raw.startswith('"') or not raw.endswith('"'):
            return
        prefix = raw[1:-1]

        if message.guild is None:
            await message.channel.send("Prefixes can only be changed inside a server.")
            return
        if not prefix:
            await message.channel.send("The prefix cannot be empty.")
            return

        await self.context.guilds.set_prefix(message.guild.id, prefix)
        await message.channel.send(
            f'"{prefix}[command]" can now be used to access the bot.\n'
            f'"{self.context.default_prefix}[command]" will still work as a fallback.'
        )


def setup(context: BotContext) -> ConfigModule:
    return ConfigModule(context)
