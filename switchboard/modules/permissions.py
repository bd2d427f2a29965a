"""
switchboard.modules.permissions — Built-in Permission Commands & Checks
========================================================================

Owns every guild's ``"permissions"`` record and installs
:meth:`PermissionsModule.check_permissions` as the dispatcher's gate.

Commands (owner only by default):

* ``allow <role> <command...>`` / ``disallow <role> <command...>`` —
  toggle an allow/deny entry; repeating the same call removes it.
* ``permissions`` — list the guild's stored entries.

The actual resolution rules live in :mod:`switchboard.engine.permissions`.
"""

from __future__ import annotations

import logging
import textwrap
from typing import TYPE_CHECKING

from switchboard.constants import PERMISSION_DELIMITER, PERMISSIONS_RECORD, WILDCARD
from switchboard.engine.module import Capability, Module, ModuleDescriptor, RoleClass
from switchboard.engine.permissions import (
    PermissionTable,
    PermissionTableError,
    build_default_permissions,
    resolve_permission,
    toggle_permission,
)

if TYPE_CHECKING:
    import discord

    from switchboard.engine.context import BotContext

logger = logging.getLogger(__name__)


def resolve_role_id(guild: discord.Guild, role: str) -> str | None:
    """Map a role name (or raw id) to the id stored in permission tables."""
    for guild_role in guild.roles:
        if guild_role.name == role:
            return str(guild_role.id)
    for guild_role in guild.roles:
        if str(guild_role.id) == role:
            return role
    if role == WILDCARD:
        return WILDCARD
    return None


class PermissionsModule(Module):
    """Per-guild, per-role command permissions."""

    descriptor = ModuleDescriptor(
        name="Permissions",
        description="Allow or deny commands per role.",
        capabilities=frozenset({Capability.COMMAND}),
        commands={
            "allow": RoleClass.OWNER,
            "disallow": RoleClass.OWNER,
            "permissions": RoleClass.OWNER,
        },
    )

    def __init__(self, context: BotContext) -> None:
        self.context = context
        self.default_permissions: PermissionTable = {}

    async def on_load(self) -> None:
        """Build the static defaults, then install the dispatcher gate.

        Only a registered module is loaded, so a Permissions module whose
        triggers were all rejected never becomes the gate.
        """
        try:
            self.default_permissions = build_default_permissions(self.context.registry.command_table)
        except PermissionTableError as exc:
            logger.error("CONFIG ERROR: %s", exc)
        else:
            logger.info("Default permissions built for %d commands", len(self.default_permissions))
        self.context.permission_check = self.check_permissions

    # -------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------
    async def on_command(self, command: list[str], message: discord.Message) -> None:
        if command[0] == "permissions":
            await self.show(message)
            return

        if len(command) > 2 and command[0] in ("allow", "disallow"):
            await self.set_permission(command[0] == "allow", command[1], command[2:], message)
            return

        await self.help(message)

    async def help(self, message: discord.Message) -> None:
        prefix = self.context.prefix_for(message.guild.id if message.guild else None)
        await message.channel.send(
            textwrap.dedent(
                f"""\
                ```
                Commands:
                    {prefix}allow/disallow [role] [command]
                        - allow or disallow a command, repeat to remove the permission
                    {prefix}permissions
                        - display all permissions

                Instructions:
                    - Commands may be very generic or very specific
                        - Example: {prefix}allow [role] config
                            - Allows access to all configuration commands
                        - Example: {prefix}allow [role] config prefix foo
                            - Allows setting the bot prefix to 'foo' (and nothing else)
                    - The asterisk (*) signifies all roles or all commands
                    - More specific access rights have a higher priority
                    - Conflicting permissions result in the command being allowed
                ```"""
            )
        )

    async def set_permission(
        self, state: bool, role: str, command: list[str], message: discord.Message,
    ) -> None:
        """Toggle *role*'s entry for *command* in the message's guild."""
        guild = message.guild
        if guild is None:
            return

        role_id = resolve_role_id(guild, role)
        if role_id is None:
            await message.channel.send(f"The role '{role}' does not exist.")
            return

        async with self.context.guild_record(guild.id, PERMISSIONS_RECORD) as txn:
            table = txn.data.setdefault("permissions", {})
            applied = toggle_permission(table, command, role_id, state)

        logger.info(
            "Guild %s: %s %s for role %s on %s",
            guild.id, "applied" if applied else "removed",
            "allow" if state else "deny", role_id, command,
        )
        await message.channel.send("Permission applied." if applied else "Permission removed.")

    async def show(self, message: discord.Message) -> None:
        guild = message.guild
        if guild is None:
            return

        async with self.context.guild_record(guild.id, PERMISSIONS_RECORD) as txn:
            table = txn.data.setdefault("permissions", {})
            lines = [
                f"{key.replace(PERMISSION_DELIMITER, ' ')} | {self._role_label(guild, role_id)}: "
                f"{'allow' if allowed else 'deny'}"
                for key, entry in sorted(table.items())
                for role_id, allowed in sorted(entry.items())
            ]

        if not lines:
            await message.channel.send("No permissions have been set.")
            return
        await message.channel.send("```\n" + "\n".join(lines) + "\n```")

    @staticmethod
    def _role_label(guild: discord.Guild, role_id: str) -> str:
        if role_id == WILDCARD:
            return WILDCARD
        for guild_role in guild.roles:
            if str(guild_role.id) == role_id:
                return guild_role.name
        return role_id

    # -------------------------------------------------------------------
    # Gate
    # -------------------------------------------------------------------
    async def check_permissions(self, command: list[str], message: discord.Message) -> bool:
        """Decide whether the message author may run *command*."""
        guild = message.guild
        if guild is None or message.author.id == guild.owner_id:
            return True

        role_ids = [str(role.id) for role in getattr(message.author, "roles", ())]
        async with self.context.guild_record(guild.id, PERMISSIONS_RECORD) as txn:
            table = txn.data.setdefault("permissions", {})
            return resolve_permission(table, command, role_ids, self.default_permissions)


def setup(context: BotContext) -> PermissionsModule:
    return PermissionsModule(context)
