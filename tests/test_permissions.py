"""
tests/test_permissions.py — Permission Resolution & Permissions Module
=======================================================================

The pure resolver is tested against hand-built tables; the module is
tested against a real SQL persistence backend (in-memory SQLite) so the
per-record lock and commit paths are exercised.
"""

from __future__ import annotations

import asyncio

import pytest

from conftest import GUILD_ID, OWNER_ID
from switchboard.engine.context import BotContext
from switchboard.engine.module import Module, ModuleDescriptor
from switchboard.engine.permissions import (
    PermissionTableError,
    build_default_permissions,
    command_key,
    resolve_permission,
    scan_roles,
    toggle_permission,
)
from switchboard.modules.permissions import PermissionsModule, resolve_role_id
from switchboard.services.persistence import SqlPersistence


def run_async(coro):
    """Run an async coroutine in a fresh event loop."""
    return asyncio.run(coro)


DEFAULTS = {"config": {"*": False}, "ping": {"*": True}}


class EchoModule(Module):
    descriptor = ModuleDescriptor(
        name="Echo", capabilities=frozenset({"command"}), commands={"echo": "everyone"},
    )

    async def on_command(self, command, message):
        return None


# ===========================================================================
# Pure resolution
# ===========================================================================
class TestScanRoles:
    def test_no_matching_role(self):
        assert scan_roles({"1": True}, ["2"]) is None

    def test_allow_is_sticky_within_level(self):
        assert scan_roles({"1": True, "2": False}, ["1", "2"]) is True
        assert scan_roles({"1": False, "2": True}, ["1", "2"]) is True

    def test_wildcard_allow_beats_role_deny(self):
        assert scan_roles({"R": False, "*": True}, ["R"]) is True

    def test_wildcard_role_applies_to_everyone(self):
        assert scan_roles({"*": False}, []) is False
        assert scan_roles({"*": False, "1": True}, ["1"]) is True


class TestResolvePermission:
    def test_wildcard_allow_overrides_role_deny_at_same_level(self):
        table = {"cmd": {"R": False, "*": True}}
        assert resolve_permission(table, ["cmd"], ["R"], {}) is True

    def test_role_allow_beats_wildcard_deny(self):
        table = {"config_prefix": {"1": True, "*": False}}
        assert resolve_permission(table, ["config", "prefix"], ["1"], DEFAULTS) is True
        assert resolve_permission(table, ["config", "prefix"], ["2"], DEFAULTS) is False

    def test_more_specific_level_wins(self):
        table = {
            "config": {"1": True},
            "config_prefix": {"1": False},
        }
        assert resolve_permission(table, ["config", "prefix", "x"], ["1"], DEFAULTS) is False
        assert resolve_permission(table, ["config", "help"], ["1"], DEFAULTS) is True

    def test_exact_argument_entry(self):
        table = {"config_prefix_foo": {"1": True}}
        assert resolve_permission(table, ["config", "prefix", "foo"], ["1"], DEFAULTS) is True
        assert resolve_permission(table, ["config", "prefix", "bar"], ["1"], DEFAULTS) is False

    def test_wildcard_command_entry(self):
        table = {"*": {"1": True}}
        assert resolve_permission(table, ["config"], ["1"], DEFAULTS) is True
        assert resolve_permission(table, ["config"], ["2"], DEFAULTS) is False

    def test_specific_entry_overrides_wildcard_command(self):
        table = {"*": {"1": True}, "config": {"1": False}}
        assert resolve_permission(table, ["config"], ["1"], DEFAULTS) is False

    def test_falls_back_to_static_default(self):
        assert resolve_permission({}, ["ping", "now"], ["1"], DEFAULTS) is True
        assert resolve_permission({}, ["config"], ["1"], DEFAULTS) is False

    def test_unknown_trigger_without_default_denies(self):
        assert resolve_permission({}, ["mystery"], ["1"], DEFAULTS) is False

    def test_empty_entries_are_skipped(self):
        table = {"ping": {}}
        assert resolve_permission(table, ["ping"], ["1"], DEFAULTS) is True


class TestTogglePermission:
    def test_apply_then_remove(self):
        table: dict = {}
        assert toggle_permission(table, ["config", "prefix"], "1", True) is True
        assert table == {"config_prefix": {"1": True}}

        assert toggle_permission(table, ["config", "prefix"], "1", True) is False
        assert table == {}

    def test_opposite_state_overwrites(self):
        table: dict = {}
        toggle_permission(table, ["config"], "1", True)
        assert toggle_permission(table, ["config"], "1", False) is True
        assert table == {"config": {"1": False}}

    def test_removal_keeps_other_roles(self):
        table = {"config": {"1": True, "2": False}}
        toggle_permission(table, ["config"], "1", True)
        assert table == {"config": {"2": False}}

    def test_command_key(self):
        assert command_key(["config", "prefix", "!"]) == "config_prefix_!"


class TestBuildDefaults:
    def test_role_class_maps_to_wildcard_entry(self):
        echo = EchoModule()

        class Admin(EchoModule):
            descriptor = ModuleDescriptor(
                name="Admin", capabilities=frozenset({"command"}), commands={"ban": "owner"},
            )

        defaults = build_default_permissions({"echo": echo, "ban": Admin()})
        assert defaults == {"echo": {"*": True}, "ban": {"*": False}}

    def test_trigger_missing_from_owner_raises(self):
        with pytest.raises(PermissionTableError):
            build_default_permissions({"ghost": EchoModule()})


# ===========================================================================
# Role lookup
# ===========================================================================
class TestResolveRoleId:
    def test_by_name(self, guild_factory, role_factory):
        guild = guild_factory(roles=[role_factory("Mods", 77)])
        assert resolve_role_id(guild, "Mods") == "77"

    def test_by_id(self, guild_factory, role_factory):
        guild = guild_factory(roles=[role_factory("Mods", 77)])
        assert resolve_role_id(guild, "77") == "77"

    def test_name_takes_precedence_over_id(self, guild_factory, role_factory):
        guild = guild_factory(roles=[role_factory("Mods", 77), role_factory("77", 88)])
        assert resolve_role_id(guild, "77") == "88"

    def test_wildcard(self, guild_factory):
        assert resolve_role_id(guild_factory(), "*") == "*"

    def test_unknown(self, guild_factory):
        assert resolve_role_id(guild_factory(), "Nobody") is None


# ===========================================================================
# Permissions module
# ===========================================================================
@pytest.fixture
def context(cfg, db_engine) -> BotContext:
    context = BotContext(cfg)
    context.registry.register(SqlPersistence(db_engine))
    return context


@pytest.fixture
def module(context) -> PermissionsModule:
    module = PermissionsModule(context)
    context.registry.register(module)
    context.registry.register(EchoModule())
    return module


async def _record_is_free(context: BotContext) -> bool:
    """True if the guild's permissions record can be acquired right away."""
    txn = await asyncio.wait_for(context.persistence.get_guild(GUILD_ID, "permissions"), 1)
    txn.discard()
    return True


class TestPermissionsModule:
    def test_gate_installed_on_load(self, context, module):
        assert context.permission_check is None
        run_async(module.on_load())
        assert context.permission_check == module.check_permissions

    def test_rejected_module_never_gates(self, context, module):
        shadowed = PermissionsModule(context)
        assert context.registry.register(shadowed) is False

        run_async(context.registry.initialize_all())

        assert context.permission_check == module.check_permissions
        assert shadowed.default_permissions == {}

    def test_owner_and_dm_bypass(self, module, message_factory):
        async def scenario():
            await module.on_load()
            owner = await module.check_permissions(["allow"], message_factory(".allow", author_id=OWNER_ID))
            dm = await module.check_permissions(["allow"], message_factory(".allow", dm=True))
            return owner, dm

        assert run_async(scenario()) == (True, True)

    def test_defaults_apply_to_members(self, context, module, message_factory):
        async def scenario():
            await module.on_load()
            echo = await module.check_permissions(["echo", "hi"], message_factory(".echo hi"))
            allow = await module.check_permissions(["allow"], message_factory(".allow"))
            return echo, allow, await _record_is_free(context)

        assert run_async(scenario()) == (True, False, True)

    def test_allow_command_grants_role(self, context, module, message_factory, guild_factory, role_factory):
        mods = role_factory("Mods", 77)
        guild = guild_factory(roles=[mods])

        async def scenario():
            await module.on_load()
            owner_msg = message_factory(".allow Mods allow", author_id=OWNER_ID, guild=guild)
            await module.on_command(["allow", "Mods", "allow"], owner_msg)

            member_msg = message_factory(".allow", roles=[mods], guild=guild)
            other_msg = message_factory(".allow", guild=guild)
            granted = await module.check_permissions(["allow", "x"], member_msg)
            denied = await module.check_permissions(["allow", "x"], other_msg)
            return owner_msg, granted, denied

        owner_msg, granted, denied = run_async(scenario())
        owner_msg.channel.send.assert_awaited_once_with("Permission applied.")
        assert granted is True
        assert denied is False

    def test_repeat_removes(self, module, message_factory):
        async def scenario():
            first = message_factory(".disallow * echo", author_id=OWNER_ID)
            second = message_factory(".disallow * echo", author_id=OWNER_ID)
            await module.on_command(["disallow", "*", "echo"], first)
            await module.on_command(["disallow", "*", "echo"], second)
            return first, second

        first, second = run_async(scenario())
        first.channel.send.assert_awaited_once_with("Permission applied.")
        second.channel.send.assert_awaited_once_with("Permission removed.")

    def test_unknown_role(self, context, module, message_factory):
        async def scenario():
            msg = message_factory(".allow Ghosts echo", author_id=OWNER_ID)
            await module.on_command(["allow", "Ghosts", "echo"], msg)
            return msg, await _record_is_free(context)

        msg, free = run_async(scenario())
        msg.channel.send.assert_awaited_once_with("The role 'Ghosts' does not exist.")
        assert free

    def test_show_empty_and_populated(self, module, message_factory):
        async def scenario():
            empty = message_factory(".permissions", author_id=OWNER_ID)
            await module.on_command(["permissions"], empty)
            await module.on_command(
                ["allow", "*", "config", "prefix"], message_factory("", author_id=OWNER_ID),
            )
            listed = message_factory(".permissions", author_id=OWNER_ID)
            await module.on_command(["permissions"], listed)
            return empty, listed

        empty, listed = run_async(scenario())
        empty.channel.send.assert_awaited_once_with("No permissions have been set.")
        text = listed.channel.send.await_args.args[0]
        assert "config prefix | *: allow" in text

    def test_short_command_shows_help(self, module, message_factory):
        msg = message_factory(".allow Mods", author_id=OWNER_ID)
        run_async(module.on_command(["allow", "Mods"], msg))
        assert "allow/disallow" in msg.channel.send.await_args.args[0]

    def test_failing_resolution_releases_record(self, context, module, message_factory, monkeypatch):
        import switchboard.modules.permissions as perms

        def explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(perms, "resolve_permission", explode)

        async def scenario():
            with pytest.raises(RuntimeError):
                await module.check_permissions(["echo"], message_factory(".echo"))
            return await _record_is_free(context)

        assert run_async(scenario()) is True
