"""
tests/test_config_module.py — Built-in ``config`` Command
==========================================================
"""

from __future__ import annotations

import asyncio

import pytest

from conftest import GUILD_ID
from switchboard.engine.context import BotContext
from switchboard.modules.config import ConfigModule


def run_async(coro):
    """Run an async coroutine in a fresh event loop."""
    return asyncio.run(coro)


@pytest.fixture
def context(cfg) -> BotContext:
    return BotContext(cfg)


@pytest.fixture
def module(context) -> ConfigModule:
    return ConfigModule(context)


class TestConfigCommand:
    def test_help(self, module, message_factory):
        msg = message_factory(".config")
        run_async(module.on_command(["config"], msg))
        assert '.config prefix "[prefix]"' in msg.channel.send.await_args.args[0]

    def test_set_prefix(self, module, context, message_factory):
        msg = message_factory('.config prefix "!"')
        run_async(module.on_command(["config", "prefix", '"!"'], msg))

        assert context.prefix_for(GUILD_ID) == "!"
        msg.channel.send.assert_awaited_once_with(
            '"![command]" can now be used to access the bot.\n'
            '".[command]" will still work as a fallback.'
        )

    def test_prefix_with_spaces(self, module, context, message_factory):
        msg = message_factory('.config prefix "hey bot "')
        run_async(module.on_command(["config", "prefix", '"hey', 'bot', '"'], msg))
        assert context.prefix_for(GUILD_ID) == "hey bot "

    def test_unquoted_prefix_ignored(self, module, context, message_factory):
        msg = message_factory(".config prefix !")
        run_async(module.on_command(["config", "prefix", "!"], msg))
        assert context.prefix_for(GUILD_ID) == "."
        msg.channel.send.assert_not_awaited()

    def test_empty_prefix_rejected(self, module, context, message_factory):
        msg = message_factory('.config prefix ""')
        run_async(module.on_command(["config", "prefix", '""'], msg))
        msg.channel.send.assert_awaited_once_with("The prefix cannot be empty.")
        assert GUILD_ID not in context.guilds

    def test_dm_rejected(self, module, message_factory):
        msg = message_factory('.config prefix "!"', dm=True)
        run_async(module.on_command(["config", "prefix", '"!"'], msg))
        msg.channel.send.assert_awaited_once_with("Prefixes can only be changed inside a server.")

    def test_unknown_subcommand_ignored(self, module, message_factory):
        msg = message_factory(".config colour blue")
        run_async(module.on_command(["config", "colour", "blue"], msg))
        msg.channel.send.assert_not_awaited()
