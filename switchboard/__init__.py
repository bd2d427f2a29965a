"""
Switchboard — A Pluggable Module Dispatcher for Discord
========================================================
Routes incoming chat events (prefixed commands, quotes, reactions and
inbound webhook calls) to independently developed modules, and gates every
command behind a per-guild, per-role permission table.

Package layout::

    switchboard/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Shared literals (wildcards, delimiters, markers)
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # Record table backing SQL persistence
    ├── engine/
    │   ├── module.py      # Module descriptor + capability variants
    │   ├── registry.py    # Dispatch tables, validation, lifecycle hooks
    │   ├── loader.py      # Plugin file discovery and import
    │   ├── guild_cache.py # Per-guild config + compiled prefix matchers
    │   ├── permissions.py # Pure permission resolution
    │   ├── context.py     # Shared state handed to every module
    │   ├── dispatcher.py  # Message / reaction / webhook entry points
    │   └── steps.py       # Nested startup/shutdown step logging
    ├── services/
    │   └── persistence.py # Transactions, no-op + SQL persistence modules
    ├── modules/
    │   ├── config.py      # Built-in "config" command (prefix)
    │   └── permissions.py # Built-in "allow" / "disallow" / "permissions"
    ├── bot/
    │   ├── core.py        # discord.Client subclass, bootstrap + shutdown
    │   └── __main__.py    # ``python -m switchboard.bot``
    └── api/
        └── webhooks.py    # FastAPI webhook receiver + uvicorn server
"""

__version__ = "1.0.0"
