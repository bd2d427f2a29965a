"""
switchboard.bot.__main__ — Entry point for ``python -m switchboard.bot``
========================================================================

Wiring:
1. Load .env (secrets referenced as ``${NAME}`` in config.yaml).
2. Load config.yaml — a missing login token aborts before any event loop.
3. Create the SwitchboardBot and hand it the config.
4. Start the bot (blocking — runs the asyncio event loop).  Module loading,
   persistence and the webhook listener start inside the bot's setup hook.

Run with::

    python -m switchboard.bot [path/to/config.yaml]
"""

from __future__ import annotations

import logging
import sys

from dotenv import load_dotenv

from switchboard.bot.core import SwitchboardBot
from switchboard.config import ConfigError, load_config

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("switchboard")


def main(argv: list[str] | None = None) -> None:
    """Bootstrap and run the Switchboard bot."""
    args = sys.argv[1:] if argv is None else argv

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Configuration.
    try:
        cfg = load_config(args[0] if args else "config.yaml")
    except (FileNotFoundError, ConfigError) as exc:
        logger.critical("CONFIG ERROR: %s", exc)
        sys.exit(1)
    logger.info(
        "Config loaded — prefix %r, %d module directories",
        cfg.prefix, len(cfg.module_dirs),
    )

    # 3. Bot.
    bot = SwitchboardBot(cfg)

    # 4. Run (blocks until Ctrl+C or SIGTERM).
    logger.info("Starting Switchboard bot…")
    try:
        bot.run(cfg.login_token, log_handler=None)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()
