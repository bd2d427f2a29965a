"""
switchboard.config — YAML Configuration Loader
===============================================

**Why this file exists:**
This module reads ``config.yaml`` for process-wide settings: the default
command prefix, the plugin directories to load, the webhook listener
address, the optional database URL, and a free-form ``values`` mapping that
plugins read their own secrets from.

Values may reference environment variables with ``${NAME}`` placeholders,
so secrets can stay in ``.env`` (loaded by the entry point) instead of the
YAML file.

Usage::

    from switchboard.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.prefix)            # "."
    print(cfg.login_token)       # value of ${DISCORD_TOKEN}
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from switchboard.constants import DEFAULT_PREFIX, DEFAULT_WEBHOOK_PORT

_PLACEHOLDER_RE = re.compile(r"\$\{([^}]*)\}")


class ConfigError(Exception):
    """Fatal configuration problem; the process must not start."""


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class SwitchboardConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Discord
    login_token: str
    prefix: str = DEFAULT_PREFIX

    # Plugins
    module_dirs: tuple[str, ...] = ()

    # Webhook listener
    webhook_host: str = "0.0.0.0"
    webhook_port: int = DEFAULT_WEBHOOK_PORT

    # Optional SQL persistence
    database_url: str | None = None

    # Free-form values handed to plugins (already env-substituted)
    values: Mapping[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def expand_env(key: str, raw: str, environ: Mapping[str, str] | None = None) -> str:
    """Replace every ``${NAME}`` in *raw* with the environment value.

    Raises
    ------
    ConfigError
        If a placeholder names a variable that is not set.
    """
    env = os.environ if environ is None else environ

    def _sub(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in env:
            raise ConfigError(
                f"Failed to parse value '{key}: {raw}'. "
                f"'{name}' is not an environment variable."
            )
        return env[name]

    return _PLACEHOLDER_RE.sub(_sub, raw)


def parse_config(raw: Mapping | None, environ: Mapping[str, str] | None = None) -> SwitchboardConfig:
    """Build a :class:`SwitchboardConfig` from an already-parsed mapping."""
    raw = raw or {}
    env = os.environ if environ is None else environ

    values = {
        str(k): expand_env(str(k), str(v), env)
        for k, v in (raw.get("values") or {}).items()
    }

    token = values.get("login_token")
    if not token:
        raise ConfigError("Required configuration 'values.login_token' has not been set.")

    modules = raw.get("modules") or []
    if not isinstance(modules, list):
        modules = []

    prefix = raw.get("prefix")
    if prefix is None or prefix == "":
        prefix = DEFAULT_PREFIX

    port = env.get("PORT") or raw.get("webhook_port") or DEFAULT_WEBHOOK_PORT

    database_url = raw.get("database_url") or env.get("DATABASE_URL") or None
    if database_url:
        database_url = expand_env("database_url", str(database_url), env)

    return SwitchboardConfig(
        login_token=token,
        prefix=str(prefix),
        module_dirs=tuple(str(m) for m in modules),
        webhook_host=str(raw.get("webhook_host") or "0.0.0.0"),
        webhook_port=int(port),
        database_url=database_url,
        values=values,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> SwitchboardConfig:
    """Read *path* and return a :class:`SwitchboardConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ConfigError
        If the login token is missing or a ``${NAME}`` placeholder is unset.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return parse_config(raw)
