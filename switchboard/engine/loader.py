"""
switchboard.engine.loader — Plugin File Discovery & Import
===========================================================

Plugins are plain ``.py`` files in the directories listed under
``modules:`` in ``config.yaml``.  Each file exposes a factory::

    def setup(context: BotContext) -> Module | list[Module]:
        return EchoModule(context)

Anything that goes wrong while importing a file (syntax error, missing
``setup``, wrong return type) is a load-time configuration error: it is
logged with the file name and the file is skipped.  One broken plugin
never stops the others from loading.
"""

from __future__ import annotations

import importlib.util
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING

from switchboard.engine.module import Module

if TYPE_CHECKING:
    from switchboard.engine.context import BotContext

logger = logging.getLogger(__name__)


class ModuleLoadError(Exception):
    """A plugin file could not be turned into modules."""


def discover_module_files(dirs: Iterable[str | Path]) -> list[Path]:
    """List every plugin file directly inside each of *dirs*, sorted."""
    files: list[Path] = []
    for directory in dirs:
        root = Path(directory)
        if not root.is_dir():
            logger.error("CONFIG ERROR: Module directory '%s' does not exist", root)
            continue
        for item in sorted(root.iterdir()):
            if item.is_file() and item.suffix == ".py" and not item.name.startswith("_"):
                files.append(item)
                logger.debug("Discovered module file: %s", item.name)
    return files


def import_module_file(path: Path, context: BotContext) -> list[Module]:
    """Import *path* and call its ``setup(context)`` factory.

    Raises
    ------
    ModuleLoadError
        If the file cannot be imported or does not export modules.
    """
    spec = importlib.util.spec_from_file_location(f"switchboard_plugins.{path.stem}", path)
    if spec is None or spec.loader is None:
        raise ModuleLoadError(f"Could not import module '{path.name}'")

    plugin = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(plugin)
    except Exception as exc:
        raise ModuleLoadError(f"Could not import module '{path.name}': {exc}") from exc

    factory = getattr(plugin, "setup", None)
    if not callable(factory):
        raise ModuleLoadError(f"No setup() in '{path.name}'")

    try:
        exported = factory(context)
    except Exception as exc:
        raise ModuleLoadError(f"setup() in '{path.name}' failed: {exc}") from exc

    modules = exported if isinstance(exported, (list, tuple)) else [exported]
    bad = [m for m in modules if not isinstance(m, Module)]
    if bad or not modules:
        raise ModuleLoadError(f"setup() in '{path.name}' did not return Module instances")
    return list(modules)


def load_module_file(path: Path, context: BotContext) -> list[Module]:
    """Like :func:`import_module_file`, but logs failures and returns ``[]``."""
    try:
        return import_module_file(path, context)
    except ModuleLoadError as exc:
        logger.error("CONFIG ERROR: %s", exc)
        if exc.__cause__ is not None:
            logger.debug("Import failure detail for %s", path.name, exc_info=exc.__cause__)
        return []
