"""
switchboard.engine.steps — Nested Startup/Shutdown Step Logging
================================================================

Bootstrap and shutdown are sequences of phases that contain phases of
their own ("Initializing" → "Loading modules" → "Loading module 'x.py'").
:func:`step` logs each phase title indented by its nesting depth::

    |-- Initializing
    |---- Loading modules
    |------ Loading module 'echo.py'

Depth is tracked in a :class:`~contextvars.ContextVar`, so concurrent tasks
each keep their own indentation.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar

logger = logging.getLogger(__name__)

_depth: ContextVar[int] = ContextVar("switchboard_step_depth", default=0)


def format_step(title: str, depth: int) -> str:
    return "|" + "-" * (depth * 2) + " " + title


@asynccontextmanager
async def step(title: str) -> AsyncIterator[None]:
    """Log *title* one level deeper than the enclosing step."""
    depth = _depth.get() + 1
    token = _depth.set(depth)
    logger.info("%s", format_step(title, depth))
    try:
        yield
    finally:
        _depth.reset(token)


def mark(title: str) -> None:
    """Log a leaf step that has no body of its own."""
    logger.info("%s", format_step(title, _depth.get() + 1))
