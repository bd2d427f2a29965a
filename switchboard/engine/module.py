"""
switchboard.engine.module — Module Descriptors & Capabilities
==============================================================

A *module* is a plugin unit: a :class:`Module` subclass instance carrying a
:class:`ModuleDescriptor` that declares which capabilities it offers.
The registry reads the descriptor's explicit capability set to decide which
dispatch tables the module enters; it never guesses from attributes.

Capability → required descriptor field → required handler:

====================  ==================  =================
Capability            Descriptor field    Handler
====================  ==================  =================
``command``           ``commands``        ``on_command``
``webhook``           ``webhook_paths``   ``on_webhook``
``reaction``          ``reaction_keys``   ``on_reaction``
``quote``             —                   ``on_quote``
``persistence``       —                   ``PersistenceModule`` subclass
====================  ==================  =================
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import discord

__all__ = [
    "Capability",
    "RoleClass",
    "ModuleDescriptor",
    "Module",
    "WebhookRequest",
    "WebhookResponse",
]


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Capability(enum.StrEnum):
    """What a module can be dispatched for."""
    COMMAND = "command"
    PERSISTENCE = "persistence"
    WEBHOOK = "webhook"
    REACTION = "reaction"
    QUOTE = "quote"


class RoleClass(enum.StrEnum):
    """Who may run a command when no guild permission says otherwise."""
    OWNER = "owner"
    EVERYONE = "everyone"


# ---------------------------------------------------------------------------
# Descriptor
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ModuleDescriptor:
    """Static declaration of a module's identity and capabilities.

    Plugin code is loosely typed: capability and role-class entries may be
    given as plain strings.  Values that do not name a known enum member
    are kept as-is and rejected later by registry validation, so a typo
    in one plugin is reported instead of crashing the import.
    """

    name: str
    description: str = ""
    capabilities: frozenset = frozenset()
    commands: Mapping[str, Any] | None = None
    webhook_paths: tuple[str, ...] | None = None
    reaction_keys: frozenset[str] | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "capabilities", frozenset(_coerce(Capability, c) for c in self.capabilities))
        if self.commands is not None:
            object.__setattr__(
                self, "commands", {str(k): _coerce(RoleClass, v) for k, v in self.commands.items()}
            )
        if self.webhook_paths is not None:
            # Ordered and de-duplicated.
            object.__setattr__(self, "webhook_paths", tuple(dict.fromkeys(self.webhook_paths)))
        if self.reaction_keys is not None:
            object.__setattr__(self, "reaction_keys", frozenset(self.reaction_keys))

    def has(self, capability: Capability) -> bool:
        return capability in self.capabilities


def _coerce(enum_type: type[enum.StrEnum], value: Any) -> Any:
    try:
        return enum_type(value)
    except ValueError:
        return value


# ---------------------------------------------------------------------------
# Webhook envelopes
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class WebhookRequest:
    """A fully buffered inbound webhook call.

    *query* is the raw query string without the leading ``?``.
    """

    path: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: str = ""
    query: str = ""


@dataclass(frozen=True, slots=True)
class WebhookResponse:
    """What a webhook handler wants sent back, reflected verbatim."""

    status_code: int
    headers: Mapping[str, str] | None = None
    body: str | None = None


# ---------------------------------------------------------------------------
# Module base
# ---------------------------------------------------------------------------
class Module:
    """Base class for every plugin module.

    Subclasses set :attr:`descriptor` (as a class attribute or in
    ``__init__``) and override the handler for each declared capability.
    Lifecycle hooks are optional.
    """

    descriptor: ModuleDescriptor

    @property
    def name(self) -> str:
        return self.descriptor.name

    # -- lifecycle ------------------------------------------------------
    async def on_load(self) -> None:
        """Called once after every module has been registered."""

    async def on_shutdown(self) -> None:
        """Called once while the process shuts down."""

    # -- capability handlers --------------------------------------------
    async def on_command(self, command: list[str], message: discord.Message) -> None:
        raise NotImplementedError

    async def on_webhook(self, request: WebhookRequest) -> WebhookResponse:
        raise NotImplementedError

    async def on_reaction(self, reaction: discord.Reaction, user: discord.abc.User) -> None:
        raise NotImplementedError

    async def on_quote(self, message: discord.Message) -> None:
        raise NotImplementedError

    def overrides(self, handler: str) -> bool:
        """True when this module's class provides its own *handler*."""
        return getattr(type(self), handler, None) is not getattr(Module, handler)

    def __repr__(self) -> str:
        caps = ",".join(sorted(str(c) for c in self.descriptor.capabilities))
        return f"<{type(self).__name__} name={self.descriptor.name!r} capabilities={caps}>"
