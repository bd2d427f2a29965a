"""
switchboard.engine.registry — Module Registry & Dispatch Tables
================================================================

**Why this file exists:**
Plugins hand the core loosely typed :class:`~switchboard.engine.module.Module`
objects.  The registry validates each one and turns its declared
capabilities into exact-match dispatch tables:

* command trigger → module (exact match)
* webhook path prefix → module (longest registered prefix wins)
* reaction emoji → [modules] (every module for the emoji runs)
* quote modules, in registration order
* the single persistence module

Conflict rule: **first registration wins.**  A trigger or webhook prefix
that is already bound is rejected with a ``CONFIG ERROR`` naming the
prior owner, and only the first persistence module is accepted.  A module
enters :attr:`ModuleRegistry.modules` only if at least one of its
capabilities registered.

Tables are written during the load phase only.  Afterwards they are read
concurrently by every in-flight event without locking.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from types import MappingProxyType

from switchboard.engine.module import Capability, Module, ModuleDescriptor, RoleClass
from switchboard.engine.steps import mark
from switchboard.services.persistence import NoopPersistence, PersistenceModule

logger = logging.getLogger(__name__)

# Handler each capability requires the module class to override.
REQUIRED_HANDLERS: dict[Capability, str] = {
    Capability.COMMAND: "on_command",
    Capability.WEBHOOK: "on_webhook",
    Capability.REACTION: "on_reaction",
    Capability.QUOTE: "on_quote",
}


class ModuleRegistry:
    """Owns every dispatch table built from registered modules."""

    def __init__(self) -> None:
        self._commands: dict[str, Module] = {}
        self._webhooks: dict[str, Module] = {}
        self._reactions: dict[str, list[Module]] = {}
        self._quotes: list[Module] = []
        self._persistence: PersistenceModule | None = None
        self._fallback_persistence = NoopPersistence()
        self._modules: list[Module] = []
        self._initialized: set[int] = set()

        self._registrars: dict[Capability, Callable[[Module], bool]] = {
            Capability.COMMAND: self._register_commands,
            Capability.PERSISTENCE: self._register_persistence,
            Capability.WEBHOOK: self._register_webhooks,
            Capability.REACTION: self._register_reactions,
            Capability.QUOTE: self._register_quote,
        }

    # -------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------
    @staticmethod
    def validate(module: object) -> list[str]:
        """Return every reason *module* cannot be registered (empty = valid)."""
        if not isinstance(module, Module):
            return [f"Reason: '{type(module).__name__}' is not a Module"]

        descriptor = getattr(module, "descriptor", None)
        if not isinstance(descriptor, ModuleDescriptor):
            return ["Reason: Required property 'descriptor' is missing"]

        errors: list[str] = []
        if not descriptor.name:
            errors.append("Reason: Required property 'descriptor.name' is missing")
        if not descriptor.capabilities:
            errors.append("Reason: Required property 'descriptor.capabilities' is empty")

        for capability in descriptor.capabilities:
            if not isinstance(capability, Capability):
                errors.append(f"Reason: Unknown capability '{capability}'")
                continue
            handler = REQUIRED_HANDLERS.get(capability)
            if handler is not None and not module.overrides(handler):
                errors.append(f"Reason: Required method '{handler}' is missing")

        if Capability.COMMAND in descriptor.capabilities:
            errors.extend(_validate_commands(descriptor))
        if Capability.WEBHOOK in descriptor.capabilities:
            errors.extend(_validate_webhooks(descriptor))
        if Capability.REACTION in descriptor.capabilities:
            if not descriptor.reaction_keys:
                errors.append("Reason: Required property 'descriptor.reaction_keys' is missing or empty")
        if Capability.PERSISTENCE in descriptor.capabilities:
            if not isinstance(module, PersistenceModule):
                errors.append("Reason: Persistence modules must subclass PersistenceModule")

        return errors

    # -------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------
    def register(self, module: Module, *, source: str | None = None) -> bool:
        """Validate *module* and insert it into every matching table.

        Returns ``True`` if at least one capability registered.  Failures
        are logged, never raised.
        """
        label = source or getattr(getattr(module, "descriptor", None), "name", None) or repr(module)

        errors = self.validate(module)
        if errors:
            logger.error("CONFIG ERROR: Skipping invalid module '%s'", label)
            for err in errors:
                logger.error("%s", err)
            return False

        if any(existing is module for existing in self._modules):
            logger.error("CONFIG ERROR: Module '%s' is already registered", label)
            return False

        added = False
        # Fixed order keeps conflict diagnostics deterministic.
        for capability in Capability:
            if capability in module.descriptor.capabilities:
                added = self._registrars[capability](module) or added

        if added:
            self._modules.append(module)
            logger.info("Registered module '%s'", module.name)
        else:
            logger.warning("Module '%s' registered no capabilities; skipped", label)
        return added

    def _register_commands(self, module: Module) -> bool:
        added = False
        for trigger in module.descriptor.commands or {}:
            owner = self._commands.get(trigger)
            if owner is not None:
                logger.error(
                    "CONFIG ERROR: Skipping command '%s' already registered by module '%s'",
                    trigger, owner.name,
                )
                continue
            self._commands[trigger] = module
            added = True
        mark(f"Commands: {','.join(module.descriptor.commands or {})}")
        return added

    def _register_persistence(self, module: Module) -> bool:
        if self._persistence is not None:
            logger.error(
                "CONFIG ERROR: Cannot register '%s' as persistence module, '%s' is already registered",
                module.name, self._persistence.name,
            )
            return False
        assert isinstance(module, PersistenceModule)  # checked by validate()
        self._persistence = module
        mark("Persistence")
        return True

    def _register_webhooks(self, module: Module) -> bool:
        added = False
        for path in module.descriptor.webhook_paths or ():
            owner = self._webhooks.get(path)
            if owner is not None:
                logger.error(
                    "CONFIG ERROR: Skipping webhook '%s' already registered by module '%s'",
                    path, owner.name,
                )
                continue
            self._webhooks[path] = module
            added = True
        mark(f"Webhooks: {','.join(module.descriptor.webhook_paths or ())}")
        return added

    def _register_reactions(self, module: Module) -> bool:
        keys = sorted(module.descriptor.reaction_keys or ())
        for key in keys:
            self._reactions.setdefault(key, []).append(module)
        mark(f"Reactions: {','.join(keys)}")
        return bool(keys)

    def _register_quote(self, module: Module) -> bool:
        self._quotes.append(module)
        return True

    # -------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------
    def lookup_command(self, trigger: str) -> Module | None:
        return self._commands.get(trigger)

    def lookup_webhook(self, path: str) -> Module | None:
        """Module whose registered prefix is the longest prefix of *path*."""
        best = max((p for p in self._webhooks if path.startswith(p)), key=len, default=None)
        return self._webhooks[best] if best is not None else None

    def lookup_reaction(self, emoji: str) -> list[Module]:
        return list(self._reactions.get(emoji, ()))

    def all_quote_modules(self) -> list[Module]:
        return list(self._quotes)

    @property
    def persistence(self) -> PersistenceModule:
        """The registered persistence module, or the no-op default."""
        return self._persistence or self._fallback_persistence

    @property
    def has_persistence(self) -> bool:
        return self._persistence is not None

    @property
    def command_table(self) -> Mapping[str, Module]:
        """Read-only trigger → module view."""
        return MappingProxyType(self._commands)

    @property
    def has_webhooks(self) -> bool:
        return bool(self._webhooks)

    @property
    def modules(self) -> list[Module]:
        """Every accepted module, in registration order."""
        return list(self._modules)

    def modules_with(self, capability: Capability) -> list[Module]:
        return [m for m in self._modules if capability in m.descriptor.capabilities]

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    async def initialize_persistence(self) -> None:
        """Run the persistence module's load hook ahead of everyone else."""
        if self._persistence is not None:
            await self._load(self._persistence)

    async def initialize_all(self) -> None:
        """Run each distinct module's load hook exactly once."""
        for module in self._modules:
            await self._load(module)

    async def _load(self, module: Module) -> None:
        if id(module) in self._initialized:
            return
        self._initialized.add(id(module))
        try:
            await module.on_load()
        except Exception:
            logger.exception("Load hook failed for module '%s'", module.name)

    async def shutdown_all(self) -> None:
        """Run each distinct module's shutdown hook once, persistence last."""
        persistence = self._persistence
        for module in self._modules:
            if module is persistence:
                continue
            await self._shutdown(module)
        if persistence is not None:
            await self._shutdown(persistence)

    @staticmethod
    async def _shutdown(module: Module) -> None:
        try:
            await module.on_shutdown()
        except Exception:
            logger.exception("Shutdown hook failed for module '%s'", module.name)


# ---------------------------------------------------------------------------
# Capability-specific validation
# ---------------------------------------------------------------------------
def _validate_commands(descriptor: ModuleDescriptor) -> list[str]:
    if not descriptor.commands:
        return ["Reason: Required property 'descriptor.commands' is missing or empty"]
    errors = []
    for trigger, role_class in descriptor.commands.items():
        if not trigger or any(ch.isspace() for ch in trigger):
            errors.append(f"Reason: Command trigger '{trigger}' is empty or contains whitespace")
        if not isinstance(role_class, RoleClass):
            errors.append(
                f"Reason: Command '{trigger}' has unknown role class '{role_class}' "
                f"(expected one of: {', '.join(RoleClass)})"
            )
    return errors


def _validate_webhooks(descriptor: ModuleDescriptor) -> list[str]:
    if not descriptor.webhook_paths:
        return ["Reason: Required property 'descriptor.webhook_paths' is missing or empty"]
    return [
        f"Reason: Webhook path '{path}' must start with '/'"
        for path in descriptor.webhook_paths
        if not str(path).startswith("/")
    ]
