"""
switchboard.engine.permissions — Permission Resolution
=======================================================

Pure functions over a guild's permission table; no I/O, no Discord objects.

Table shape (stored per guild in the ``"permissions"`` record)::

    {
        "config_prefix": {"1234": True, "*": False},   # command path → role → allow
        "config":        {"*": True},
        "*":             {"5678": True},               # any command
    }

Resolution order for a command path ``["config", "prefix", "x"]``:
  1. ``config_prefix_x`` → ``config_prefix`` → ``config`` (most specific
     first).  At each level the requester's roles are scanned, then the
     ``*`` role.  The first level that yields a decision wins.
  2. The ``*`` command entry, scanned the same way.
  3. The static default declared by the module that owns the trigger
     (``everyone`` → allow, ``owner`` → deny).
  4. Deny.

Within one level an allow is sticky: once any applicable role says
``True``, a later ``False`` at the same level cannot override it.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING

from switchboard.constants import PERMISSION_DELIMITER, WILDCARD
from switchboard.engine.module import RoleClass

if TYPE_CHECKING:
    from switchboard.engine.module import Module

PermissionTable = dict[str, dict[str, bool]]


class PermissionTableError(LookupError):
    """A registered command has no default permission."""


def command_key(command_path: Sequence[str]) -> str:
    """Join command tokens into a permission-table key."""
    return PERMISSION_DELIMITER.join(command_path)


def build_default_permissions(command_table: Mapping[str, Module]) -> PermissionTable:
    """Record each registered trigger's default under the wildcard role.

    Raises
    ------
    PermissionTableError
        If a bound trigger is missing from its owner's ``commands``.
    """
    defaults: PermissionTable = {}
    for trigger, module in command_table.items():
        role_class = (module.descriptor.commands or {}).get(trigger)
        if role_class is None:
            raise PermissionTableError(
                f"Command '{trigger}' is bound to module '{module.name}' "
                "but declares no role class"
            )
        defaults.setdefault(trigger, {})[WILDCARD] = role_class == RoleClass.EVERYONE
    return defaults


def scan_roles(entry: Mapping[str, bool], role_ids: Iterable[str]) -> bool | None:
    """Decision for one table entry, or ``None`` if no role applies."""
    result: bool | None = None
    for role_id in role_ids:
        permission = entry.get(role_id)
        if permission is not None and result is not True:
            result = permission
    permission = entry.get(WILDCARD)
    if permission is not None and result is not True:
        result = permission
    return result


def resolve_permission(
    table: Mapping[str, Mapping[str, bool]],
    command_path: Sequence[str],
    role_ids: Iterable[str],
    defaults: Mapping[str, Mapping[str, bool]],
) -> bool:
    """Decide whether a requester holding *role_ids* may run *command_path*."""
    roles = list(role_ids)
    default: bool | None = None

    for i in range(len(command_path), 0, -1):
        key = command_key(command_path[:i])
        entry = table.get(key)
        if entry:
            result = scan_roles(entry, roles)
            if result is not None:
                return result
        if default is None:
            default = defaults.get(key, {}).get(WILDCARD)

    wildcard_entry = table.get(WILDCARD)
    if wildcard_entry:
        result = scan_roles(wildcard_entry, roles)
        if result is not None:
            return result

    return bool(default)


def toggle_permission(
    table: PermissionTable,
    command_path: Sequence[str],
    role_id: str,
    state: bool,
) -> bool:
    """Store *state* for *role_id*, or clear it if it is already stored.

    Returns ``True`` when the permission was applied, ``False`` when an
    identical entry was removed (reverting to inherited behaviour).
    """
    key = command_key(command_path)
    entry = table.setdefault(key, {})
    if entry.get(role_id) != state:
        entry[role_id] = state
        return True

    del entry[role_id]
    if not entry:
        del table[key]
    return False
