"""
switchboard.constants — Shared Literals
========================================

Values that several layers must agree on: the permission-table wildcard,
the delimiter used to join command paths into permission keys, the quote
marker, and the webhook route prefix.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Prefixes
# ---------------------------------------------------------------------------
DEFAULT_PREFIX = "."

# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------
# Matches any role (inside a command entry) or any command (as a table key).
WILDCARD = "*"

# ["config", "prefix"] → "config_prefix"
PERMISSION_DELIMITER = "_"

# ---------------------------------------------------------------------------
# Message routing
# ---------------------------------------------------------------------------
QUOTE_MARKER = "> "

# ---------------------------------------------------------------------------
# Persistence record keys and scopes
# ---------------------------------------------------------------------------
CONFIG_RECORD = "config"
PERMISSIONS_RECORD = "permissions"

GLOBAL_SCOPE = "global"
LEGACY_SCOPE = "legacy"

# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------
WEBHOOK_ROUTE = "/webhook"
DEFAULT_WEBHOOK_PORT = 3030
UNHANDLED_WEBHOOK_BODY = "Webhook received but unhandled: no module is registered for this path."
