"""
linkmanager.constants — Shared Constants & Helpers
===================================================

Single source of truth for identifier rules, the placeholder URL and the
human-readable labels shown next to audit log entries.
"""

from __future__ import annotations

import re

# ---------------------------------------------------------------------------
# Placement identifiers
# ---------------------------------------------------------------------------
IDENTIFIER_MAX_LENGTH = 50
IDENTIFIER_PATTERN = re.compile(r"^[a-z0-9_]+$")

# Returned whenever a link cannot be resolved.
PLACEHOLDER_URL = "#"

TABLE_PREFIX = "linkmanager_"


def identifier_errors(identifier: str) -> list[str]:
    """Return the list of rule violations for a placement *identifier*."""
    errors: list[str] = []
    if not identifier:
        errors.append("Identifier is required")
        return errors
    if len(identifier) > IDENTIFIER_MAX_LENGTH:
        errors.append(
            f"Identifier cannot be longer than {IDENTIFIER_MAX_LENGTH} characters"
        )
    if not IDENTIFIER_PATTERN.match(identifier):
        errors.append(
            "Identifier can only contain lowercase letters, numbers and underscores"
        )
    return errors


# ---------------------------------------------------------------------------
# Audit log labels (admin filters / detail view)
# ---------------------------------------------------------------------------
SEVERITY_LABELS: dict[str, str] = {
    "info": "Information",
    "success": "Success",
    "warning": "Warning",
    "error": "Error",
}

RESOURCE_LABELS: dict[str, str] = {
    "link": "Link",
    "placement": "Placement",
    "configuration": "Configuration",
    "module": "Module",
}

ACTION_LABELS: dict[str, str] = {
    "create": "Create",
    "update": "Update",
    "delete": "Delete",
    "toggle": "Toggle Status",
    "install": "Install",
    "uninstall": "Uninstall",
    "associate": "Associate",
    "dissociate": "Dissociate",
}
