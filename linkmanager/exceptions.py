"""
linkmanager.exceptions — Error Taxonomy
========================================

Every error raised by the stores derives from :class:`LinkManagerError`.
Callers that only care about "did the admin operation fail" catch the base
class; the form service and the admin layer branch on the subclasses.
"""

from __future__ import annotations


class LinkManagerError(Exception):
    """Base class for all link manager errors."""

    GENERAL_ERROR = 10000
    DATABASE_ERROR = 10001
    CONFIGURATION_ERROR = 10002
    ACCESS_DENIED = 10003

    default_code = GENERAL_ERROR

    def __init__(self, message: str = "", code: int | None = None) -> None:
        super().__init__(message)
        self.code = code if code is not None else self.default_code


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------
class NotFoundError(LinkManagerError):
    """A row looked up by primary key does not exist."""


class LinkNotFoundError(NotFoundError):
    LINK_NOT_FOUND_BY_ID = 20001
    default_code = LINK_NOT_FOUND_BY_ID

    def __init__(self, link_id: int) -> None:
        super().__init__(f"Link with ID {link_id} not found")
        self.link_id = link_id


class PlacementNotFoundError(NotFoundError):
    PLACEMENT_NOT_FOUND_BY_ID = 30001
    default_code = PLACEMENT_NOT_FOUND_BY_ID

    def __init__(self, placement_id: int) -> None:
        super().__init__(f"Placement with ID {placement_id} not found")
        self.placement_id = placement_id


class LogNotFoundError(NotFoundError):
    LOG_NOT_FOUND_BY_ID = 40001
    default_code = LOG_NOT_FOUND_BY_ID

    def __init__(self, log_id: int) -> None:
        super().__init__(f"Log entry with ID {log_id} not found")
        self.log_id = log_id


# ---------------------------------------------------------------------------
# Everything else
# ---------------------------------------------------------------------------
class ValidationError(LinkManagerError):
    """Field-level constraint violations.

    ``messages`` keeps one human-readable string per violated constraint so
    a form can be redisplayed with all of them at once.
    """

    def __init__(self, messages: list[str] | str) -> None:
        if isinstance(messages, str):
            messages = [messages]
        self.messages: list[str] = list(messages)
        super().__init__("; ".join(self.messages))


class ConfigurationError(LinkManagerError):
    """A required collaborator or setting is missing."""

    default_code = LinkManagerError.CONFIGURATION_ERROR


class StorageError(LinkManagerError):
    """A query or transaction failed and was rolled back."""

    default_code = LinkManagerError.DATABASE_ERROR
