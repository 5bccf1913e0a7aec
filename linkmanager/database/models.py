"""
linkmanager.database.models — SQLAlchemy 2.0 Data Models
=========================================================

Tables:
- linkmanager_link            — Named destinations (custom, contact, CMS page)
- linkmanager_placement       — Template slots addressed by a stable identifier
- linkmanager_placement_link  — Placement → link association (one per placement)
- linkmanager_log             — Append-only audit trail of admin mutations
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from linkmanager.constants import IDENTIFIER_MAX_LENGTH, TABLE_PREFIX


def utcnow() -> datetime:
    return datetime.now(UTC)


def row_to_dict(obj: Any) -> dict | None:
    """Convert a model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key, None)
        if isinstance(val, datetime):
            val = val.isoformat()
        result[col.name] = val
    return result


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all link manager ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class LinkType(enum.StrEnum):
    """Where a link points to."""
    CUSTOM = "custom"
    CONTACT = "contact"
    CMS = "cms"


class Severity(enum.StrEnum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class ResourceType(enum.StrEnum):
    """Kinds of resources an audit entry can be about."""
    LINK = "link"
    PLACEMENT = "placement"
    CONFIGURATION = "configuration"
    MODULE = "module"


class LogAction(enum.StrEnum):
    """Categories of mutations recorded in the audit log."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    TOGGLE = "toggle"
    INSTALL = "install"
    UNINSTALL = "uninstall"
    ASSOCIATE = "associate"
    DISSOCIATE = "dissociate"


# ---------------------------------------------------------------------------
# Link — one row per named destination
# ---------------------------------------------------------------------------
class Link(Base):
    """A stored destination.

    ``cms_page_id`` is set iff ``link_type == "cms"``; CMS links keep an empty
    ``url`` because their address is resolved at render time.
    """
    __tablename__ = f"{TABLE_PREFIX}link"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(String(2048), nullable=False, default="")
    link_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LinkType.CUSTOM.value
    )
    cms_page_id: Mapped[int | None] = mapped_column(Integer, nullable=True, default=None)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_linkmanager_link_name_position", "name", "position"),
        Index("ix_linkmanager_link_active", "active"),
    )

    def __repr__(self) -> str:
        return f"<Link id={self.id} name={self.name!r} type={self.link_type}>"


# ---------------------------------------------------------------------------
# Placement — a template slot
# ---------------------------------------------------------------------------
class Placement(Base):
    __tablename__ = f"{TABLE_PREFIX}placement"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identifier: Mapped[str] = mapped_column(
        String(IDENTIFIER_MAX_LENGTH), nullable=False, unique=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Placement id={self.id} identifier={self.identifier!r}>"


# ---------------------------------------------------------------------------
# PlacementLink — association (replace-on-write, one row per placement)
# ---------------------------------------------------------------------------
class PlacementLink(Base):
    __tablename__ = f"{TABLE_PREFIX}placement_link"

    placement_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey(f"{TABLE_PREFIX}placement.id", ondelete="CASCADE"),
        primary_key=True,
    )
    link_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey(f"{TABLE_PREFIX}link.id", ondelete="CASCADE"),
        primary_key=True,
    )

    __table_args__ = (
        Index("ix_linkmanager_placement_link_link", "link_id"),
    )

    def __repr__(self) -> str:
        return f"<PlacementLink placement={self.placement_id} link={self.link_id}>"


# ---------------------------------------------------------------------------
# LogEntry — append-only audit trail
# ---------------------------------------------------------------------------
class LogEntry(Base):
    __tablename__ = f"{TABLE_PREFIX}log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    employee_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    severity: Mapped[str] = mapped_column(
        String(20), nullable=False, default=Severity.INFO.value
    )
    resource_type: Mapped[str] = mapped_column(String(20), nullable=False)
    resource_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON text
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_linkmanager_log_created", "created_at"),
        Index("ix_linkmanager_log_resource", "resource_type", "resource_id"),
        Index("ix_linkmanager_log_severity", "severity"),
    )

    def __repr__(self) -> str:
        return f"<LogEntry id={self.id} {self.resource_type}:{self.action} {self.severity}>"
