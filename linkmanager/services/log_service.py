"""
linkmanager.services.log_service — Audit Log Store
===================================================

Append-only journal of everything done to links and placements.

Writes either join the caller's transaction (``session=...``, inside a
SAVEPOINT so a failed audit insert never poisons the surrounding
mutation) or run in their own short transaction.  A failed write is
reported on the ``linkmanager`` system log channel and then re-raised:
the audit table is the source of truth, so losing an entry silently is
not an option.  Domain stores decide for themselves whether that failure
matters (they wrap their audit calls in :func:`non_fatal`).
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

from sqlalchemy import Engine, delete, func, or_, select
from sqlalchemy.orm import Session

from linkmanager.constants import ACTION_LABELS, RESOURCE_LABELS, SEVERITY_LABELS
from linkmanager.database.engine import transaction
from linkmanager.database.models import LogAction, LogEntry, ResourceType, Severity
from linkmanager.exceptions import LogNotFoundError, StorageError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_ORDER_FIELDS: frozenset[str] = frozenset({
    "id",
    "created_at",
    "severity",
    "resource_type",
    "resource_id",
    "action",
    "employee_name",
})


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Actor:
    """The back-office user a mutation is attributed to."""

    employee_id: int | None = None
    employee_name: str | None = None


@dataclass(frozen=True, slots=True)
class LogFilters:
    """Criteria for :meth:`LogService.list_entries`.  Empty fields are ignored."""

    severity: str | None = None
    resource_type: str | None = None
    resource_id: int | None = None
    action: str | None = None
    date_from: date | None = None
    date_to: date | None = None
    search: str | None = None

    @classmethod
    def from_mapping(cls, raw: dict[str, Any] | None) -> LogFilters:
        """Build filters from form/query-string style values (dates as ``YYYY-MM-DD``)."""
        raw = raw or {}
        return cls(
            severity=raw.get("severity") or None,
            resource_type=raw.get("resource_type") or None,
            resource_id=int(raw["resource_id"]) if raw.get("resource_id") else None,
            action=raw.get("action") or None,
            date_from=_parse_day(raw.get("date_from")),
            date_to=_parse_day(raw.get("date_to")),
            search=raw.get("search") or None,
        )


def _parse_day(value: Any) -> date | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r} (expected YYYY-MM-DD)")


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def serialize_details(details: dict | None) -> str | None:
    if not details:
        return None
    return json.dumps(details, indent=2, ensure_ascii=False, default=_json_default)


def deserialize_details(raw: str | None) -> Any:
    """Decode stored details; undecodable text is returned unchanged."""
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return raw


def _entry_to_dict(entry: LogEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "employee_id": entry.employee_id,
        "employee_name": entry.employee_name,
        "severity": entry.severity,
        "resource_type": entry.resource_type,
        "resource_id": entry.resource_id,
        "action": entry.action,
        "message": entry.message,
        "details": deserialize_details(entry.details),
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }


def _enum_value(enum_cls: type, value: str, field_name: str) -> str:
    try:
        return enum_cls(value).value
    except ValueError:
        raise ValidationError(f"Unknown {field_name}: {value!r}")


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------
class LogService:
    """Audit Log Store backed by the ``linkmanager_log`` table."""

    def __init__(self, engine: Engine, default_page_size: int = 50) -> None:
        self._engine = engine
        self._default_page_size = default_page_size

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------
    def append(
        self,
        action: str,
        resource_type: str,
        resource_id: int | None,
        message: str,
        severity: str = Severity.INFO,
        details: dict | None = None,
        *,
        actor: Actor | None = None,
        session: Session | None = None,
    ) -> int:
        """Insert one audit entry and return its ID.

        Raises whatever prevented the write (:class:`StorageError` for
        database failures) after reporting it on the system log channel.
        """
        actor = actor or Actor()
        try:
            try:
                details_text = serialize_details(details)
            except (TypeError, ValueError) as exc:
                raise StorageError(f"Cannot serialize log details: {exc}") from exc
            entry = LogEntry(
                employee_id=actor.employee_id,
                employee_name=actor.employee_name,
                severity=_enum_value(Severity, severity, "severity"),
                resource_type=_enum_value(ResourceType, resource_type, "resource type"),
                resource_id=resource_id,
                action=_enum_value(LogAction, action, "action"),
                message=message,
                details=details_text,
            )
            if session is not None:
                with transaction(self._engine, session) as joined:
                    with joined.begin_nested():
                        joined.add(entry)
            else:
                with transaction(self._engine) as own:
                    own.add(entry)
                    own.flush()
            return entry.id
        except Exception as exc:
            logger.error(
                "Failed to add log: %s - Original message: %s (%s #%s)",
                exc, message, resource_type, resource_id,
            )
            raise

    def clear(self) -> int:
        """Delete every audit entry.  Returns the number of rows removed."""
        with transaction(self._engine) as session:
            result = session.execute(delete(LogEntry))
            count = result.rowcount or 0
        logger.info("Audit log cleared (%d entries)", count)
        return count

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get_by_id(self, log_id: int) -> dict[str, Any] | None:
        with transaction(self._engine) as session:
            entry = session.get(LogEntry, log_id)
            return _entry_to_dict(entry) if entry is not None else None

    def get_or_raise(self, log_id: int) -> dict[str, Any]:
        entry = self.get_by_id(log_id)
        if entry is None:
            raise LogNotFoundError(log_id)
        return entry

    def list_entries(
        self,
        filters: LogFilters | dict[str, Any] | None = None,
        page: int = 1,
        limit: int | None = None,
        order_by: str = "created_at",
        direction: str = "DESC",
    ) -> dict[str, Any]:
        """Filtered, paginated audit log.

        Returns ``{"entries": [...], "pagination": {"total", "page", "limit", "pages"}}``.
        """
        if not isinstance(filters, LogFilters):
            filters = LogFilters.from_mapping(filters)
        limit = limit or self._default_page_size
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")
        if order_by not in ALLOWED_ORDER_FIELDS:
            raise ValidationError(f"Cannot order audit log by {order_by!r}")
        direction = direction.upper()
        if direction not in ("ASC", "DESC"):
            raise ValidationError(f"Invalid order direction: {direction!r}")

        conditions = self._filter_conditions(filters)
        column = getattr(LogEntry, order_by)
        ordering = (
            (column.asc(), LogEntry.id.asc())
            if direction == "ASC"
            else (column.desc(), LogEntry.id.desc())
        )

        with transaction(self._engine) as session:
            total = session.scalar(
                select(func.count()).select_from(LogEntry).where(*conditions)
            ) or 0
            rows = session.scalars(
                select(LogEntry)
                .where(*conditions)
                .order_by(*ordering)
                .offset((page - 1) * limit)
                .limit(limit)
            ).all()
            entries = [_entry_to_dict(r) for r in rows]

        return {
            "entries": entries,
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "pages": math.ceil(total / limit),
            },
        }

    @staticmethod
    def _filter_conditions(filters: LogFilters) -> list:
        conditions = []
        if filters.severity:
            conditions.append(LogEntry.severity == filters.severity)
        if filters.resource_type:
            conditions.append(LogEntry.resource_type == filters.resource_type)
        if filters.resource_id:
            conditions.append(LogEntry.resource_id == filters.resource_id)
        if filters.action:
            conditions.append(LogEntry.action == filters.action)
        if filters.date_from:
            start = datetime.combine(filters.date_from, time.min, tzinfo=UTC)
            conditions.append(LogEntry.created_at >= start)
        if filters.date_to:
            # inclusive: everything before the start of the following day
            end = datetime.combine(filters.date_to + timedelta(days=1), time.min, tzinfo=UTC)
            conditions.append(LogEntry.created_at < end)
        if filters.search:
            conditions.append(or_(
                LogEntry.message.icontains(filters.search, autoescape=True),
                LogEntry.details.icontains(filters.search, autoescape=True),
                LogEntry.employee_name.icontains(filters.search, autoescape=True),
            ))
        return conditions

    # -------------------------------------------------------------------
    # Convenience emitters
    # -------------------------------------------------------------------
    def log_link_creation(self, link_id: int, data: dict, **kwargs: Any) -> int:
        return self.append(
            LogAction.CREATE, ResourceType.LINK, link_id,
            f'Link "{data.get("name", "Unknown")}" (ID: {link_id}) has been created',
            Severity.SUCCESS, data, **kwargs,
        )

    def log_link_update(self, link_id: int, data: dict, **kwargs: Any) -> int:
        name = (data.get("after") or data).get("name", "Unknown")
        return self.append(
            LogAction.UPDATE, ResourceType.LINK, link_id,
            f'Link "{name}" (ID: {link_id}) has been updated',
            Severity.INFO, data, **kwargs,
        )

    def log_link_deletion(self, link_id: int, data: dict, **kwargs: Any) -> int:
        return self.append(
            LogAction.DELETE, ResourceType.LINK, link_id,
            f'Link "{data.get("name", "Unknown")}" (ID: {link_id}) has been deleted',
            Severity.WARNING, data, **kwargs,
        )

    def log_link_toggle(self, link_id: int, new_status: bool, data: dict, **kwargs: Any) -> int:
        state = "activated" if new_status else "deactivated"
        return self.append(
            LogAction.TOGGLE, ResourceType.LINK, link_id,
            f'Link "{data.get("name", "Unknown")}" (ID: {link_id}) has been {state}',
            Severity.INFO, {**data, "new_status": new_status}, **kwargs,
        )

    def log_placement_association(
        self, placement_id: int, link_id: int, data: dict | None = None, **kwargs: Any,
    ) -> int:
        return self.append(
            LogAction.ASSOCIATE, ResourceType.PLACEMENT, placement_id,
            f"Placement (ID: {placement_id}) has been associated with Link (ID: {link_id})",
            Severity.INFO, {**(data or {}), "link_id": link_id}, **kwargs,
        )

    # -------------------------------------------------------------------
    # Display helpers
    # -------------------------------------------------------------------
    @staticmethod
    def available_severities() -> dict[str, str]:
        return dict(SEVERITY_LABELS)

    @staticmethod
    def available_resource_types() -> dict[str, str]:
        return dict(RESOURCE_LABELS)

    @staticmethod
    def available_actions() -> dict[str, str]:
        return dict(ACTION_LABELS)

    @staticmethod
    def format_for_display(entry: dict[str, Any], now: datetime | None = None) -> dict[str, Any]:
        """Return a copy of *entry* with labels and human-friendly dates added."""
        out = dict(entry)
        if isinstance(entry.get("details"), (dict, list)):
            out["details_array"] = entry["details"]

        created = entry.get("created_at")
        if created:
            when = datetime.fromisoformat(created) if isinstance(created, str) else created
            if when.tzinfo is None:
                when = when.replace(tzinfo=UTC)
            out["date_formatted"] = when.strftime("%Y-%m-%d %H:%M:%S")
            out["date_relative"] = relative_time(when, now)

        if entry.get("action"):
            out["action_label"] = ACTION_LABELS.get(entry["action"], entry["action"])
        if entry.get("resource_type"):
            out["resource_label"] = RESOURCE_LABELS.get(
                entry["resource_type"], entry["resource_type"]
            )
        return out


def relative_time(when: datetime, now: datetime | None = None) -> str:
    """Describe the age of *when*, e.g. ``3 hours ago``."""
    now = now or datetime.now(UTC)
    diff = int((now - when).total_seconds())
    for size, unit in ((86400, "day"), (3600, "hour"), (60, "minute")):
        if diff >= size:
            amount = diff // size
            return f"{amount} {unit}{'s' if amount > 1 else ''} ago"
    return f"{diff} seconds ago"
