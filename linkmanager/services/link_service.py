"""
linkmanager.services.link_service — Link Store
===============================================

CRUD for :class:`~linkmanager.database.models.Link` rows.  Every mutation
follows the same pattern:
  1. Join the caller's transaction or open one
  2. Read a "before" snapshot (best effort)
  3. Apply the change
  4. Append an audit entry (best effort, inside the same transaction)
  5. Commit (only when this store opened the transaction)

``delete`` is the one operation that must be all-or-nothing: the link, its
associations and any placement it leaves orphaned go together or not at all.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import Engine, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from linkmanager.database.engine import transaction
from linkmanager.database.models import (
    Link,
    LinkType,
    LogAction,
    Placement,
    PlacementLink,
    ResourceType,
    Severity,
    row_to_dict,
    utcnow,
)
from linkmanager.exceptions import LinkNotFoundError, ValidationError
from linkmanager.services.log_service import Actor, LogService
from linkmanager.services.side_effects import non_fatal

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS: tuple[str, ...] = (
    "name", "url", "link_type", "cms_page_id", "position", "active",
)

ALLOWED_ORDER_FIELDS: frozenset[str] = frozenset({
    "id", "name", "url", "link_type", "position", "active", "created_at", "updated_at",
})


def link_errors(link: Link) -> list[str]:
    """Return the invariant violations of a (pending) link row."""
    errors: list[str] = []
    if not (link.name or "").strip():
        errors.append("Name is required")
    if link.link_type not in {t.value for t in LinkType}:
        errors.append(f"Unknown link type: {link.link_type!r}")
    elif link.link_type == LinkType.CMS:
        if link.cms_page_id is None:
            errors.append("CMS Page is required for CMS links")
        if link.url:
            errors.append("CMS links cannot carry a URL")
    else:
        if link.cms_page_id is not None:
            errors.append("Only CMS links can reference a CMS page")
        if not link.url:
            errors.append(f"URL is required for {link.link_type} links")
    if link.position is not None and link.position < 0:
        errors.append("Position must be a positive number")
    return errors


class LinkStore:
    """Link Store.  Pass *audit* to record every mutation in the audit log."""

    def __init__(self, engine: Engine, audit: LogService | None = None) -> None:
        self._engine = engine
        self._audit = audit

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get_by_id(self, link_id: int, *, session: Session | None = None) -> Link:
        """Return the link or raise :class:`LinkNotFoundError`."""
        with transaction(self._engine, session) as s:
            link = s.get(Link, link_id)
            if link is None:
                raise LinkNotFoundError(link_id)
            return link

    def list_links(
        self,
        active_only: bool | None = None,
        order_by: str = "position",
        direction: str = "ASC",
        *,
        session: Session | None = None,
    ) -> list[Link]:
        if order_by not in ALLOWED_ORDER_FIELDS:
            raise ValidationError(f"Cannot order links by {order_by!r}")
        direction = direction.upper()
        if direction not in ("ASC", "DESC"):
            raise ValidationError(f"Invalid order direction: {direction!r}")

        column = getattr(Link, order_by)
        query = select(Link).order_by(
            column.asc() if direction == "ASC" else column.desc(),
            Link.id.asc(),
        )
        if active_only is not None:
            query = query.where(Link.active.is_(active_only))

        with transaction(self._engine, session) as s:
            return list(s.scalars(query).all())

    def get_active_links(self, *, session: Session | None = None) -> list[Link]:
        return self.list_links(True, session=session)

    def get_links_by_name(self, name: str, *, session: Session | None = None) -> list[Link]:
        """Active links called exactly *name*, first by position then by ID."""
        with transaction(self._engine, session) as s:
            return list(s.scalars(
                select(Link)
                .where(Link.name == name, Link.active.is_(True))
                .order_by(Link.position.asc(), Link.id.asc())
            ).all())

    def next_position(self, *, session: Session | None = None) -> int:
        with transaction(self._engine, session) as s:
            return int(s.scalar(select(func.coalesce(func.max(Link.position), 0) + 1)))

    def count(self, *, session: Session | None = None) -> int:
        with transaction(self._engine, session) as s:
            return int(s.scalar(select(func.count()).select_from(Link)) or 0)

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------
    def create(
        self,
        data: dict[str, Any],
        *,
        actor: Actor | None = None,
        session: Session | None = None,
    ) -> int:
        """Insert a link and return its new ID.

        ``position`` defaults to ``max(position) + 1`` and ``active`` to True.
        """
        with transaction(self._engine, session) as s:
            position = data.get("position")
            if position is None:
                position = self.next_position(session=s)
            now = utcnow()
            link = Link(
                name=data.get("name") or "",
                url=data.get("url") or "",
                link_type=str(data.get("link_type") or LinkType.CUSTOM),
                cms_page_id=data.get("cms_page_id"),
                position=int(position),
                active=bool(data.get("active", True)),
                created_at=now,
                updated_at=now,
            )
            errors = link_errors(link)
            if errors:
                raise ValidationError(errors)

            s.add(link)
            s.flush()
            logger.info("Link created with ID: %d", link.id)

            if self._audit is not None:
                non_fatal(
                    "link creation audit",
                    self._audit.log_link_creation,
                    link.id, row_to_dict(link), actor=actor, session=s,
                )
            return link.id

    def update(
        self,
        link_id: int,
        data: dict[str, Any],
        *,
        actor: Actor | None = None,
        session: Session | None = None,
    ) -> bool:
        """Merge the supplied fields into the link.

        ``None`` values are ignored except for ``cms_page_id``, which can be
        cleared explicitly.  Returns False when the link does not exist.
        """
        with transaction(self._engine, session) as s:
            link = s.get(Link, link_id)
            if link is None:
                return False
            before = non_fatal("link snapshot", row_to_dict, link)

            for key in UPDATABLE_FIELDS:
                if key not in data:
                    continue
                value = data[key]
                if value is None and key != "cms_page_id":
                    continue
                if key == "active":
                    value = bool(value)
                elif key == "position":
                    value = int(value)
                elif key == "link_type":
                    value = str(value)
                setattr(link, key, value)

            errors = link_errors(link)
            if errors:
                raise ValidationError(errors)

            link.updated_at = utcnow()
            s.flush()

            if self._audit is not None:
                non_fatal(
                    "link update audit",
                    self._audit.log_link_update,
                    link_id,
                    {"before": before, "after": non_fatal("link snapshot", row_to_dict, link)},
                    actor=actor, session=s,
                )
            return True

    def toggle_active(
        self,
        link_id: int,
        *,
        actor: Actor | None = None,
        session: Session | None = None,
    ) -> bool:
        """Flip ``active``.  Raises :class:`LinkNotFoundError` for unknown IDs."""
        with transaction(self._engine, session) as s:
            link = self.get_by_id(link_id, session=s)
            previous = bool(link.active)
            name = link.name

            result = self.update(link_id, {"active": not previous}, actor=actor, session=s)

            if result and self._audit is not None:
                non_fatal(
                    "link toggle audit",
                    self._audit.log_link_toggle,
                    link_id,
                    not previous,
                    {"name": name, "previous_status": previous, "new_status": not previous},
                    actor=actor, session=s,
                )
            return result

    def update_positions(
        self,
        positions: dict[int, int],
        *,
        actor: Actor | None = None,
        session: Session | None = None,
    ) -> bool:
        """Apply ``{link_id: position}`` entry by entry.

        Every entry is attempted; the result is False if any entry matched no
        row or failed.  Entries that succeeded stay applied.
        """
        success = True
        now = utcnow()
        with transaction(self._engine, session) as s:
            for link_id, position in positions.items():
                try:
                    with s.begin_nested():
                        result = s.execute(
                            update(Link)
                            .where(Link.id == int(link_id))
                            .values(position=int(position), updated_at=now)
                        )
                except SQLAlchemyError as exc:
                    logger.error("Could not move link %s to %s: %s", link_id, position, exc)
                    success = False
                    continue
                if (result.rowcount or 0) <= 0:
                    success = False

            if self._audit is not None:
                non_fatal(
                    "link positions audit",
                    self._audit.append,
                    LogAction.UPDATE, ResourceType.LINK, None,
                    f"Link positions updated ({len(positions)} entries)",
                    Severity.INFO if success else Severity.WARNING,
                    {"positions": {str(k): v for k, v in positions.items()}, "complete": success},
                    actor=actor, session=s,
                )
        return success

    def delete(
        self,
        link_id: int,
        cascade_placements: bool = False,
        *,
        actor: Actor | None = None,
        session: Session | None = None,
    ) -> bool:
        """Delete a link, optionally removing placements it leaves orphaned.

        Runs as one unit: on any error nothing is applied, an error entry is
        written to the audit log and the exception is re-raised.
        """
        try:
            with transaction(self._engine, session) as s:
                with s.begin_nested():
                    return self._delete_in(s, link_id, cascade_placements, actor)
        except Exception as exc:
            logger.error("Error in delete of link %s: %s", link_id, exc)
            if self._audit is not None:
                non_fatal(
                    "link deletion error audit",
                    self._audit.append,
                    LogAction.DELETE, ResourceType.LINK, link_id,
                    f"Error during link deletion: {exc}",
                    Severity.ERROR,
                    {"exception": str(exc), "type": type(exc).__name__},
                    actor=actor,
                )
            raise

    def _delete_in(
        self,
        s: Session,
        link_id: int,
        cascade_placements: bool,
        actor: Actor | None,
    ) -> bool:
        link = s.get(Link, link_id)
        if link is None:
            return False
        link_data = non_fatal("link snapshot", row_to_dict, link)

        placement_ids: list[int] = []
        if cascade_placements:
            placement_ids = list(s.scalars(
                select(PlacementLink.placement_id).where(PlacementLink.link_id == link_id)
            ).all())

        s.execute(delete(PlacementLink).where(PlacementLink.link_id == link_id))
        result = s.execute(delete(Link).where(Link.id == link_id))
        deleted = (result.rowcount or 0) > 0

        if deleted and self._audit is not None:
            non_fatal(
                "link deletion audit",
                self._audit.log_link_deletion,
                link_id, link_data or {"id": link_id}, actor=actor, session=s,
            )

        for placement_id in placement_ids:
            # live count: must reflect the rows deleted above
            remaining = s.scalar(
                select(func.count())
                .select_from(PlacementLink)
                .where(PlacementLink.placement_id == placement_id)
            )
            if remaining:
                continue
            s.execute(delete(Placement).where(Placement.id == placement_id))
            logger.info("Orphaned placement deleted: %d (link %d)", placement_id, link_id)
            if self._audit is not None:
                non_fatal(
                    "orphan placement audit",
                    self._audit.append,
                    LogAction.DELETE, ResourceType.PLACEMENT, placement_id,
                    f"Orphaned placement (ID: {placement_id}) deleted during link deletion",
                    Severity.WARNING,
                    {"link_id": link_id},
                    actor=actor, session=s,
                )
        return deleted
