"""
linkmanager.services.placement_service — Placement Store
=========================================================

Owns placements and their association rows.  A placement points at no more
than one link: :meth:`PlacementStore.associate_link` always replaces whatever
was there before, so two concurrent saves simply leave the last committed
one in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Engine, and_, delete, select
from sqlalchemy.orm import Session

from linkmanager.constants import identifier_errors
from linkmanager.database.engine import transaction
from linkmanager.database.models import (
    Link,
    LogAction,
    Placement,
    PlacementLink,
    ResourceType,
    Severity,
    row_to_dict,
    utcnow,
)
from linkmanager.exceptions import PlacementNotFoundError, ValidationError
from linkmanager.services.log_service import Actor, LogService
from linkmanager.services.side_effects import non_fatal

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS: tuple[str, ...] = ("identifier", "name", "description", "active")


@dataclass(frozen=True, slots=True)
class PlacementWithLink:
    """A placement row joined with the link it currently points at (if any)."""

    id: int
    identifier: str
    name: str
    description: str | None
    active: bool
    link: dict[str, Any] | None = None


def _link_summary(link: Link) -> dict[str, Any]:
    return {
        "id": link.id,
        "name": link.name,
        "url": link.url,
        "link_type": link.link_type,
        "cms_page_id": link.cms_page_id,
        "position": link.position,
        "active": link.active,
    }


class PlacementStore:
    """Placement Store.  Pass *audit* to record every mutation."""

    def __init__(self, engine: Engine, audit: LogService | None = None) -> None:
        self._engine = engine
        self._audit = audit

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get_by_id(self, placement_id: int, *, session: Session | None = None) -> Placement:
        with transaction(self._engine, session) as s:
            placement = s.get(Placement, placement_id)
            if placement is None:
                raise PlacementNotFoundError(placement_id)
            return placement

    def get_by_identifier(
        self, identifier: str, *, session: Session | None = None,
    ) -> Placement | None:
        with transaction(self._engine, session) as s:
            return s.scalar(select(Placement).where(Placement.identifier == identifier))

    def get_placement_by_link_id(
        self, link_id: int, *, session: Session | None = None,
    ) -> Placement | None:
        with transaction(self._engine, session) as s:
            return s.scalar(
                select(Placement)
                .join(PlacementLink, PlacementLink.placement_id == Placement.id)
                .where(PlacementLink.link_id == link_id)
                .order_by(Placement.id)
                .limit(1)
            )

    def get_link_id_by_identifier(
        self, identifier: str, *, session: Session | None = None,
    ) -> int | None:
        """ID of the link behind *identifier*, if both placement and link are active."""
        with transaction(self._engine, session) as s:
            return s.scalar(
                select(Link.id)
                .join(PlacementLink, PlacementLink.link_id == Link.id)
                .join(Placement, Placement.id == PlacementLink.placement_id)
                .where(
                    Placement.identifier == identifier,
                    Placement.active.is_(True),
                    Link.active.is_(True),
                )
                .order_by(Link.position, Link.id)
                .limit(1)
            )

    def list_placements(
        self, active_only: bool | None = None, *, session: Session | None = None,
    ) -> list[Placement]:
        query = select(Placement).order_by(Placement.id)
        if active_only is not None:
            query = query.where(Placement.active.is_(active_only))
        with transaction(self._engine, session) as s:
            return list(s.scalars(query).all())

    def list_with_links(
        self, active_only: bool = True, *, session: Session | None = None,
    ) -> list[PlacementWithLink]:
        """Every placement with its current link.

        ``link`` is ``None`` for a placement nothing is assigned to.  When
        several association rows exist for one placement the first one wins.
        """
        query = (
            select(Placement, Link)
            .outerjoin(PlacementLink, PlacementLink.placement_id == Placement.id)
            .outerjoin(Link, Link.id == PlacementLink.link_id)
            .order_by(Placement.id, Link.position, Link.id)
        )
        if active_only:
            query = query.where(Placement.active.is_(True))

        result: dict[int, PlacementWithLink] = {}
        with transaction(self._engine, session) as s:
            for placement, link in s.execute(query).all():
                if placement.id in result:
                    continue
                result[placement.id] = PlacementWithLink(
                    id=placement.id,
                    identifier=placement.identifier,
                    name=placement.name,
                    description=placement.description,
                    active=placement.active,
                    link=_link_summary(link) if link is not None else None,
                )
        return list(result.values())

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------
    def _check_identifier(
        self, s: Session, identifier: str, exclude_id: int | None = None,
    ) -> None:
        errors = identifier_errors(identifier)
        if not errors:
            query = select(Placement.id).where(Placement.identifier == identifier)
            if exclude_id is not None:
                query = query.where(Placement.id != exclude_id)
            if s.scalar(query) is not None:
                errors.append(f'Identifier "{identifier}" is already in use')
        if errors:
            raise ValidationError(errors)

    def create(
        self,
        data: dict[str, Any],
        *,
        actor: Actor | None = None,
        session: Session | None = None,
    ) -> int:
        with transaction(self._engine, session) as s:
            identifier = data.get("identifier") or ""
            self._check_identifier(s, identifier)
            now = utcnow()
            placement = Placement(
                identifier=identifier,
                name=data.get("name") or identifier,
                description=data.get("description"),
                active=bool(data.get("active", True)),
                created_at=now,
                updated_at=now,
            )
            s.add(placement)
            s.flush()
            logger.info("Placement %r created with ID: %d", identifier, placement.id)

            if self._audit is not None:
                non_fatal(
                    "placement creation audit",
                    self._audit.append,
                    LogAction.CREATE, ResourceType.PLACEMENT, placement.id,
                    f'Placement "{placement.name}" (ID: {placement.id}) has been created',
                    Severity.SUCCESS, row_to_dict(placement),
                    actor=actor, session=s,
                )
            return placement.id

    def update(
        self,
        placement_id: int,
        data: dict[str, Any],
        *,
        actor: Actor | None = None,
        session: Session | None = None,
    ) -> bool:
        with transaction(self._engine, session) as s:
            placement = s.get(Placement, placement_id)
            if placement is None:
                return False
            before = non_fatal("placement snapshot", row_to_dict, placement)

            if data.get("identifier") is not None and data["identifier"] != placement.identifier:
                self._check_identifier(s, data["identifier"], exclude_id=placement_id)

            for key in UPDATABLE_FIELDS:
                if key not in data:
                    continue
                value = data[key]
                if value is None and key != "description":
                    continue
                setattr(placement, key, bool(value) if key == "active" else value)

            placement.updated_at = utcnow()
            s.flush()

            if self._audit is not None:
                non_fatal(
                    "placement update audit",
                    self._audit.append,
                    LogAction.UPDATE, ResourceType.PLACEMENT, placement_id,
                    f'Placement "{placement.name}" (ID: {placement_id}) has been updated',
                    Severity.INFO,
                    {"before": before, "after": row_to_dict(placement)},
                    actor=actor, session=s,
                )
            return True

    def delete(
        self,
        placement_id: int,
        *,
        actor: Actor | None = None,
        session: Session | None = None,
    ) -> bool:
        with transaction(self._engine, session) as s:
            placement = s.get(Placement, placement_id)
            if placement is None:
                return False
            data = non_fatal("placement snapshot", row_to_dict, placement)

            s.execute(delete(PlacementLink).where(PlacementLink.placement_id == placement_id))
            s.execute(delete(Placement).where(Placement.id == placement_id))

            if self._audit is not None:
                non_fatal(
                    "placement deletion audit",
                    self._audit.append,
                    LogAction.DELETE, ResourceType.PLACEMENT, placement_id,
                    f"Placement (ID: {placement_id}) has been deleted",
                    Severity.WARNING, data,
                    actor=actor, session=s,
                )
            return True

    def associate_link(
        self,
        placement_id: int,
        link_id: int,
        *,
        actor: Actor | None = None,
        session: Session | None = None,
    ) -> bool:
        """Point *placement_id* at *link_id*, replacing any previous link."""
        with transaction(self._engine, session) as s:
            with s.begin_nested():
                s.execute(delete(PlacementLink).where(PlacementLink.placement_id == placement_id))
                s.add(PlacementLink(placement_id=placement_id, link_id=link_id))
                s.flush()

            if self._audit is not None:
                non_fatal(
                    "placement association audit",
                    self._audit.log_placement_association,
                    placement_id, link_id, actor=actor, session=s,
                )
            return True

    def dissociate_link(
        self,
        placement_id: int,
        link_id: int,
        *,
        actor: Actor | None = None,
        session: Session | None = None,
    ) -> bool:
        """Remove the exact pair.  Returns False when it was not associated."""
        with transaction(self._engine, session) as s:
            result = s.execute(
                delete(PlacementLink).where(and_(
                    PlacementLink.placement_id == placement_id,
                    PlacementLink.link_id == link_id,
                ))
            )
            if (result.rowcount or 0) <= 0:
                return False

            if self._audit is not None:
                non_fatal(
                    "placement dissociation audit",
                    self._audit.append,
                    LogAction.DISSOCIATE, ResourceType.PLACEMENT, placement_id,
                    f"Placement (ID: {placement_id}) has been dissociated from Link (ID: {link_id})",
                    Severity.INFO, {"link_id": link_id},
                    actor=actor, session=s,
                )
            return True
