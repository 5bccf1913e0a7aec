"""
linkmanager.engine.resolver — Render-Time Link Resolution
==========================================================

Turns a placement identifier (or a link name) into a URL while a page is
being rendered.  Lookups go through an ordered list of strategies:

  1. :class:`SnapshotResolver`  — the per-request :class:`PlacementSnapshot`
  2. :class:`ServiceResolver`   — placement + link stores, CMS resolver
  3. :class:`DatabaseResolver`  — one direct join query

The first strategy that returns a value wins.  A strategy that raises is
logged and skipped.  When nothing answers, the placeholder ``#`` is
returned: template rendering must never fail because of a missing link.
"""

from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy import Engine, select

from linkmanager.constants import PLACEHOLDER_URL
from linkmanager.database.engine import transaction
from linkmanager.database.models import Link, LinkType, Placement, PlacementLink
from linkmanager.engine.snapshot import PlacementSnapshot, link_url
from linkmanager.services.cms_service import CmsContext, CmsUrlResolver
from linkmanager.services.link_service import LinkStore
from linkmanager.services.log_buffer import NOTICE
from linkmanager.services.placement_service import PlacementStore

# Dedicated channel so it can get its own rotating file (see app.configure_logging).
logger = logging.getLogger("linkmanager.resolver")


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------
class PlacementResolver(Protocol):
    """One step of the fallback chain.  ``None`` means "don't know, ask the next"."""

    name: str

    def try_resolve(self, identifier: str) -> str | None: ...

    def try_resolve_name(self, link_name: str) -> str | None: ...


class SnapshotResolver:
    name = "snapshot"

    def __init__(self, snapshot: PlacementSnapshot | None) -> None:
        self._snapshot = snapshot or PlacementSnapshot.empty()

    def try_resolve(self, identifier: str) -> str | None:
        return self._snapshot.placement_urls.get(identifier)

    def try_resolve_name(self, link_name: str) -> str | None:
        for link in self._snapshot.links:
            if link.name == link_name:
                return link.url or None
        return None


class ServiceResolver:
    name = "service"

    def __init__(
        self,
        placements: PlacementStore,
        links: LinkStore,
        cms: CmsUrlResolver | None = None,
        context: CmsContext | None = None,
    ) -> None:
        self._placements = placements
        self._links = links
        self._cms = cms
        self._context = context

    def try_resolve(self, identifier: str) -> str | None:
        link_id = self._placements.get_link_id_by_identifier(identifier)
        if not link_id:
            return None
        link = self._links.get_by_id(link_id)
        url = link_url(link.link_type, link.url, link.cms_page_id, self._cms, self._context)
        if url:
            logger.info("Service fallback used for placement: %s", identifier)
        return url or None

    def try_resolve_name(self, link_name: str) -> str | None:
        matches = self._links.get_links_by_name(link_name)
        if not matches:
            return None
        link = matches[0]
        url = link_url(link.link_type, link.url, link.cms_page_id, self._cms, self._context)
        if url:
            logger.info("Service fallback used for link by name: %s", link_name)
        return url or None


class DatabaseResolver:
    """Last resort: query the tables directly, bypassing the stores."""

    name = "database"

    def __init__(
        self,
        engine: Engine,
        cms: CmsUrlResolver | None = None,
        context: CmsContext | None = None,
    ) -> None:
        self._engine = engine
        self._cms = cms
        self._context = context

    def try_resolve(self, identifier: str) -> str | None:
        query = (
            select(Link.link_type, Link.url, Link.cms_page_id)
            .select_from(Placement)
            .join(PlacementLink, PlacementLink.placement_id == Placement.id)
            .join(Link, Link.id == PlacementLink.link_id)
            .where(
                Placement.identifier == identifier,
                Placement.active.is_(True),
                Link.active.is_(True),
            )
            .order_by(Link.position, Link.id)
            .limit(1)
        )
        with transaction(self._engine) as session:
            row = session.execute(query).first()
        if row is None:
            return None
        url = link_url(row.link_type, row.url, row.cms_page_id, self._cms, self._context)
        if url and row.link_type == LinkType.CMS:
            logger.info("Direct DB fallback used for CMS link: %s", identifier)
        elif url:
            logger.info("Direct DB fallback used for link: %s", identifier)
        return url or None

    def try_resolve_name(self, link_name: str) -> str | None:
        query = (
            select(Link.link_type, Link.url, Link.cms_page_id)
            .where(Link.name == link_name, Link.active.is_(True))
            .order_by(Link.position, Link.id)
            .limit(1)
        )
        with transaction(self._engine) as session:
            row = session.execute(query).first()
        if row is None:
            return None
        url = link_url(row.link_type, row.url, row.cms_page_id, self._cms, self._context)
        if url:
            logger.info("Direct DB fallback used for link by name: %s", link_name)
        return url or None


# ---------------------------------------------------------------------------
# Chain
# ---------------------------------------------------------------------------
class LinkResolver:
    """Walks the strategy chains.  Neither public method ever raises."""

    def __init__(
        self,
        placement_strategies: list[PlacementResolver],
        name_strategies: list[PlacementResolver] | None = None,
        placeholder: str = PLACEHOLDER_URL,
    ) -> None:
        self._placement_strategies = list(placement_strategies)
        self._name_strategies = list(
            name_strategies if name_strategies is not None else placement_strategies
        )
        self._placeholder = placeholder

    @classmethod
    def default(
        cls,
        engine: Engine,
        links: LinkStore,
        placements: PlacementStore,
        cms: CmsUrlResolver | None = None,
        context: CmsContext | None = None,
        snapshot: PlacementSnapshot | None = None,
        placeholder: str = PLACEHOLDER_URL,
    ) -> LinkResolver:
        """snapshot → service → database for placements; snapshot → database for names."""
        from_snapshot = SnapshotResolver(snapshot)
        from_db = DatabaseResolver(engine, cms, context)
        return cls(
            [from_snapshot, ServiceResolver(placements, links, cms, context), from_db],
            [from_snapshot, from_db],
            placeholder,
        )

    def resolve_by_placement(self, identifier: str) -> str:
        if not identifier:
            return self._placeholder
        url = self._first(self._placement_strategies, "try_resolve", identifier)
        if url is None:
            logger.log(NOTICE, "No link found for placement identifier: %s", identifier)
            return self._placeholder
        return url

    def resolve_by_link_name(self, link_name: str) -> str:
        if not link_name:
            return self._placeholder
        url = self._first(self._name_strategies, "try_resolve_name", link_name)
        if url is None:
            logger.log(NOTICE, "No link found with name: %s", link_name)
            return self._placeholder
        return url

    @staticmethod
    def _first(strategies: list[PlacementResolver], method: str, key: str) -> str | None:
        for strategy in strategies:
            try:
                url = getattr(strategy, method)(key)
            except Exception as exc:
                logger.error(
                    "Resolver %s failed for %r: %s",
                    getattr(strategy, "name", type(strategy).__name__), key, exc,
                )
                continue
            if url is not None:
                return url
        return None
