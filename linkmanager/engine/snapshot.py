"""
linkmanager.engine.snapshot — Per-Request Render Snapshot
==========================================================

Built once at the start of a page render so every placement lookup in the
templates is a dictionary hit instead of a query.

The snapshot is immutable.  If building it fails the render still goes
ahead with an empty snapshot and the resolver falls back to the stores.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from linkmanager.constants import PLACEHOLDER_URL
from linkmanager.database.models import LinkType
from linkmanager.services.cms_service import CmsContext, CmsUrlResolver
from linkmanager.services.link_service import LinkStore
from linkmanager.services.placement_service import PlacementStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SnapshotLink:
    id: int
    name: str
    url: str
    link_type: str
    active: bool
    position: int


@dataclass(frozen=True, slots=True)
class PlacementSnapshot:
    """``placement_urls`` maps identifier → URL (``#`` when nothing is assigned)."""

    placement_urls: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    links: tuple[SnapshotLink, ...] = ()

    @classmethod
    def empty(cls) -> PlacementSnapshot:
        return cls()

    def __bool__(self) -> bool:
        return bool(self.placement_urls) or bool(self.links)


def link_url(
    link_type: str,
    url: str,
    cms_page_id: int | None,
    cms: CmsUrlResolver | None,
    context: CmsContext | None,
) -> str:
    """The address a stored link points at right now."""
    if link_type == LinkType.CMS:
        if not cms_page_id or cms is None:
            return ""
        return cms.resolve_url(cms_page_id, context)
    return url


def _build(
    links: LinkStore,
    placements: PlacementStore,
    cms: CmsUrlResolver | None,
    context: CmsContext | None,
) -> PlacementSnapshot:
    urls: dict[str, str] = {}
    for placement in placements.list_with_links(active_only=True):
        link: dict[str, Any] | None = placement.link
        url = ""
        if link is not None and link["active"]:
            url = link_url(link["link_type"], link["url"], link["cms_page_id"], cms, context)
        urls[placement.identifier] = url or PLACEHOLDER_URL

    flat = tuple(
        SnapshotLink(
            id=row.id,
            name=row.name,
            url=link_url(row.link_type, row.url, row.cms_page_id, cms, context),
            link_type=row.link_type,
            active=row.active,
            position=row.position,
        )
        for row in links.get_active_links()
    )
    return PlacementSnapshot(placement_urls=MappingProxyType(urls), links=flat)


def build_snapshot(
    links: LinkStore,
    placements: PlacementStore,
    cms: CmsUrlResolver | None = None,
    context: CmsContext | None = None,
) -> PlacementSnapshot:
    """Collect every active placement URL and active link for one render.

    Never raises: on any failure the error is logged and an empty snapshot
    is returned.
    """
    try:
        snapshot = _build(links, placements, cms, context)
    except Exception as exc:
        logger.error("Error building link snapshot: %s", exc, exc_info=True)
        return PlacementSnapshot.empty()
    logger.debug(
        "Snapshot built: %d placements, %d links",
        len(snapshot.placement_urls), len(snapshot.links),
    )
    return snapshot
