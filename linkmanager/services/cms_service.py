"""
linkmanager.services.cms_service — CMS URL Resolution
======================================================

CMS links store only a page ID; the address is worked out at render time
for the current language and shop.  Anything implementing
:class:`CmsUrlResolver` can be plugged in.  :class:`ConfiguredCmsResolver`
covers the common case of a page catalogue declared in ``config.yaml``.

Neither method ever raises: an unknown page yields ``""`` and a broken
catalogue yields ``{}``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from linkmanager.config import CmsSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CmsContext:
    """Language/shop the URL is being built for (passed explicitly per call)."""

    language_id: int = 1
    shop_id: int = 1
    language_code: str = "en"


class CmsUrlResolver(Protocol):
    def resolve_url(self, cms_page_id: int, context: CmsContext | None = None) -> str: ...

    def list_pages(self, context: CmsContext | None = None) -> dict[str, int]: ...


class ConfiguredCmsResolver:
    """Builds CMS page URLs from :class:`~linkmanager.config.CmsSettings`.

    ``url_template`` may reference ``{base_url}``, ``{id}``, ``{slug}``,
    ``{language}`` and ``{shop}``.
    """

    def __init__(self, settings: CmsSettings) -> None:
        self._settings = settings
        self._pages = {page.id: page for page in settings.pages}

    def resolve_url(self, cms_page_id: int, context: CmsContext | None = None) -> str:
        if not cms_page_id:
            return ""
        context = context or CmsContext()
        page = self._pages.get(int(cms_page_id))
        if page is None:
            logger.warning("Unknown CMS page %s", cms_page_id)
            return ""
        try:
            return self._settings.url_template.format(
                base_url=self._settings.base_url,
                id=page.id,
                slug=page.slug,
                language=context.language_code,
                shop=context.shop_id,
            )
        except (KeyError, IndexError, ValueError) as exc:
            logger.error("Bad CMS url_template %r: %s", self._settings.url_template, exc)
            return ""

    def list_pages(self, context: CmsContext | None = None) -> dict[str, int]:
        """Return ``{title: page_id}`` for form dropdowns."""
        return {page.title: page.id for page in self._settings.pages}
