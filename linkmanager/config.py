"""
linkmanager.config — YAML Configuration Loader
===============================================

Reads ``config.yaml`` for everything that is not stored in the database:
the placeholder URL handed to templates, audit log paging, the in-memory
log buffer size, the resolver log file, and the CMS page catalogue used to
build CMS URLs.  ``DATABASE_URL`` itself stays in the environment (``.env``).

Usage::

    from linkmanager.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.placeholder_url)   # "#"
    print(cfg.cms.base_url)      # "https://shop.example.com"
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from linkmanager.constants import PLACEHOLDER_URL
from linkmanager.exceptions import ConfigurationError

DEFAULT_CMS_URL_TEMPLATE = "{base_url}/content/{id}-{slug}"


# ---------------------------------------------------------------------------
# Typed settings objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CmsPage:
    id: int
    title: str
    slug: str


@dataclass(frozen=True, slots=True)
class CmsSettings:
    """Where CMS pages live and how their URLs are spelled."""

    base_url: str = ""
    url_template: str = DEFAULT_CMS_URL_TEMPLATE
    pages: tuple[CmsPage, ...] = ()


@dataclass(frozen=True, slots=True)
class LinkManagerConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    placeholder_url: str = PLACEHOLDER_URL
    log_page_size: int = 50
    log_buffer_capacity: int = 2000

    # Optional rotating file for the render-time resolver channel
    resolver_log_file: str | None = None
    resolver_log_backups: int = 7

    cms: CmsSettings = field(default_factory=CmsSettings)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> LinkManagerConfig:
    """Read *path* and return a :class:`LinkManagerConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ConfigurationError
        If CMS pages are declared without a ``cms.base_url``.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return parse_config(raw)


def parse_config(raw: dict) -> LinkManagerConfig:
    """Build a :class:`LinkManagerConfig` from an already-parsed mapping."""
    cms_raw: dict = raw.get("cms") or {}
    pages = tuple(
        CmsPage(
            id=int(page["id"]),
            title=str(page["title"]),
            slug=str(page.get("slug") or page["title"]).strip().lower().replace(" ", "-"),
        )
        for page in cms_raw.get("pages") or []
    )
    base_url = str(cms_raw.get("base_url") or "").rstrip("/")
    if pages and not base_url:
        raise ConfigurationError("cms.base_url is required when cms.pages are declared")

    return LinkManagerConfig(
        placeholder_url=str(raw.get("placeholder_url", PLACEHOLDER_URL)),
        log_page_size=int(raw.get("log_page_size", 50)),
        log_buffer_capacity=int(raw.get("log_buffer_capacity", 2000)),
        resolver_log_file=raw.get("resolver_log_file") or None,
        resolver_log_backups=int(raw.get("resolver_log_backups", 7)),
        cms=CmsSettings(
            base_url=base_url,
            url_template=str(cms_raw.get("url_template") or DEFAULT_CMS_URL_TEMPLATE),
            pages=pages,
        ),
    )
