"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.pool import StaticPool

from linkmanager.config import CmsPage, CmsSettings, LinkManagerConfig
from linkmanager.database.engine import configure_sqlite
from linkmanager.database.models import Base
from linkmanager.services.cms_service import ConfiguredCmsResolver
from linkmanager.services.link_form import LinkFormService
from linkmanager.services.link_service import LinkStore
from linkmanager.services.log_service import LogService
from linkmanager.services.placement_service import PlacementStore

CMS_SETTINGS = CmsSettings(
    base_url="https://shop.test",
    pages=(
        CmsPage(id=1, title="Delivery", slug="delivery"),
        CmsPage(id=4, title="About us", slug="about-us"),
    ),
)


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all link manager tables.

    Uses StaticPool so every session sees the same in-memory database, and
    the SQLite hooks so SAVEPOINTs and foreign keys work.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite(engine)
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def config() -> LinkManagerConfig:
    return LinkManagerConfig(cms=CMS_SETTINGS)


@pytest.fixture
def audit(db_engine: Engine) -> LogService:
    return LogService(db_engine)


@pytest.fixture
def links(db_engine: Engine, audit: LogService) -> LinkStore:
    return LinkStore(db_engine, audit)


@pytest.fixture
def placements(db_engine: Engine, audit: LogService) -> PlacementStore:
    return PlacementStore(db_engine, audit)


@pytest.fixture
def cms() -> ConfiguredCmsResolver:
    return ConfiguredCmsResolver(CMS_SETTINGS)


@pytest.fixture
def forms(db_engine, links, placements, cms) -> LinkFormService:
    return LinkFormService(db_engine, links, placements, cms)


def make_link(links: LinkStore, **overrides) -> int:
    """Create a custom link with sensible defaults and return its ID."""
    data = {"name": "Contact", "link_type": "custom", "url": "https://example.com/contact"}
    data.update(overrides)
    return links.create(data)
