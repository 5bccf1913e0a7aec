"""
linkmanager.app — Wiring
========================

Builds every store and service from one config + engine pair so a host
application only has to hold a single :class:`LinkManager`.

Usage::

    from linkmanager.app import LinkManager, configure_logging
    from linkmanager.config import load_config

    cfg = load_config()
    configure_logging(cfg)
    manager = LinkManager.from_env(cfg)     # DATABASE_URL from .env

    # once per page render
    resolver = manager.resolver_for_request(CmsContext(language_code="fr"))
    resolver.resolve_by_placement("footer_contact")
"""

from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler

from dotenv import load_dotenv
from sqlalchemy import Engine

from linkmanager.config import LinkManagerConfig
from linkmanager.database.engine import create_db_engine, init_db
from linkmanager.engine.resolver import LinkResolver
from linkmanager.engine.snapshot import PlacementSnapshot, build_snapshot
from linkmanager.services.cms_service import (
    CmsContext,
    CmsUrlResolver,
    ConfiguredCmsResolver,
)
from linkmanager.services.link_form import LinkFormService
from linkmanager.services.link_service import LinkStore
from linkmanager.services.log_buffer import (
    get_current_level,
    get_logs,
    install_handler,
    set_capture_level,
)
from linkmanager.services.log_service import LogService
from linkmanager.services.placement_service import PlacementStore

logger = logging.getLogger(__name__)

RESOLVER_LOGGER = "linkmanager.resolver"
LOG_FORMAT = "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s"


def configure_logging(config: LinkManagerConfig, level: int = logging.INFO) -> None:
    """Install the in-memory log buffer and, if configured, the resolver log file."""
    install_handler(level=level, capacity=config.log_buffer_capacity)

    if not config.resolver_log_file:
        return
    resolver_log = logging.getLogger(RESOLVER_LOGGER)
    for handler in resolver_log.handlers:
        if isinstance(handler, TimedRotatingFileHandler):
            return
    handler = TimedRotatingFileHandler(
        config.resolver_log_file,
        when="midnight",
        backupCount=config.resolver_log_backups,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    resolver_log.addHandler(handler)
    logger.info("Resolver log → %s (%d days kept)",
                config.resolver_log_file, config.resolver_log_backups)


class LinkManager:
    """Container for the stores and services sharing one engine."""

    def __init__(
        self,
        config: LinkManagerConfig,
        engine: Engine,
        cms: CmsUrlResolver | None = None,
    ) -> None:
        self.config = config
        self.engine = engine
        self.audit = LogService(engine, default_page_size=config.log_page_size)
        self.links = LinkStore(engine, self.audit)
        self.placements = PlacementStore(engine, self.audit)
        self.cms = cms if cms is not None else ConfiguredCmsResolver(config.cms)
        self.forms = LinkFormService(engine, self.links, self.placements, self.cms)

    @classmethod
    def from_env(cls, config: LinkManagerConfig, create_tables: bool = False) -> LinkManager:
        """Build from ``DATABASE_URL`` (``.env`` is loaded first)."""
        load_dotenv()
        engine = create_db_engine()
        if create_tables:
            init_db(engine)
        return cls(config, engine)

    # -------------------------------------------------------------------
    # System channel
    # -------------------------------------------------------------------
    @staticmethod
    def system_logs(
        tail: int = 200,
        level: str | None = None,
        logger_filter: str | None = None,
    ) -> list[dict[str, str]]:
        """Recent records captured by the in-memory buffer, oldest first."""
        return get_logs(tail=tail, level=level, logger_filter=logger_filter)

    @staticmethod
    def system_log_level() -> str:
        return get_current_level()

    @staticmethod
    def set_system_log_level(level_name: str) -> str:
        return set_capture_level(level_name)

    def snapshot(self, context: CmsContext | None = None) -> PlacementSnapshot:
        return build_snapshot(self.links, self.placements, self.cms, context)

    def resolver_for_request(
        self,
        context: CmsContext | None = None,
        snapshot: PlacementSnapshot | None = None,
    ) -> LinkResolver:
        """Resolver for one render; builds the snapshot unless one is given."""
        if snapshot is None:
            snapshot = self.snapshot(context)
        return LinkResolver.default(
            self.engine,
            self.links,
            self.placements,
            self.cms,
            context,
            snapshot,
            self.config.placeholder_url,
        )
