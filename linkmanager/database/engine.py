"""
linkmanager.database.engine — Database Connection & Session Helpers
====================================================================

Every store method accepts an optional ``session``.  Called on its own, the
method opens a short-lived session and commits (or rolls back) itself.
Called with the caller's session, it joins that transaction and leaves the
commit to the caller. This is how the form service saves a link, its
placement and the association in one unit of work.

Usage::

    from linkmanager.database.engine import create_db_engine, init_db, transaction

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    with transaction(engine) as session:
        session.add(Link(name="Contact", url="https://example.com/contact"))
        # commit happens automatically on block exit
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from linkmanager.database.models import Base
from linkmanager.exceptions import StorageError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` from *url* or ``DATABASE_URL``.

    The connection pool is sized for an admin back office:
    * ``pool_size=5`` — five persistent connections.
    * ``max_overflow=10`` — up to 10 extra connections under load.
    * ``pool_timeout=10`` — fail after 10 s if no connection is available.
    * ``pool_recycle=3600`` — recycle connections after 1 hour.

    SQLite URLs skip the pool options and get savepoint + foreign key
    support instead (see :func:`configure_sqlite`).

    Raises
    ------
    RuntimeError
        If neither *url* nor ``DATABASE_URL`` is set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid database URL."
        )

    if url.startswith("sqlite"):
        engine = create_engine(url, echo=False)
        configure_sqlite(engine)
    else:
        engine = create_engine(
            url,
            echo=False,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            pool_timeout=10,
            pool_recycle=3600,
        )
    logger.info("Database engine created → %s", engine.url.render_as_string(hide_password=True))
    return engine


def configure_sqlite(engine: Engine) -> None:
    """Let SQLAlchemy drive SQLite transactions so SAVEPOINT works.

    pysqlite issues its own BEGIN lazily, which breaks ``begin_nested()``.
    Must be called before the first connection is opened.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`linkmanager.database.models`.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is retained for dev/test environments.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """Yield a :class:`Session` that auto-commits on success and rolls back
    on exception.

    Database failures are re-raised as :class:`StorageError` with the
    original exception chained.
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise StorageError(str(exc)) from exc
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def transaction(engine: Engine, session: Session | None = None) -> Iterator[Session]:
    """Join *session* if given, otherwise open and own a new one.

    A joined session is never committed here; the owner of the outer
    transaction decides.  Database errors are still surfaced as
    :class:`StorageError` so callers see one error type either way.
    """
    if session is None:
        with get_session(engine) as own:
            yield own
        return

    try:
        yield session
    except SQLAlchemyError as exc:
        raise StorageError(str(exc)) from exc
