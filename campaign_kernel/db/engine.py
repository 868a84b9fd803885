"""
Module: campaign_kernel.db.engine
Responsibility: SQLAlchemy engine and session-factory construction for the
    reference storage adapter, plus schema creation helpers.

Failure modes:
    - sqlalchemy.exc.OperationalError when the database URL is unreachable.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from campaign_kernel.db.base import Base
from campaign_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def init_engine_from_url(database_url: str, echo: bool = False) -> Engine:
    """Create an engine for ``database_url`` (SQLite and PostgreSQL are supported)."""
    engine = create_engine(database_url, echo=echo, future=True)
    if engine.dialect.name == "sqlite":
        _enable_sqlite_savepoints(engine)
    logger.info("db_engine_initialized", extra={"dialect": engine.dialect.name})
    return engine


def _enable_sqlite_savepoints(engine: Engine) -> None:
    # pysqlite defers BEGIN until the first DML, which breaks SAVEPOINT.
    # Take over transaction start so nested transactions behave.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory bound to ``engine``; sessions do not expire on commit."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def create_tables(engine: Engine) -> None:
    """Create every table registered on the declarative Base."""
    # Import models so they register on Base.metadata
    import campaign_batch.storage.models  # noqa: F401

    Base.metadata.create_all(engine)


def drop_tables(engine: Engine) -> None:
    """Drop every table registered on the declarative Base."""
    import campaign_batch.storage.models  # noqa: F401

    Base.metadata.drop_all(engine)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Transactional scope: commit on success, rollback on any exception."""
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
