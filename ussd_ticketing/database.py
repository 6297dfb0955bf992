import logging
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from ussd_ticketing.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def enable_sqlite_immediate_transactions(engine: Engine) -> Engine:
    """Make every SQLite transaction take the write lock up front.

    pysqlite defers BEGIN until the first write, so two seat commits could both
    read the same seat count before either writes. BEGIN IMMEDIATE serialises
    them the way SELECT ... FOR UPDATE does on PostgreSQL, and also makes
    SAVEPOINTs behave.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_engine(url: str, **kwargs) -> Engine:
    """Create an engine for ``url``, applying SQLite locking when needed"""
    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", 30)
        engine = create_engine(url, connect_args=connect_args, **kwargs)
        return enable_sqlite_immediate_transactions(engine)

    kwargs.setdefault("pool_size", settings.DB_POOL_SIZE)
    kwargs.setdefault("pool_pre_ping", True)
    return create_engine(url, **kwargs)


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a request-scoped session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine = engine) -> None:
    """Create all tables if they don't exist"""
    # models must be imported so their tables register on Base.metadata
    from ussd_ticketing import models  # noqa: F401

    Base.metadata.create_all(bind=bind)
    logger.info("Database tables initialized")


def ping(db: Session) -> bool:
    """Round-trip a trivial query to check store connectivity"""
    db.execute(text("SELECT 1"))
    return True
