import logging
from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from callvoucher.core.config import settings
from callvoucher.core.errors import StorageTimeout, StorageUnavailable

logger = logging.getLogger(__name__)

Base = declarative_base()

SessionFactory = Callable[[], Session]

# execution option marking a core unit of work that takes the write lock up front
IMMEDIATE = "callvoucher_immediate"

# query_canceled (statement_timeout) and lock_not_available (lock_timeout)
_TIMEOUT_SQLSTATES = {"57014", "55P03"}


def make_engine(database_url: str, timeout_seconds: float | None = None) -> Engine:
    timeout = timeout_seconds if timeout_seconds is not None else settings.storage_timeout_seconds
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": timeout},
        )

        @event.listens_for(engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            # let SQLAlchemy own BEGIN so SAVEPOINTs behave
            dbapi_connection.isolation_level = None
            dbapi_connection.execute("PRAGMA foreign_keys=ON")
            # readers must not block a committing writer
            dbapi_connection.execute("PRAGMA journal_mode=WAL")

        @event.listens_for(engine, "begin")
        def _on_begin(connection):
            if connection.get_execution_options().get(IMMEDIATE):
                connection.exec_driver_sql("BEGIN IMMEDIATE")
            else:
                connection.exec_driver_sql("BEGIN")

        return engine

    timeout_ms = int(timeout * 1000)
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=settings.database_pool_size,
        pool_timeout=settings.database_pool_timeout_seconds,
        connect_args={
            "connect_timeout": max(1, int(timeout)),
            "options": f"-c statement_timeout={timeout_ms} -c lock_timeout={timeout_ms}",
        },
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


engine = make_engine(settings.database_url)
SessionLocal = make_session_factory(engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _is_timeout(exc: OperationalError) -> bool:
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _TIMEOUT_SQLSTATES:
        return True
    text = str(orig).lower()
    return "locked" in text or "timeout" in text or "timed out" in text


@contextmanager
def transaction(session_factory: SessionFactory, operation: str) -> Iterator[Session]:
    """Run one unit of work; commit on success, roll back on any error.

    Driver timeouts become StorageTimeout and other operational failures
    become StorageUnavailable. Domain errors raised inside the block pass
    through unchanged after the rollback.
    """
    session = session_factory()
    try:
        with session.begin():
            session.connection(execution_options={IMMEDIATE: True})
            yield session
    except PoolTimeoutError as exc:
        logger.warning("%s: no database connection available", operation)
        raise StorageTimeout(f"{operation} timed out waiting for storage") from exc
    except OperationalError as exc:
        if _is_timeout(exc):
            logger.warning("%s: storage timeout: %s", operation, exc.orig)
            raise StorageTimeout(f"{operation} timed out") from exc
        logger.error("%s: storage unavailable: %s", operation, exc.orig)
        raise StorageUnavailable(f"{operation} failed: storage unavailable") from exc
    finally:
        session.close()
