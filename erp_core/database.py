import json
import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from datetime import datetime, date
from typing import AsyncGenerator, AsyncIterator
from uuid import UUID

from sqlalchemy import event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from psycopg.types.json import set_json_dumps

from erp_core.config import settings
from erp_core.core.exceptions import DuplicateError, ForeignKeyError, ERPError


logger = logging.getLogger(__name__)


# Custom JSON encoder that handles Decimal, datetime, UUID, etc.
class CustomJSONEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal, datetime, UUID and other types."""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, UUID):
            return str(obj)
        return super().default(obj)


def custom_json_dumps(obj):
    """Custom JSON dumps function for psycopg and SQLite JSON columns."""
    return json.dumps(obj, cls=CustomJSONEncoder)


# Configure psycopg to use our custom JSON encoder globally
set_json_dumps(custom_json_dumps)


def _normalize_url(database_url: str) -> str:
    if database_url.startswith("postgresql+asyncpg://"):
        # Switch to psycopg for async PostgreSQL
        return database_url.replace("postgresql+asyncpg://", "postgresql+psycopg://")
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+psycopg://")
    return database_url


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    # pysqlite/aiosqlite emit BEGIN lazily, which breaks SAVEPOINT handling.
    # Hand transaction control back to SQLAlchemy.
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine for PostgreSQL (psycopg) or SQLite (aiosqlite)."""
    if database_url.startswith("sqlite"):
        engine = create_async_engine(
            database_url,
            echo=echo,
            json_serializer=custom_json_dumps,
            connect_args={"check_same_thread": False},
        )
        _enable_sqlite_savepoints(engine)
        return engine

    return create_async_engine(
        _normalize_url(database_url),
        echo=echo,
        json_serializer=custom_json_dumps,
        pool_pre_ping=True,  # Check connection health before use
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        connect_args={
            "prepare_threshold": None,  # Disable prepared statements for poolers
            "connect_timeout": 30,
        },
    )


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def get_db_session():
    """Context manager for getting database session (for scripts and jobs)."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def translate_integrity_error(exc: IntegrityError) -> ERPError:
    """Map a storage constraint violation to a domain error."""
    message = str(exc.orig).lower() if exc.orig is not None else str(exc).lower()
    if "foreign key" in message:
        return ForeignKeyError("Referenced record does not exist")
    if "unique" in message or "duplicate" in message:
        return DuplicateError("Record already exists")
    return ERPError(f"Constraint violation: {exc.orig}")


@asynccontextmanager
async def unit_of_work(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    All-or-nothing scope for one workflow operation.

    Opens a transaction when the session has none (and commits it on exit),
    otherwise a SAVEPOINT inside the caller's transaction. Any exception rolls
    the scope back and propagates.
    """
    if session.in_transaction():
        scope = session.begin_nested()
    else:
        scope = session.begin()

    try:
        async with scope:
            yield session
    except IntegrityError as exc:
        logger.warning(f"Integrity error rolled back: {exc.orig}")
        raise translate_integrity_error(exc) from exc


async def init_db(bind: AsyncEngine = None) -> None:
    """Initialize database tables."""
    # Import all models to register them with Base.metadata
    from erp_core import models  # noqa: F401

    bind = bind or engine
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Registered {len(Base.metadata.tables)} tables")
