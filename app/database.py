"""
Database Connection Module

Owns the storage handle (async engine + session factory) and the transaction
runner every mutating unit of work goes through.

The handle is constructed explicitly at process start (FastAPI lifespan or a
Celery task), passed down the call chain, and disposed at shutdown. Nothing
here is a module-level singleton.
"""

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.core.config import Settings, get_settings
from app.core.exceptions import AppError, TransactionFailedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLSTATEs worth retrying: serialization_failure, deadlock_detected
TRANSIENT_SQLSTATES = {"40001", "40P01"}


# Base class for all our models
class Base(DeclarativeBase):
    pass


class Database:
    """
    Explicitly constructed storage handle.

    Wraps one AsyncEngine and its session factory. Create it once per process,
    hand it to whoever needs sessions, dispose it on shutdown.
    """

    def __init__(
        self,
        url: str,
        *,
        echo: bool = False,
        pool_size: int = 5,
        max_overflow: int = 10,
        busy_timeout_seconds: float = 5.0,
    ):
        engine_kwargs: dict = {"echo": echo}
        if url.startswith("sqlite"):
            # SQLite serializes writers; wait for the write lock instead of failing
            engine_kwargs["connect_args"] = {"timeout": busy_timeout_seconds}
        else:
            engine_kwargs["pool_size"] = pool_size
            engine_kwargs["max_overflow"] = max_overflow
            engine_kwargs["pool_pre_ping"] = True

        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        self.session_maker = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False  # Objects remain accessible after commit
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "Database":
        settings = settings or get_settings()
        return cls(
            settings.database_url,
            echo=settings.database_echo,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            busy_timeout_seconds=settings.transaction_lock_timeout_ms / 1000,
        )

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def session(self) -> AsyncSession:
        """Open a new session. Callers are responsible for closing it."""
        return self.session_maker()

    async def create_all(self) -> None:
        """
        Create all tables in database.
        Called once at application startup.
        """
        # Register every mapped class on Base.metadata
        import app.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")

    async def ping(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def dispose(self) -> None:
        await self.engine.dispose()


def is_transient_error(exc: DBAPIError) -> bool:
    """Whether the failed transaction can be replayed from scratch."""
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code in TRANSIENT_SQLSTATES:
        return True
    return "database is locked" in str(orig).lower()


class TransactionRunner:
    """
    Runs a unit of work as one all-or-nothing transaction on a session.

    - Commits when the work returns, rolls back on any exception.
    - Typed business errors (AppError) are re-raised untouched and never retried.
    - Transient contention (deadlock, serialization failure, SQLite busy) rolls
      back and replays the whole unit, up to the configured retry budget.
    - Any other persistence failure surfaces as TransactionFailedError.
    - On PostgreSQL, lock and statement timeouts are applied per transaction,
      so a timeout aborts and rolls back everything written in it.
    """

    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()

    async def run(
        self,
        work: Callable[[], Awaitable[T]],
        *,
        name: str = "transaction",
    ) -> T:
        max_retries = self.settings.transaction_max_retries
        attempt = 0

        while True:
            attempt += 1
            try:
                await self._apply_timeouts()
                result = await work()
                await self.session.commit()
                return result

            except AppError:
                await self.session.rollback()
                raise

            except DBAPIError as exc:
                await self.session.rollback()
                if is_transient_error(exc) and attempt <= max_retries:
                    delay = self.settings.transaction_retry_backoff_seconds * attempt
                    logger.warning(
                        f"{name}: transient storage contention, retrying "
                        f"(attempt {attempt}/{max_retries}) in {delay:.2f}s: {exc.orig}"
                    )
                    await asyncio.sleep(delay)
                    continue
                logger.error(f"{name}: rolled back after storage error: {exc.orig}")
                raise TransactionFailedError(
                    f"{name} failed and was rolled back"
                ) from exc

            except SQLAlchemyError as exc:
                await self.session.rollback()
                logger.error(f"{name}: rolled back after ORM error: {exc}")
                raise TransactionFailedError(
                    f"{name} failed and was rolled back"
                ) from exc

            except Exception:
                await self.session.rollback()
                raise

    async def _apply_timeouts(self) -> None:
        if self.session.get_bind().dialect.name != "postgresql":
            return
        lock_ms = int(self.settings.transaction_lock_timeout_ms)
        statement_ms = int(self.settings.transaction_statement_timeout_ms)
        await self.session.execute(text(f"SET LOCAL lock_timeout = {lock_ms}"))
        await self.session.execute(text(f"SET LOCAL statement_timeout = {statement_ms}"))


def get_database(request: Request) -> Database:
    """Return the storage handle opened by the application lifespan."""
    return request.app.state.db


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """
    Dependency injection for FastAPI routes.
    Yields a database session and ensures cleanup.
    """
    async with get_database(request).session() as session:
        try:
            yield session
        finally:
            await session.close()
