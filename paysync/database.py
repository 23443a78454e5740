"""Async SQLAlchemy pool handle, resilient executor, unit-of-work and declarative base.

The :class:`Database` object owns the connection pool. It is created once at
process start (see ``paysync.main``), injected wherever statements run, and
disposed at shutdown.
"""

import logging
import time
import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeVar

from fastapi import Request
from sqlalchemy import JSON, Table, event, func, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import Executable

from paysync.config import Settings
from paysync.errors import DataAccessError
from paysync.retry import RetryPolicy, retry_with_backoff

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Dialects whose INSERT supports ``on_conflict_do_update``.
_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


# Opaque provider JSON: JSONB on PostgreSQL, JSON text elsewhere.
JSONType = JSON().with_variant(postgresql.JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class TimestampMixin:
    """Mixin that adds created_at and updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
    )


class UUIDPrimaryKeyMixin:
    """Mixin that adds a UUID primary key column."""

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)


@dataclass
class QueryResult:
    """Materialized rows of one executed statement."""

    rows: list[dict[str, Any]] = field(default_factory=list)
    rowcount: int = 0

    def first(self) -> dict[str, Any] | None:
        return self.rows[0] if self.rows else None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Connection pool plus the retry policy every statement goes through."""

    def __init__(
        self,
        engine: AsyncEngine,
        retry_policy: RetryPolicy | None = None,
        preview_length: int = 100,
    ) -> None:
        self._engine = engine
        self._retry_policy = retry_policy or RetryPolicy()
        self._preview_length = preview_length

    @classmethod
    def open(
        cls,
        url: str,
        *,
        retry_policy: RetryPolicy | None = None,
        preview_length: int = 100,
        **engine_kwargs: Any,
    ) -> "Database":
        """Create the engine (and its pool) for ``url``."""
        engine = create_async_engine(url, **engine_kwargs)
        if engine.dialect.name == "sqlite":
            event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        logger.info(
            "Database pool opened (%s)", engine.url.render_as_string(hide_password=True)
        )
        return cls(engine, retry_policy=retry_policy, preview_length=preview_length)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls.open(
            settings.async_database_url,
            retry_policy=RetryPolicy(
                max_retries=settings.db_retry_max_retries,
                delay=settings.db_retry_delay,
                backoff_multiplier=settings.db_retry_backoff,
            ),
            preview_length=settings.statement_preview_length,
            echo=settings.debug,
            pool_pre_ping=True,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_recycle=settings.db_pool_recycle,
            connect_args={"timeout": settings.db_connect_timeout},
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def dialect_name(self) -> str:
        return self._engine.dialect.name

    async def close(self) -> None:
        """Dispose every pooled connection. Called once at shutdown."""
        await self._engine.dispose()
        logger.info("Database pool closed")

    def insert(self, table: Table):
        """Return the dialect's INSERT construct, which supports ``on_conflict_do_update``."""
        try:
            factory = _UPSERT_INSERTS[self.dialect_name]
        except KeyError:
            raise NotImplementedError(
                f"Upserts are not supported on dialect {self.dialect_name!r}"
            ) from None
        return factory(table)

    def upsert(
        self,
        table: Table,
        values: Mapping[str, Any],
        index_elements: tuple[str, ...] = ("id",),
        immutable: tuple[str, ...] = (),
    ):
        """Build an idempotent INSERT ... ON CONFLICT DO UPDATE for one row.

        On conflict every supplied column except the conflict target and
        ``immutable`` ones is overwritten, and ``updated_at`` is bumped.
        """
        stmt = self.insert(table).values(dict(values))
        skip = set(index_elements) | set(immutable)
        changes = {name: stmt.excluded[name] for name in values if name not in skip}
        if "updated_at" in table.c:
            changes["updated_at"] = func.now()
        return stmt.on_conflict_do_update(index_elements=list(index_elements), set_=changes)

    def _preview(self, statement: Executable | str) -> str:
        sql = " ".join(str(statement).split())
        if len(sql) > self._preview_length:
            return sql[: self._preview_length] + "..."
        return sql

    async def execute(
        self,
        statement: Executable | str,
        parameters: Mapping[str, Any] | None = None,
    ) -> QueryResult:
        """Execute one statement in its own transaction, retrying connectivity failures.

        Raises:
            DataAccessError: on a non-retryable error, or once the retry
                budget is exhausted.
        """
        if isinstance(statement, str):
            statement = text(statement)
        preview = self._preview(statement)
        start = time.perf_counter()

        async def _run() -> QueryResult:
            async with self._engine.begin() as conn:
                result = await conn.execute(statement, parameters)
                if result.returns_rows:
                    rows = [dict(row) for row in result.mappings()]
                    return QueryResult(rows=rows, rowcount=len(rows))
                return QueryResult(rowcount=result.rowcount)

        outcome = await retry_with_backoff(
            _run, self._retry_policy, label=f"Database query {preview}"
        )
        duration_ms = (time.perf_counter() - start) * 1000

        if not outcome.ok:
            logger.error(
                "Database query error: %s (%.1fms, attempts=%d): %s",
                preview,
                duration_ms,
                outcome.number,
                outcome.error,
            )
            raise DataAccessError(outcome.error, retried=outcome.number > 1) from outcome.error

        logger.info(
            "Executed query: %s (%.1fms, rows=%d)",
            preview,
            duration_ms,
            outcome.value.rowcount,
        )
        return outcome.value

    async def _acquire(self) -> AsyncConnection:
        return await self._engine.connect()

    async def transaction(self, fn: Callable[[AsyncConnection], Awaitable[T]]) -> T:
        """Run ``fn`` on a single checked-out connection, all-or-nothing.

        The connection is acquired under the same retry policy as
        :meth:`execute`. A failure inside ``fn`` (or at COMMIT) triggers a
        ROLLBACK and is re-raised unchanged; a failing ROLLBACK is only
        logged. The connection always goes back to the pool.
        """
        start = time.perf_counter()
        outcome = await retry_with_backoff(
            self._acquire, self._retry_policy, label="Connection acquisition"
        )
        if not outcome.ok:
            logger.error("Could not acquire a connection: %s", outcome.error)
            raise DataAccessError(outcome.error, retried=outcome.number > 1) from outcome.error

        conn = outcome.value
        try:
            try:
                await conn.begin()
                logger.info("Transaction started")
                result = await fn(conn)
                await conn.commit()
            except Exception as exc:
                await self._rollback(conn)
                logger.error(
                    "Transaction failed (%.1fms): %s",
                    (time.perf_counter() - start) * 1000,
                    exc,
                )
                raise
            logger.info(
                "Transaction committed (%.1fms)", (time.perf_counter() - start) * 1000
            )
            return result
        finally:
            await conn.close()

    async def _rollback(self, conn: AsyncConnection) -> None:
        try:
            await conn.rollback()
            logger.info("Transaction rolled back")
        except Exception:
            logger.exception("Error during rollback")

    async def health_check(self) -> bool:
        """Return True if ``SELECT 1`` round-trips. Never raises."""
        try:
            result = await self.execute("SELECT 1 AS health")
        except DataAccessError:
            logger.error("Database health check failed", exc_info=True)
            return False
        row = result.first()
        return row is not None and row["health"] == 1


async def get_database(request: Request) -> Database:
    """Return the process-wide :class:`Database` for FastAPI dependency injection.

    Usage::

        @router.get("/items")
        async def get_items(db: Database = Depends(get_database)):
            ...
    """
    return request.app.state.database
