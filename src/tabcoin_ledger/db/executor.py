"""Query execution on top of the connection resource manager."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Result
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection
from sqlalchemy.sql import Executable

from tabcoin_ledger.core.errors import QueryError
from tabcoin_ledger.core.settings import DeploymentMode, Settings
from tabcoin_ledger.db.pool import ConnectionManager

logger = logging.getLogger(__name__)

UNIQUE_CONSTRAINT_VIOLATION = "23505"
SERIALIZATION_FAILURE = "40001"
UNDEFINED_FUNCTION = "42883"


class ErrorCodes:
    """Postgres SQLSTATE codes callers are expected to handle themselves."""

    UNIQUE_CONSTRAINT_VIOLATION = UNIQUE_CONSTRAINT_VIOLATION
    SERIALIZATION_FAILURE = SERIALIZATION_FAILURE
    UNDEFINED_FUNCTION = UNDEFINED_FUNCTION


def expected_error_codes(mode: DeploymentMode) -> frozenset[str]:
    """Return the SQLSTATE codes that are routine for the given deployment.

    Long-lived servers see undefined-function errors while migrations replace
    functions under them, so those are expected there too.
    """
    codes = {UNIQUE_CONSTRAINT_VIOLATION, SERIALIZATION_FAILURE}
    if not mode.is_serverless_runtime:
        codes.add(UNDEFINED_FUNCTION)
    return frozenset(codes)


def database_error_code(error: BaseException) -> str | None:
    """Extract the Postgres SQLSTATE from a driver or SQLAlchemy error."""
    if isinstance(error, DBAPIError) and error.orig is not None:
        error = error.orig
    return getattr(error, "sqlstate", None) or getattr(error, "pgcode", None)


def statement_text(statement: Executable | str) -> str:
    return statement if isinstance(statement, str) else str(statement)


def wrap_query_error(
    error: BaseException,
    statement: Executable | str,
    database_cache: dict[str, Any],
) -> QueryError:
    """Build the QueryError for a failed statement without logging it."""
    message = str(error.orig) if isinstance(error, DBAPIError) else str(error)
    return QueryError(
        message,
        query=statement_text(statement),
        database_error_code=database_error_code(error),
        context={"database_cache": database_cache},
    )


def should_log_query_error(error: QueryError, mode: DeploymentMode) -> bool:
    return error.database_error_code not in expected_error_codes(mode)


class Database:
    """Runs statements on pooled connections or inside a caller's transaction."""

    error_codes = ErrorCodes

    def __init__(self, manager: ConnectionManager, mode: DeploymentMode | None = None) -> None:
        self.manager = manager
        self.mode = mode or manager.mode

    async def execute(
        self,
        statement: Executable | str,
        params: Mapping[str, Any] | None = None,
        *,
        transaction: AsyncConnection | None = None,
    ) -> Result[Any]:
        """Execute a single statement.

        Args:
            statement: SQLAlchemy statement, or raw SQL with ``:name`` binds.
            params: Bind parameters for raw SQL.
            transaction: Connection holding an open transaction. When given,
                the statement runs on it and the caller keeps ownership.
                Otherwise a pooled connection is borrowed, the statement is
                committed, and the connection goes back to the pool.

        Returns:
            The buffered result.

        Raises:
            ConnectionAcquisitionError: If no pooled connection was available.
            QueryError: If the database rejected the statement.
        """
        self.manager.cache.pool_query_count += 1
        if isinstance(statement, str):
            statement = text(statement)

        connection = transaction if transaction is not None else await self.manager.acquire()
        failed = True
        try:
            result = await connection.execute(statement, params)
            if transaction is None:
                await connection.commit()
            failed = False
            return result
        except Exception as exc:
            error = wrap_query_error(exc, statement, self.manager.cache_snapshot())
            if should_log_query_error(error, self.mode):
                logger.error("Query failed: %s", error.message, extra={"error": error.to_dict()})
            raise error from exc
        finally:
            if transaction is None:
                if failed:
                    await self._release_after_failure(connection)
                else:
                    await self.release(connection)

    async def begin_transaction(self) -> AsyncConnection:
        """Borrow a pooled connection to hold open across several statements.

        The caller must hand it back with :meth:`release`.
        """
        return await self.manager.acquire()

    async def release(self, connection: AsyncConnection) -> None:
        """Return a borrowed connection, shedding it if the server is under pressure.

        The connection always goes back to the manager. It is evicted when the
        rollback or the pressure check fails, and the error is re-raised.
        """
        evict = True
        try:
            if connection.in_transaction():
                await connection.rollback()
            pressure = await self.manager.check_capacity_pressure(connection)
            evict = pressure and self.mode.is_serverless_runtime
        finally:
            await self.manager.release(connection, evict=evict)

    async def _release_after_failure(self, connection: AsyncConnection) -> None:
        # The error already propagating wins over cleanup errors.
        try:
            await self.release(connection)
        except Exception:
            logger.warning("Could not cleanly release connection after a failure", exc_info=True)

    @asynccontextmanager
    async def transaction(self, isolation_level: str | None = None) -> AsyncIterator[AsyncConnection]:
        """Run a block inside one transaction, committing on success.

        Example:
            async with database.transaction() as tx:
                await engine.transition(old, new, transaction=tx)
        """
        connection = await self.begin_transaction()
        failed = True
        try:
            if isolation_level is not None:
                await connection.execution_options(isolation_level=isolation_level)
            async with connection.begin():
                yield connection
            failed = False
        finally:
            if failed:
                await self._release_after_failure(connection)
            else:
                await self.release(connection)


def create_database(settings: Settings) -> Database:
    """Wire a Database to a fresh ConnectionManager for the given settings."""
    return Database(ConnectionManager(settings))
