"""Connection resource manager.

Owns the process pool of Postgres connections, retries acquisition with
backoff, watches how close the server is to its connection ceiling, and
opens dedicated connections outside the pool for administrative work.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from typing import Any

import psycopg
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from tabcoin_ledger.core.errors import (
    GET_NEW_CLIENT_FROM_POOL,
    GET_NEW_CONNECTED_CLIENT,
    ConnectionAcquisitionError,
)
from tabcoin_ledger.core.settings import DeploymentMode, Settings
from tabcoin_ledger.db.retry import RetryPolicy

logger = logging.getLogger(__name__)

SHOW_MAX_CONNECTIONS = text("SHOW max_connections")
SHOW_RESERVED_CONNECTIONS = text("SHOW superuser_reserved_connections")
SELECT_OPENED_CONNECTIONS = text(
    "SELECT numbackends AS opened_connections FROM pg_stat_database WHERE datname = :datname"
)


@dataclass(frozen=True)
class PoolTelemetry:
    """Point-in-time pool counters attached to diagnostics."""

    total_count: int
    idle_count: int
    waiting_count: int


@dataclass
class ConnectionCache:
    """Process-wide database state.

    Server limits are read once and never invalidated. The opened connection
    count is refreshed when older than the configured max age. Concurrent
    callers may race to fill these fields; the values are idempotent so the
    last write wins.
    """

    engine: AsyncEngine | None = None
    max_connections: int | None = None
    reserved_connections: int | None = None
    opened_connections: int | None = None
    opened_connections_last_update: float | None = None
    pool_query_count: int = 0

    def snapshot(self, pool: PoolTelemetry | None = None) -> dict[str, Any]:
        """Return the cache as plain data, with live pool counts if available."""
        return {
            "max_connections": self.max_connections,
            "reserved_connections": self.reserved_connections,
            "opened_connections": self.opened_connections,
            "opened_connections_last_update": self.opened_connections_last_update,
            "pool_query_count": self.pool_query_count,
            "pool": asdict(pool) if pool is not None else None,
        }


def is_connection_reset(error: BaseException) -> bool:
    """Return True if the error chain shows the server dropped the connection."""
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ConnectionResetError):
            return True
        if isinstance(current, DBAPIError) and current.connection_invalidated:
            return True
        current = getattr(current, "orig", None) or current.__cause__
    return False


class ConnectionManager:
    """Pooled and direct Postgres connections with backoff and load shedding."""

    def __init__(
        self,
        settings: Settings,
        mode: DeploymentMode | None = None,
        *,
        engine_factory: Callable[..., AsyncEngine] = create_async_engine,
        direct_connect: Callable[..., Awaitable[psycopg.AsyncConnection]] = (
            psycopg.AsyncConnection.connect
        ),
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self.settings = settings
        self.mode = mode or settings.deployment_mode
        self.cache = ConnectionCache()
        self._engine_factory = engine_factory
        self._direct_connect = direct_connect
        self._clock = clock
        self._sleep = sleep
        self._waiting = 0

    @property
    def max_pool_size(self) -> int:
        if self.mode.is_serverless_runtime:
            return self.settings.pool_max_serverless
        return self.settings.pool_max_long_lived

    @property
    def pool_retry_policy(self) -> RetryPolicy:
        retries = self.settings.pool_retries
        if self.mode.is_build_time:
            retries = self.settings.pool_retries_build_time
        return RetryPolicy(
            retries=retries,
            min_timeout=self.settings.retry_min_seconds,
            max_timeout=self.settings.retry_max_seconds,
            factor=self.settings.retry_factor,
        )

    @property
    def direct_retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            retries=self.settings.direct_retries,
            min_timeout=0,
            max_timeout=self.settings.retry_max_seconds,
            factor=self.settings.retry_factor,
        )

    def _connect_args(self) -> dict[str, Any]:
        connect_args: dict[str, Any] = {
            "connect_timeout": max(1, int(self.settings.connect_timeout_seconds)),
        }
        # Serverless providers terminate TLS with certificates we do not verify.
        if self.mode.is_serverless_runtime:
            connect_args["sslmode"] = "require"
        return connect_args

    def get_engine(self) -> AsyncEngine:
        """Return the pooled engine, creating it on first use."""
        if self.cache.engine is None:
            self.cache.engine = self._engine_factory(
                self.settings.effective_database_url,
                pool_size=self.max_pool_size,
                max_overflow=0,
                pool_timeout=self.settings.connect_timeout_seconds,
                pool_recycle=self.settings.idle_timeout_seconds,
                connect_args=self._connect_args(),
                echo=self.settings.sql_debug,
            )
        return self.cache.engine

    def pool_telemetry(self) -> PoolTelemetry | None:
        """Return live pool counters, or None before the pool exists."""
        engine = self.cache.engine
        if engine is None:
            return None
        pool = engine.pool
        idle = pool.checkedin()
        return PoolTelemetry(
            total_count=idle + pool.checkedout(),
            idle_count=idle,
            waiting_count=self._waiting,
        )

    def cache_snapshot(self) -> dict[str, Any]:
        return self.cache.snapshot(self.pool_telemetry())

    async def _connect_from_pool(self) -> AsyncConnection:
        engine = self.get_engine()
        self._waiting += 1
        try:
            return await engine.connect()
        finally:
            self._waiting -= 1

    def _log_pool_retry(self, error: BaseException, attempt: int) -> None:
        logger.warning(
            "Retrying pooled connection acquisition: %s",
            error,
            extra={
                "error_location_code": GET_NEW_CLIENT_FROM_POOL,
                "attempt": attempt,
                "database_cache": self.cache_snapshot(),
            },
        )

    async def acquire(self) -> AsyncConnection:
        """Return a connection checked out from the pool.

        Raises:
            ConnectionAcquisitionError: If every attempt allowed by the retry
                policy failed.
        """
        policy = self.pool_retry_policy
        kwargs: dict[str, Any] = {"on_retry": self._log_pool_retry}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        try:
            return await policy.call(self._connect_from_pool, **kwargs)
        except Exception as exc:
            telemetry = self.pool_telemetry()
            raise ConnectionAcquisitionError(
                str(exc),
                attempt=policy.max_attempts,
                pool=asdict(telemetry) if telemetry is not None else None,
                context={"database_cache": self.cache.snapshot(telemetry)},
            ) from exc

    async def release(self, connection: AsyncConnection, evict: bool = False) -> None:
        """Return a connection to the pool, discarding it when ``evict`` is set."""
        if evict:
            await connection.invalidate()
        await connection.close()

    async def _fetch_connection_limits(self, connection: AsyncConnection) -> tuple[int, int]:
        max_result = await connection.execute(SHOW_MAX_CONNECTIONS)
        reserved_result = await connection.execute(SHOW_RESERVED_CONNECTIONS)
        return int(max_result.scalar_one()), int(reserved_result.scalar_one())

    async def _fetch_opened_connections(self, connection: AsyncConnection) -> int:
        result = await connection.execute(
            SELECT_OPENED_CONNECTIONS,
            {"datname": self.settings.database_name},
        )
        return int(result.scalar_one())

    async def check_capacity_pressure(self, connection: AsyncConnection) -> bool:
        """Return True when the server is close to its connection ceiling.

        The check is skipped at build time and while callers are already
        waiting on the pool, so it never adds queries under contention. A
        connection reset during the check counts as pressure.
        """
        telemetry = self.pool_telemetry()
        if self.mode.is_build_time or (telemetry is not None and telemetry.waiting_count):
            return False

        cache = self.cache
        now = self._clock()
        try:
            if cache.max_connections is None or cache.reserved_connections is None:
                max_connections, reserved_connections = await self._fetch_connection_limits(
                    connection
                )
                cache.max_connections = max_connections
                cache.reserved_connections = reserved_connections

            if (
                cache.opened_connections is None
                or cache.opened_connections_last_update is None
                or now - cache.opened_connections_last_update
                > self.settings.opened_connections_max_age_seconds
            ):
                cache.opened_connections = await self._fetch_opened_connections(connection)
                cache.opened_connections_last_update = now
        except Exception as exc:
            if is_connection_reset(exc):
                return True
            raise

        return is_over_capacity(
            opened=cache.opened_connections,
            max_connections=cache.max_connections,
            reserved=cache.reserved_connections,
            tolerance=self.settings.max_connections_tolerance,
        )

    async def _connect_direct(self) -> psycopg.AsyncConnection:
        return await self._direct_connect(self.settings.direct_conninfo, **self._connect_args())

    async def open_direct_connection(self) -> psycopg.AsyncConnection:
        """Open a dedicated connection outside the pool.

        The caller owns the connection and must close it.

        Raises:
            ConnectionAcquisitionError: If every connection attempt failed.
        """
        policy = self.direct_retry_policy
        kwargs: dict[str, Any] = {}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        try:
            return await policy.call(self._connect_direct, **kwargs)
        except Exception as exc:
            error = ConnectionAcquisitionError(
                str(exc),
                attempt=policy.max_attempts,
                error_location_code=GET_NEW_CONNECTED_CLIENT,
            )
            logger.error(
                "Could not open a direct connection: %s", exc, extra={"error": error.to_dict()}
            )
            raise error from exc

    async def dispose(self) -> None:
        """Close every pooled connection and forget the pool."""
        engine, self.cache.engine = self.cache.engine, None
        if engine is not None:
            await engine.dispose()


def is_over_capacity(*, opened: int, max_connections: int, reserved: int, tolerance: float) -> bool:
    """Return True when opened connections exceed the tolerated share of usable slots."""
    return opened > (max_connections - reserved) * tolerance
