"""Health figures for the configured Postgres database."""

from __future__ import annotations

import time
from typing import Any

import psycopg
from psycopg import sql


async def _show(cursor: psycopg.AsyncCursor[Any], setting: str) -> str:
    await cursor.execute(sql.SQL("SHOW {}").format(sql.Identifier(setting)))
    row = await cursor.fetchone()
    return str(row[0])


async def get_database_status(
    connection: psycopg.AsyncConnection,
    database_name: str,
    pool_query_count: int | None = None,
) -> dict[str, Any]:
    """Collect version, connection limits and usage for a database.

    Args:
        connection: Open psycopg connection; the caller keeps ownership.
        database_name: Database whose active backends are counted.
        pool_query_count: Statements run through an in-process executor so
            far. Reported only when given.

    Returns:
        Mapping with ``version``, ``max_connections``, ``reserved_connections``,
        ``opened_connections`` and ``latency_ms`` (round trip of the version
        query), plus ``pool_query_count`` when it was given.
    """
    async with connection.cursor() as cursor:
        started = time.perf_counter()
        version = await _show(cursor, "server_version")
        latency_ms = (time.perf_counter() - started) * 1000

        max_connections = int(await _show(cursor, "max_connections"))
        reserved_connections = int(await _show(cursor, "superuser_reserved_connections"))

        await cursor.execute(
            "SELECT numbackends FROM pg_stat_database WHERE datname = %s",
            (database_name,),
        )
        row = await cursor.fetchone()
        opened_connections = int(row[0]) if row is not None else 0

    status: dict[str, Any] = {
        "version": version,
        "max_connections": max_connections,
        "reserved_connections": reserved_connections,
        "opened_connections": opened_connections,
        "latency_ms": round(latency_ms, 3),
    }
    if pool_query_count is not None:
        status["pool_query_count"] = pool_query_count
    return status
