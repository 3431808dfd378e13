"""Print connection figures for the configured Postgres database."""
from __future__ import annotations

import argparse
import asyncio
import json
import sys

import psycopg

from tabcoin_ledger.core.errors import ConnectionAcquisitionError
from tabcoin_ledger.core.settings import Settings
from tabcoin_ledger.db.pool import ConnectionManager
from tabcoin_ledger.services.status import get_database_status


async def collect_status(settings: Settings) -> dict[str, object]:
    """Open a dedicated connection, read the status figures and close it."""
    manager = ConnectionManager(settings)
    connection = await manager.open_direct_connection()
    try:
        return await get_database_status(connection, settings.database_name)
    finally:
        await connection.close()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Show Postgres connection usage")
    parser.add_argument(
        "--url",
        default=None,
        help="Override database URL (defaults to the configured settings)",
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=None,
        help="Connection retries before giving up",
    )
    args = parser.parse_args(argv)

    overrides: dict[str, object] = {}
    if args.url:
        overrides["database_url"] = args.url
    if args.retries is not None:
        overrides["direct_retries"] = args.retries
    settings = Settings(**overrides)

    try:
        status = asyncio.run(collect_status(settings))
    except ConnectionAcquisitionError as exc:
        print(f"[db_status] ERROR: {exc.message}", file=sys.stderr)
        sys.exit(1)
    except psycopg.Error as exc:
        print(f"[db_status] ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    print(json.dumps(status, indent=2, sort_keys=True))


if __name__ == "__main__":
    main()
