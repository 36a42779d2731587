"""Entry Routine — connect, bootstrap the schema, run the unit-of-work, exit.

Invariants:
    - Exit status 0 on success, 1 on any TxDemoError (message printed to stderr)
    - Errors were already logged where they were mapped; main only reports them
    - Command-line flags override environment settings
    - Connection closed and engine disposed on every path

Design Decisions:
    - argparse for the handful of flags; settings stay in pydantic-settings
"""

import argparse
import asyncio
import logging
import sys

from txdemo.config import Settings, get_settings
from txdemo.core.errors import TxDemoError
from txdemo.db.schema import ensure_schema
from txdemo.infrastructure.database import DatabaseConnectionProvider
from txdemo.infrastructure.observability import setup_logging
from txdemo.services.unit_of_work import run_unit_of_work

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="txdemo",
        description="Run one insert/update/select/delete transaction against a database.",
    )
    parser.add_argument(
        "--database-url",
        help="SQLAlchemy async URL (default: DATABASE_URL or local PostgreSQL)",
    )
    parser.add_argument("--log-level", help="Logging level (default: LOG_LEVEL or INFO)")
    parser.add_argument(
        "--log-format", choices=["text", "json"],
        help="Log record format (default: LOG_FORMAT or text)",
    )
    parser.add_argument(
        "--check", action="store_true",
        help="Only check that the database is reachable",
    )
    return parser.parse_args(argv)


def resolve_settings(args: argparse.Namespace) -> Settings:
    overrides = {
        key: value
        for key, value in (
            ("database_url", args.database_url),
            ("log_level", args.log_level),
            ("log_format", args.log_format),
        )
        if value is not None
    }
    settings = get_settings()
    if overrides:
        settings = Settings(**{**settings.model_dump(), **overrides})
    return settings


async def run(settings: Settings, check_only: bool = False) -> None:
    provider = DatabaseConnectionProvider(
        settings.database_url, echo=settings.database_echo,
    )
    try:
        if check_only:
            await provider.ping()
            print("Database reachable.")
            return
        async with await provider.connect() as handle:
            await ensure_schema(handle.connection)
            print("Table 'users' created.")
            await run_unit_of_work(handle.connection)
        logger.info("Run complete")
    finally:
        await provider.dispose()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = resolve_settings(args)
    handler = setup_logging(settings.log_level, settings.log_format)
    try:
        asyncio.run(run(settings, check_only=args.check))
    except TxDemoError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return 1
    finally:
        logging.root.removeHandler(handler)
    return 0
