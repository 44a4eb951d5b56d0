"""Command line entry points.

  meterdash ingest --start 2025-04-11          # backfill from a date until today
  meterdash ingest --start 2025-05-01 --end 2025-05-07
  meterdash reading-types                      # list reading type codes offered by the API
  meterdash metering-point 123456789012345678  # contract data of a metering point
  meterdash init-db                            # create tables (local development)

Settings come from the environment / .env (see meterdash.core.config).
"""
from __future__ import annotations

import argparse
import asyncio
import json
from datetime import date
from typing import Any, Awaitable, Callable

from sqlalchemy.exc import SQLAlchemyError

from meterdash.core.config import ConfigurationError, settings
from meterdash.core.database import Database
from meterdash.core.logging import get_logger, setup_logging
from meterdash.processors.mojelektro_client import MojElektroAPIError, MojElektroClient

logger = get_logger(__name__)


def _parse_date(s: str) -> date:
    try:
        return date.fromisoformat(s)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {s!r}")


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


async def _ingest(args: argparse.Namespace) -> int:
    from meterdash.pipelines.ingestion_pipeline import run_ingestion

    summary = await run_ingestion(
        settings,
        gsrn=args.gsrn,
        reading_type_code=args.reading_type,
        start_date=args.start,
        end_date=args.end,
        delay_seconds=args.delay,
    )
    _print_json(summary.to_dict())
    return 0


async def _with_client(call: Callable[[MojElektroClient], Awaitable[Any]]) -> int:
    if not settings.MOJ_ELEKTRO_API_KEY:
        raise ConfigurationError("MOJ_ELEKTRO_API_KEY is not configured.")
    async with MojElektroClient.from_settings(settings) as client:
        logger.info(f"Using API environment: {client.environment}")
        _print_json(await call(client))
    return 0


async def _reading_types(args: argparse.Namespace) -> int:
    return await _with_client(lambda client: client.get_reading_types())


async def _metering_point(args: argparse.Namespace) -> int:
    return await _with_client(lambda client: client.get_metering_point_contract(args.gsrn))


async def _init_db(args: argparse.Namespace) -> int:
    database = Database.from_settings(settings)
    try:
        await database.create_all()
    finally:
        await database.dispose()
    logger.info("Database tables created")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="meterdash", description="Meter readings ingestion and maintenance")
    sub = p.add_subparsers(dest="cmd", required=True)

    ing = sub.add_parser("ingest", help="Fetch readings day by day and store new ones")
    ing.add_argument("--gsrn", default=None, help="Metering point GSRN (default: TARGET_GSRN)")
    ing.add_argument(
        "--reading-type",
        default=None,
        help="Reading type code (default: TARGET_READING_TYPE_CODE)",
    )
    ing.add_argument("--start", type=_parse_date, default=None, help="First day (default: SEED_START_DATE)")
    ing.add_argument("--end", type=_parse_date, default=None, help="Last day, inclusive (default: today)")
    ing.add_argument(
        "--delay",
        type=float,
        default=None,
        help="Seconds to wait between days (default: INGEST_DAY_DELAY_SECONDS)",
    )
    ing.set_defaults(handler=_ingest)

    rt = sub.add_parser("reading-types", help="Print reading types offered by the API")
    rt.set_defaults(handler=_reading_types)

    mp = sub.add_parser("metering-point", help="Print contract data of a metering point")
    mp.add_argument("gsrn")
    mp.set_defaults(handler=_metering_point)

    db = sub.add_parser("init-db", help="Create database tables")
    db.set_defaults(handler=_init_db)

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()

    try:
        return asyncio.run(args.handler(args))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except MojElektroAPIError as e:
        logger.error(f"Error fetching data from API: {e}")
        return 1
    except SQLAlchemyError as e:
        logger.error(f"Database error: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
