from __future__ import annotations

import argparse
import asyncio
import sys

from matchfeed.common.database import create_tables, dispose_engine
from matchfeed.common.exceptions import SeedDataError
from matchfeed.common.logging import get_logger
from matchfeed.seed.seeder import seed_database

logger = get_logger("SEED")


async def _run(path: str | None) -> None:
    try:
        await create_tables()
        await seed_database(path)
    finally:
        await dispose_engine()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Reset the database from a seed file")
    parser.add_argument("path", nargs="?", default=None, help="seed JSON (default: SEED_DATA_FILE)")
    args = parser.parse_args(argv)

    try:
        asyncio.run(_run(args.path))
    except SeedDataError as exc:
        logger.error(f"Seed failed: {exc}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
