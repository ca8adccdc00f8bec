"""
Command line entry point: ``geonames-ingest <dataset> [--country CC ...]``
"""

import argparse
import asyncio
from typing import List, Optional

from core.config import IngestionConfig, settings
from core.database import create_engine
from core.logging import setup_logging
from ingestion.datasets import DATASETS, build_sources
from ingestion.orchestrator import IngestionOrchestrator
import logging

logger = logging.getLogger(__name__)


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return number


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="geonames-ingest",
        description="Download a GeoNames dataset and atomically replace its table."
    )
    parser.add_argument(
        "dataset",
        choices=sorted(DATASETS),
        help="Dataset to ingest"
    )
    parser.add_argument(
        "--country",
        dest="countries",
        action="append",
        default=[],
        metavar="CC",
        help="Two-letter country code (repeatable). Omit for the whole-world file."
    )
    parser.add_argument(
        "--chunk-size",
        type=_positive_int,
        help=f"Rows per chunk (default: {settings.CHUNK_SIZE})"
    )
    parser.add_argument(
        "--concurrency",
        type=_positive_int,
        help=f"Datasets processed at once (default: {settings.INGEST_CONCURRENCY})"
    )
    parser.add_argument(
        "--keep-previous",
        action="store_true",
        default=None,
        help="Keep the replaced table as <table>_old instead of dropping it"
    )
    parser.add_argument(
        "--database-url",
        help="Override DATABASE_URL"
    )
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    config = IngestionConfig.from_settings(
        settings,
        chunk_size=args.chunk_size,
        concurrency=args.concurrency,
        retain_previous_table=args.keep_previous
    )
    sources = build_sources(args.dataset, config.base_url, args.countries)

    engine = create_engine(args.database_url)
    try:
        orchestrator = IngestionOrchestrator(engine, config)
        results = await orchestrator.run(sources)
    finally:
        await engine.dispose()

    return 0 if all(result.succeeded for result in results) else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging()

    try:
        return asyncio.run(run(args))
    except ValueError as e:
        logger.error(str(e))
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
