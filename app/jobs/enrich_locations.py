"""
Fill in missing visit locations from the command line or a cron entry.

    python -m app.jobs.enrich_locations [--parent-type release --parent-id ID]
                                        [--batch-size 50] [--until-done]

Prints {"updated", "failed", "total"} as JSON.
"""

import argparse
import asyncio
import json
import sys

import httpx
import structlog

from app.config import Settings, get_settings
from app.core.enrichment import EnrichmentJob, EnrichmentResult, EnrichmentScope
from app.core.geolocation import GeoResolver
from app.log import configure_logging
from app.store.factory import build_store

logger = structlog.get_logger()

# Stop --until-done after this many batches no matter what
MAX_ROUNDS = 100


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="enrich_locations", description=__doc__.strip().splitlines()[0])
    parser.add_argument("--parent-type", choices=["link", "release"])
    parser.add_argument("--parent-id")
    parser.add_argument("--batch-size", type=int)
    parser.add_argument("--until-done", action="store_true",
                        help="keep running batches until one resolves nothing")
    args = parser.parse_args(argv)
    if args.parent_id and not args.parent_type:
        parser.error("--parent-id requires --parent-type")
    return args


async def run(settings: Settings, args: argparse.Namespace) -> EnrichmentResult:
    store = build_store(settings)
    scope = EnrichmentScope(parent_type=args.parent_type, parent_id=args.parent_id)
    totals = EnrichmentResult()
    try:
        async with httpx.AsyncClient() as client:
            job = EnrichmentJob.from_settings(settings, store, GeoResolver.from_settings(settings, client=client))
            for _ in range(MAX_ROUNDS if args.until_done else 1):
                result = await job.enrich_batch(scope, args.batch_size)
                totals.updated += result.updated
                totals.failed += result.failed
                totals.total += result.total
                if result.updated == 0:
                    break
    finally:
        await store.close()
    return totals


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(settings)

    result = asyncio.run(run(settings, args))
    logger.info("enrich_locations_done", **result.to_dict())
    print(json.dumps(result.to_dict()))
    return 0


if __name__ == "__main__":
    sys.exit(main())
