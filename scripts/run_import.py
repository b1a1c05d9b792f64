#!/usr/bin/env python3
"""Command-line entrypoint for the scheduled relay import."""

import argparse
import logging

from pureproxy.api import GeoLookupClient
from pureproxy.config import AppConfig, REPO_ROOT, load_config
from pureproxy.db import DatabaseClient
from pureproxy.jobs import RunConfig, run_import
from pureproxy.jobs.runner import PROBE_STRATEGIES
from pureproxy.logging_utils import configure_logging, flush_logging, generate_run_id, perf_span
from pureproxy.network import OwnershipFilter
from pureproxy.persistence import EndpointQuery, MemoryEndpointStore, PostgresEndpointStore
from pureproxy.scoring import load_scoring_policy


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import and validate relay candidates from public lists.")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=5,
        help="Candidates validated concurrently per batch (default: 5).",
    )
    parser.add_argument(
        "--scan-limit",
        type=int,
        default=35,
        help="Max candidates validated per run after shuffling (default: 35).",
    )
    parser.add_argument(
        "--probe-strategy",
        choices=PROBE_STRATEGIES,
        default="marker",
        help="'marker' probes each relay; 'trust' skips probing and keeps geo-resolved entries.",
    )
    parser.add_argument(
        "--connect-timeout",
        type=float,
        default=2.0,
        help="Probe connect timeout in seconds (default: 2.0).",
    )
    parser.add_argument(
        "--read-timeout",
        type=float,
        default=3.0,
        help="Probe read timeout in seconds (default: 3.0).",
    )
    parser.add_argument(
        "--batch-delay",
        type=float,
        default=0.5,
        help="Seconds to wait between batches (default: 0.5).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Keep results in memory instead of writing to PostgreSQL.",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    try:
        config = load_config(require_database=not args.dry_run)
    except Exception as exc:  # noqa: BLE001 - log and exit gracefully with a file
        fallback = AppConfig(
            database_url=None,
            log_directory=REPO_ROOT / "logs",
            log_level="INFO",
        )
        configure_logging(fallback, run_id=generate_run_id("import"))
        logging.getLogger(__name__).error("Failed to load configuration: %s", exc)
        flush_logging()
        return 1

    configure_logging(config, run_id=generate_run_id("import"))
    logger = logging.getLogger(__name__)

    try:
        run_config = RunConfig(
            batch_size=args.batch_size,
            scan_limit=args.scan_limit,
            probe_strategy=args.probe_strategy,
            connect_timeout=args.connect_timeout,
            read_timeout=args.read_timeout,
            batch_delay_seconds=args.batch_delay,
        )
    except ValueError as exc:
        logger.error("Invalid run options: %s", exc)
        flush_logging()
        return 2

    db_client = None
    if args.dry_run:
        store = MemoryEndpointStore()
    else:
        db_client = DatabaseClient(config.database_url)
        store = PostgresEndpointStore(db_client)
        store.ensure_schema()

    geo_client = GeoLookupClient(base_url=config.geo_api_url, lang=config.geo_lang)

    try:
        with perf_span("import.total", tags={"app": config.app_name, "dry_run": args.dry_run}):
            summary = run_import(
                store,
                geo_client,
                run_config,
                ownership=OwnershipFilter(config.excluded_cidrs),
                policy=load_scoring_policy(config.scoring_config),
            )
    finally:
        geo_client.close()
        if db_client is not None:
            db_client.close()

    if args.dry_run:
        for record in store.query(EndpointQuery(limit=None)):
            logger.info("Dry run result: %s", record.to_dict())
    logger.info("Import finished: accepted=%s persisted=%s", summary.accepted, summary.persisted)
    return 0


if __name__ == "__main__":  # pragma: no cover - script entrypoint
    raise SystemExit(main())
