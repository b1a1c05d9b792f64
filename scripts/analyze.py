#!/usr/bin/env python3
"""Analyze a user-supplied list of relay endpoints.

Input is read from ``--file``, positional arguments, or stdin, separated by
newlines or commas. Results are printed as JSON before being persisted.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from pureproxy.api import GeoLookupClient
from pureproxy.config import AppConfig, REPO_ROOT, load_config
from pureproxy.db import DatabaseClient
from pureproxy.exceptions import NoValidInputError
from pureproxy.jobs import RunConfig, analyze_manual
from pureproxy.logging_utils import configure_logging, flush_logging, generate_run_id, perf_span
from pureproxy.network import OwnershipFilter
from pureproxy.persistence import EndpointWriter, MemoryEndpointStore, PostgresEndpointStore
from pureproxy.scoring import MODE_MANUAL, load_scoring_policy


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Validate and score a list of relay endpoints.")
    parser.add_argument(
        "endpoints",
        nargs="*",
        help="Endpoints as ip[:port]; read from stdin when omitted.",
    )
    parser.add_argument(
        "--file",
        type=Path,
        default=None,
        help="Read endpoints from this file instead.",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=5,
        help="Candidates validated concurrently per batch (default: 5).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Do not write results to PostgreSQL.",
    )
    return parser.parse_args()


def _read_input(args: argparse.Namespace) -> str:
    if args.file is not None:
        return args.file.read_text(encoding="utf-8")
    if args.endpoints:
        return "\n".join(args.endpoints)
    return sys.stdin.read()


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
        configure_logging(fallback, run_id=generate_run_id("analyze"), include_console=False)
        logging.getLogger(__name__).error("Failed to load configuration: %s", exc)
        flush_logging()
        return 1

    # stdout carries the JSON result; logs go to the run file only.
    configure_logging(config, run_id=generate_run_id("analyze"), include_console=False)
    logger = logging.getLogger(__name__)

    db_client = None
    if args.dry_run:
        store = MemoryEndpointStore()
    else:
        db_client = DatabaseClient(config.database_url)
        store = PostgresEndpointStore(db_client)
        store.ensure_schema()

    run_config = RunConfig(
        mode=MODE_MANUAL,
        batch_size=args.batch_size,
        scan_limit=None,
        batch_delay_seconds=0.0,
    )
    geo_client = GeoLookupClient(base_url=config.geo_api_url, lang=config.geo_lang)
    writer = EndpointWriter(store)

    try:
        with perf_span("analyze.total", tags={"app": config.app_name}):
            records = analyze_manual(
                _read_input(args),
                geo_client=geo_client,
                writer=writer,
                run_config=run_config,
                ownership=OwnershipFilter(config.excluded_cidrs),
                policy=load_scoring_policy(config.scoring_config),
            )
        # Results go out before the writer drains.
        print(json.dumps([record.to_dict() for record in records], indent=2), flush=True)
    except NoValidInputError as exc:
        logger.error("Rejected submission: %s", exc)
        print(json.dumps({"error": str(exc)}), file=sys.stderr)
        return 2
    finally:
        writer.close()
        geo_client.close()
        if db_client is not None:
            db_client.close()

    return 0


if __name__ == "__main__":  # pragma: no cover - script entrypoint
    raise SystemExit(main())
