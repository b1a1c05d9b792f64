#!/usr/bin/env python3
"""Print stored endpoints as JSON, filtered and sorted like the dashboard."""

import argparse
import json
import logging
import sys

from pureproxy.config import AppConfig, REPO_ROOT, load_config
from pureproxy.db import DatabaseClient
from pureproxy.logging_utils import configure_logging, flush_logging, generate_run_id
from pureproxy.persistence import EndpointQuery, PostgresEndpointStore
from pureproxy.persistence.query import SORT_COLUMNS


def _residential(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "residential"):
        return True
    if lowered in ("0", "false", "no", "datacenter"):
        return False
    raise argparse.ArgumentTypeError(f"expected true/false, got {value!r}")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Query stored relay endpoints.")
    parser.add_argument("--search", default=None, help="Substring of ip, country or ISP.")
    parser.add_argument("--min-purity", type=int, default=None, help="Minimum purity score.")
    parser.add_argument(
        "--residential",
        type=_residential,
        default=None,
        help="Only residential (true) or only datacenter (false) endpoints.",
    )
    parser.add_argument("--country", default=None, help="Two-letter country code.")
    parser.add_argument(
        "--sort",
        choices=sorted(SORT_COLUMNS),
        default="purity",
        help="Sort key (default: purity).",
    )
    parser.add_argument("--asc", action="store_true", help="Sort ascending.")
    parser.add_argument("--limit", type=int, default=100, help="Max rows (default: 100).")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    try:
        config = load_config()
    except Exception as exc:  # noqa: BLE001 - log and exit gracefully with a file
        fallback = AppConfig(
            database_url=None,
            log_directory=REPO_ROOT / "logs",
            log_level="INFO",
        )
        configure_logging(fallback, run_id=generate_run_id("query"), include_console=False)
        logging.getLogger(__name__).error("Failed to load configuration: %s", exc)
        flush_logging()
        return 1

    configure_logging(config, run_id=generate_run_id("query"), include_console=False)

    query = EndpointQuery(
        search=args.search,
        min_purity=args.min_purity,
        is_residential=args.residential,
        country_code=args.country,
        sort_key=args.sort,
        descending=not args.asc,
        limit=args.limit,
    )
    with DatabaseClient(config.database_url) as db_client:
        records = PostgresEndpointStore(db_client).query(query)

    json.dump([record.to_dict() for record in records], sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":  # pragma: no cover - script entrypoint
    raise SystemExit(main())
