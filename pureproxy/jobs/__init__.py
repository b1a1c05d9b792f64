"""Pipeline entry points."""

from pureproxy.jobs.runner import (
    ImportSummary,
    RunConfig,
    analyze_manual,
    collect_candidates,
    run_batches,
    run_import,
    validate_candidate,
)

__all__ = [
    "ImportSummary",
    "RunConfig",
    "analyze_manual",
    "collect_candidates",
    "run_batches",
    "run_import",
    "validate_candidate",
]
