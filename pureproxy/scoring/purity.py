"""Purity score and risk tier.

The score is a baseline chosen by ingestion mode plus bounded additive
adjustments, clamped to ``[0, 100]``. All weights live in one immutable
``ScoringPolicy``; a JSON file named by ``SCORING_CONFIG`` may override any
of them.
"""

import dataclasses
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional

LOGGER = logging.getLogger(__name__)

MODE_IMPORT = "import"
MODE_MANUAL = "manual"
MODES = (MODE_IMPORT, MODE_MANUAL)

SCORE_MIN = 0
SCORE_MAX = 100

# Tier cutoffs are fixed so a score maps to the same tier everywhere it is shown.
LOW_RISK_MIN = 80
MEDIUM_RISK_MIN = 50


class RiskTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclasses.dataclass(frozen=True)
class ScoringPolicy:
    """Weight table for ``score_endpoint``.

    Curated imports start higher than manual submissions. Slow endpoints only
    lose points in manual mode; imported lists were already curated upstream.
    """

    import_baseline: int = 80
    manual_baseline: int = 60
    fast_latency_ms: int = 200
    slow_latency_ms: int = 1000
    fast_latency_bonus: int = 5
    slow_latency_penalty_import: int = 0
    slow_latency_penalty_manual: int = 10
    residential_bonus: int = 15
    country_bonus: int = 5
    premium_countries: FrozenSet[str] = frozenset({"US", "SG", "JP", "HK", "KR"})
    platform_penalty: int = 20
    platform_keywords: FrozenSet[str] = frozenset({"cloudflare"})

    def baseline(self, mode: str) -> int:
        if mode == MODE_IMPORT:
            return self.import_baseline
        if mode == MODE_MANUAL:
            return self.manual_baseline
        raise ValueError(f"Unknown ingestion mode: {mode!r}")

    def slow_penalty(self, mode: str) -> int:
        if mode == MODE_IMPORT:
            return self.slow_latency_penalty_import
        return self.slow_latency_penalty_manual


DEFAULT_POLICY = ScoringPolicy()


def clamp_score(value: int) -> int:
    return max(SCORE_MIN, min(SCORE_MAX, int(value)))


def score_endpoint(
    *,
    latency_ms: Optional[int],
    isp: Optional[str],
    country_code: Optional[str],
    is_residential: bool,
    mode: str,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> int:
    """Compute the purity score of a validated endpoint."""
    score = policy.baseline(mode)

    if latency_ms is not None:
        if latency_ms < policy.fast_latency_ms:
            score += policy.fast_latency_bonus
        elif latency_ms > policy.slow_latency_ms:
            score -= policy.slow_penalty(mode)

    if is_residential:
        score += policy.residential_bonus

    if country_code and country_code.upper() in policy.premium_countries:
        score += policy.country_bonus

    owner = (isp or "").lower()
    if any(keyword in owner for keyword in policy.platform_keywords):
        score -= policy.platform_penalty

    return clamp_score(score)


def risk_tier(score: int) -> RiskTier:
    """Map a purity score onto its risk tier."""
    if score >= LOW_RISK_MIN:
        return RiskTier.LOW
    if score >= MEDIUM_RISK_MIN:
        return RiskTier.MEDIUM
    return RiskTier.HIGH


_SET_KEYS = ("premium_countries", "platform_keywords")


def _coerce_overrides(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Validate and convert raw JSON overrides.

    Weights are magnitudes: penalties are subtracted by ``score_endpoint``,
    so every numeric value must be non-negative.

    Raises:
        ValueError: On a negative weight or a keyword set that is not a list.
    """
    known = {f.name for f in dataclasses.fields(ScoringPolicy)}
    overrides: Dict[str, Any] = {}
    for key, value in raw.items():
        if key not in known:
            LOGGER.debug("Ignoring unknown scoring key %s", key)
            continue
        if key in _SET_KEYS:
            if not isinstance(value, (list, tuple)):
                raise ValueError(f"{key} must be a list of strings")
            items = [str(v).strip() for v in value]
            if key == "premium_countries":
                items = [v.upper() for v in items]
            else:
                items = [v.lower() for v in items]
            overrides[key] = frozenset(v for v in items if v)
        else:
            if isinstance(value, bool):
                raise ValueError(f"{key} must be an integer")
            number = int(value)
            if number < 0:
                raise ValueError(f"{key} must be non-negative, got {number}")
            overrides[key] = number
    return overrides


def load_scoring_policy(path: Optional[Path]) -> ScoringPolicy:
    """Return the default policy with overrides from a JSON file applied.

    Missing or unreadable files leave the defaults in place.
    """
    if path is None or not Path(path).exists():
        return DEFAULT_POLICY
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError("scoring config must be a JSON object")
        overrides = _coerce_overrides(raw.get("weights", raw))
    except (OSError, TypeError, ValueError) as exc:
        LOGGER.error("Error loading scoring config %s: %s", path, exc)
        return DEFAULT_POLICY
    return dataclasses.replace(DEFAULT_POLICY, **overrides)


__all__ = [
    "DEFAULT_POLICY",
    "LOW_RISK_MIN",
    "MEDIUM_RISK_MIN",
    "MODES",
    "MODE_IMPORT",
    "MODE_MANUAL",
    "RiskTier",
    "ScoringPolicy",
    "clamp_score",
    "load_scoring_policy",
    "risk_tier",
    "score_endpoint",
]
