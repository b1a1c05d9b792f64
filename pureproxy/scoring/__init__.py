"""Owner classification and purity scoring."""

from pureproxy.scoring.isp import DEFAULT_ISP_KEYWORDS, IspKeywords, classify_isp
from pureproxy.scoring.purity import (
    DEFAULT_POLICY,
    LOW_RISK_MIN,
    MEDIUM_RISK_MIN,
    MODE_IMPORT,
    MODE_MANUAL,
    RiskTier,
    ScoringPolicy,
    load_scoring_policy,
    risk_tier,
    score_endpoint,
)

__all__ = [
    "DEFAULT_ISP_KEYWORDS",
    "IspKeywords",
    "classify_isp",
    "DEFAULT_POLICY",
    "LOW_RISK_MIN",
    "MEDIUM_RISK_MIN",
    "MODE_IMPORT",
    "MODE_MANUAL",
    "RiskTier",
    "ScoringPolicy",
    "load_scoring_policy",
    "risk_tier",
    "score_endpoint",
]
