"""Threshold-based session risk classification."""

from behaveguard.risk.classifier import MAX_SCORE, RiskClassifier, tier_for_score
from behaveguard.risk.rules import DEFAULT_RULES, RiskRule, build_default_rules

__all__ = [
    "DEFAULT_RULES",
    "MAX_SCORE",
    "RiskClassifier",
    "RiskRule",
    "build_default_rules",
    "tier_for_score",
]
