"""Flat-weight risk classification over reconciled session records."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from behaveguard.config import RiskThresholds
from behaveguard.core.metrics import ASSESSMENTS_TOTAL
from behaveguard.models.records import SessionRecord
from behaveguard.models.risk import RiskAssessment, RiskTier
from behaveguard.models.snapshot import MetricSnapshot
from behaveguard.risk.rules import RiskRule, build_default_rules

logger = logging.getLogger(__name__)

MAX_SCORE = 100


def tier_for_score(score: int, thresholds: RiskThresholds | None = None) -> RiskTier:
    t = thresholds or RiskThresholds()
    if score >= t.high_tier_min:
        return RiskTier.HIGH
    if score >= t.medium_tier_min:
        return RiskTier.MEDIUM
    return RiskTier.LOW


class RiskClassifier:
    """Maps a record to a score in [0, 100], its factor labels and a tier.

    Every triggered rule adds the same number of points, so the score is
    monotonic in the set of triggered factors.
    """

    def __init__(
        self,
        thresholds: RiskThresholds | None = None,
        rules: Sequence[RiskRule] | None = None,
    ) -> None:
        self._thresholds = thresholds or RiskThresholds()
        self._rules = list(rules) if rules is not None else build_default_rules(self._thresholds)

    @property
    def rules(self) -> list[RiskRule]:
        return list(self._rules)

    def classify(self, record: SessionRecord | MetricSnapshot) -> RiskAssessment:
        if isinstance(record, MetricSnapshot):
            record = SessionRecord.from_snapshot(record)

        factors = [rule.label for rule in self._rules if rule.triggered(record)]
        score = min(MAX_SCORE, self._thresholds.points_per_factor * len(factors))
        tier = tier_for_score(score, self._thresholds)
        ASSESSMENTS_TOTAL.labels(tier=tier.value).inc()
        logger.debug(
            "Session %s scored %d (%s): %s",
            record.session_id,
            score,
            tier.value,
            ", ".join(factors) or "no factors",
        )
        return RiskAssessment(
            session_id=record.session_id,
            score=score,
            factors=factors,
            tier=tier,
        )

    def classify_many(
        self, records: Iterable[SessionRecord | MetricSnapshot]
    ) -> list[RiskAssessment]:
        return [self.classify(record) for record in records]


__all__ = ["MAX_SCORE", "RiskClassifier", "tier_for_score"]
