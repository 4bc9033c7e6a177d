"""Collector ingestion and the read-only risk surface.

``CollectorService`` is the write side behind the collection endpoint.
``RiskReadService`` rebuilds reconciled records from storage on every read
and classifies them; it never writes.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from pydantic import BaseModel

from behaveguard.core.logging import correlation_scope
from behaveguard.models.records import ReconciledRecord, SessionRecord
from behaveguard.models.risk import RiskAssessment
from behaveguard.models.snapshot import MetricSnapshot
from behaveguard.persistence.analytics_store import SQLiteAnalyticsStore
from behaveguard.persistence.risk_log import SQLiteRiskLog
from behaveguard.reconcile.reconciler import SessionReconciler
from behaveguard.risk.classifier import RiskClassifier

logger = logging.getLogger(__name__)


class SessionRiskView(BaseModel):
    record: ReconciledRecord
    assessment: RiskAssessment


class RiskReadService:
    def __init__(
        self,
        store: SQLiteAnalyticsStore,
        reconciler: SessionReconciler | None = None,
        classifier: RiskClassifier | None = None,
    ) -> None:
        self._store = store
        self._reconciler = reconciler or SessionReconciler()
        self._classifier = classifier or RiskClassifier()

    async def get(self, session_id: str) -> SessionRiskView | None:
        views = await self._build(session_id)
        return views[0] if views else None

    async def list_all(self) -> list[SessionRiskView]:
        return await self._build(None)

    async def _build(self, session_id: str | None) -> list[SessionRiskView]:
        # Unvalidated rows; the reconciler skips the invalid ones.
        behavior = await self._store.behavior_rows(session_id=session_id)
        activity = await self._store.activity_rows(session_id=session_id)
        reconciled = self._reconciler.reconcile(behavior, activity)
        return [
            SessionRiskView(record=record, assessment=self._classifier.classify(record))
            for record in reconciled.values()
        ]


@dataclass(frozen=True, slots=True)
class IngestResult:
    stored: int
    flagged: int


class CollectorService:
    """Stores incoming snapshots and logs every non-zero live risk check."""

    def __init__(
        self,
        store: SQLiteAnalyticsStore,
        risk_log: SQLiteRiskLog,
        classifier: RiskClassifier | None = None,
    ) -> None:
        self._store = store
        self._risk_log = risk_log
        self._classifier = classifier or RiskClassifier()

    async def ingest(
        self, snapshots: Sequence[MetricSnapshot], user_id: str | None = None
    ) -> IngestResult:
        flagged = 0
        for snapshot in snapshots:
            with correlation_scope(session_id=snapshot.session_id):
                await self._store.upsert_snapshot(snapshot, user_id=user_id)
                assessment = self._classifier.classify(snapshot)
                if assessment.score > 0:
                    await self._risk_log.record(assessment, user_agent=snapshot.user_agent or None)
                    flagged += 1
                    logger.info(
                        "Session flagged at %d (%s)", assessment.score, assessment.tier.value
                    )
        return IngestResult(stored=len(snapshots), flagged=flagged)

    async def record_activity(self, record: SessionRecord) -> None:
        with correlation_scope(session_id=record.session_id):
            await self._store.record_activity(record)
            logger.debug("Recorded activity event")


__all__ = ["CollectorService", "IngestResult", "RiskReadService", "SessionRiskView"]
