"""Append-only log of automated risk checks for the admin view."""

from __future__ import annotations

import json

import aiosqlite

from behaveguard.models.risk import RiskAssessment, RiskLogEntry, RiskLogStats, RiskTier
from behaveguard.models.snapshot import utc_now


class SQLiteRiskLog:
    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    async def record(self, assessment: RiskAssessment, user_agent: str | None = None) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """INSERT INTO risk_assessments
                   (session_id, score, tier, factors, user_agent, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    assessment.session_id,
                    assessment.score,
                    assessment.tier.value,
                    json.dumps(assessment.factors),
                    user_agent,
                    utc_now().isoformat(timespec="microseconds"),
                ),
            )
            await db.commit()

    async def list_recent(self, limit: int = 100) -> list[RiskLogEntry]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM risk_assessments ORDER BY created_at DESC, id DESC LIMIT ?",
                (limit,),
            )
            rows = await cursor.fetchall()
        return [
            RiskLogEntry(
                id=row["id"],
                session_id=row["session_id"],
                score=row["score"],
                tier=row["tier"],
                factors=json.loads(row["factors"]),
                user_agent=row["user_agent"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    async def stats(self) -> RiskLogStats:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                """SELECT COUNT(*),
                          COALESCE(SUM(CASE WHEN tier = ? THEN 1 ELSE 0 END), 0),
                          COUNT(DISTINCT session_id)
                   FROM risk_assessments""",
                (RiskTier.HIGH.value,),
            )
            row = await cursor.fetchone()
        if row is None:
            return RiskLogStats()
        return RiskLogStats(total=row[0], high_risk=row[1], unique_sessions=row[2])


__all__ = ["SQLiteRiskLog"]
