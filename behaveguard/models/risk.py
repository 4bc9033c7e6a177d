from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from behaveguard.models.snapshot import utc_now


class RiskTier(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class RiskAssessment(BaseModel):
    """Bounded, explainable risk signal for one session.

    Derived from a record on demand; every 20 points of ``score`` trace back
    to exactly one entry in ``factors``.
    """

    session_id: str
    score: int = Field(ge=0, le=100)
    factors: list[str] = Field(default_factory=list)
    tier: RiskTier


class RiskLogEntry(BaseModel):
    id: int
    session_id: str
    score: int
    tier: RiskTier
    factors: list[str] = Field(default_factory=list)
    user_agent: str | None = None
    created_at: datetime = Field(default_factory=utc_now)


class RiskLogStats(BaseModel):
    total: int = 0
    high_risk: int = 0
    unique_sessions: int = 0


__all__ = ["RiskAssessment", "RiskLogEntry", "RiskLogStats", "RiskTier"]
