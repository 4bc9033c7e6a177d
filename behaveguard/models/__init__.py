from behaveguard.models.records import ReconciledRecord, SessionRecord, parse_timestamp
from behaveguard.models.risk import RiskAssessment, RiskLogEntry, RiskLogStats, RiskTier
from behaveguard.models.snapshot import (
    FocusMetrics,
    MetricSnapshot,
    MouseMetrics,
    ScrollMetrics,
    TypingMetrics,
    utc_now,
)

__all__ = [
    "FocusMetrics",
    "MetricSnapshot",
    "MouseMetrics",
    "ReconciledRecord",
    "RiskAssessment",
    "RiskLogEntry",
    "RiskLogStats",
    "RiskTier",
    "ScrollMetrics",
    "SessionRecord",
    "TypingMetrics",
    "parse_timestamp",
    "utc_now",
]
