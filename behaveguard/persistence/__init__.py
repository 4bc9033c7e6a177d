"""Persistence: SQLite stores for behavioral rows, activity events and the risk log."""

from behaveguard.persistence.analytics_store import SQLiteAnalyticsStore
from behaveguard.persistence.migrations import run_migrations
from behaveguard.persistence.risk_log import SQLiteRiskLog

__all__ = [
    "SQLiteAnalyticsStore",
    "SQLiteRiskLog",
    "run_migrations",
]
