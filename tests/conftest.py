from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
from behaveguard.delivery.queue import reset_delivery_queue
from behaveguard.persistence.analytics_store import SQLiteAnalyticsStore
from behaveguard.persistence.migrations import run_migrations
from behaveguard.persistence.risk_log import SQLiteRiskLog

from tests.fakes import FakeTransport, RecordedSleep


@pytest.fixture(autouse=True)
def _isolate_process_state() -> Iterator[None]:
    root = logging.getLogger()
    handlers, filters, level = list(root.handlers), list(root.filters), root.level
    yield
    reset_delivery_queue()
    root.handlers[:] = handlers
    root.filters[:] = filters
    root.setLevel(level)


@pytest.fixture
async def db_path(tmp_path: Path) -> str:
    path = str(tmp_path / "behaveguard.db")
    await run_migrations(path)
    return path


@pytest.fixture
def store(db_path: str) -> SQLiteAnalyticsStore:
    return SQLiteAnalyticsStore(db_path)


@pytest.fixture
def risk_log(db_path: str) -> SQLiteRiskLog:
    return SQLiteRiskLog(db_path)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def recorded_sleep() -> RecordedSleep:
    return RecordedSleep()
