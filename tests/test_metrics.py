"""Tests for behaveguard.core.metrics."""

from __future__ import annotations

import pytest
from behaveguard.core.metrics import metrics_generate_latest, observe_delivery
from prometheus_client import REGISTRY


def _count(path: str) -> float:
    return REGISTRY.get_sample_value(
        "behaveguard_delivery_duration_seconds_count", {"path": path}
    ) or 0.0


class TestObserveDelivery:
    def test_records_duration(self) -> None:
        before = _count("test-ok")
        with observe_delivery("test-ok"):
            pass
        assert _count("test-ok") == before + 1

    def test_records_duration_on_exception(self) -> None:
        before = _count("test-err")
        with pytest.raises(RuntimeError), observe_delivery("test-err"):
            raise RuntimeError("boom")
        assert _count("test-err") == before + 1


def test_exposition_lists_queue_metrics() -> None:
    text = metrics_generate_latest().decode()
    assert "behaveguard_snapshots_enqueued_total" in text
    assert "behaveguard_delivery_attempts_total" in text
