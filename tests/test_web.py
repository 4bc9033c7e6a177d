"""Collection endpoint and risk read API tests."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from behaveguard.persistence.analytics_store import SQLiteAnalyticsStore
from behaveguard.persistence.risk_log import SQLiteRiskLog
from behaveguard.service import CollectorService, RiskReadService
from behaveguard.web import CollectorApp
from httpx import ASGITransport, AsyncClient

from tests.helpers import make_snapshot


def _app(
    store: SQLiteAnalyticsStore, risk_log: SQLiteRiskLog, auth_token: str | None = None
) -> CollectorApp:
    return CollectorApp(
        store,
        risk_log,
        CollectorService(store, risk_log),
        RiskReadService(store),
        auth_token=auth_token,
    )


@pytest.fixture
async def client(
    store: SQLiteAnalyticsStore, risk_log: SQLiteRiskLog
) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=_app(store, risk_log).app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


class TestAnalyticsRoutes:
    async def test_post_single_snapshot(self, client: AsyncClient) -> None:
        resp = await client.post("/analytics", json=make_snapshot("s1").to_wire())

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["data"] == {"stored": 1, "flagged": 0}

    async def test_post_batch(self, client: AsyncClient) -> None:
        payload = {
            "analytics": [
                make_snapshot("a").to_wire(),
                make_snapshot("b", wpm=150, velocity=1200).to_wire(),
            ]
        }
        resp = await client.post("/analytics/batch", json=payload)

        assert resp.status_code == 200
        assert resp.json()["data"] == {"stored": 2, "flagged": 1}

    async def test_invalid_snapshot_rejected(self, client: AsyncClient) -> None:
        resp = await client.post("/analytics", json={"sessionId": ""})
        assert resp.status_code == 422

    async def test_list_by_session(self, client: AsyncClient) -> None:
        await client.post("/analytics", json=make_snapshot("a").to_wire())
        await client.post("/analytics", json=make_snapshot("b").to_wire())

        resp = await client.get("/analytics", params={"sessionId": "b"})

        rows = resp.json()["data"]
        assert [row["session_id"] for row in rows] == ["b"]

    async def test_list_by_date_range(self, client: AsyncClient) -> None:
        await client.post("/analytics", json=make_snapshot("a").to_wire())

        resp = await client.get(
            "/analytics",
            params={"startDate": "2024-05-02T00:00:00Z", "endDate": "2024-05-03T00:00:00Z"},
        )
        assert resp.json()["data"] == []

    async def test_delete_session(self, client: AsyncClient) -> None:
        await client.post("/analytics", json=make_snapshot("gone").to_wire())

        resp = await client.delete("/analytics/gone")
        assert resp.status_code == 200
        assert resp.json()["data"] == {"deleted": 1}

        missing = await client.delete("/analytics/gone")
        assert missing.status_code == 404

    async def test_post_activity(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/activity",
            json={"sessionId": "s1", "cartActions": 2, "productViews": [4, "sku-1"]},
        )
        assert resp.status_code == 200

        risk = await client.get("/risk/s1")
        record = risk.json()["data"]["record"]
        assert record["cart_actions"] == 2
        assert record["product_views"] == [4, "sku-1"]


class TestRiskRoutes:
    async def test_risk_for_session(self, client: AsyncClient) -> None:
        await client.post(
            "/analytics", json=make_snapshot("bot", wpm=150, velocity=1200).to_wire()
        )

        resp = await client.get("/risk/bot")

        assessment = resp.json()["data"]["assessment"]
        assert assessment["score"] == 40
        assert assessment["tier"] == "MEDIUM"
        assert assessment["factors"] == ["Unusual typing speed", "High mouse velocity"]

    async def test_unknown_session_is_404(self, client: AsyncClient) -> None:
        resp = await client.get("/risk/nobody")
        assert resp.status_code == 404

    async def test_list_all_sessions(self, client: AsyncClient) -> None:
        await client.post("/analytics", json=make_snapshot("a").to_wire())
        await client.post("/analytics", json=make_snapshot("b").to_wire())

        resp = await client.get("/risk")
        assert {v["record"]["session_id"] for v in resp.json()["data"]} == {"a", "b"}

    async def test_risk_log_and_stats(self, client: AsyncClient) -> None:
        await client.post(
            "/analytics",
            json=make_snapshot(
                "x", wpm=200, velocity=5000, scroll_speed=900, focus_time_ms=10
            ).to_wire(),
        )

        log = await client.get("/risk-log")
        assert [e["session_id"] for e in log.json()["data"]] == ["x"]

        stats = await client.get("/risk-log/stats")
        assert stats.json()["data"] == {"total": 1, "high_risk": 1, "unique_sessions": 1}


class TestOperationalRoutes:
    async def test_health(self, client: AsyncClient) -> None:
        resp = await client.get("/health")
        assert resp.json() == {"status": "ok"}

    async def test_metrics_exposed(self, client: AsyncClient) -> None:
        await client.post("/analytics", json=make_snapshot("m").to_wire())
        resp = await client.get("/metrics")

        assert resp.status_code == 200
        assert "behaveguard_assessments_total" in resp.text


class TestAuth:
    async def test_token_required_when_configured(
        self, store: SQLiteAnalyticsStore, risk_log: SQLiteRiskLog
    ) -> None:
        transport = ASGITransport(app=_app(store, risk_log, auth_token="secret").app)
        async with AsyncClient(transport=transport, base_url="http://test") as c:
            denied = await c.get("/risk")
            wrong = await c.get("/risk", headers={"Authorization": "Bearer nope"})
            allowed = await c.get("/risk", headers={"Authorization": "Bearer secret"})
            health = await c.get("/health")

        assert denied.status_code == 401
        assert wrong.status_code == 401
        assert allowed.status_code == 200
        assert health.status_code == 200
