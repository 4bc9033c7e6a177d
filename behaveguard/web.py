"""HTTP collection endpoint and risk read API.

Speaks the wire format of the delivery transport: single snapshots on
``POST /analytics`` and ``{"analytics": [...]}`` on ``POST /analytics/batch``.
Every JSON response uses the ``{success, message, data}`` envelope.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from behaveguard.core.metrics import metrics_generate_latest
from behaveguard.models.records import ProductId, SessionRecord
from behaveguard.models.snapshot import MetricSnapshot
from behaveguard.persistence.analytics_store import SQLiteAnalyticsStore
from behaveguard.persistence.risk_log import SQLiteRiskLog
from behaveguard.service import CollectorService, RiskReadService

logger = logging.getLogger(__name__)


class BatchPayload(BaseModel):
    analytics: list[MetricSnapshot]


class ActivityPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: str = Field(min_length=1)
    cart_actions: int = Field(default=0, ge=0)
    wishlist_actions: int = Field(default=0, ge=0)
    category_changes: int = Field(default=0, ge=0)
    searches: int = Field(default=0, ge=0)
    product_views: list[ProductId] = Field(default_factory=list)
    created_at: datetime | None = None


def _envelope(data: object = None, message: str | None = None) -> JSONResponse:
    return JSONResponse({"success": True, "message": message, "data": data})


class CollectorApp:
    def __init__(
        self,
        store: SQLiteAnalyticsStore,
        risk_log: SQLiteRiskLog,
        collector: CollectorService,
        risk_reader: RiskReadService,
        *,
        host: str = "127.0.0.1",
        port: int = 8430,
        auth_token: str | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self._store = store
        self._risk_log = risk_log
        self._collector = collector
        self._risk_reader = risk_reader
        self._auth_token = auth_token

        self.app = FastAPI(title="behaveguard collector")
        self._setup_routes()

    def _check_auth(self, authorization: Annotated[str | None, Header()] = None) -> None:
        if not self._auth_token:
            return
        if authorization != f"Bearer {self._auth_token}":
            raise HTTPException(status_code=401, detail="unauthorized")

    def _setup_routes(self) -> None:
        @self.app.get("/health")
        async def health() -> JSONResponse:
            return JSONResponse({"status": "ok"})

        @self.app.get("/metrics")
        async def metrics() -> Response:
            return Response(content=metrics_generate_latest(), media_type=CONTENT_TYPE_LATEST)

        self._setup_analytics_routes()
        self._setup_risk_routes()

    def _setup_analytics_routes(self) -> None:
        auth = [Depends(self._check_auth)]

        @self.app.post("/analytics", dependencies=auth)
        async def ingest_one(snapshot: MetricSnapshot) -> JSONResponse:
            result = await self._collector.ingest([snapshot])
            return _envelope({"stored": result.stored, "flagged": result.flagged}, "stored")

        @self.app.post("/analytics/batch", dependencies=auth)
        async def ingest_batch(payload: BatchPayload) -> JSONResponse:
            result = await self._collector.ingest(payload.analytics)
            return _envelope({"stored": result.stored, "flagged": result.flagged}, "stored")

        @self.app.get("/analytics", dependencies=auth)
        async def list_analytics(
            session_id: Annotated[str | None, Query(alias="sessionId")] = None,
            start_date: Annotated[datetime | None, Query(alias="startDate")] = None,
            end_date: Annotated[datetime | None, Query(alias="endDate")] = None,
        ) -> JSONResponse:
            records = await self._store.list_records(
                session_id=session_id, start=start_date, end=end_date
            )
            return _envelope([record.model_dump(mode="json") for record in records])

        @self.app.delete("/analytics/{session_id}", dependencies=auth)
        async def delete_analytics(session_id: str) -> JSONResponse:
            deleted = await self._store.delete_session(session_id)
            if deleted == 0:
                raise HTTPException(status_code=404, detail="session not found")
            return _envelope({"deleted": deleted}, "deleted")

        @self.app.post("/activity", dependencies=auth)
        async def ingest_activity(payload: ActivityPayload) -> JSONResponse:
            record = SessionRecord.model_validate(payload.model_dump(exclude_unset=True))
            await self._collector.record_activity(record)
            return _envelope(message="recorded")

    def _setup_risk_routes(self) -> None:
        auth = [Depends(self._check_auth)]

        @self.app.get("/risk", dependencies=auth)
        async def list_risk() -> JSONResponse:
            views = await self._risk_reader.list_all()
            return _envelope([view.model_dump(mode="json") for view in views])

        @self.app.get("/risk/{session_id}", dependencies=auth)
        async def get_risk(session_id: str) -> JSONResponse:
            view = await self._risk_reader.get(session_id)
            if view is None:
                raise HTTPException(status_code=404, detail="session not found")
            return _envelope(view.model_dump(mode="json"))

        @self.app.get("/risk-log", dependencies=auth)
        async def risk_log(limit: Annotated[int, Query(ge=1, le=1000)] = 100) -> JSONResponse:
            entries = await self._risk_log.list_recent(limit=limit)
            return _envelope([entry.model_dump(mode="json") for entry in entries])

        @self.app.get("/risk-log/stats", dependencies=auth)
        async def risk_log_stats() -> JSONResponse:
            stats = await self._risk_log.stats()
            return _envelope(stats.model_dump())

    async def serve(self, log_level: str = "info") -> None:
        config = uvicorn.Config(self.app, host=self.host, port=self.port, log_level=log_level)
        server = uvicorn.Server(config)
        logger.info("Collector listening on %s:%d", self.host, self.port)
        await server.serve()


__all__ = ["ActivityPayload", "BatchPayload", "CollectorApp"]
