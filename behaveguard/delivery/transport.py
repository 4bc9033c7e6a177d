"""Outbound transport for delivering snapshots to the collection endpoint.

Uses raw HTTP (httpx). Both paths report success as a plain bool: any
non-2xx response or transport error is a failure, and the queue decides
whether to retry.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

import httpx

from behaveguard.models.snapshot import MetricSnapshot

logger = logging.getLogger(__name__)


@runtime_checkable
class DeliveryTransport(Protocol):
    async def send(self, snapshot: MetricSnapshot) -> bool: ...

    async def send_batch(self, snapshots: Sequence[MetricSnapshot]) -> bool: ...

    async def aclose(self) -> None: ...


class HttpDeliveryTransport:
    """POSTs single snapshots to ``endpoint`` and batches to ``endpoint/batch``."""

    def __init__(
        self,
        endpoint: str,
        *,
        api_key: str | None = None,
        timeout_s: float = 15.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self._api_key = api_key
        # Injectable so tests can mount an httpx.MockTransport.
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_s))

    @property
    def batch_url(self) -> str:
        return f"{self.endpoint}/batch"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def send(self, snapshot: MetricSnapshot) -> bool:
        return await self._post(self.endpoint, snapshot.to_wire(), kind="single")

    async def send_batch(self, snapshots: Sequence[MetricSnapshot]) -> bool:
        payload = {"analytics": [snapshot.to_wire() for snapshot in snapshots]}
        return await self._post(self.batch_url, payload, kind="batch")

    async def _post(self, url: str, payload: dict[str, object], *, kind: str) -> bool:
        try:
            response = await self._http.post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning("Failed to send %s analytics to %s: %s", kind, url, exc)
            return False
        if not response.is_success:
            logger.warning(
                "Failed to send %s analytics to %s: HTTP %d",
                kind,
                url,
                response.status_code,
            )
            return False
        return True

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()


__all__ = ["DeliveryTransport", "HttpDeliveryTransport"]
