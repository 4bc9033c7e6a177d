"""In-memory delivery queue with batching, bounded retry and requeue-on-failure.

Lifecycle of every entry::

    PENDING -> ATTEMPTING -> DELIVERED
                          -> PENDING_BACKOFF (pushed back to the front)

A queue instance runs at most one delivery cycle at a time. A cycle takes up
to ``batch_size`` of the oldest entries, retries the same batch with linear
backoff, and on exhaustion puts the batch back at the front in its original
order. A fallback timer re-triggers processing while entries remain, so a
transient outage clears on its own. Nothing is ever discarded by the retry
path; ``clear()`` and a bounded overflow policy are the only ways data is
dropped.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from behaveguard.config import DeliveryConfig
from behaveguard.core.logging import correlation_scope
from behaveguard.core.metrics import (
    BATCHES_REQUEUED_TOTAL,
    DELIVERY_ATTEMPTS_TOTAL,
    PENDING_SNAPSHOTS,
    SNAPSHOTS_DROPPED_TOTAL,
    SNAPSHOTS_ENQUEUED_TOTAL,
    observe_delivery,
)
from behaveguard.core.telemetry import get_tracer
from behaveguard.delivery.policies import overflow_count
from behaveguard.delivery.transport import DeliveryTransport
from behaveguard.models.snapshot import MetricSnapshot, utc_now

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

Sleep = Callable[[float], Awaitable[None]]


class EntryState(StrEnum):
    PENDING = "pending"
    ATTEMPTING = "attempting"
    DELIVERED = "delivered"
    PENDING_BACKOFF = "pending_backoff"


@dataclass(slots=True)
class QueueEntry:
    """A snapshot owned by the queue until it is delivered."""

    snapshot: MetricSnapshot
    enqueued_at: datetime = field(default_factory=utc_now)
    attempts: int = 0
    state: EntryState = EntryState.PENDING


@dataclass(frozen=True, slots=True)
class BatchOutcome:
    batch_id: str
    size: int
    attempts: int
    state: EntryState

    @property
    def delivered(self) -> bool:
        return self.state == EntryState.DELIVERED


class DeliveryQueue:
    """Buffers snapshots and drives delivery attempts against a transport.

    ``enqueue`` is synchronous and never raises on delivery problems. Entries
    are processed on the running event loop; without one they wait until
    ``flush()`` is awaited.
    """

    def __init__(
        self,
        transport: DeliveryTransport,
        config: DeliveryConfig | None = None,
        *,
        name: str = "default",
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.name = name
        self._transport = transport
        self._config = config or DeliveryConfig()
        self._sleep = sleep
        self._pending: deque[QueueEntry] = deque()
        self._in_flight: list[QueueEntry] = []
        self._generation = 0
        self._processing = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._cycle_task: asyncio.Task[BatchOutcome | None] | None = None
        self._fallback: asyncio.TimerHandle | None = None

    @property
    def config(self) -> DeliveryConfig:
        return self._config

    @property
    def is_processing(self) -> bool:
        return self._processing

    def enqueue(self, snapshot: MetricSnapshot) -> bool:
        """Append a snapshot and start a delivery cycle if the queue is idle.

        Returns False only when a ``reject_new`` overflow policy refuses it.
        """
        policy = self._config.overflow_policy
        evict = overflow_count(policy, len(self._pending), self._config.max_pending)
        if evict < 0:
            SNAPSHOTS_DROPPED_TOTAL.labels(policy=policy.value).inc()
            logger.warning(
                "Delivery queue %s full (%d pending); rejecting snapshot for session %s",
                self.name,
                len(self._pending),
                snapshot.session_id,
            )
            return False
        for _ in range(min(evict, len(self._pending))):
            dropped = self._pending.popleft()
            SNAPSHOTS_DROPPED_TOTAL.labels(policy=policy.value).inc()
            logger.warning(
                "Delivery queue %s full; dropped oldest snapshot for session %s",
                self.name,
                dropped.snapshot.session_id,
            )

        self._pending.append(QueueEntry(snapshot=snapshot))
        SNAPSHOTS_ENQUEUED_TOTAL.inc()
        self._update_gauge()
        self._kick()
        return True

    def queue_size(self) -> int:
        """Entries not yet delivered, including the batch currently in flight."""
        return len(self._pending) + len(self._in_flight)

    def pending_snapshots(self) -> list[MetricSnapshot]:
        """Snapshots waiting for a delivery cycle, oldest first."""
        return [entry.snapshot for entry in self._pending]

    def clear(self) -> int:
        """Drop every undelivered entry. Returns how many were discarded.

        A batch already in flight is abandoned: if its cycle fails it is not
        requeued, and if it succeeds it has still reached the collector.
        """
        dropped = self.queue_size()
        self._pending.clear()
        self._in_flight = []
        self._generation += 1
        self._update_gauge()
        if dropped:
            logger.info("Cleared %d pending snapshots from delivery queue %s", dropped, self.name)
        return dropped

    async def process_once(self) -> BatchOutcome | None:
        """Run one delivery cycle.

        Returns None without doing anything when another cycle holds the
        single-flight guard or nothing is pending.
        """
        if self._processing or not self._pending:
            return None

        self._processing = True
        self._idle.clear()
        try:
            size = min(self._config.batch_size, len(self._pending))
            batch = [self._pending.popleft() for _ in range(size)]
            self._in_flight = batch
            generation = self._generation
            try:
                outcome = await self._deliver(batch)
            except asyncio.CancelledError:
                self._requeue_front(batch, generation)
                raise
            if not outcome.delivered and self._requeue_front(batch, generation):
                BATCHES_REQUEUED_TOTAL.inc()
                logger.warning(
                    "Batch %s of %d snapshots failed after %d attempts; requeued",
                    outcome.batch_id,
                    outcome.size,
                    outcome.attempts,
                )
            return outcome
        finally:
            self._in_flight = []
            self._processing = False
            self._idle.set()
            self._update_gauge()
            if self._pending:
                self._schedule_fallback()

    async def flush(self) -> bool:
        """Run cycles back to back until empty.

        Returns False as soon as a batch exhausts its retries; that batch is
        back at the front of the queue.
        """
        while True:
            if self._processing:
                await self._idle.wait()
                continue
            if not self._pending:
                return True
            outcome = await self.process_once()
            if outcome is not None and not outcome.delivered:
                return False

    async def aclose(self, *, drain: bool = False) -> None:
        """Stop background processing and release the transport.

        With ``drain`` the queue first tries to deliver everything pending.
        """
        if drain:
            await self.flush()
        task = self._cycle_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._cycle_task = None
        if self._fallback is not None:
            self._fallback.cancel()
            self._fallback = None
        await self._transport.aclose()

    async def _deliver(self, batch: list[QueueEntry]) -> BatchOutcome:
        batch_id = uuid.uuid4().hex[:12]
        path = "single" if len(batch) == 1 else "batch"
        max_attempts = self._config.retry_attempts

        with correlation_scope(batch_id=batch_id):
            for attempt in range(1, max_attempts + 1):
                for entry in batch:
                    entry.state = EntryState.ATTEMPTING
                    entry.attempts += 1

                if await self._attempt(batch, path, attempt):
                    for entry in batch:
                        entry.state = EntryState.DELIVERED
                    logger.debug(
                        "Delivered batch %s (%d snapshots) on attempt %d",
                        batch_id,
                        len(batch),
                        attempt,
                    )
                    return BatchOutcome(batch_id, len(batch), attempt, EntryState.DELIVERED)

                if attempt < max_attempts:
                    await self._sleep(self._config.retry_delay_ms * attempt / 1000)

        for entry in batch:
            entry.state = EntryState.PENDING_BACKOFF
        return BatchOutcome(batch_id, len(batch), max_attempts, EntryState.PENDING_BACKOFF)

    async def _attempt(self, batch: list[QueueEntry], path: str, attempt: int) -> bool:
        with (
            _tracer.start_as_current_span("behaveguard.delivery.attempt") as span,
            observe_delivery(path),
        ):
            span.set_attribute("delivery.path", path)
            span.set_attribute("delivery.batch_size", len(batch))
            span.set_attribute("delivery.attempt", attempt)
            try:
                if path == "single":
                    delivered = await self._transport.send(batch[0].snapshot)
                else:
                    delivered = await self._transport.send_batch([e.snapshot for e in batch])
            except Exception:  # noqa: BLE001
                logger.warning("Delivery attempt %d raised", attempt, exc_info=True)
                delivered = False
            span.set_attribute("delivery.success", delivered)

        DELIVERY_ATTEMPTS_TOTAL.labels(
            path=path, outcome="success" if delivered else "failure"
        ).inc()
        return delivered

    def _requeue_front(self, batch: list[QueueEntry], generation: int) -> bool:
        for entry in batch:
            entry.state = EntryState.PENDING_BACKOFF
        if generation != self._generation:
            logger.info("Batch of %d snapshots abandoned by clear(); not requeued", len(batch))
            return False
        self._pending.extendleft(reversed(batch))
        return True

    def _kick(self) -> None:
        if self._processing or not self._pending:
            return
        if self._cycle_task is not None and not self._cycle_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; delivery deferred until flush()")
            return
        self._cycle_task = loop.create_task(self.process_once())

    def _schedule_fallback(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._fallback is not None:
            self._fallback.cancel()
        self._fallback = loop.call_later(
            self._config.fallback_delay_ms / 1000,
            self._on_fallback,
        )

    def _on_fallback(self) -> None:
        self._fallback = None
        self._kick()

    def _update_gauge(self) -> None:
        PENDING_SNAPSHOTS.labels(queue=self.name).set(self.queue_size())


_default_queue: DeliveryQueue | None = None


def initialize_delivery_queue(
    transport: DeliveryTransport,
    config: DeliveryConfig | None = None,
    *,
    sleep: Sleep = asyncio.sleep,
) -> DeliveryQueue:
    """Create the process-wide delivery queue, replacing any previous one."""
    global _default_queue  # noqa: PLW0603
    _default_queue = DeliveryQueue(transport, config, sleep=sleep)
    return _default_queue


def get_delivery_queue() -> DeliveryQueue | None:
    return _default_queue


def reset_delivery_queue() -> None:
    global _default_queue  # noqa: PLW0603
    _default_queue = None


__all__ = [
    "BatchOutcome",
    "DeliveryQueue",
    "EntryState",
    "QueueEntry",
    "get_delivery_queue",
    "initialize_delivery_queue",
    "reset_delivery_queue",
]
