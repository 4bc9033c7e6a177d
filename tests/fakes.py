from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from behaveguard.models.snapshot import MetricSnapshot


@dataclass
class FakeTransport:
    """Scripted delivery transport.

    ``outcomes`` is consumed one entry per attempt; once exhausted every
    attempt returns ``default``. An exception instance in ``outcomes`` is
    raised instead of returned.
    """

    outcomes: list[bool | Exception] = field(default_factory=list)
    default: bool = True
    single_calls: list[str] = field(default_factory=list)
    batch_calls: list[list[str]] = field(default_factory=list)
    delivered: list[str] = field(default_factory=list)
    closed: bool = False

    def _next(self) -> bool:
        if not self.outcomes:
            return self.default
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def send(self, snapshot: MetricSnapshot) -> bool:
        self.single_calls.append(snapshot.session_id)
        ok = self._next()
        if ok:
            self.delivered.append(snapshot.session_id)
        return ok

    async def send_batch(self, snapshots: Sequence[MetricSnapshot]) -> bool:
        ids = [snapshot.session_id for snapshot in snapshots]
        self.batch_calls.append(ids)
        ok = self._next()
        if ok:
            self.delivered.extend(ids)
        return ok

    async def aclose(self) -> None:
        self.closed = True


@dataclass
class GatedTransport(FakeTransport):
    """FakeTransport whose calls wait for ``gate`` and record peak concurrency."""

    gate: asyncio.Event = field(default_factory=asyncio.Event)
    active: int = 0
    peak: int = 0

    @asynccontextmanager
    async def _slot(self) -> AsyncIterator[None]:
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await self.gate.wait()
            yield
        finally:
            self.active -= 1

    async def send(self, snapshot: MetricSnapshot) -> bool:
        async with self._slot():
            return await super().send(snapshot)

    async def send_batch(self, snapshots: Sequence[MetricSnapshot]) -> bool:
        async with self._slot():
            return await super().send_batch(snapshots)


@dataclass
class RecordedSleep:
    """Stand-in for ``asyncio.sleep`` that records the requested delays."""

    delays: list[float] = field(default_factory=list)

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
