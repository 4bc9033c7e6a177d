"""Overflow handling for the delivery queue's pending sequence."""

from __future__ import annotations

from enum import StrEnum


class OverflowPolicy(StrEnum):
    """What ``enqueue`` does once ``max_pending`` entries are waiting.

    ``unbounded`` ignores the cap entirely: a permanently unreachable sink
    grows the pending sequence without limit.
    """

    unbounded = "unbounded"
    drop_oldest = "drop_oldest"
    reject_new = "reject_new"


def overflow_count(policy: OverflowPolicy, pending: int, max_pending: int | None) -> int:
    """Return how many entries must be evicted before one more is appended.

    ``-1`` means the incoming entry itself is rejected.
    """
    if policy == OverflowPolicy.unbounded or max_pending is None:
        return 0
    excess = pending - max_pending + 1
    if excess <= 0:
        return 0
    if policy == OverflowPolicy.reject_new:
        return -1
    return excess


__all__ = ["OverflowPolicy", "overflow_count"]
