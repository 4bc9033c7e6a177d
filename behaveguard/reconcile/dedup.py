"""Time-bucket deduplication of redundant snapshot emissions.

Records of one session whose timestamps fall in the same bucket are treated
as re-sends of the same observation: the first one in input order is kept.
Store reads return newest first, so the kept record is the most recent
emission of that bucket.

This is a heuristic. Two genuinely distinct events inside one bucket are
collapsed, since the records carry no client-generated idempotency key.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from datetime import UTC, datetime

from behaveguard.models.records import SessionRecord

logger = logging.getLogger(__name__)

BucketKey = Callable[[datetime], str]
Clock = Callable[[], datetime]


def minute_bucket(timestamp: datetime) -> str:
    """Truncate to one-minute resolution, in UTC."""
    return timestamp.astimezone(UTC).strftime("%Y-%m-%dT%H:%M")


def make_bucket_key(seconds: int) -> BucketKey:
    """Bucket key with an arbitrary resolution, aligned to the Unix epoch."""
    if seconds < 1:
        raise ValueError("bucket resolution must be at least one second")
    if seconds == 60:
        return minute_bucket

    def _bucket(timestamp: datetime) -> str:
        return str(int(timestamp.timestamp()) // seconds)

    return _bucket


def system_clock() -> datetime:
    return datetime.now(UTC)


def dedupe(
    records: Iterable[SessionRecord],
    bucket_key: BucketKey = minute_bucket,
    clock: Clock = system_clock,
) -> Iterator[SessionRecord]:
    """Yield records whose ``(session_id, bucket)`` has not been seen yet.

    A record without a usable timestamp gets a synthetic key that no other
    record can share, so it is always kept.
    """
    seen: set[tuple[str, str]] = set()
    for index, record in enumerate(records):
        if record.created_at is None:
            logger.warning(
                "Record for session %s has no usable timestamp; keeping it unbucketed",
                record.session_id,
            )
            key = f"unbucketed:{clock().isoformat()}#{index}"
        else:
            key = bucket_key(record.created_at)

        marker = (record.session_id, key)
        if marker in seen:
            logger.debug("Dropping duplicate emission for session %s in bucket %s", *marker)
            continue
        seen.add(marker)
        yield record


__all__ = ["BucketKey", "Clock", "dedupe", "make_bucket_key", "minute_bucket", "system_clock"]
