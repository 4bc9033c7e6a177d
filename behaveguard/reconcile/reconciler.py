"""Fold partial and duplicated session records into one record per session.

Input comes from two tables: the behavioral table (flattened snapshots) and
the activity table (cart, wishlist, category and search counters plus
viewed products). Each reconciliation pass rebuilds its output from scratch
and never mutates the records it is given.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from enum import StrEnum
from itertools import chain

from pydantic import ValidationError

from behaveguard.core.metrics import RECORDS_SKIPPED_TOTAL
from behaveguard.models.records import ReconciledRecord, SessionRecord
from behaveguard.reconcile.dedup import BucketKey, Clock, dedupe, minute_bucket, system_clock

logger = logging.getLogger(__name__)


class MergePolicy(StrEnum):
    SUM = "sum"
    MAX = "max"
    LATEST = "latest"
    UNION = "union"


FIELD_POLICIES: dict[str, MergePolicy] = {
    # Counters accumulated across emissions and tables.
    "typing_keystrokes": MergePolicy.SUM,
    "typing_corrections": MergePolicy.SUM,
    "mouse_clicks": MergePolicy.SUM,
    "mouse_movements": MergePolicy.SUM,
    "scroll_events": MergePolicy.SUM,
    "focus_changes": MergePolicy.SUM,
    "page_views": MergePolicy.SUM,
    "interactions_count": MergePolicy.SUM,
    "cart_actions": MergePolicy.SUM,
    "wishlist_actions": MergePolicy.SUM,
    "category_changes": MergePolicy.SUM,
    "searches": MergePolicy.SUM,
    # Peaks and session-cumulative totals.
    "typing_wpm": MergePolicy.MAX,
    "scroll_depth": MergePolicy.MAX,
    "focus_time": MergePolicy.MAX,
    "tab_switches": MergePolicy.MAX,
    "session_duration": MergePolicy.MAX,
    "mouse_idle_time": MergePolicy.MAX,
    "created_at": MergePolicy.MAX,
    # Instantaneous rates and context.
    "mouse_velocity": MergePolicy.LATEST,
    "scroll_speed": MergePolicy.LATEST,
    "page_url": MergePolicy.LATEST,
    "user_agent": MergePolicy.LATEST,
    "product_views": MergePolicy.UNION,
}

RawRecord = SessionRecord | Mapping[str, object]


def _union(first: list[object], second: list[object]) -> list[object]:
    merged = list(first)
    seen = set(merged)
    for item in second:
        if item not in seen:
            seen.add(item)
            merged.append(item)
    return merged


def _is_newer(incoming: SessionRecord, current: SessionRecord) -> bool:
    if incoming.created_at is None:
        return False
    if current.created_at is None:
        return True
    return incoming.created_at >= current.created_at


def merge_records(current: ReconciledRecord, incoming: SessionRecord) -> ReconciledRecord:
    """Merge ``incoming`` into a copy of ``current`` field by field."""
    newer = _is_newer(incoming, current)
    updates: dict[str, object] = {"source_count": current.source_count + 1}
    for name, policy in FIELD_POLICIES.items():
        ours = getattr(current, name)
        theirs = getattr(incoming, name)
        if policy is MergePolicy.SUM:
            updates[name] = ours + theirs
        elif policy is MergePolicy.UNION:
            updates[name] = _union(ours, theirs)
        elif policy is MergePolicy.MAX:
            if ours is None or theirs is None:
                updates[name] = theirs if ours is None else ours
            else:
                updates[name] = max(ours, theirs)
        elif theirs is not None and name in incoming.model_fields_set:
            # Activity rows never carry rates; unset columns must not clobber them.
            if newer or name not in current.model_fields_set:
                updates[name] = theirs
    return current.model_copy(update=updates)


class SessionReconciler:
    """Deduplicate by time bucket, then fold records per ``session_id``.

    Stateless between calls; safe to share across concurrent callers.
    """

    def __init__(
        self,
        bucket_key: BucketKey = minute_bucket,
        clock: Clock = system_clock,
    ) -> None:
        self._bucket_key = bucket_key
        self._clock = clock

    def reconcile(self, *sources: Iterable[RawRecord]) -> dict[str, ReconciledRecord]:
        """Reconcile one or more record streams, processed in the order given.

        Each source is deduplicated on its own: an activity row never
        displaces a behavioral row that happens to share its minute.
        """
        merged: dict[str, ReconciledRecord] = {}
        for record in chain.from_iterable(map(self._dedupe_source, sources)):
            existing = merged.get(record.session_id)
            if existing is None:
                merged[record.session_id] = ReconciledRecord.model_validate(
                    record.model_dump(exclude_unset=True)
                )
            else:
                merged[record.session_id] = merge_records(existing, record)
        return merged

    def _dedupe_source(self, source: Iterable[RawRecord]) -> Iterator[SessionRecord]:
        parsed = (record for record in map(self._parse, source) if record is not None)
        return dedupe(parsed, self._bucket_key, self._clock)

    @staticmethod
    def _parse(raw: RawRecord) -> SessionRecord | None:
        if isinstance(raw, SessionRecord):
            return raw
        try:
            return SessionRecord.model_validate(raw)
        except ValidationError as exc:
            RECORDS_SKIPPED_TOTAL.inc()
            logger.warning(
                "Skipping unparseable record during reconciliation: %d validation errors",
                exc.error_count(),
            )
            return None


__all__ = ["FIELD_POLICIES", "MergePolicy", "SessionReconciler", "merge_records"]
