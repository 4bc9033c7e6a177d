"""SQLite behavioral store: session-keyed upserts plus an append-only activity table.

``user_analytics`` holds one row per session; a second write for the same
session overwrites the first. ``session_activity`` keeps every activity
event so the reconciler can fold them.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

import aiosqlite
from pydantic import ValidationError

from behaveguard.core.metrics import RECORDS_SKIPPED_TOTAL
from behaveguard.models.records import SessionRecord
from behaveguard.models.snapshot import MetricSnapshot, utc_now

logger = logging.getLogger(__name__)

_BEHAVIOR_COLUMNS: tuple[str, ...] = (
    "page_url",
    "user_agent",
    "typing_wpm",
    "typing_keystrokes",
    "typing_corrections",
    "mouse_clicks",
    "mouse_movements",
    "mouse_velocity",
    "mouse_idle_time",
    "scroll_depth",
    "scroll_speed",
    "scroll_events",
    "focus_changes",
    "focus_time",
    "tab_switches",
    "session_duration",
    "page_views",
    "interactions_count",
)

_ACTIVITY_COUNTERS: tuple[str, ...] = (
    "cart_actions",
    "wishlist_actions",
    "category_changes",
    "searches",
)


def _dt_to_str(dt: datetime) -> str:
    """UTC ISO-8601 with fixed precision so text comparison orders correctly.

    Naive values are taken as UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat(timespec="microseconds")


def _upsert_sql() -> str:
    columns = ("session_id", "user_id", *_BEHAVIOR_COLUMNS, "created_at", "updated_at")
    placeholders = ", ".join("?" for _ in columns)
    updates = ", ".join(f"{name} = excluded.{name}" for name in columns[1:])
    return (
        f"INSERT INTO user_analytics ({', '.join(columns)}) VALUES ({placeholders}) "
        f"ON CONFLICT(session_id) DO UPDATE SET {updates}"
    )


_UPSERT_SQL = _upsert_sql()


class SQLiteAnalyticsStore:
    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    async def upsert_snapshot(self, snapshot: MetricSnapshot, user_id: str | None = None) -> None:
        await self.upsert_record(SessionRecord.from_snapshot(snapshot), user_id=user_id)

    async def upsert_record(self, record: SessionRecord, user_id: str | None = None) -> None:
        values = [getattr(record, name) for name in _BEHAVIOR_COLUMNS]
        created_at = _dt_to_str(record.created_at) if record.created_at else None
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                _UPSERT_SQL,
                (record.session_id, user_id, *values, created_at, _dt_to_str(utc_now())),
            )
            await db.commit()

    async def record_activity(self, record: SessionRecord) -> None:
        created_at = record.created_at or utc_now()
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """INSERT INTO session_activity
                   (session_id, cart_actions, wishlist_actions, category_changes,
                    searches, product_views, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    record.session_id,
                    *(getattr(record, name) for name in _ACTIVITY_COUNTERS),
                    json.dumps(record.product_views),
                    _dt_to_str(created_at),
                ),
            )
            await db.commit()

    async def behavior_rows(
        self,
        session_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[dict[str, object]]:
        """Raw behavioral rows, newest first. Values are not validated."""
        clauses: list[str] = []
        params: list[object] = []
        if session_id is not None:
            clauses.append("session_id = ?")
            params.append(session_id)
        if start is not None:
            clauses.append("created_at >= ?")
            params.append(_dt_to_str(start))
        if end is not None:
            clauses.append("created_at <= ?")
            params.append(_dt_to_str(end))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"SELECT * FROM user_analytics {where} ORDER BY created_at DESC",  # noqa: S608
                params,
            )
            rows = await cursor.fetchall()
        return [_behavior_row(row) for row in rows]

    async def activity_rows(self, session_id: str | None = None) -> list[dict[str, object]]:
        """Raw activity rows, newest first. Values are not validated."""
        query = "SELECT * FROM session_activity"
        params: tuple[object, ...] = ()
        if session_id is not None:
            query += " WHERE session_id = ?"
            params = (session_id,)
        query += " ORDER BY created_at DESC, id DESC"

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
        return [_activity_row(row) for row in rows]

    async def list_records(
        self,
        session_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[SessionRecord]:
        """Behavioral rows as records, newest first. Invalid rows are skipped."""
        return _validated(await self.behavior_rows(session_id, start, end), "user_analytics")

    async def list_activity(self, session_id: str | None = None) -> list[SessionRecord]:
        return _validated(await self.activity_rows(session_id), "session_activity")

    async def delete_session(self, session_id: str) -> int:
        """Remove a session from both tables. Returns the number of rows deleted."""
        async with aiosqlite.connect(self.db_path) as db:
            behavior = await db.execute(
                "DELETE FROM user_analytics WHERE session_id = ?", (session_id,)
            )
            activity = await db.execute(
                "DELETE FROM session_activity WHERE session_id = ?", (session_id,)
            )
            await db.commit()
            return behavior.rowcount + activity.rowcount


def _behavior_row(row: aiosqlite.Row) -> dict[str, object]:
    data: dict[str, object] = {name: row[name] for name in _BEHAVIOR_COLUMNS}
    data["session_id"] = row["session_id"]
    data["created_at"] = row["created_at"]
    return data


def _activity_row(row: aiosqlite.Row) -> dict[str, object]:
    data: dict[str, object] = {name: row[name] for name in _ACTIVITY_COUNTERS}
    data["session_id"] = row["session_id"]
    data["created_at"] = row["created_at"]
    raw_views = row["product_views"]
    try:
        data["product_views"] = json.loads(raw_views) if raw_views is not None else None
    except json.JSONDecodeError:
        # Left undecoded so validation rejects the row.
        data["product_views"] = raw_views
    return data


def _validated(rows: list[dict[str, object]], table: str) -> list[SessionRecord]:
    records: list[SessionRecord] = []
    for row in rows:
        try:
            records.append(SessionRecord.model_validate(row))
        except ValidationError as exc:
            RECORDS_SKIPPED_TOTAL.inc()
            logger.warning(
                "Skipping invalid %s row for session %r: %d validation errors",
                table,
                row.get("session_id"),
                exc.error_count(),
            )
    return records


__all__ = ["SQLiteAnalyticsStore"]
