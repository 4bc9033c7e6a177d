"""Schema migrations for the collector database.

Scripts in ``migrations/`` run once each, in file-name order. The digest of
every applied script is kept in ``_migrations``; editing a script after it
has run is refused rather than silently diverging from deployed databases.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import sqlite3
from contextlib import closing
from pathlib import Path

from behaveguard.models.snapshot import utc_now

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

_LEDGER_DDL = (
    "CREATE TABLE IF NOT EXISTS _migrations ("
    "name TEXT PRIMARY KEY, checksum TEXT NOT NULL, applied_at TEXT NOT NULL)"
)


def _digest(script: Path) -> str:
    return hashlib.sha256(script.read_bytes()).hexdigest()


def _apply_pending(db_path: str, migrations_dir: Path) -> list[str]:
    applied: list[str] = []
    with closing(sqlite3.connect(db_path)) as conn:
        conn.execute(_LEDGER_DDL)
        recorded = dict(conn.execute("SELECT name, checksum FROM _migrations").fetchall())

        for script in sorted(migrations_dir.glob("*.sql")):
            digest = _digest(script)
            known = recorded.get(script.name)
            if known == digest:
                continue
            if known is not None:
                raise RuntimeError(
                    f"Migration {script.name} checksum mismatch: recorded {known[:12]}, "
                    f"found {digest[:12]}. Add a new migration instead of editing this one."
                )

            conn.executescript(script.read_text(encoding="utf-8"))
            conn.execute(
                "INSERT INTO _migrations (name, checksum, applied_at) VALUES (?, ?, ?)",
                (script.name, digest, utc_now().isoformat()),
            )
            conn.commit()
            applied.append(script.name)
            logger.info("Applied migration %s to %s", script.name, db_path)
    return applied


async def run_migrations(db_path: str, migrations_dir: Path | None = None) -> list[str]:
    """Bring ``db_path`` up to date, creating its directory if needed.

    Returns the migrations this call applied.
    """
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    return await asyncio.to_thread(_apply_pending, db_path, migrations_dir or MIGRATIONS_DIR)


__all__ = ["MIGRATIONS_DIR", "run_migrations"]
