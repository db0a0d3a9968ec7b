from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from .log import get_logger
from .model import CacheSnapshot

log = get_logger(__name__)

SNAPSHOT_KEY = "bookmarksCache"
LAST_SYNC_KEY = "lastBookmarkSync"


@dataclass
class PersistedState:
    snapshot: Optional[CacheSnapshot]
    last_sync: Optional[int]


def init_state(db_path: Path, *, recreate: bool = False) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    if recreate and db_path.exists():
        db_path.unlink()

    with sqlite3.connect(db_path) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv_state (
                key TEXT PRIMARY KEY,
                value_json TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )


def load_values(db_path: Path, keys: Iterable[str]) -> Dict[str, Any]:
    wanted = [k for k in keys if k]
    if not wanted or not db_path.exists():
        return {}

    placeholders = ",".join(["?"] * len(wanted))
    query = f"SELECT key, value_json FROM kv_state WHERE key IN ({placeholders})"
    out: Dict[str, Any] = {}
    with sqlite3.connect(db_path) as conn:
        for key, raw in conn.execute(query, wanted):
            try:
                out[key] = json.loads(raw)
            except json.JSONDecodeError:
                log.warning("Ignoring unreadable state entry %r in %s", key, db_path)
    return out


def upsert_values(db_path: Path, values: Dict[str, Any]) -> None:
    if not values:
        return
    now = datetime.now(timezone.utc).isoformat()
    rows = [(k, json.dumps(v, ensure_ascii=False), now) for k, v in values.items()]
    with sqlite3.connect(db_path) as conn:
        conn.executemany(
            """
            INSERT INTO kv_state (key, value_json, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value_json=excluded.value_json,
                updated_at=excluded.updated_at
            """,
            rows,
        )


def save_snapshot(db_path: Path, snapshot: CacheSnapshot, last_sync: int) -> None:
    upsert_values(db_path, {SNAPSHOT_KEY: snapshot.to_dict(), LAST_SYNC_KEY: int(last_sync)})


def load_snapshot(db_path: Path) -> PersistedState:
    values = load_values(db_path, [SNAPSHOT_KEY, LAST_SYNC_KEY])
    raw = values.get(SNAPSHOT_KEY)
    snapshot = CacheSnapshot.from_dict(raw) if isinstance(raw, dict) else None
    last_sync = values.get(LAST_SYNC_KEY)
    return PersistedState(snapshot=snapshot, last_sync=int(last_sync) if isinstance(last_sync, int) else None)
