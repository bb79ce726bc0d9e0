"""SQLite-backed dedup store.

One row per alert id.  Claiming is a single ``INSERT ... ON CONFLICT DO
UPDATE ... WHERE`` statement, so two processes racing for the same id can
never both win: the row is inserted, or an *expired* pending claim is
taken over, or nothing changes (``rowcount == 0``).
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from src.contracts.errors import StoreError, StoreTimeoutError
from src.stores.base import DedupStore

log = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS alert_dedup (
    alert_id TEXT PRIMARY KEY,
    state    TEXT NOT NULL,
    ts       REAL NOT NULL
)
"""

_CLAIM = """
INSERT INTO alert_dedup (alert_id, state, ts) VALUES (?, 'pending', ?)
ON CONFLICT(alert_id) DO UPDATE SET ts = excluded.ts
WHERE alert_dedup.state = 'pending' AND alert_dedup.ts <= ?
"""


class SqliteDedupStore(DedupStore):
    def __init__(self, path: str | Path, timeout_sec: float = 10.0) -> None:
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        # autocommit: every statement is its own transaction
        self._conn = sqlite3.connect(
            self.path,
            timeout=timeout_sec,
            isolation_level=None,
            check_same_thread=False,
        )
        self._lock = threading.Lock()
        self._execute(_SCHEMA)
        log.debug("Dedup store ready at %s", self.path)

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            with self._lock:
                return self._conn.execute(sql, params)
        except sqlite3.OperationalError as exc:
            if "locked" in str(exc) or "busy" in str(exc):
                raise StoreTimeoutError(f"dedup store busy: {exc}") from exc
            raise StoreError(f"dedup store failure: {exc}") from exc
        except sqlite3.Error as exc:
            raise StoreError(f"dedup store failure: {exc}") from exc

    def insert_if_absent(self, alert_id: str, now: datetime, lease_sec: float) -> bool:
        expires = now.timestamp() + lease_sec
        cur = self._execute(_CLAIM, (alert_id, expires, now.timestamp()))
        return cur.rowcount == 1

    def confirm(self, alert_ids: Iterable[str], now: datetime) -> None:
        ts = now.timestamp()
        for aid in alert_ids:
            self._execute(
                "INSERT INTO alert_dedup (alert_id, state, ts) VALUES (?, 'committed', ?) "
                "ON CONFLICT(alert_id) DO UPDATE SET state = 'committed', ts = excluded.ts",
                (aid, ts),
            )

    def release(self, alert_ids: Iterable[str]) -> None:
        for aid in alert_ids:
            self._execute(
                "DELETE FROM alert_dedup WHERE alert_id = ? AND state = 'pending'",
                (aid,),
            )

    def purge(self, older_than: datetime) -> int:
        cur = self._execute(
            "DELETE FROM alert_dedup WHERE state = 'committed' AND ts < ?",
            (older_than.timestamp(),),
        )
        return cur.rowcount

    def committed(self) -> set[str]:
        cur = self._execute("SELECT alert_id FROM alert_dedup WHERE state = 'committed'")
        return {row[0] for row in cur.fetchall()}

    def close(self) -> None:
        self._conn.close()
