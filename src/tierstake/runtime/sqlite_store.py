# src/tierstake/runtime/sqlite_store.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from tierstake.runtime.events import StakingEvent

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    # No default=str: a non-JSON value leaking into persisted state must fail loudly.
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except Exception:
        return int(default)


class SqliteDB:
    """SQLite file holding the staking snapshot and the audit event log.

    Connections are never shared between threads; writes go through
    write_tx(), which retries BEGIN IMMEDIATE with backoff until a deadline.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    def ensure_parent_dir(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()

        connect_timeout_s = float(_env_int("TIERSTAKE_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0

        con = sqlite3.connect(
            self.path,
            timeout=connect_timeout_s,
            isolation_level=None,  # we manage BEGIN/COMMIT ourselves
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        con.execute("PRAGMA journal_mode=WAL;")
        con.execute("PRAGMA synchronous=FULL;")
        con.execute("PRAGMA foreign_keys=ON;")

        busy_ms = max(0, _env_int("TIERSTAKE_SQLITE_BUSY_TIMEOUT_MS", int(connect_timeout_s * 1000)))
        con.execute(f"PRAGMA busy_timeout={busy_ms};")
        return con

    def init_schema(self) -> None:
        with self.write_tx() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS staking_state (
                  id INTEGER PRIMARY KEY CHECK (id = 1),
                  state_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS staking_events (
                  seq INTEGER PRIMARY KEY,
                  kind TEXT NOT NULL,
                  account TEXT NOT NULL,
                  actor TEXT NOT NULL,
                  timestamp INTEGER NOT NULL,
                  amounts_json TEXT NOT NULL
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_events_account ON staking_events(account);")

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            else:
                try:
                    v = int(str(row["value"]))
                except Exception:
                    v = 0
                if v != self.SCHEMA_VERSION:
                    raise RuntimeError(
                        f"sqlite schema_version mismatch: have={v} want={self.SCHEMA_VERSION}. "
                        "Refuse to start to avoid corrupting data."
                    )

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            con.close()

    @staticmethod
    def _is_locked_error(e: Exception) -> bool:
        msg = str(e).lower()
        return ("database is locked" in msg) or ("database is busy" in msg)

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Write transaction with bounded retry on writer-lock contention."""
        deadline_ts = _now_ms() + max(250, _env_int("TIERSTAKE_SQLITE_WRITE_DEADLINE_MS", 30_000))
        base_sleep = 0.005
        max_sleep = 0.25

        with self.connection() as con:
            attempt = 0
            while True:
                try:
                    con.execute("BEGIN IMMEDIATE;")
                    break
                except sqlite3.OperationalError as e:
                    if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                        raise
                    sleep_s = min(max_sleep, base_sleep * (2.0 ** min(attempt, 8)))
                    time.sleep(sleep_s * (0.5 + random.random()))
                    attempt += 1

            try:
                yield con
                con.execute("COMMIT;")
            except Exception:
                con.execute("ROLLBACK;")
                raise


class SqliteStakingStore:
    """Staking snapshot (single row) plus the append-only event table.

    commit() writes both in one transaction so a restart never sees state
    without the events that produced it.
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    @classmethod
    def open(cls, path: str) -> "SqliteStakingStore":
        return cls(db=SqliteDB(path=path))

    def exists(self) -> bool:
        with self._db.connection() as con:
            return con.execute("SELECT 1 FROM staking_state WHERE id=1;").fetchone() is not None

    def read_state(self) -> Json:
        with self._db.connection() as con:
            row = con.execute("SELECT state_json FROM staking_state WHERE id=1;").fetchone()
            if row is None:
                raise FileNotFoundError("sqlite staking_state is missing")
            st = json.loads(str(row["state_json"]))
            if not isinstance(st, dict):
                raise ValueError("staking_state is not a JSON object")
            return st

    def read_events(self, since: int = 0) -> List[StakingEvent]:
        with self._db.connection() as con:
            rows = con.execute(
                "SELECT seq, kind, account, actor, timestamp, amounts_json FROM staking_events WHERE seq > ? ORDER BY seq;",
                (int(since),),
            ).fetchall()
        return [
            StakingEvent(
                seq=int(r["seq"]),
                kind=str(r["kind"]),
                account=str(r["account"]),
                actor=str(r["actor"]),
                timestamp=int(r["timestamp"]),
                amounts={str(k): int(v) for k, v in json.loads(str(r["amounts_json"])).items()},
            )
            for r in rows
        ]

    def commit(self, state: Json, events: Optional[List[StakingEvent]] = None) -> None:
        if not isinstance(state, dict):
            raise ValueError("staking state write expects dict")
        payload = _canon_json(state)
        with self._db.write_tx() as con:
            con.execute(
                """
                INSERT INTO staking_state(id, state_json, updated_ts_ms)
                VALUES(1, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  state_json=excluded.state_json,
                  updated_ts_ms=excluded.updated_ts_ms;
                """,
                (payload, _now_ms()),
            )
            for ev in events or []:
                con.execute(
                    "INSERT INTO staking_events(seq, kind, account, actor, timestamp, amounts_json) VALUES(?, ?, ?, ?, ?, ?);",
                    (int(ev.seq), ev.kind, ev.account, ev.actor, int(ev.timestamp), _canon_json(ev.amounts)),
                )

    def revert(self, state: Json, last_seq: int) -> None:
        """Restore a previous snapshot and drop the events committed after `last_seq`."""
        if not isinstance(state, dict):
            raise ValueError("staking state write expects dict")
        payload = _canon_json(state)
        with self._db.write_tx() as con:
            con.execute(
                "UPDATE staking_state SET state_json=?, updated_ts_ms=? WHERE id=1;",
                (payload, _now_ms()),
            )
            con.execute("DELETE FROM staking_events WHERE seq > ?;", (int(last_seq),))


__all__ = ["SqliteDB", "SqliteStakingStore"]
