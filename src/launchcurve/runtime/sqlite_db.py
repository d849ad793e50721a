# src/launchcurve/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def canon_json(obj: Any) -> str:
    """Canonical JSON encoding for persisted snapshots.

    No default=str: a non-JSON value leaking into ledger state must fail here.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    raw = str(os.environ.get(name, "")).strip()
    if not raw:
        return int(default)
    try:
        return int(raw)
    except ValueError:
        return int(default)


class SqliteDB:
    """SQLite file holding the curve ledger snapshot and the event journal.

    SQLite allows one writer at a time; write_tx() retries BEGIN IMMEDIATE
    with bounded backoff before failing closed.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    def _connect(self) -> sqlite3.Connection:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        timeout_s = float(_env_int("LAUNCHCURVE_SQLITE_TIMEOUT_MS", 30_000)) / 1000.0
        con = sqlite3.connect(
            self.path,
            timeout=timeout_s,
            isolation_level=None,  # BEGIN/COMMIT managed by write_tx()
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        con.execute("PRAGMA journal_mode=WAL;")
        mode = (os.environ.get("LAUNCHCURVE_MODE") or "prod").strip().lower()
        con.execute(f"PRAGMA synchronous={'FULL' if mode == 'prod' else 'NORMAL'};")
        con.execute("PRAGMA foreign_keys=ON;")
        con.execute(f"PRAGMA busy_timeout={int(timeout_s * 1000)};")
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
                CREATE TABLE IF NOT EXISTS ledger_state (
                  id INTEGER PRIMARY KEY CHECK (id = 1),
                  revision INTEGER NOT NULL,
                  state_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS curve_events (
                  seq INTEGER PRIMARY KEY AUTOINCREMENT,
                  revision INTEGER NOT NULL,
                  token TEXT NOT NULL,
                  kind TEXT NOT NULL,
                  event_json TEXT NOT NULL,
                  created_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_curve_events_token ON curve_events(token);")
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS external_state (
                  name TEXT PRIMARY KEY,
                  revision INTEGER NOT NULL,
                  state_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            elif str(row["value"]) != str(self.SCHEMA_VERSION):
                raise RuntimeError(
                    f"sqlite schema_version mismatch: have={row['value']} want={self.SCHEMA_VERSION}. "
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
        return "database is locked" in msg or "database is busy" in msg

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Write transaction with bounded retry on writer-lock contention."""
        deadline_ts = _now_ms() + max(250, _env_int("LAUNCHCURVE_SQLITE_WRITE_DEADLINE_MS", 30_000))
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
            except BaseException:
                con.execute("ROLLBACK;")
                raise


class SqliteLedgerStore:
    """Curve ledger snapshot persisted in SQLite.

      - read(): latest snapshot
      - commit(st, events, external): overwrite the snapshot, append journal
        rows and replace the named collaborator states inside one write
        transaction
      - read_external(): collaborator states by name
      - events(token): journal rows for one token, oldest first
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    def exists(self) -> bool:
        with self._db.connection() as con:
            return con.execute("SELECT 1 FROM ledger_state WHERE id=1;").fetchone() is not None

    def read(self) -> Json:
        with self._db.connection() as con:
            row = con.execute("SELECT state_json FROM ledger_state WHERE id=1;").fetchone()
        if row is None:
            raise FileNotFoundError("sqlite ledger_state is missing")
        st = json.loads(str(row["state_json"]))
        if not isinstance(st, dict):
            raise ValueError("ledger_state is not a JSON object")
        return st

    def commit(self, st: Json, events: Sequence[Json] = (), external: Optional[Mapping[str, Json]] = None) -> None:
        if not isinstance(st, dict):
            raise ValueError("ledger commit expects dict")
        revision = int(st.get("revision", 0))
        now = _now_ms()
        payload = canon_json(st)
        with self._db.write_tx() as con:
            con.execute(
                """
                INSERT INTO ledger_state(id, revision, state_json, updated_ts_ms)
                VALUES(1, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  revision=excluded.revision,
                  state_json=excluded.state_json,
                  updated_ts_ms=excluded.updated_ts_ms;
                """,
                (revision, payload, now),
            )
            for ev in events:
                con.execute(
                    "INSERT INTO curve_events(revision, token, kind, event_json, created_ts_ms) VALUES(?, ?, ?, ?, ?);",
                    (revision, str(ev.get("token") or ""), str(ev.get("kind") or ""), canon_json(ev), now),
                )
            for name, ext_state in (external or {}).items():
                con.execute(
                    """
                    INSERT INTO external_state(name, revision, state_json, updated_ts_ms)
                    VALUES(?, ?, ?, ?)
                    ON CONFLICT(name) DO UPDATE SET
                      revision=excluded.revision,
                      state_json=excluded.state_json,
                      updated_ts_ms=excluded.updated_ts_ms;
                    """,
                    (str(name), revision, canon_json(ext_state), now),
                )

    def read_external(self) -> Dict[str, Json]:
        with self._db.connection() as con:
            rows = con.execute("SELECT name, state_json FROM external_state ORDER BY name;").fetchall()
        return {str(r["name"]): json.loads(str(r["state_json"])) for r in rows}

    def events(self, token: str, *, limit: int = 100) -> List[Json]:
        with self._db.connection() as con:
            rows = con.execute(
                "SELECT event_json FROM curve_events WHERE token=? ORDER BY seq ASC LIMIT ?;",
                (str(token), int(limit)),
            ).fetchall()
        return [json.loads(str(r["event_json"])) for r in rows]
