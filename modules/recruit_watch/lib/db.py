from __future__ import annotations

import contextlib
import os
import sqlite3
from collections.abc import Iterator
from datetime import datetime

from .logging_bridge import error as log_error
from .models import BlacklistRecord, Identity, SeenRecord
from .utils import from_db_ts, now_iso, to_db_ts


class StoreError(RuntimeError):
    """A state-store read or write failed."""


class SeenStore:
    """
    SQLite-backed record of seen candidates and the operator blacklist.

    Identities are keyed on case-folded (name, realm); the original spelling
    is kept for display. Timestamps are stored as fixed-width UTC strings so
    SQL comparisons are chronological.

    Each call opens its own connection, so one instance can be shared by
    the scheduler thread and the CLI.
    """

    def __init__(self, sqlite_path: str) -> None:
        self.sqlite_path = sqlite_path
        self._initialized = False

    # ---- Seen records --------------------------------------------------------

    def get_last_seen_at(self, identity: Identity) -> datetime | None:
        rec = self.get_seen(identity)
        return rec.last_seen_at if rec else None

    def get_seen(self, identity: Identity) -> SeenRecord | None:
        name_key, realm_key = identity.key
        with self._session("get_seen") as conn:
            row = conn.execute(
                """
                SELECT character_name, realm, first_seen_utc, last_seen_utc
                FROM seen_players WHERE name_key = ? AND realm_key = ?
                """,
                (name_key, realm_key),
            ).fetchone()
        if row is None:
            return None
        return SeenRecord(
            identity=Identity(row[0], row[1]),
            first_seen_at=from_db_ts(row[2]),
            last_seen_at=from_db_ts(row[3]),
        )

    def upsert_seen(self, identity: Identity, listed_at: datetime) -> bool:
        """
        Record `listed_at` for `identity` as one atomic compare-and-set.

        Inserts first_seen = last_seen = listed_at for an unknown identity;
        otherwise advances last_seen only when listed_at is strictly newer.
        first_seen is never touched after insert.

        Returns True if a row was inserted or advanced, False if the stored
        last_seen was already >= listed_at.
        """
        name_key, realm_key = identity.key
        ts = to_db_ts(listed_at)
        with self._session("upsert_seen") as conn:
            cur = conn.execute(
                """
                INSERT INTO seen_players
                  (name_key, realm_key, character_name, realm, first_seen_utc, last_seen_utc)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (name_key, realm_key) DO UPDATE
                  SET last_seen_utc = excluded.last_seen_utc
                  WHERE excluded.last_seen_utc > seen_players.last_seen_utc
                """,
                (name_key, realm_key, identity.character_name.strip(), identity.realm.strip(), ts, ts),
            )
            return cur.rowcount == 1

    def count_seen(self) -> int:
        with self._session("count_seen") as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM seen_players").fetchone()
        return int(n or 0)

    def purge_older_than(self, cutoff: datetime) -> int:
        """Delete seen records whose last_seen is before `cutoff`; return the count."""
        with self._session("purge_older_than") as conn:
            cur = conn.execute("DELETE FROM seen_players WHERE last_seen_utc < ?", (to_db_ts(cutoff),))
            return int(cur.rowcount or 0)

    # ---- Blacklist (operator-managed; the pipeline only reads) ----------------

    def is_blacklisted(self, identity: Identity) -> bool:
        name_key, realm_key = identity.key
        with self._session("is_blacklisted") as conn:
            row = conn.execute(
                "SELECT 1 FROM blacklisted_players WHERE name_key = ? AND realm_key = ?",
                (name_key, realm_key),
            ).fetchone()
        return row is not None

    def add_blacklist(self, identity: Identity, reason: str | None = None) -> None:
        name_key, realm_key = identity.key
        with self._session("add_blacklist") as conn:
            conn.execute(
                """
                INSERT INTO blacklisted_players
                  (name_key, realm_key, character_name, realm, reason, blacklisted_utc)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (name_key, realm_key) DO UPDATE
                  SET reason = excluded.reason, blacklisted_utc = excluded.blacklisted_utc
                """,
                (name_key, realm_key, identity.character_name.strip(), identity.realm.strip(), reason, now_iso()),
            )

    def remove_blacklist(self, identity: Identity) -> bool:
        name_key, realm_key = identity.key
        with self._session("remove_blacklist") as conn:
            cur = conn.execute(
                "DELETE FROM blacklisted_players WHERE name_key = ? AND realm_key = ?",
                (name_key, realm_key),
            )
            return cur.rowcount > 0

    def list_blacklist(self) -> list[BlacklistRecord]:
        with self._session("list_blacklist") as conn:
            rows = conn.execute(
                """
                SELECT character_name, realm, reason, blacklisted_utc
                FROM blacklisted_players ORDER BY realm_key, name_key
                """
            ).fetchall()
        out: list[BlacklistRecord] = []
        for name, realm, reason, ts in rows:
            out.append(
                BlacklistRecord(
                    identity=Identity(name, realm),
                    reason=reason,
                    blacklisted_at=datetime.fromisoformat(ts.replace("Z", "+00:00")),
                )
            )
        return out

    # ---- Internals -----------------------------------------------------------

    @contextlib.contextmanager
    def _session(self, op: str) -> Iterator[sqlite3.Connection]:
        """
        Open a connection (creating the schema on first use), yield it and
        close it. sqlite3 errors are logged and re-raised as StoreError.
        """
        conn: sqlite3.Connection | None = None
        try:
            if not self._initialized:
                init_db(self.sqlite_path)
                self._initialized = True
            conn = _connect(self.sqlite_path)
            _apply_pragmas(conn)
            yield conn
        except sqlite3.Error as e:
            log_error({
                "component": "recruit_watch.db",
                "op": op,
                "sqlite_path": self.sqlite_path,
                "error": repr(e),
            })
            raise StoreError(f"{op} failed: {e}") from e
        finally:
            if conn is not None:
                conn.close()


# ---- Module helpers (schema, tests, diagnostics) -----------------------------


def init_db(sqlite_path: str) -> None:
    """
    Ensure the SQLite database and schema exist.
    Safe to call multiple times.
    """
    _ensure_dir(sqlite_path)
    conn = _connect(sqlite_path)
    try:
        _apply_pragmas(conn)
        _ensure_schema(conn)
    finally:
        conn.close()


def reset_db(sqlite_path: str) -> None:
    """
    Remove the DB file entirely (for pytest fixtures).
    Safe if it doesn't exist.
    """
    for suffix in ("", "-wal", "-shm"):
        with contextlib.suppress(FileNotFoundError):
            os.remove(sqlite_path + suffix)


def _ensure_dir(sqlite_path: str) -> None:
    d = os.path.dirname(os.path.abspath(sqlite_path)) or "."
    os.makedirs(d, exist_ok=True)


def _connect(sqlite_path: str) -> sqlite3.Connection:
    # isolation_level=None gives autocommit; every statement here is atomic on its own.
    return sqlite3.connect(sqlite_path, timeout=30.0, isolation_level=None)


def _apply_pragmas(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA temp_store=MEMORY;")
    conn.execute("PRAGMA cache_size=-8000;")  # approx 8MB cache


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS seen_players (
          id INTEGER PRIMARY KEY,
          name_key  TEXT NOT NULL,
          realm_key TEXT NOT NULL,
          character_name TEXT NOT NULL,
          realm TEXT NOT NULL,
          first_seen_utc TEXT NOT NULL,
          last_seen_utc  TEXT NOT NULL,
          CHECK (first_seen_utc <= last_seen_utc)
        );
        """
    )
    conn.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS ux_seen_players_identity
          ON seen_players (name_key, realm_key);
        """
    )
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS ix_seen_players_last_seen
          ON seen_players (last_seen_utc);
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS blacklisted_players (
          id INTEGER PRIMARY KEY,
          name_key  TEXT NOT NULL,
          realm_key TEXT NOT NULL,
          character_name TEXT NOT NULL,
          realm TEXT NOT NULL,
          reason TEXT,
          blacklisted_utc TEXT NOT NULL
        );
        """
    )
    conn.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS ux_blacklisted_players_identity
          ON blacklisted_players (name_key, realm_key);
        """
    )
