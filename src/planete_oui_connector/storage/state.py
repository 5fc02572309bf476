from __future__ import annotations

import logging
import shutil
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from ..models import BillingRecord


logger = logging.getLogger(__name__)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _healthy(conn: sqlite3.Connection) -> bool:
    try:
        # schema_version fails fast on "file is not a database"
        conn.execute("PRAGMA schema_version;").fetchone()
        row = conn.execute("PRAGMA quick_check;").fetchone()
    except sqlite3.Error:
        return False
    return bool(row) and row[0] == "ok"


def _connect_checked(path: Path) -> Optional[sqlite3.Connection]:
    try:
        conn = sqlite3.connect(path)
    except sqlite3.Error:
        return None
    if _healthy(conn):
        return conn
    conn.close()
    return None


@dataclass(frozen=True)
class SavedBill:
    key: str
    filename: str
    account_ref: str
    bill_date: str
    amount: Optional[float]
    file_url: str
    path: str
    created_at: str


_SAVED_BILL_COLUMNS = "key, filename, account_ref, bill_date, amount, file_url, path, created_at"


class StateStore:
    """
    SQLite record of saved bills, bank links and runs.

    A copy is kept at `<db_path>.bak` after every successful run. An unreadable DB is moved aside
    (`.corrupt-<stamp>`) and replaced by that copy, or by an empty DB; bills already on disk are re-adopted by the sink.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._backup_path = self.db_path.with_name(self.db_path.name + ".bak")

        self._conn = self._connect()
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._ensure_schema()

        if not self._backup_path.exists():
            self._try_backup()

    def close(self) -> None:
        self._conn.close()

    def _connect(self) -> sqlite3.Connection:
        if not self.db_path.exists():
            return sqlite3.connect(self.db_path)

        conn = _connect_checked(self.db_path)
        if conn is not None:
            return conn

        logger.warning("State DB %s is unreadable; moving it aside", self.db_path)
        self._quarantine()
        if not self._backup_path.exists():
            logger.warning("No state DB backup found; starting with an empty DB")
            return sqlite3.connect(self.db_path)

        try:
            shutil.copy2(self._backup_path, self.db_path)
        except OSError:
            logger.warning("Could not copy state DB backup; starting with an empty DB", exc_info=True)
            return sqlite3.connect(self.db_path)
        conn = _connect_checked(self.db_path)
        if conn is not None:
            logger.warning("Restored state DB from %s", self._backup_path)
            return conn
        logger.warning("State DB backup is unreadable too; starting with an empty DB")
        self._quarantine()
        return sqlite3.connect(self.db_path)

    def _quarantine(self) -> None:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        for suffix in ("", "-wal", "-shm"):
            p = Path(f"{self.db_path}{suffix}")
            if not p.exists():
                continue
            try:
                p.replace(p.with_name(f"{p.name}.corrupt-{stamp}"))
            except OSError:
                logger.debug("Could not move aside %s", p, exc_info=True)

    def _try_backup(self) -> None:
        try:
            self.backup()
        except (OSError, sqlite3.Error):
            logger.debug("State DB backup failed", exc_info=True)

    def backup(self) -> None:
        """Snapshot the DB to `<db_path>.bak` (written to a temp file, then swapped in)."""
        tmp = self._backup_path.with_name(self._backup_path.name + ".tmp")
        tmp.unlink(missing_ok=True)
        dst = sqlite3.connect(tmp)
        try:
            self._conn.backup(dst)
        finally:
            dst.close()
        tmp.replace(self._backup_path)

    def _ensure_schema(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS saved_bills (
              key TEXT PRIMARY KEY,
              filename TEXT NOT NULL,
              account_ref TEXT NOT NULL,
              bill_date TEXT NOT NULL,
              amount REAL,
              file_url TEXT NOT NULL,
              path TEXT NOT NULL,
              created_at TEXT NOT NULL
            );
            """
        )
        self._conn.execute(
            "CREATE INDEX IF NOT EXISTS saved_bills_by_filename ON saved_bills(account_ref, filename);"
        )
        self._conn.execute("CREATE INDEX IF NOT EXISTS saved_bills_by_path ON saved_bills(path);")
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS bank_links (
              bill_key TEXT NOT NULL,
              operation_id TEXT NOT NULL,
              operation_date TEXT NOT NULL,
              operation_label TEXT NOT NULL,
              operation_amount REAL NOT NULL,
              created_at TEXT NOT NULL,
              PRIMARY KEY (bill_key, operation_id)
            );
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS runs (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              started_at TEXT NOT NULL,
              finished_at TEXT,
              ok INTEGER,
              message TEXT
            );
            """
        )
        self._conn.commit()

    def has_saved_bill(self, key: str) -> bool:
        row = self._conn.execute("SELECT 1 FROM saved_bills WHERE key = ? LIMIT 1;", (key,)).fetchone()
        return row is not None

    def has_saved_filename(self, account_ref: str, filename: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM saved_bills WHERE account_ref = ? AND filename = ? LIMIT 1;",
            (account_ref, filename),
        ).fetchone()
        return row is not None

    def mark_saved_bill(self, record: BillingRecord, *, path: str) -> None:
        now = _utc_now()
        self._conn.execute(
            """
            INSERT OR REPLACE INTO saved_bills(
              key, filename, account_ref, bill_date, amount, file_url, path, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                record.dedup_key(),
                record.filename,
                record.account_ref or "",
                record.date.date().isoformat(),
                record.amount,
                record.file_url,
                path,
                now,
            ),
        )
        self._conn.commit()

    def get_saved_bill(self, key: str) -> Optional[SavedBill]:
        row = self._conn.execute(f"SELECT {_SAVED_BILL_COLUMNS} FROM saved_bills WHERE key = ?;", (key,)).fetchone()
        return SavedBill(*row) if row else None

    def saved_bill_for_path(self, path: str) -> Optional[SavedBill]:
        row = self._conn.execute(
            f"SELECT {_SAVED_BILL_COLUMNS} FROM saved_bills WHERE path = ? LIMIT 1;", (path,)
        ).fetchone()
        return SavedBill(*row) if row else None

    def link_bank_operation(
        self,
        *,
        bill_key: str,
        operation_id: str,
        operation_date: str,
        operation_label: str,
        operation_amount: float,
    ) -> bool:
        """
        Record a bill <-> bank operation link. Returns False when the link already existed.
        """
        now = _utc_now()
        cur = self._conn.execute(
            """
            INSERT OR IGNORE INTO bank_links(
              bill_key, operation_id, operation_date, operation_label, operation_amount, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?);
            """,
            (bill_key, operation_id, operation_date, operation_label, operation_amount, now),
        )
        self._conn.commit()
        return cur.rowcount > 0

    def list_bank_links(self, bill_key: str) -> list[str]:
        rows = self._conn.execute(
            "SELECT operation_id FROM bank_links WHERE bill_key = ? ORDER BY operation_id;",
            (bill_key,),
        ).fetchall()
        return [r[0] for r in rows]

    def record_run_start(self) -> int:
        now = _utc_now()
        cur = self._conn.execute("INSERT INTO runs(started_at) VALUES (?);", (now,))
        self._conn.commit()
        return int(cur.lastrowid)

    def record_run_finish(self, run_id: int, *, ok: bool, message: Optional[str] = None) -> None:
        now = _utc_now()
        self._conn.execute(
            "UPDATE runs SET finished_at = ?, ok = ?, message = ? WHERE id = ?;",
            (now, 1 if ok else 0, message, run_id),
        )
        self._conn.commit()

        # Only snapshot after a successful run.
        if ok:
            self._try_backup()

    def recent_runs(self, limit: int = 5) -> list[dict[str, Any]]:
        """Most recent runs first, as plain dicts."""
        rows = self._conn.execute(
            "SELECT id, started_at, finished_at, ok, message FROM runs ORDER BY id DESC LIMIT ?;",
            (limit,),
        ).fetchall()
        return [
            {
                "id": r[0],
                "started_at": r[1],
                "finished_at": r[2],
                "ok": None if r[3] is None else bool(r[3]),
                "message": r[4],
            }
            for r in rows
        ]
