"""
Local Transaction Cache

A durable, device-local store of Transaction records backed by SQLite.
It serves transaction history while the remote store is unreachable and
holds the offline queue (records with pending = 1).

Records are keyed by transaction id. Committed records use the remote
id; pending records use negative provisional ids so they can never
collide with a remote id. The `seq` column preserves insertion order,
which is the order pending writes are replayed in.

All operations are synchronous and short-lived.
"""

import sqlite3
from pathlib import Path
from typing import Iterable, Optional

from envelope_ledger.models.ledger import Transaction


SCHEMA = """
CREATE TABLE IF NOT EXISTS transactions (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id INTEGER NOT NULL UNIQUE,
    pending INTEGER NOT NULL DEFAULT 0,
    period TEXT NOT NULL,
    payload TEXT NOT NULL
)
"""


class LocalCacheStore:
    """SQLite-backed key-value store of transactions."""

    def __init__(self, db_path: Path | str = ":memory:"):
        self._db_path = str(db_path)
        # A :memory: database only lives as long as its connection
        self._shared: Optional[sqlite3.Connection] = None
        if self._db_path == ":memory:":
            self._shared = sqlite3.connect(self._db_path)
        else:
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        if self._shared is not None:
            return self._shared
        return sqlite3.connect(self._db_path)

    def _close(self, conn: sqlite3.Connection) -> None:
        if conn is not self._shared:
            conn.close()

    def _execute(self, statements: Iterable[tuple[str, tuple]]) -> None:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            for sql, params in statements:
                cursor.execute(sql, params)
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            raise
        finally:
            self._close(conn)

    def _query(self, sql: str, params: tuple = ()) -> list[tuple]:
        conn = self._connect()
        try:
            return conn.execute(sql, params).fetchall()
        finally:
            self._close(conn)

    def _init_schema(self) -> None:
        self._execute([
            (SCHEMA, ()),
            ("CREATE INDEX IF NOT EXISTS idx_txn_pending ON transactions(pending, seq)", ()),
            ("CREATE INDEX IF NOT EXISTS idx_txn_period ON transactions(period)", ()),
        ])

    @staticmethod
    def _upsert_statement(record: Transaction) -> tuple[str, tuple]:
        if record.id is None:
            raise ValueError("Cached transactions need an id")
        # ON CONFLICT keeps the original seq, so overwriting doesn't reorder
        return (
            """
            INSERT INTO transactions (id, pending, period, payload) VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                pending = excluded.pending,
                period = excluded.period,
                payload = excluded.payload
            """,
            (record.id, int(record.pending), record.period, record.model_dump_json()),
        )

    def put(self, record: Transaction) -> None:
        """Insert or overwrite a record by id."""
        self._execute([self._upsert_statement(record)])

    def bulk_put(self, records: Iterable[Transaction]) -> None:
        """Insert or overwrite many records in one commit."""
        self._execute([self._upsert_statement(record) for record in records])

    def get(self, record_id: int) -> Optional[Transaction]:
        rows = self._query("SELECT payload FROM transactions WHERE id = ?", (record_id,))
        if not rows:
            return None
        return Transaction.model_validate_json(rows[0][0])

    def get_all(self, period: Optional[str] = None) -> list[Transaction]:
        """All cached records in insertion order, optionally for one period."""
        if period is None:
            rows = self._query("SELECT payload FROM transactions ORDER BY seq")
        else:
            rows = self._query(
                "SELECT payload FROM transactions WHERE period = ? ORDER BY seq", (period,)
            )
        return [Transaction.model_validate_json(row[0]) for row in rows]

    def pending(self) -> list[Transaction]:
        """Queued offline writes in the order they were queued."""
        rows = self._query("SELECT payload FROM transactions WHERE pending = 1 ORDER BY seq")
        return [Transaction.model_validate_json(row[0]) for row in rows]

    def delete(self, record_id: int) -> None:
        self._execute([("DELETE FROM transactions WHERE id = ?", (record_id,))])

    def next_local_id(self) -> int:
        """Provisional id for a new pending record (always negative)."""
        rows = self._query("SELECT MIN(id) FROM transactions")
        lowest = rows[0][0]
        if lowest is None or lowest > 0:
            return -1
        return lowest - 1
