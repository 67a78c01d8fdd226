"""SQLite-backed marketplace storage."""

import contextlib
import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from carefayre.storage.base import DuplicateRecordError, RecordStorage, index_value
from carefayre.storage.schema import init_db, validate_column, validate_table_name

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / ".carefayre" / "carefayre.db"


class SQLiteMarketplaceStorage(RecordStorage):
    """SQLite storage for the marketplace.

    ``transaction()`` opens one connection per thread and issues
    ``BEGIN IMMEDIATE`` so competing writers serialize on the database
    lock. Calls made inside a transaction reuse its connection; calls
    outside one get a short-lived autocommit connection.
    """

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        self.db_path = Path(db_path).expanduser() if db_path else DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        with self._connect() as conn:
            init_db(conn)

    def _get_conn(self) -> sqlite3.Connection:
        """Open a connection in autocommit mode; transactions are explicit."""
        conn = sqlite3.connect(self.db_path, isolation_level=None, timeout=5.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
        return conn

    @contextlib.contextmanager
    def _connect(self):
        """Yield the transaction's connection if one is open, else a fresh one.

        Fresh connections are closed on exit.
        """
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            yield conn
            return
        conn = self._get_conn()
        try:
            yield conn
        finally:
            conn.close()

    @contextlib.contextmanager
    def transaction(self):
        if getattr(self._local, "conn", None) is not None:
            # Nested: the outermost transaction commits or rolls back
            yield self
            return
        conn = self._get_conn()
        self._local.conn = conn
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield self
            conn.execute("COMMIT")
        except Exception as e:
            logger.debug(f"Transaction failed, rolling back: {e}")
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            self._local.conn = None
            conn.close()

    def close(self):
        """Close any resources.

        Connections are per-operation or per-transaction, so this exists for
        API compatibility and explicit cleanup.
        """
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None

    # === Primitives ===

    def _put(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        table = validate_table_name(table)
        indexed = self._index_columns(table, data)
        columns = ["id", *indexed.keys(), "data"]
        values = [record_id, *indexed.values(), json.dumps(data)]
        placeholders = ", ".join("?" for _ in columns)
        updates = ", ".join(f"{c} = excluded.{c}" for c in columns if c != "id")
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) "
            f"ON CONFLICT(id) DO UPDATE SET {updates}"
        )
        try:
            with self._connect() as conn:
                conn.execute(sql, values)
        except sqlite3.IntegrityError as e:
            raise DuplicateRecordError(f"{table}: {e}") from e

    def _fetch(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        table = validate_table_name(table)
        with self._connect() as conn:
            row = conn.execute(f"SELECT data FROM {table} WHERE id = ?", (record_id,)).fetchone()
        return json.loads(row["data"]) if row else None

    def _query(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        table = validate_table_name(table)
        clauses = []
        params = []
        for column, value in filters.items():
            clauses.append(f"{validate_column(table, column)} = ?")
            params.append(index_value(value))
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT data FROM {table}{where} ORDER BY rowid", params
            ).fetchall()
        return [json.loads(row["data"]) for row in rows]

    def count(self, table: str) -> int:
        """Row count for a table."""
        table = validate_table_name(table)
        with self._connect() as conn:
            return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
