"""In-memory marketplace storage for testing and local development."""

import copy
import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from carefayre.storage.base import DuplicateRecordError, RecordStorage, index_value
from carefayre.storage.schema import ALLOWED_TABLES, validate_table_name

logger = logging.getLogger(__name__)


class InMemoryMarketplaceStorage(RecordStorage):
    """In-memory storage with snapshot/restore transactions.

    Payloads are stored as serialized dicts, so callers always get fresh
    copies and can never mutate stored state by accident. Transactions are
    serialized with a re-entrant lock; the outermost one restores its
    snapshot if anything inside raises.
    """

    def __init__(self):
        """Initialize empty storage."""
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {t: {} for t in ALLOWED_TABLES}
        self._lock = threading.RLock()
        self._depth = 0

    @contextmanager
    def transaction(self):
        with self._lock:
            outermost = self._depth == 0
            snapshot = copy.deepcopy(self._tables) if outermost else None
            self._depth += 1
            try:
                yield self
            except Exception as e:
                if outermost:
                    logger.debug(f"Transaction failed, restoring snapshot: {e}")
                    self._tables = snapshot
                raise
            finally:
                self._depth -= 1

    def _put(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        validate_table_name(table)
        with self._lock:
            rows = self._tables[table]
            for column in self._unique_columns(table):
                value = index_value(data.get(column))
                if value is None:
                    continue
                for other_id, other in rows.items():
                    if other_id != record_id and index_value(other.get(column)) == value:
                        raise DuplicateRecordError(f"{table}.{column} already has {value}")
            rows[record_id] = copy.deepcopy(data)

    def _fetch(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        validate_table_name(table)
        with self._lock:
            row = self._tables[table].get(record_id)
            return copy.deepcopy(row) if row is not None else None

    def _query(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        validate_table_name(table)
        wanted = {column: index_value(value) for column, value in filters.items()}
        with self._lock:
            return [
                copy.deepcopy(row)
                for row in self._tables[table].values()
                if all(index_value(row.get(c)) == v for c, v in wanted.items())
            ]
