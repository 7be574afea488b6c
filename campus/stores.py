"""In-memory record store."""

from __future__ import annotations

import copy
import threading
from typing import Any, Dict

from condition_eval import eval_condition
from campus.records_validation import parse_int


def _sort_key(field: str):
    # None sorts after every concrete value
    def key(row: dict) -> tuple:
        value = row.get(field)
        return (value is None, value if value is not None else 0)

    return key


def sort_rows(rows: list[dict], order) -> list[dict]:
    ordered = list(rows)
    for field, direction in reversed(tuple(order or ())):
        descending = str(direction).lower() == "desc"
        ordered.sort(key=_sort_key(field), reverse=descending)
    return ordered


class MemoryRecordStore:
    def __init__(self) -> None:
        self._tables: Dict[str, Dict[int, dict]] = {}
        self._sequences: Dict[str, int] = {}
        self._lock = threading.Lock()

    def _table(self, table: str) -> Dict[int, dict]:
        return self._tables.setdefault(table, {})

    def select(
        self,
        table: str,
        where: dict | None = None,
        order=None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict]:
        with self._lock:
            rows = [r for r in self._table(table).values() if eval_condition(where, r)]
            rows = sort_rows(rows, order or (("id", "asc"),))
            start = max(0, offset or 0)
            end = start + limit if limit is not None else None
            return [copy.deepcopy(r) for r in rows[start:end]]

    def select_one(self, table: str, record_id: Any) -> dict | None:
        key = parse_int(record_id)
        with self._lock:
            row = self._table(table).get(key)
            return copy.deepcopy(row) if row else None

    def insert(self, table: str, data: dict) -> dict:
        with self._lock:
            record_id = self._sequences.get(table, 0) + 1
            self._sequences[table] = record_id
            row = copy.deepcopy(data)
            row["id"] = record_id
            self._table(table)[record_id] = row
            return copy.deepcopy(row)

    def update(self, table: str, record_id: Any, patch: dict) -> dict | None:
        key = parse_int(record_id)
        with self._lock:
            row = self._table(table).get(key)
            if row is None:
                return None
            row.update(copy.deepcopy(patch))
            row["id"] = key
            return copy.deepcopy(row)

    def delete(self, table: str, record_id: Any) -> dict | None:
        key = parse_int(record_id)
        with self._lock:
            row = self._table(table).pop(key, None)
            return copy.deepcopy(row) if row else None
