"""Postgres record store over a single JSONB table."""

from __future__ import annotations

import copy
import json
import logging
import threading
from typing import Any

from campus.db import execute, fetch_all, fetch_one, get_conn
from campus.records_validation import parse_int


logger = logging.getLogger("campus.db")

TABLE = "campus_records"

SCHEMA_SQL = f"""
create table if not exists {TABLE} (
    id bigserial primary key,
    entity text not null,
    data jsonb not null default '{{}}'::jsonb,
    created_at timestamptz not null default now()
);
create index if not exists {TABLE}_entity_idx on {TABLE} (entity, id);
"""


def _is_safe_field_id(value: str) -> bool:
    if not value or not isinstance(value, str):
        return False
    for ch in value:
        if not (ch.isalnum() or ch in "._-"):
            return False
    return True


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def compile_where(cond: dict | None) -> tuple[str, list]:
    """Compile a filter expression into a SQL fragment and its parameters."""
    if cond is None:
        return "true", []
    op = cond.get("op")
    if op in ("and", "or"):
        parts: list[str] = []
        params: list = []
        for child in cond.get("conditions") or []:
            sql, child_params = compile_where(child)
            parts.append(f"({sql})")
            params.extend(child_params)
        if not parts:
            return ("true" if op == "and" else "false"), []
        return f" {op} ".join(parts), params
    field = cond.get("field")
    if not _is_safe_field_id(field):
        raise ValueError(f"Unsafe field id: {field!r}")
    value = cond.get("value")
    if field == "id":
        record_id = parse_int(value)
        if op == "eq":
            return ("id = %s", [record_id]) if record_id is not None else ("false", [])
        if op == "neq":
            return ("id <> %s", [record_id]) if record_id is not None else ("true", [])
    if op == "eq":
        return "data -> %s = %s::jsonb", [field, json.dumps(value)]
    if op == "neq":
        return "data -> %s is distinct from %s::jsonb", [field, json.dumps(value)]
    if op == "icontains":
        return "data ->> %s ilike %s", [field, f"%{_escape_like(value)}%"]
    raise ValueError(f"Unknown op: {op}")


def compile_order(order) -> tuple[str, list]:
    parts: list[str] = []
    params: list = []
    for field, direction in order or (("id", "asc"),):
        if not _is_safe_field_id(field):
            raise ValueError(f"Unsafe field id: {field!r}")
        keyword = "desc" if str(direction).lower() == "desc" else "asc"
        if field == "id":
            parts.append(f"id {keyword}")
        else:
            parts.append(f"data -> %s {keyword}")
            params.append(field)
    return ", ".join(parts), params


def _row(row: dict | None) -> dict | None:
    if not row:
        return None
    data = row.get("data") or {}
    if isinstance(data, str):
        data = json.loads(data)
    record = copy.deepcopy(data)
    record["id"] = row.get("id")
    return record


class DbRecordStore:
    def __init__(self) -> None:
        self._schema_ready = False
        self._schema_lock = threading.Lock()

    def ensure_schema(self) -> None:
        with self._schema_lock:
            if self._schema_ready:
                return
            with get_conn() as conn:
                execute(conn, SCHEMA_SQL, query_name=f"{TABLE}.ensure_schema")
            self._schema_ready = True
            logger.info("db_schema_ready table=%s", TABLE)

    def select(
        self,
        table: str,
        where: dict | None = None,
        order=None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict]:
        self.ensure_schema()
        where_sql, where_params = compile_where(where)
        order_sql, order_params = compile_order(order)
        sql = f"select id, data from {TABLE} where entity=%s and ({where_sql}) order by {order_sql}"
        params: list[Any] = [table, *where_params, *order_params]
        if limit is not None:
            sql += " limit %s"
            params.append(limit)
        if offset:
            sql += " offset %s"
            params.append(offset)
        with get_conn() as conn:
            rows = fetch_all(conn, sql, params, query_name=f"{TABLE}.select")
        return [_row(r) for r in rows]

    def select_one(self, table: str, record_id: Any) -> dict | None:
        key = parse_int(record_id)
        if key is None:
            return None
        self.ensure_schema()
        with get_conn() as conn:
            row = fetch_one(
                conn,
                f"select id, data from {TABLE} where entity=%s and id=%s",
                [table, key],
                query_name=f"{TABLE}.select_one",
            )
        return _row(row)

    def insert(self, table: str, data: dict) -> dict:
        self.ensure_schema()
        payload = {k: v for k, v in data.items() if k != "id"}
        with get_conn() as conn:
            row = fetch_one(
                conn,
                f"insert into {TABLE} (entity, data) values (%s, %s::jsonb) returning id, data",
                [table, json.dumps(payload)],
                query_name=f"{TABLE}.insert",
            )
        return _row(row)

    def update(self, table: str, record_id: Any, patch: dict) -> dict | None:
        key = parse_int(record_id)
        if key is None:
            return None
        self.ensure_schema()
        payload = {k: v for k, v in patch.items() if k != "id"}
        with get_conn() as conn:
            row = fetch_one(
                conn,
                f"update {TABLE} set data = data || %s::jsonb where entity=%s and id=%s returning id, data",
                [json.dumps(payload), table, key],
                query_name=f"{TABLE}.update",
            )
        return _row(row)

    def delete(self, table: str, record_id: Any) -> dict | None:
        key = parse_int(record_id)
        if key is None:
            return None
        self.ensure_schema()
        with get_conn() as conn:
            row = fetch_one(
                conn,
                f"delete from {TABLE} where entity=%s and id=%s returning id, data",
                [table, key],
                query_name=f"{TABLE}.delete",
            )
        return _row(row)
