"""Compose bounded, ordered list reads from request parameters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from condition_eval import all_of, any_of, eq, icontains
from campus.entities import EntityDescriptor
from campus.records_validation import RecordError, parse_int


DEFAULT_LIMIT = 10
MAX_LIMIT = 100


@dataclass(frozen=True)
class ReadQuery:
    table: str
    where: dict | None
    order: tuple[tuple[str, str], ...]
    limit: int
    offset: int


def clamp_limit(raw: Any) -> int:
    value = parse_int(raw) if raw not in (None, "") else None
    if value is None:
        return DEFAULT_LIMIT
    return max(1, min(value, MAX_LIMIT))


def clamp_offset(raw: Any) -> int:
    value = parse_int(raw) if raw not in (None, "") else None
    if value is None:
        return 0
    return max(0, value)


def requested_id(params: Mapping[str, Any]) -> int | None:
    """Parse the `id` shortcut; None when the parameter is absent or empty."""
    raw = params.get("id")
    if raw in (None, ""):
        return None
    parsed = parse_int(raw)
    if parsed is None:
        raise RecordError("INVALID_ID", "Valid ID is required", path="id")
    return parsed


def search_predicate(entity: EntityDescriptor, term: Any) -> dict | None:
    if not isinstance(term, str) or not term or not entity.search_fields:
        return None
    return any_of(icontains(name, term) for name in entity.search_fields)


def flag_predicates(entity: EntityDescriptor, params: Mapping[str, Any]) -> list[dict]:
    # any present value enables the filter; only "true" means true
    return [eq(name, params.get(name) == "true") for name in entity.bool_filters if params.get(name) is not None]


def scope_predicates(entity: EntityDescriptor, params: Mapping[str, Any]) -> list[dict]:
    predicates = []
    for scope in entity.scopes:
        raw = params.get(scope.param)
        if raw in (None, ""):
            continue
        if scope.kind == "integer":
            value = parse_int(raw)
            if value is None:
                raise RecordError(
                    scope.invalid_code or f"INVALID_{scope.param.upper()}",
                    scope.message or f"Invalid {scope.param}",
                    path=scope.param,
                )
        else:
            value = raw
        predicates.append(eq(scope.field, value))
    return predicates


def compose_list_query(entity: EntityDescriptor, params: Mapping[str, Any]) -> ReadQuery:
    predicates = [
        search_predicate(entity, params.get("search")),
        *flag_predicates(entity, params),
        *scope_predicates(entity, params),
    ]
    return ReadQuery(
        table=entity.table,
        where=all_of(predicates),
        order=entity.order,
        limit=clamp_limit(params.get("limit")),
        offset=clamp_offset(params.get("offset")),
    )


def run_query(store, query: ReadQuery) -> list[dict]:
    return store.select(query.table, where=query.where, order=query.order, limit=query.limit, offset=query.offset)
