"""Filter expression DSL for record queries.

A filter is a plain dict tree:

    {"op": "and", "conditions": [...]}
    {"op": "or", "conditions": [...]}
    {"op": "eq", "field": "isActive", "value": True}
    {"op": "neq", "field": "id", "value": 3}
    {"op": "icontains", "field": "name", "value": "doe"}

`None` stands for "match every row". Builders never mutate their inputs, so a
query can be assembled by folding a list of predicates into one expression.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable


MAX_DEPTH = 16
LEAF_OPS = {"eq", "neq", "icontains"}
GROUP_OPS = {"and", "or"}


@dataclass
class ConditionEvalError(Exception):
    code: str
    message: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


class ConditionSchemaError(ConditionEvalError):
    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__("CONDITION_SCHEMA_ERROR", message, path)


class ConditionDepthError(ConditionEvalError):
    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__("CONDITION_DEPTH_EXCEEDED", message, path)


class UnknownOpError(ConditionEvalError):
    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__("CONDITION_UNKNOWN_OP", message, path)


def eq(field: str, value: Any) -> dict:
    return {"op": "eq", "field": field, "value": value}


def neq(field: str, value: Any) -> dict:
    return {"op": "neq", "field": field, "value": value}


def icontains(field: str, value: str) -> dict:
    return {"op": "icontains", "field": field, "value": value}


def _fold(op: str, conditions: Iterable[dict | None]) -> dict | None:
    flat: list[dict] = []
    for cond in conditions:
        if cond is None:
            continue
        if cond.get("op") == op:
            flat.extend(cond.get("conditions") or [])
        else:
            flat.append(cond)
    if not flat:
        return None
    if len(flat) == 1:
        return flat[0]
    return {"op": op, "conditions": flat}


def all_of(conditions: Iterable[dict | None]) -> dict | None:
    """AND-fold predicates; `None` entries are skipped."""
    return _fold("and", conditions)


def any_of(conditions: Iterable[dict | None]) -> dict | None:
    """OR-fold predicates; `None` entries are skipped."""
    return _fold("or", conditions)


def _depth_check(depth: int, path: str) -> None:
    if depth > MAX_DEPTH:
        raise ConditionDepthError("Depth limit exceeded", path)


def validate_condition(cond: dict | None, path: str = "$", depth: int = 0) -> None:
    if cond is None:
        return
    _depth_check(depth, path)
    if not isinstance(cond, dict):
        raise ConditionSchemaError("Condition must be an object", path)
    op = cond.get("op")
    if op in GROUP_OPS:
        children = cond.get("conditions")
        if not isinstance(children, (list, tuple)):
            raise ConditionSchemaError(f"{op} requires a conditions list", path)
        for idx, child in enumerate(children):
            if child is None:
                raise ConditionSchemaError("Nested condition cannot be null", f"{path}.conditions[{idx}]")
            validate_condition(child, f"{path}.conditions[{idx}]", depth + 1)
        return
    if op not in LEAF_OPS:
        raise UnknownOpError(f"Unknown op: {op}", path)
    field = cond.get("field")
    if not isinstance(field, str) or not field:
        raise ConditionSchemaError("field must be a non-empty string", f"{path}.field")
    if op == "icontains" and not isinstance(cond.get("value"), str):
        raise ConditionSchemaError("icontains value must be a string", f"{path}.value")


def _same_kind(left: Any, right: Any) -> bool:
    # True == 1 in Python; a boolean column never matches an integer literal
    return isinstance(left, bool) == isinstance(right, bool)


def _eval(cond: dict, row: dict) -> bool:
    op = cond["op"]
    if op == "and":
        return all(_eval(c, row) for c in cond["conditions"])
    if op == "or":
        return any(_eval(c, row) for c in cond["conditions"])
    left = row.get(cond["field"]) if isinstance(row, dict) else None
    right = cond.get("value")
    if op == "eq":
        return _same_kind(left, right) and left == right
    if op == "neq":
        return not (_same_kind(left, right) and left == right)
    if op == "icontains":
        return isinstance(left, str) and right.lower() in left.lower()
    raise UnknownOpError(f"Unknown op: {op}")


def eval_condition(cond: dict | None, row: dict) -> bool:
    if cond is None:
        return True
    validate_condition(cond)
    return _eval(cond, row)
