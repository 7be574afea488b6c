"""Field validators and descriptor-driven payload validation."""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass
from typing import Any

from campus.entities import EntityDescriptor, FieldSpec


@dataclass
class RecordError(Exception):
    code: str
    message: str
    status: int = 400
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.code}: {self.message}"


_INT_RE = re.compile(r"[+-]?\d+")


def is_blank(value: Any) -> bool:
    return value is None or value == ""


def parse_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str) and _INT_RE.fullmatch(value.strip()):
        return int(value.strip())
    return None


def require_string(value: Any, code: str, path: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise RecordError(code, f"{path} must be a non-empty string", path=path)
    return value.strip()


def check_pattern(value: str, pattern: str, code: str, path: str) -> str:
    if not re.fullmatch(pattern, value):
        raise RecordError(code, f"{path} has an invalid format", path=path)
    return value


def nullable_string(value: Any, code: str, path: str, blank_to_none: bool = False) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise RecordError(code, f"{path} must be a string or null", path=path)
    if blank_to_none:
        return value.strip() or None
    return value


def strict_bool(value: Any, code: str, path: str) -> bool:
    if not isinstance(value, bool):
        raise RecordError(code, f"{path} must be a boolean", path=path)
    return value


def one_of(value: Any, choices: tuple, code: str, path: str) -> Any:
    if value not in choices or isinstance(value, bool):
        allowed = " or ".join(f'"{c}"' for c in choices)
        raise RecordError(code, f"{path} must be either {allowed}", path=path)
    return value


def integer_id(value: Any, code: str, path: str) -> int:
    parsed = parse_int(value)
    if parsed is None:
        raise RecordError(code, f"{path} must be a valid integer", path=path)
    return parsed


def id_list(value: Any) -> list:
    # members are not checked against the referenced tables
    return copy.deepcopy(value) if isinstance(value, list) else []


def clean_value(field: FieldSpec, value: Any) -> Any:
    code = field.invalid
    path = field.name
    if field.kind == "string":
        cleaned = require_string(value, code, path)
        if field.pattern:
            check_pattern(cleaned, field.pattern, field.pattern_code or code, path)
        return cleaned
    if field.kind == "nullable_string":
        return nullable_string(value, code, path, blank_to_none=field.blank_to_none)
    if field.kind == "boolean":
        return strict_bool(value, code, path)
    if field.kind == "enum":
        return one_of(value, field.choices, code, path)
    if field.kind == "integer":
        return integer_id(value, code, path)
    if field.kind == "id_list":
        return id_list(value)
    raise ValueError(f"Unknown field kind: {field.kind}")


def validate_payload(entity: EntityDescriptor, data: Any, for_create: bool) -> dict:
    """Return the clean change-set for `data`, raising the first failure.

    On create every required field must be present (absent, null and "" all
    count as missing) before any value is checked, and omitted optional
    fields take their declared defaults. On update only updatable keys that
    are present are validated; everything else is dropped.
    """
    if not isinstance(data, dict):
        raise RecordError("INVALID_PAYLOAD", "Request body must be a JSON object", path="body")

    clean: dict = {}
    if for_create:
        for field in entity.fields:
            if field.required and is_blank(data.get(field.name)):
                raise RecordError(field.missing, f"{field.name} is required", path=field.name)
        for field in entity.fields:
            value = data.get(field.name)
            if field.name in data and not (value is None and field.has_default):
                clean[field.name] = clean_value(field, value)
            elif field.has_default:
                clean[field.name] = copy.deepcopy(field.default)
        return clean

    for field in entity.fields:
        if not field.updatable or field.name not in data:
            continue
        clean[field.name] = clean_value(field, data[field.name])
    return clean
