"""Mutation pipeline: identify -> load -> validate -> check -> apply -> return."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from condition_eval import all_of, eq, neq
from campus.entities import NO_UPDATES_REJECT, NO_UPDATES_TOUCH, EntityDescriptor
from campus.records_validation import RecordError, is_blank, parse_int, validate_payload


logger = logging.getLogger("campus.records")

_STAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"


def format_stamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime(_STAMP_FORMAT)[:-3] + "Z"


def parse_stamp(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None


def now_stamp() -> str:
    return format_stamp(datetime.now(timezone.utc))


def next_stamp(previous: str | None) -> str:
    """Current instant, pushed past `previous` when the clock has not moved on."""
    current = datetime.now(timezone.utc)
    # stamps carry milliseconds only
    current = current.replace(microsecond=current.microsecond // 1000 * 1000)
    before = parse_stamp(previous) if isinstance(previous, str) else None
    if before is not None and current <= before:
        current = before + timedelta(milliseconds=1)
    return format_stamp(current)


def parse_record_id(raw: Any) -> int:
    record_id = parse_int(raw) if not is_blank(raw) else None
    if record_id is None:
        raise RecordError("INVALID_ID", "Valid ID is required", path="id")
    return record_id


def _not_found(entity: EntityDescriptor) -> RecordError:
    return RecordError(entity.not_found_code, entity.not_found_message, status=404)


def load_record(store, entity: EntityDescriptor, record_id: int) -> dict:
    row = store.select_one(entity.table, record_id)
    if row is None:
        raise _not_found(entity)
    return row


def fetch_record(store, entity: EntityDescriptor, raw_id: Any) -> dict:
    return load_record(store, entity, parse_record_id(raw_id))


def load_by_key(store, entity: EntityDescriptor, key: str) -> dict:
    lookup = entity.key_lookup
    rows = store.select(entity.table, where=eq(lookup.field, key), limit=1)
    if not rows:
        raise _not_found(entity)
    return rows[0]


def _check_unique(store, entity: EntityDescriptor, clean: dict, current: dict | None = None) -> None:
    for constraint in entity.unique:
        if constraint.field not in clean:
            continue
        value = clean[constraint.field]
        if current is not None and current.get(constraint.field) == value:
            continue
        where = eq(constraint.field, value)
        if current is not None:
            where = all_of([where, neq("id", current["id"])])
        if store.select(entity.table, where=where, limit=1):
            raise RecordError(constraint.code, constraint.message, path=constraint.field)


def _check_foreign_keys(store, entity: EntityDescriptor, clean: dict) -> None:
    for fk in entity.foreign_keys:
        if fk.field in clean and store.select_one(fk.table, clean[fk.field]) is None:
            raise RecordError(fk.code, fk.message, status=404, path=fk.field)


def create_record(store, entity: EntityDescriptor, body: Any) -> dict:
    clean = validate_payload(entity, body, for_create=True)
    _check_unique(store, entity, clean)
    _check_foreign_keys(store, entity, clean)
    now = now_stamp()
    if entity.created_field:
        clean[entity.created_field] = now
    if entity.updated_field:
        clean[entity.updated_field] = now
    row = store.insert(entity.table, clean)
    logger.info("record_created entity=%s id=%s", entity.resource, row.get("id"))
    return row


def _apply_update(store, entity: EntityDescriptor, current: dict, body: Any) -> dict:
    clean = validate_payload(entity, body, for_create=False)
    if not clean:
        if entity.no_updates == NO_UPDATES_REJECT:
            raise RecordError("NO_UPDATES", "No valid fields to update")
        if entity.no_updates != NO_UPDATES_TOUCH or not entity.updated_field:
            return current
    _check_unique(store, entity, clean, current=current)
    if entity.updated_field:
        clean[entity.updated_field] = next_stamp(current.get(entity.updated_field))
    row = store.update(entity.table, current["id"], clean)
    if row is None:
        # deleted between load and apply
        raise _not_found(entity)
    logger.info("record_updated entity=%s id=%s fields=%s", entity.resource, row.get("id"), sorted(clean))
    return row


def update_record(store, entity: EntityDescriptor, raw_id: Any, body: Any) -> dict:
    current = load_record(store, entity, parse_record_id(raw_id))
    return _apply_update(store, entity, current, body)


def update_record_by_key(store, entity: EntityDescriptor, key: Any, body: Any) -> dict:
    lookup = entity.key_lookup
    if not isinstance(key, str) or not key.strip():
        raise RecordError(lookup.missing_code, lookup.message, path=lookup.param)
    if isinstance(body, dict):
        for field in entity.fields:
            value = body.get(field.name)
            if field.required and field.updatable and (is_blank(value) or (isinstance(value, str) and not value.strip())):
                raise RecordError(field.missing, f"{field.name} is required", path=field.name)
    current = load_by_key(store, entity, key)
    return _apply_update(store, entity, current, body)


def delete_record(store, entity: EntityDescriptor, raw_id: Any) -> dict:
    record_id = parse_record_id(raw_id)
    load_record(store, entity, record_id)
    row = store.delete(entity.table, record_id)
    if row is None:
        raise _not_found(entity)
    logger.info("record_deleted entity=%s id=%s", entity.resource, record_id)
    return {"message": entity.deleted_message, entity.delete_key: row}
