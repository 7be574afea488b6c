"""Single parameterized engine behind every resource endpoint."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from campus.entities import EntityDescriptor, get_entity
from campus.mutations import (
    create_record,
    delete_record,
    fetch_record,
    load_by_key,
    load_record,
    update_record,
    update_record_by_key,
)
from campus.query_compose import compose_list_query, requested_id, run_query
from campus.records_validation import RecordError
from campus.responses import (
    Outcome,
    created_outcome,
    error_outcome,
    from_record_error,
    internal_error,
    ok_outcome,
)


logger = logging.getLogger("campus.records")


def _list(store, entity: EntityDescriptor, params: Mapping[str, Any]) -> Outcome:
    record_id = requested_id(params)
    if record_id is not None:
        return ok_outcome(load_record(store, entity, record_id))
    lookup = entity.key_lookup
    if lookup is not None:
        key = params.get(lookup.param)
        if key is None:
            key = lookup.default
        return ok_outcome(load_by_key(store, entity, key))
    query = compose_list_query(entity, params)
    return ok_outcome(run_query(store, query))


def _update(store, entity: EntityDescriptor, params: Mapping[str, Any], body: Any, path_id: Any) -> Outcome:
    lookup = entity.key_lookup
    if path_id is None and lookup is not None and params.get("id") in (None, ""):
        return ok_outcome(update_record_by_key(store, entity, params.get(lookup.param), body))
    target = path_id if path_id is not None else params.get("id")
    return ok_outcome(update_record(store, entity, target, body))


def _run(store, entity: EntityDescriptor, operation: str, params: Mapping[str, Any], body: Any, path_id: Any) -> Outcome:
    if operation == "list":
        return _list(store, entity, params)
    if operation == "get":
        return ok_outcome(fetch_record(store, entity, path_id))
    if operation == "create":
        return created_outcome(create_record(store, entity, body))
    if operation == "update":
        return _update(store, entity, params, body, path_id)
    if operation == "delete":
        target = path_id if path_id is not None else params.get("id")
        return ok_outcome(delete_record(store, entity, target))
    return error_outcome("METHOD_NOT_ALLOWED", f"Unsupported operation: {operation}", status=405)


def dispatch(
    store,
    resource: str,
    operation: str,
    params: Mapping[str, Any] | None = None,
    body: Any = None,
    path_id: Any = None,
) -> Outcome:
    entity = get_entity(resource)
    if entity is None:
        return error_outcome("RESOURCE_NOT_FOUND", f"Unknown resource: {resource}", status=404)
    if operation not in entity.operations:
        return error_outcome("METHOD_NOT_ALLOWED", f"{operation} is not supported for {entity.resource}", status=405)
    params = params or {}
    try:
        return _run(store, entity, operation, params, body, path_id)
    except RecordError as exc:
        logger.info("record_rejected entity=%s op=%s code=%s path=%s", entity.resource, operation, exc.code, exc.path)
        return from_record_error(exc)
    except Exception as exc:
        logger.exception("record_failed entity=%s op=%s", entity.resource, operation)
        return internal_error(exc)
