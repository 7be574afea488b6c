"""Map pipeline outcomes to HTTP status + JSON body."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from campus.records_validation import RecordError


@dataclass(frozen=True)
class Outcome:
    status: int
    body: Any


def ok_outcome(payload: Any, status: int = 200) -> Outcome:
    return Outcome(status, payload)


def created_outcome(row: dict) -> Outcome:
    return Outcome(201, row)


def error_outcome(code: str | None, message: str, status: int = 400) -> Outcome:
    body = {"error": message}
    if code:
        body["code"] = code
    return Outcome(status, body)


def from_record_error(exc: RecordError) -> Outcome:
    return error_outcome(exc.code, exc.message, status=exc.status)


def internal_error(exc: BaseException) -> Outcome:
    # message only, never the traceback
    return error_outcome(None, f"Internal server error: {exc}", status=500)


def to_response(outcome: Outcome) -> JSONResponse:
    return JSONResponse(jsonable_encoder(outcome.body), status_code=outcome.status)
