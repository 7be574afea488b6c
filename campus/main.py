"""FastAPI app for the campus volunteering records backend."""

from __future__ import annotations

import os
import re
import sys
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


_load_env_file(ROOT / "campus" / ".env")

import json
import logging
import time

import anyio

from campus.auth import ROLES, Authenticator
from campus.db import get_db_ms, get_db_stats, reset_db_ms
from campus.dispatch import dispatch
from campus.responses import Outcome, error_outcome, internal_error, to_response
from campus.stores import MemoryRecordStore


app = FastAPI(title="Campus Records")
logger = logging.getLogger("campus")
logging.basicConfig(level=logging.INFO)
_LOCAL_CORS_ORIGINS = {
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
}
_LOCAL_CORS_REGEX = re.compile(r"^http://(localhost|127\.0\.0\.1):\d+$")
_EXTRA_CORS_ORIGINS = {
    origin.strip().rstrip("/")
    for origin in os.getenv("CAMPUS_CORS_ORIGINS", "").split(",")
    if origin.strip()
}
_CORS_ORIGINS = _LOCAL_CORS_ORIGINS | _EXTRA_CORS_ORIGINS

USE_DB = os.getenv("USE_DB", "").strip() == "1"
APP_ENV = os.getenv("APP_ENV", os.getenv("ENV", "dev")).strip().lower() or "dev"
IS_DEV = APP_ENV == "dev"
REQ_SLOW_MS = float(os.getenv("CAMPUS_REQ_SLOW_MS", "250"))

if USE_DB:
    from campus.stores_db import DbRecordStore

    records_store = DbRecordStore()
else:
    records_store = MemoryRecordStore()

logger.info("campus_start env=%s use_db=%s", APP_ENV, USE_DB)


@app.middleware("http")
async def local_cors_fallback_middleware(request: Request, call_next):
    origin = request.headers.get("origin")
    if request.method == "OPTIONS":
        response = JSONResponse({}, status_code=200)
    else:
        response = await call_next(request)
    normalized_origin = origin.rstrip("/") if isinstance(origin, str) else origin
    if normalized_origin and (normalized_origin in _CORS_ORIGINS or _LOCAL_CORS_REGEX.match(normalized_origin)):
        response.headers.setdefault("Access-Control-Allow-Origin", origin)
        response.headers.setdefault("Access-Control-Allow-Credentials", "true")
        response.headers.setdefault("Access-Control-Allow-Headers", "*")
        response.headers.setdefault("Access-Control-Allow-Methods", "*")
        response.headers.setdefault("Vary", "Origin")
    return response


@app.middleware("http")
async def timing_middleware(request: Request, call_next):
    reset_db_ms()
    start = time.perf_counter()
    response = await call_next(request)
    total_ms = (time.perf_counter() - start) * 1000
    db_ms = get_db_ms()
    db_stats = get_db_stats()
    route = request.scope.get("route")
    route_name = getattr(route, "name", None) or "unknown"
    logger.info(
        "%s %s %s route=%s total_ms=%.1f db_ms=%.1f db_q=%s",
        request.method,
        request.url.path,
        response.status_code,
        route_name,
        total_ms,
        db_ms,
        db_stats.get("queries", 0),
    )
    if total_ms >= REQ_SLOW_MS:
        logger.warning(
            "slow_request method=%s path=%s route=%s total_ms=%.1f db_ms=%.1f status=%s",
            request.method,
            request.url.path,
            route_name,
            total_ms,
            db_ms,
            response.status_code,
        )
    if IS_DEV:
        response.headers["X-Req-MS"] = f"{total_ms:.1f}"
        response.headers["X-DB-MS"] = f"{db_ms:.1f}"
        response.headers["X-Queries"] = str(db_stats.get("queries", 0))
    return response


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error method=%s path=%s", request.method, request.url.path)
    return to_response(internal_error(exc))


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


async def _read_body(request: Request) -> tuple[object, Outcome | None]:
    raw = await request.body()
    if not raw or not raw.strip():
        return {}, None
    try:
        return json.loads(raw), None
    except ValueError:
        return None, error_outcome("INVALID_JSON", "Request body must be valid JSON")


async def _run(resource: str, operation: str, request: Request, body=None, path_id: str | None = None):
    params = dict(request.query_params)
    outcome = await anyio.to_thread.run_sync(
        lambda: dispatch(records_store, resource, operation, params=params, body=body, path_id=path_id)
    )
    return to_response(outcome)


@app.post("/api/auth/login")
async def login(request: Request):
    body, error = await _read_body(request)
    if error is not None:
        return to_response(error)
    if not isinstance(body, dict):
        return to_response(error_outcome("INVALID_PAYLOAD", "Request body must be a JSON object"))
    role = body.get("role") or None
    if role is not None and role not in ROLES:
        return to_response(error_outcome("INVALID_ROLE", f"role must be one of {', '.join(ROLES)}"))
    authenticator = Authenticator(records_store)
    result = await anyio.to_thread.run_sync(
        lambda: authenticator.authenticate(body.get("id"), body.get("password"), role=role)
    )
    if result is None:
        return to_response(error_outcome("INVALID_CREDENTIALS", "Invalid credentials", status=401))
    return to_response(Outcome(200, result))


@app.get("/api/{resource}")
async def list_records(resource: str, request: Request):
    return await _run(resource, "list", request)


@app.post("/api/{resource}")
async def create_record(resource: str, request: Request):
    body, error = await _read_body(request)
    if error is not None:
        return to_response(error)
    return await _run(resource, "create", request, body=body)


@app.put("/api/{resource}")
async def update_record_by_query(resource: str, request: Request):
    body, error = await _read_body(request)
    if error is not None:
        return to_response(error)
    return await _run(resource, "update", request, body=body)


@app.delete("/api/{resource}")
async def delete_record_by_query(resource: str, request: Request):
    return await _run(resource, "delete", request)


@app.get("/api/{resource}/{record_id}")
async def get_record(resource: str, record_id: str, request: Request):
    return await _run(resource, "get", request, path_id=record_id)


@app.put("/api/{resource}/{record_id}")
async def update_record(resource: str, record_id: str, request: Request):
    body, error = await _read_body(request)
    if error is not None:
        return to_response(error)
    return await _run(resource, "update", request, body=body, path_id=record_id)


@app.delete("/api/{resource}/{record_id}")
async def delete_record(resource: str, record_id: str, request: Request):
    return await _run(resource, "delete", request, path_id=record_id)
