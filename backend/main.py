from __future__ import annotations

import logging
import os
import time
import uuid
from pathlib import Path

from dotenv import load_dotenv

# Load .env from backend directory so DATABASE_URL etc. are available
load_dotenv(Path(__file__).resolve().parent / ".env")

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from starlette.middleware.base import BaseHTTPMiddleware

from db.errors import translate_db_error
from db.session import engine
from routes.api import router as api_router
from services.errors import LeaseCoreError

VERSION = (os.environ.get("GIT_COMMIT") or "").strip() or "unknown"

# Same logger as uvicorn so request lines and service lines interleave
_LOG = logging.getLogger("uvicorn.error")
_LOG.setLevel((os.environ.get("LOG_LEVEL") or "INFO").strip().upper())

app = FastAPI(title="Lease Core Backend", version="0.1.0")

# CORS: use ALLOWED_ORIGINS env (comma-separated) if set, else default
_origins_env = os.environ.get("ALLOWED_ORIGINS", "").strip()
if _origins_env:
    ALLOWED_ORIGINS = [o.strip() for o in _origins_env.split(",") if o.strip()]
else:
    ALLOWED_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())[:8]
        request.state.request_id = request_id
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        _LOG.info(
            "request_id=%s method=%s path=%s status=%s duration_ms=%.0f",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        response.headers["X-Request-Id"] = request_id
        return response


app.add_middleware(RequestLogMiddleware)
app.include_router(api_router)


def _error_response(request: Request, status_code: int, error: dict) -> JSONResponse:
    error["request_id"] = getattr(request.state, "request_id", None)
    return JSONResponse(status_code=status_code, content=jsonable_encoder({"error": error}))


@app.exception_handler(LeaseCoreError)
async def lease_core_error_handler(request: Request, exc: LeaseCoreError):
    if exc.status_code >= 500:
        _LOG.error("ERROR code=%s message=%s", exc.code, exc.message)
    elif exc.status_code == 409:
        _LOG.info("CONFLICT code=%s message=%s", exc.code, exc.message)
    return _error_response(request, exc.status_code, exc.to_dict())


@app.exception_handler(DBAPIError)
async def db_error_handler(request: Request, exc: DBAPIError):
    # Storage errors raised outside a transaction() block (plain reads)
    err = translate_db_error(exc)
    return _error_response(request, err.status_code, err.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return _error_response(
        request, 400, {"code": "VALIDATION_ERROR", "message": "Request validation failed", "details": details}
    )


@app.on_event("startup")
def startup_log() -> None:
    _LOG.info(
        "Lease core starting version=%s dialect=%s origins=%s",
        VERSION,
        engine.dialect.name,
        ",".join(ALLOWED_ORIGINS),
    )


@app.get("/health")
def health():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except DBAPIError as e:
        _LOG.error("HEALTH db unavailable err=%s", str(e)[:300])
        raise HTTPException(status_code=503, detail="Database unavailable") from e
    return {"status": "ok", "version": VERSION}


@app.get("/version")
def version():
    return {"version": VERSION}
