"""FastAPI application entry point."""

from __future__ import annotations

import logging
import logging.handlers
import math
import os
import sys
import time
import uuid
from contextlib import asynccontextmanager

# ── Logging configuration (done once, before any app imports) ─

_LOG_DIR = os.path.join(os.path.dirname(__file__), "..", "logs")
os.makedirs(_LOG_DIR, exist_ok=True)

_fmt = logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s")
_stream_handler = logging.StreamHandler(sys.stdout)
_stream_handler.setFormatter(_fmt)
_file_handler = logging.handlers.RotatingFileHandler(
    os.path.join(_LOG_DIR, "app.log"), maxBytes=10 * 1024 * 1024, backupCount=3
)
_file_handler.setFormatter(_fmt)

logging.basicConfig(level=logging.INFO, handlers=[_stream_handler, _file_handler])
# Quieten noisy third-party loggers
for _noisy in ("httpx", "httpcore", "uvicorn.access"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from quizmaker.core.config import settings
from quizmaker.core.exceptions import (
    GenerationBackendError,
    QuizmakerError,
    QuizValidationError,
    RateLimited,
    StoreError,
)
from quizmaker.db.prisma_client import connect_db, disconnect_db
from quizmaker.dependencies import get_job_store, get_quiz_store

from quizmaker.routes.cron import router as cron_router
from quizmaker.routes.health import router as health_router
from quizmaker.routes.quiz import router as quiz_router
from quizmaker.routes.quiz_jobs import router as quiz_jobs_router
from quizmaker.routes.quizzes import router as quizzes_router

logger = logging.getLogger("main")


# ── Lifespan ──────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    # 1. Connect to Prisma / PostgreSQL
    await connect_db()

    # 2. Make sure both tables exist (deployments that never ran migrations)
    await get_job_store().ensure_table()
    await get_quiz_store().ensure_table()

    logger.info(
        "Quiz service started (provider=%s, rate window=%.0fs, batch size=%d)",
        settings.LLM_PROVIDER, settings.GENERATION_RATE_LIMIT_SECONDS, settings.JOB_BATCH_SIZE,
    )

    yield

    # ── Shutdown ──────────────────────────────────────────
    await disconnect_db()


# ── App ───────────────────────────────────────────────────


app = FastAPI(lifespan=lifespan, title="Quizmaker API", version="1.0.0")


# ── Middleware ────────────────────────────────────────────


@app.middleware("http")
async def log_requests(request, call_next):
    request_id = uuid.uuid4().hex[:8]
    request.state.request_id = request_id
    start = time.time()
    try:
        response = await call_next(request)
        dt = time.time() - start
        logger.info("%s %s %s %.2fs [%s]", request.method, request.url.path, response.status_code, dt, request_id)
        response.headers["X-Request-ID"] = request_id
        return response
    except Exception as e:
        dt = time.time() - start
        logger.error("%s %s ERROR %s %.2fs [%s]", request.method, request.url.path, type(e).__name__, dt, request_id)
        raise


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)


# Request body size limiter (study text is pasted, never uploaded)
_MAX_BODY_SIZE = 2 * 1024 * 1024


@app.middleware("http")
async def limit_request_body(request, call_next):
    content_length = request.headers.get("content-length")
    if content_length and not content_length.strip().isdigit():
        return JSONResponse(status_code=400, content={"detail": "Invalid Content-Length header"})
    if content_length and int(content_length) > _MAX_BODY_SIZE:
        return JSONResponse(status_code=413, content={"detail": "Request body too large"})
    return await call_next(request)


# ── Error handlers ────────────────────────────────────────
# CORSMiddleware doesn't add headers to error responses, so we must.


def _cors_headers(origin: str | None = None) -> dict:
    allowed = origin if origin in settings.CORS_ORIGINS else (settings.CORS_ORIGINS[0] if settings.CORS_ORIGINS else "*")
    return {
        "Access-Control-Allow-Origin": allowed,
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "*",
        "Access-Control-Allow-Headers": "*",
    }


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    headers = _cors_headers(request.headers.get("origin"))
    headers.update(exc.headers or {})
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=headers,
    )


@app.exception_handler(QuizmakerError)
async def quizmaker_exception_handler(request, exc):
    """Pipeline errors that escaped a route's own handling."""
    request_id = getattr(request.state, "request_id", "unknown")
    headers = _cors_headers(request.headers.get("origin"))

    if isinstance(exc, RateLimited):
        status_code = 429
        headers["Retry-After"] = str(max(1, math.ceil(exc.retry_after)))
    elif isinstance(exc, StoreError):
        status_code = 503
    elif isinstance(exc, (GenerationBackendError, QuizValidationError)):
        status_code = 502
    else:
        status_code = 500

    logger.error("%s [request_id=%s]: %s", type(exc).__name__, request_id, exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "request_id": request_id},
        headers=headers,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    request_id = getattr(request.state, "request_id", "unknown")
    logger.exception("Unhandled %s [request_id=%s]", type(exc).__name__, request_id)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "request_id": request_id},
        headers=_cors_headers(request.headers.get("origin")),
    )


# ── Routes ────────────────────────────────────────────────

# Public
app.include_router(health_router)
app.include_router(cron_router)

# Quiz generation and storage (owner from Bearer token or anonymousId)
app.include_router(quiz_router)
app.include_router(quiz_jobs_router)
app.include_router(quizzes_router)
