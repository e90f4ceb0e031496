# main.py — DevTrack API
# Application wiring:
# - Startup config checks (JWT key, upload storage, database)
# - Request context middleware (request/correlation IDs, timing, security headers)
# - Uniform JSON error bodies carrying the request ID
# - Router registration, /health and /

import os
import uuid
import time
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from sqlalchemy import text

from database import init_db, close_db, get_db_context
from telemetry import setup_telemetry

logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
)
logger = logging.getLogger("devtrack")

APP_VERSION = "1.0.0"
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


def _check_startup_config():
    """Log every configuration problem found; True when there are none."""
    problems = []

    if len(os.getenv("JWT_SECRET_KEY", "")) < 32:
        problems.append("JWT_SECRET_KEY missing or under 32 chars; issued tokens die with the process")

    storage_root = os.getenv("FILE_STORAGE_ROOT", "./data/files")
    try:
        os.makedirs(storage_root, exist_ok=True)
    except OSError as e:
        problems.append(f"Attachment storage {storage_root} cannot be created: {e}")
    else:
        if not os.access(storage_root, os.W_OK):
            problems.append(f"Attachment storage {storage_root} is read-only; task uploads will fail")

    if ENVIRONMENT == "production" and os.getenv("DATABASE_URL", "").startswith("sqlite"):
        problems.append("Running production on SQLite; point DATABASE_URL at PostgreSQL")

    for problem in problems:
        logger.warning(problem)
    return not problems


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"DevTrack v{APP_VERSION} starting ({ENVIRONMENT})")
    await init_db()
    _check_startup_config()
    setup_telemetry(app)
    yield
    await close_db()
    logger.info("DevTrack stopped")


app = FastAPI(
    title="DevTrack",
    description="Role-based project management: projects, tasks, assignments, work logs and manager analytics",
    version=APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID", "X-Correlation-ID"],
    # Export downloads need the filename visible to browsers
    expose_headers=["X-Request-ID", "X-Correlation-ID", "Content-Disposition"],
)


# ============================================================
# REQUEST CONTEXT
# ============================================================

@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    correlation_id = request.headers.get("X-Correlation-ID") or request_id

    started = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - started

    response.headers.update(SECURITY_HEADERS)
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Correlation-ID"] = correlation_id
    response.headers["X-Response-Time"] = f"{elapsed:.4f}s"

    logger.info(f"{request.method} {request.url.path} {response.status_code} {elapsed * 1000:.1f}ms rid={request_id[:8]}")
    return response


def _error_body(request: Request, detail):
    return {"detail": detail, "request_id": getattr(request.state, "request_id", None)}


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Pydantic v2 may put exception objects in ctx; keep the fields clients read
    errors = [
        {"loc": list(err.get("loc", ())), "msg": str(err.get("msg", "")), "type": str(err.get("type", ""))}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=422, content=jsonable_encoder(_error_body(request, errors)))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content=_error_body(request, "Internal server error"))


# ============================================================
# ROUTERS
# ============================================================

from routers import (
    auth, users, profile, admin, projects, tasks, comments, files, reports,
)

for module in (auth, users, profile, admin, projects, tasks, comments, files, reports):
    app.include_router(module.router)


@app.get("/health")
async def health_check():
    """Liveness plus a SELECT 1 against the configured database"""
    try:
        async with get_db_context() as db:
            await db.execute(text("SELECT 1"))
        database = "connected"
    except Exception as e:
        logger.warning(f"Health check database probe failed: {e}")
        database = f"error: {str(e)[:100]}"

    return {
        "status": "healthy" if database == "connected" else "degraded",
        "version": APP_VERSION,
        "environment": ENVIRONMENT,
        "database": database,
    }


@app.get("/")
async def root():
    return {"name": "DevTrack", "version": APP_VERSION, "docs": "/docs", "health": "/health"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", 8000)),
        reload=ENVIRONMENT == "development",
    )
