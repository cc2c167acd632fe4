"""
Tubely FastAPI Application Entry Point

Wires the upload API together:

- Logging, the video record store and the assets directory are set up in the
  lifespan handler
- CORS and request logging middleware
- ``AppError`` subclasses rendered as ``{"error": ..., "message": ...}``
- ``/api/thumbnails`` and ``/api/videos`` routers
- ``/assets`` static mount serving the local filesystem backend
- ``/health`` for load balancers

Usage:
    uvicorn app.main:app --host 0.0.0.0 --port 8091 --reload

    python -m app.main
"""

import logging
import time
import uuid

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import uvicorn

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from app import __version__
from app.api import api_router
from app.api.dependencies import reset_asset_stores
from app.config import get_settings
from app.core.database import close_record_store, init_record_store
from app.core.errors import AppError, AuthenticationError
from app.utils.logger import setup_logging


logger = logging.getLogger(__name__)

HTTP_ERROR_THRESHOLD = 400  # Status codes >= 400 indicate errors

GENERIC_ERROR_MESSAGE = "An internal error occurred"


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """
    Startup: configure logging, create the assets directory and open the
    record store. Shutdown: close the record store and drop cached backends.
    """
    settings = get_settings()

    setup_logging(settings.log_level, json_logs=settings.json_logs)

    logger.info("Tubely API starting (env=%s, debug=%s)", settings.app_env, settings.debug)
    logger.info(
        "Storage backends: thumbnails=%s, videos=%s",
        settings.thumbnail_storage_backend,
        settings.video_storage_backend,
    )

    Path(settings.assets_root).mkdir(parents=True, exist_ok=True)

    try:
        await init_record_store(settings)
    except Exception as e:
        logger.exception("Failed to initialize video record store")
        raise RuntimeError(f"Record store initialization failed: {e}") from e

    logger.info("Tubely API ready on %s:%s", settings.host, settings.port)

    yield

    logger.info("Tubely API shutting down")

    try:
        await close_record_store()
    except Exception:
        logger.exception("Error closing video record store")

    reset_asset_stores()
    logger.info("Tubely API shutdown complete")


_settings = get_settings()

app = FastAPI(
    title="Tubely API",
    description="Upload thumbnails and videos for Tubely video records.",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    debug=_settings.debug,
)


# =============================================================================
# Middleware
# =============================================================================


app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Process-Time"],
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next) -> Response:
    """
    Log each request with its status and duration.

    Adds ``X-Request-ID`` (echoing the caller's header when present) and
    ``X-Process-Time`` to every response.
    """
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    start_time = time.perf_counter()

    try:
        response = await call_next(request)
    except Exception:
        logger.exception(
            "Request failed: %s %s", request.method, request.url.path, extra={"request_id": request_id}
        )
        raise

    process_time_ms = round((time.perf_counter() - start_time) * 1000, 2)
    response.headers["X-Process-Time"] = f"{process_time_ms}ms"
    response.headers["X-Request-ID"] = request_id

    log_level = logging.DEBUG if response.status_code < HTTP_ERROR_THRESHOLD else logging.WARNING
    logger.log(
        log_level,
        "Request completed: %s %s",
        request.method,
        request.url.path,
        extra={
            "request_id": request_id,
            "status_code": response.status_code,
            "duration_ms": process_time_ms,
        },
    )
    return response


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render an AppError; upstream failures get a generic message."""
    if exc.is_client_error:
        logger.info("%s %s rejected: %s (%s)", request.method, request.url.path, exc.error_code, exc.message)
        message = exc.message
    else:
        logger.error(
            "%s %s failed: %s",
            request.method,
            request.url.path,
            exc.error_code,
            exc_info=exc,
        )
        message = GENERIC_ERROR_MESSAGE

    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error_code, "message": message},
        headers=headers,
    )


@app.exception_handler(status.HTTP_404_NOT_FOUND)
async def not_found_handler(request: Request, _exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"error": "not_found", "message": f"Path '{request.url.path}' not found"},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "internal_error", "message": GENERIC_ERROR_MESSAGE},
    )


# =============================================================================
# Routes
# =============================================================================


app.include_router(api_router)

# Serves files written by the local filesystem backend
app.mount(
    "/assets",
    StaticFiles(directory=_settings.assets_root, check_dir=False),
    name="assets",
)


@app.get(
    "/health",
    response_class=JSONResponse,
    tags=["health"],
    summary="Health Check",
    description="Returns health status and current server timestamp for monitoring",
)
async def health_check() -> dict[str, Any]:
    return {
        "status": "healthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "version": __version__,
        "service": "Tubely API",
    }


if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host=_settings.host,
        port=_settings.port,
        reload=_settings.is_development,
        log_level=_settings.log_level,
    )
