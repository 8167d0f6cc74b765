"""Application entry point and FastAPI app factory."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .config.settings import settings
from .controllers import auth, history, transcriptions, user_settings
from .database import dispose_engine, init_models, ping_database
from .middleware import StructuredLoggingMiddleware, TelemetryMiddleware
from .pipelines.transcription.orchestrator import get_job_manager
from .services.history_repository import PersistenceError
from .services.storage import StorageError, StorageNotFoundError, shutdown_object_storage

logger = logging.getLogger(__name__)

_APP_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_FILE_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"

# logger name -> (settings attribute holding the file path, propagate to root)
_DEDICATED_LOGGERS = {
    "scribe.pipeline": ("pipeline_log_file", True),
    "scribe.logs.transcript": ("transcript_log_file", False),
}

_NOISY_LOGGERS = (
    "botocore",
    "boto3",
    "s3transfer",
    "urllib3",
    "httpx",
    "google_genai",
    "sqlalchemy.engine",
)


def _file_handler(path: str, max_bytes: int, fmt: str) -> RotatingFileHandler:
    log_path = Path(path)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=5, encoding="utf-8")
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def _configure_logging() -> None:
    """Root logs go to stdout and app.log; pipeline and transcripts get their own files."""

    level = logging.DEBUG if settings.debug else logging.INFO

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(logging.Formatter(_APP_FORMAT))
    root_logger.addHandler(stdout_handler)
    root_logger.addHandler(_file_handler(settings.log_file, 1_000_000, _APP_FORMAT))
    root_logger.setLevel(level)

    # Request lines are already colourised; print them bare.
    request_logger = logging.getLogger("scribe.middleware.structured")
    request_logger.handlers.clear()
    request_stdout = logging.StreamHandler(sys.stdout)
    request_stdout.setFormatter(logging.Formatter("%(message)s"))
    request_logger.addHandler(request_stdout)
    request_logger.setLevel(logging.INFO)
    request_logger.propagate = False

    for name, (path_attribute, propagate) in _DEDICATED_LOGGERS.items():
        dedicated = logging.getLogger(name)
        dedicated.handlers.clear()
        dedicated.addHandler(_file_handler(getattr(settings, path_attribute), 500_000, _FILE_FORMAT))
        dedicated.setLevel(level)
        dedicated.propagate = propagate

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
        logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=503,
            content={"detail": "Stored data is temporarily unavailable"},
        )

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        if isinstance(exc, StorageNotFoundError):
            return JSONResponse(status_code=404, content={"detail": str(exc)})
        logger.error("Object storage failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=502,
            content={"detail": "Object storage request failed"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    _configure_logging()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        description="Audio transcription backend with streamed results, review and history",
    )

    app.add_middleware(TelemetryMiddleware)
    app.add_middleware(StructuredLoggingMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    for controller in (auth, transcriptions, history, user_settings):
        app.include_router(controller.router)

    _register_exception_handlers(app)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, str]:
        return {"service": settings.app_name, "version": settings.app_version, "docs": "/docs"}

    @app.get("/health", include_in_schema=False)
    async def health_check() -> JSONResponse:
        """Report database reachability and how many jobs are running."""

        database_ok = await ping_database()
        body = {
            "status": "healthy" if database_ok else "degraded",
            "service": settings.app_name,
            "version": settings.app_version,
            "database": "ok" if database_ok else "unavailable",
            "activeJobs": get_job_manager().active_jobs,
        }
        return JSONResponse(status_code=200 if database_ok else 503, content=body)

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        """Expose application metrics for Prometheus scraping."""

        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.on_event("startup")
    async def startup_event() -> None:
        await init_models()

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        # Running jobs are cancelled before the clients they use go away.
        await get_job_manager().shutdown()
        shutdown_object_storage()
        await dispose_engine()

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "scribe.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
