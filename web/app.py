"""FastAPI application factory for the photo processing API."""

from __future__ import annotations

import argparse
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from config import API_HOST, API_PORT
from errors import (
    CancellationError,
    InvalidTransitionError,
    PersistenceError,
    PhotoNotFoundError,
    ServiceError,
    ValidationError,
)
from jobs import JobQueue
from logging_utils import add_logging_args, configure_logging
from processing import PhotoProcessingService, PipelineResources, build_resources
from web.routes import api_photos_router

logger = logging.getLogger(__name__)


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc)})


def create_app(
    service: PhotoProcessingService,
    queue: JobQueue,
    resources: PipelineResources | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        service: Processing service answering the photo routes.
        queue: Queue new photos are submitted to.
        resources: Resources to close when the app shuts down. Pass None when
            the caller owns their lifecycle.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if resources is not None:
            resources.close()

    app = FastAPI(
        title="Bibflow",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.service = service
    app.state.queue = queue

    app.include_router(api_photos_router)

    # Return 400 for request validation errors (missing/invalid params or body)
    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request: Request, exc: RequestValidationError):
        return _error(400, exc)

    @app.exception_handler(ValidationError)
    async def _bad_value_handler(request: Request, exc: ValidationError):
        return _error(400, exc)

    @app.exception_handler(PhotoNotFoundError)
    async def _not_found_handler(request: Request, exc: PhotoNotFoundError):
        return _error(404, exc)

    @app.exception_handler(InvalidTransitionError)
    async def _conflict_handler(request: Request, exc: InvalidTransitionError):
        return _error(409, exc)

    @app.exception_handler(CancellationError)
    async def _cancelled_handler(request: Request, exc: CancellationError):
        return _error(409, exc)

    @app.exception_handler(ServiceError)
    async def _service_error_handler(request: Request, exc: ServiceError):
        logger.warning("Upstream service error on %s: %s", request.url.path, exc)
        return _error(502, exc)

    @app.exception_handler(PersistenceError)
    async def _persistence_error_handler(request: Request, exc: PersistenceError):
        logger.error("Persistence error on %s: %s", request.url.path, exc)
        return _error(500, exc)

    return app


def main(argv: list[str] | None = None) -> int:
    """Serve the API with uvicorn. Jobs are executed by `bibflow worker`."""
    parser = argparse.ArgumentParser(description="Bibflow photo processing API")
    parser.add_argument("--host", default=API_HOST, help=f"Bind address (default: {API_HOST})")
    parser.add_argument("--port", type=int, default=API_PORT, help=f"Port (default: {API_PORT})")
    add_logging_args(parser)
    args = parser.parse_args(argv)
    configure_logging(args.log_level, args.verbose, args.quiet, args.log_file)

    return serve(args.host, args.port)


def serve(host: str = API_HOST, port: int = API_PORT) -> int:
    resources = build_resources()
    app = create_app(PhotoProcessingService(resources), JobQueue(), resources=resources)
    logger.info("Serving API on http://%s:%d", host, port)
    uvicorn.run(app, host=host, port=port, log_config=None)
    return 0
