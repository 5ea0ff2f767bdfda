"""Main application entrypoint for the Casitas upload service."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from casitas.api.v1 import routes_health
from casitas.api.v1.routes_upload import router as upload_router
from casitas.assembly.exceptions import AssemblyError
from casitas.assembly.service import ChunkAssemblyService, build_assembly_service
from casitas.assembly.sweeper import SessionSweeper
from casitas.core.config import settings
from casitas.core.logging import setup_logging
from casitas.core.middleware import HTTPErrorLoggingMiddleware

logger = logging.getLogger(__name__)


async def assembly_error_handler(request: Request, exc: AssemblyError) -> JSONResponse:
    """Render service errors as ``{"error": ...}`` JSON bodies."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


def create_app(service: Optional[ChunkAssemblyService] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        service: Assembly service to expose; built from settings when omitted

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    setup_logging()

    if service is None:
        service = build_assembly_service(settings)
    sweeper = SessionSweeper(service, interval_seconds=settings.SWEEP_INTERVAL_SECONDS)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper.start()
        yield
        await sweeper.stop()

    app = FastAPI(
        title=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
        lifespan=lifespan,
    )
    app.state.assembly_service = service
    app.state.sweeper = sweeper

    app.add_middleware(HTTPErrorLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(AssemblyError, assembly_error_handler)

    app.include_router(routes_health.router, tags=["health"])
    app.include_router(upload_router)

    logger.info(
        "Upload service configured",
        extra={
            "media_backend": service.media_store.get_backend_name(),
            "record_backend": service.record_store.get_backend_name(),
            "scratch_dir": str(service.scratch.base_path),
        },
    )
    return app


# Export app instance for ASGI servers
app = create_app()
