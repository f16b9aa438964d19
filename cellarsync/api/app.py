"""
FastAPI application factory for Cellar Sync.

This module creates the FastAPI app with:
- CORS configuration for a browser frontend
- Server (store + sync engine) lifecycle management
- API routes under /api/v1
- Mapping of core errors to HTTP statuses
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import AppConfig
from ..errors import CellarError
from ..main import Server
from .routes import health_payload, router

logger = logging.getLogger(__name__)

# Error code -> HTTP status
ERROR_STATUS = {
    "VALIDATION_ERROR": 400,
    "ACCESS_DENIED": 403,
    "NOT_FOUND": 404,
    "WRITE_FAILED": 502,
    "AUDIT_FAILED": 502,
    "CONFIGURATION_ERROR": 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage store and sync engine lifecycle."""
    server: Server = app.state.server
    await server.start()

    yield

    await server.stop()


def create_app(config: Optional[AppConfig] = None, server: Optional[Server] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Configuration (loaded from env if neither argument is given)
        server: Pre-built server, mainly for tests
    """
    if server is None:
        server = Server(config or AppConfig.from_env())

    app = FastAPI(
        title="Cellar Sync",
        description="Storage room state, role-gated mutations and audit log",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.server = server

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(server.config.http.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CellarError)
    async def cellar_error_handler(request: Request, exc: CellarError) -> JSONResponse:
        status = ERROR_STATUS.get(exc.code, 500)
        if status >= 500:
            logger.error(f"Request failed: {exc.message}", extra={"path": request.url.path})
        return JSONResponse(exc.to_dict(), status_code=status)

    app.include_router(router, prefix="/api/v1")

    @app.get("/health")
    async def health():
        body, status = health_payload(app.state.server)
        return JSONResponse(body, status_code=status)

    return app
