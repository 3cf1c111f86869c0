# CLO Core - Local HTTP API
#
# FastAPI app exposing the vault and integrations to the mobile/desktop
# shell. Binds to localhost by default; callers authenticate with a
# Bearer session token obtained from POST /api/session.

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from .. import __version__
from ..config import Settings
from ..core import EventType, EventSeverity, configure_audit_logger, get_audit_logger
from ..exceptions import (
    CloError,
    NotConfiguredError,
    NotFoundError,
    UnauthorizedError,
    UpstreamError,
    ValidationError,
    VaultLockedError,
)
from .capsule_routes import router as capsule_router
from .integration_routes import router as integration_router
from .services import Services, build_services
from .session_routes import router as session_router
from .vault_routes import router as vault_router

logger = logging.getLogger(__name__)

# Most specific first; anything else derived from CloError is a 500
ERROR_STATUS = (
    (ValidationError, 400),
    (NotConfiguredError, 400),
    (UnauthorizedError, 401),
    (VaultLockedError, 403),
    (NotFoundError, 404),
    (UpstreamError, 502),
)


def status_for(exc: CloError) -> int:
    for exc_type, status_code in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status_code
    return 500


async def clo_error_handler(request: Request, exc: CloError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("Unhandled %s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": str(exc)},
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"success": False, "error": message})


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        settings: Runtime settings (default: ``Settings.from_env()``)
        services: Pre-built service container; built from settings if omitted
    """
    if services is None:
        settings = settings or Settings.from_env()
        configure_audit_logger(settings.audit_log_dir)
        services = build_services(settings)
    settings = services.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        removed = services.cache.clean_expired()
        if removed:
            logger.info("Removed %d expired cache entries", removed)
        yield
        relocked = services.passcodes.lock_all()
        if relocked:
            logger.info("Locked %d open vault(s) on shutdown", relocked)
        get_audit_logger().log_event(
            EventType.SYSTEM_STOP,
            EventSeverity.INFO,
            "CLO Core API stopped",
        )
        services.close()

    app = FastAPI(
        title="CLO Core API",
        description="Vault approval engine and integration cache",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(CloError, clo_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(session_router)
    app.include_router(capsule_router)
    app.include_router(vault_router)
    app.include_router(integration_router)

    # Vault files, addressed by the URLs handed out in FileRef
    app.mount("/files", StaticFiles(directory=str(services.blobs.root)), name="files")

    @app.get("/api/health")
    async def health_check():
        """Liveness check."""
        return {
            "status": "ok",
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


def start_api_server(host: str = "127.0.0.1", port: int = 8000, settings: Optional[Settings] = None):
    """
    Start the API server.

    Args:
        host: Host to bind to (default: localhost only)
        port: Port to listen on
        settings: Runtime settings (default: from environment)
    """
    app = create_app(settings)
    uvicorn.run(app, host=host, port=port, log_level="info")
