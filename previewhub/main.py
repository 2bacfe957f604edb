from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from previewhub import __version__
from previewhub.api.v1.router import api_router
from previewhub.core.config import settings
from previewhub.core.exceptions import (
    NotFoundError,
    PortExhaustedError,
    PreviewHubError,
    ValidationError,
    error_response,
)
from previewhub.core.logging_config import logger
from previewhub.core.middleware import RequestLoggingMiddleware, RequestSizeLimitMiddleware
from previewhub.modules.preview import PreviewServerManager


def status_code_for(error: PreviewHubError) -> int:
    """HTTP status for an application error"""
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, ValidationError):
        return 422
    if isinstance(error, PortExhaustedError):
        return 503
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    manager: PreviewServerManager = app.state.preview_manager

    logger.info("=" * 60)
    logger.info(f"Starting {settings.APP_NAME}...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(
        f"Preview root: {manager.root_path}, "
        f"ports from {manager.port_allocator.base_port}, "
        f"max {manager.max_servers} servers"
    )
    logger.info("=" * 60)

    yield

    # Shutdown: no preview listener may outlive the control server
    logger.info(f"Shutting down {settings.APP_NAME}...")
    await manager.stop_all_servers()


def create_app(manager: Optional[PreviewServerManager] = None) -> FastAPI:
    """Build the control API around a preview manager"""
    app = FastAPI(
        title=settings.APP_NAME,
        description="Live static previews for AI generated projects",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
        redirect_slashes=False
    )
    app.state.preview_manager = manager or PreviewServerManager()

    # Middleware (order matters - last added runs first)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware, max_size=settings.MAX_REQUEST_SIZE)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Response-Time"],
    )

    @app.exception_handler(PreviewHubError)
    async def previewhub_exception_handler(request: Request, exc: PreviewHubError):
        status_code = status_code_for(exc)
        log = logger.error if status_code >= 500 else logger.warning
        log(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
        return JSONResponse(status_code=status_code, content=error_response(exc))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.log_error_with_context(exc, f"{request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "message": str(exc) if settings.DEBUG else "An error occurred"
            }
        )

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "app_name": settings.APP_NAME,
            "version": __version__,
            "environment": settings.ENVIRONMENT
        }

    app.include_router(api_router, prefix=f"/api/{settings.API_VERSION}")

    return app


app = create_app()
