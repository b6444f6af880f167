"""Main application entry point for the HR Records API."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hrflow.api.employees import employees_router
from hrflow.api.imports import imports_router
from hrflow.api.jobs import jobs_router
from hrflow.api.notifications import notifications_router
from hrflow.config.settings import get_settings
from hrflow.container import AppContainer
from hrflow.utils.errors import APIError


# =============================================================================
# Logging Configuration
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# =============================================================================
# Exception Handlers
# =============================================================================

async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Handle API errors and return structured responses."""
    response = exc.to_response()
    return JSONResponse(
        status_code=response.status_code,
        content=response.to_dict(),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception("Unexpected error occurred")
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "message": "An unexpected error occurred",
                "code": "internal_error",
            }
        },
    )


# =============================================================================
# Application Lifespan
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    logger.info("Starting HR Records API...")

    owns_container = app.state.container is None
    if owns_container:
        app.state.container = AppContainer.from_settings()

    container: AppContainer = app.state.container
    container.bridge.start()

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down HR Records API...")
    if owns_container:
        container.close()
    else:
        container.bridge.stop()
        container.registry.close_all()
    logger.info("Application shutdown complete")


# =============================================================================
# Application Factory
# =============================================================================

def create_app(container: Optional[AppContainer] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        container: Pre-built dependencies; built from settings at startup when omitted
    """
    settings = container.settings if container is not None else get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=(
            "HR records API with background employee creation, batched CSV "
            "import and live job notifications."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.container = container

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routes
    app.include_router(employees_router)
    app.include_router(imports_router)
    app.include_router(jobs_router)
    app.include_router(notifications_router)

    # Register exception handlers
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # Health check endpoint
    @app.get("/health", tags=["Health"])
    def health_check() -> dict:
        """Check application health, including Redis when connected through a manager."""
        result = {"status": "healthy", "version": settings.app_version}

        current = app.state.container
        if current is not None and current.redis_manager is not None:
            redis_health = current.redis_manager.health_check()
            result["redis"] = redis_health
            if redis_health["status"] != "healthy":
                result["status"] = "degraded"
        return result

    return app


# =============================================================================
# Application Instance
# =============================================================================

app = create_app()


# =============================================================================
# Development Server
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "hrflow.main:app",
        host="0.0.0.0",
        port=8000,
    )
