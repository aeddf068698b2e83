"""Main application entry point for the Timesheet Portal API."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from timesheet_portal import __version__
from timesheet_portal.api.csv_management import csv_management_router
from timesheet_portal.config.settings import get_settings
from timesheet_portal.database.database import DatabaseConfig, dispose_engine, get_engine, init_db
from timesheet_portal.utils.errors import APIError


# =============================================================================
# Logging Configuration
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# =============================================================================
# Application Lifespan
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown events."""
    settings = get_settings()
    logger.info(f"Starting {settings.app_name}...")

    config = DatabaseConfig.from_env()
    logger.info(f"Connecting to database at {config.url}")
    get_engine(config)
    if settings.database_auto_create:
        init_db(config)
        logger.info("Database tables ensured")

    logger.info("Application startup complete")

    yield

    logger.info(f"Shutting down {settings.app_name}...")
    dispose_engine()
    logger.info("Application shutdown complete")


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


def _field_errors(errors: list) -> list:
    field_errors = []
    for error in errors:
        loc = ".".join(str(x) for x in error["loc"])
        field_errors.append({
            "field": loc,
            "message": error["msg"],
            "code": error["type"],
        })
    return field_errors


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Missing form fields, bad query parameters and the like."""
    return JSONResponse(
        status_code=400,
        content={
            "error": {
                "message": "Request validation failed",
                "code": "validation_error",
                "field_errors": _field_errors(exc.errors()),
            }
        },
    )


async def pydantic_validation_handler(request: Request, exc: PydanticValidationError) -> JSONResponse:
    """Convert Pydantic validation errors to structured response."""
    return JSONResponse(
        status_code=400,
        content={
            "error": {
                "message": "Request validation failed",
                "code": "validation_error",
                "field_errors": _field_errors(exc.errors()),
            }
        },
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
# Application Factory
# =============================================================================

def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Bulk CSV import of employees, projects, stages and timesheets "
            "with duplicate resolution, per-row error reporting and import logs."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(csv_management_router)

    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(PydanticValidationError, pydantic_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict:
        """Check application health."""
        return {"status": "healthy", "version": __version__}

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
        "timesheet_portal.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
