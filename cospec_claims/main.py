"""FastAPI application entry point."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from cospec_claims.api.v1.endpoints import health
from cospec_claims.api.v1.router import api_router
from cospec_claims.core.config import settings
from cospec_claims.core.database import close_database, init_database
from cospec_claims.core.dependencies import close_document_store, get_document_store
from cospec_claims.core.exceptions import (
    AppError,
    ConfigurationError,
    IndexMissingError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionError,
    TransportError,
    ValidationError,
)
from cospec_claims.utils.logging import get_logger
from cospec_claims.utils.responses import create_error_detail

LOGGER = get_logger(__name__, level=settings.log_level)

# Starlette picks the handler registered for the closest class in the exception MRO
ERROR_RESPONSES = [
    (ValidationError, 422, "Validation Error"),
    (PreconditionError, 409, "Precondition Failed"),
    (NotFoundError, 404, "Not Found"),
    (IndexMissingError, 503, "Index Missing"),
    (TransportError, 503, "Store Unavailable"),
    (PermissionDeniedError, 403, "Forbidden"),
    (ConfigurationError, 500, "Configuration Error"),
    (AppError, 500, "Internal Server Error"),
]


class RootResponse(BaseModel):
    """Root endpoint response payload."""

    message: str = Field(..., description="Service status message")
    version: str = Field(..., description="Running application version")
    docs: str = Field(..., description="Path to the interactive API docs")
    health: str = Field(..., description="Path to the health check endpoint")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    LOGGER.info(
        "Starting application",
        extra={
            "app_name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "store_backend": settings.store.backend,
        },
    )

    if settings.store.backend == "sql":
        LOGGER.info("Starting database initialization...")
        try:
            await asyncio.wait_for(init_database(create_tables=True), timeout=settings.db_init_timeout)
            LOGGER.info("Database initialized successfully")
        except asyncio.TimeoutError:
            LOGGER.error(f"Database initialization timed out after {settings.db_init_timeout}s")
        except Exception as e:
            LOGGER.error(f"Database initialization failed: {e}", exc_info=True)

    get_document_store()

    yield

    LOGGER.info("Shutting down application")
    await close_document_store()
    if settings.store.backend == "sql":
        try:
            await close_database()
        except Exception as e:
            LOGGER.error("Error closing database", exc_info=True, extra={"error": str(e)})


def _error_handler(status_code: int, title: str):
    async def handler(request: Request, exc: AppError) -> JSONResponse:
        if status_code >= 500:
            LOGGER.error(
                f"{title}: {exc.message}",
                exc_info=exc.original_error is not None,
                extra={"path": request.url.path},
            )
        else:
            LOGGER.info(f"{title} on {request.url.path}: {exc.message}")

        detail = create_error_detail(title=title, status=status_code, detail=exc.message, request=request)
        return JSONResponse(
            status_code=status_code,
            content=detail.model_dump(mode="json"),
            media_type="application/problem+json",
        )

    return handler


def register_exception_handlers(app: FastAPI) -> None:
    for exc_class, status_code, title in ERROR_RESPONSES:
        app.add_exception_handler(exc_class, _error_handler(status_code, title))


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Customer claim tracking for field technicians",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

register_exception_handlers(app)


# Correlation ID middleware
@app.middleware("http")
async def add_correlation_id(request: Request, call_next):
    correlation_id = request.headers.get("X-Correlation-ID", str(uuid4()))
    request.state.correlation_id = correlation_id
    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


# CORS middleware - added last to ensure it wraps all other middleware/responses
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID"],
)

# Include routers
app.include_router(api_router, prefix=settings.api_v1_prefix)
app.include_router(health.router, prefix="/health", tags=["Health"])


@app.get(
    "/",
    response_model=RootResponse,
    tags=["Root"],
    summary="Root endpoint",
    description="Get basic information about the API",
    operation_id="get_public_root_metadata",
)
async def root() -> RootResponse:
    """Root endpoint.

    Returns:
        RootResponse: Basic API information
    """
    return RootResponse(
        message="Server is running",
        version=settings.app_version,
        docs="/docs",
        health="/health",
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "cospec_claims.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
