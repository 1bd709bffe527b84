"""Health check API endpoints."""

from typing import Annotated, Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from cospec_claims.core.config import settings
from cospec_claims.core.database import db_client
from cospec_claims.core.dependencies import get_document_store
from cospec_claims.core.document_store import BaseDocumentStore
from cospec_claims.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


class HealthCheckResponse(BaseModel):
    status: str = Field(..., description="Health check status")
    version: str = Field(..., description="Running application version")
    service: str = Field(..., description="Service name")
    store: Dict[str, Any] = Field(default_factory=dict, description="Document store health")
    database: Optional[Dict[str, Any]] = Field(None, description="Database health, SQL backend only")


@router.get(
    "",
    response_model=HealthCheckResponse,
    tags=["Health"],
    summary="Health check endpoint",
    description="Check if the service is running and the document store is reachable",
    operation_id="get_service_health_status",
)
async def health_check(
    store: Annotated[BaseDocumentStore, Depends(get_document_store)],
) -> HealthCheckResponse:
    """Health check endpoint."""
    store_health = await store.health_check()
    if store_health.status != "healthy":
        LOGGER.warning(f"Store health check failed: {store_health.details}")

    db_health = None
    if settings.store.backend == "sql":
        db_health = await db_client.health_check()

    return HealthCheckResponse(
        status="healthy" if store_health.status == "healthy" else "degraded",
        version=settings.app_version,
        service=settings.app_name,
        store={"backend": store_health.backend, "status": store_health.status, **store_health.details},
        database=db_health,
    )
