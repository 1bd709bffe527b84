from fastapi import APIRouter

from cospec_claims.api.v1.endpoints import claims, technicians

# Create API router
api_router = APIRouter()

# Include routers
api_router.include_router(claims.router, prefix="/claims", tags=["Claims"])
api_router.include_router(technicians.router, prefix="/technicians", tags=["Technicians"])

__all__ = ["api_router"]
