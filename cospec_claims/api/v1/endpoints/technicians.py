from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from cospec_claims.core.auth import get_current_user
from cospec_claims.core.dependencies import get_technician_service
from cospec_claims.schemas.auth import CurrentUser
from cospec_claims.schemas.common import ApiResponse
from cospec_claims.services.technician_service import TechnicianService
from cospec_claims.utils.responses import create_api_response

router = APIRouter()


@router.get(
    "",
    response_model=ApiResponse,
    summary="List technicians",
    operation_id="list_technicians",
)
async def list_technicians(
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    technician_service: Annotated[TechnicianService, Depends(get_technician_service)],
    assignable: bool = Query(False, description="Only technicians that can take new claims"),
) -> ApiResponse:
    """List technicians, optionally only those available for assignment."""
    if assignable:
        technicians = await technician_service.list_assignable()
    else:
        technicians = await technician_service.list_technicians()
    return create_api_response(
        data=technicians,
        message=f"Retrieved {len(technicians)} technicians",
        request=request,
    )
