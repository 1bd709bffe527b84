from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import StreamingResponse

from cospec_claims.core.auth import get_current_user, get_current_user_from_query, require_admin, require_staff
from cospec_claims.core.dependencies import get_claim_service, get_claim_stream_manager
from cospec_claims.schemas.auth import CurrentUser
from cospec_claims.schemas.claim import ClaimComplete, ClaimCreate, ClaimUpdate
from cospec_claims.schemas.common import ApiResponse
from cospec_claims.services.claims.claim_service import ClaimService
from cospec_claims.services.claims.claim_stream import ClaimStreamManager
from cospec_claims.services.claims.live_list import FilterMode
from cospec_claims.utils.logging import get_logger
from cospec_claims.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a claim and notify the customer and technician",
    operation_id="create_claim",
)
async def create_claim(
    request: Request,
    payload: ClaimCreate,
    current_user: Annotated[CurrentUser, Depends(require_admin)],
    claim_service: Annotated[ClaimService, Depends(get_claim_service)],
) -> ApiResponse:
    """Create a claim. Notification failures come back as warnings."""
    result = await claim_service.create_claim(current_user, payload)
    message = "Claim created" if not result.warnings else "Claim created with notification warnings"
    return create_api_response(data=result, message=message, request=request)


@router.get(
    "",
    response_model=ApiResponse,
    summary="List claims",
    operation_id="list_claims",
)
async def list_claims(
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    claim_service: Annotated[ClaimService, Depends(get_claim_service)],
    archived: bool = Query(False, description="List archived claims instead of active ones"),
) -> ApiResponse:
    claims = await claim_service.list_claims(archived=archived)
    return create_api_response(
        data=claims,
        message=f"Retrieved {len(claims)} claims",
        request=request,
    )


@router.get(
    "/stream",
    summary="Stream live claim list via SSE",
    operation_id="stream_claims",
)
async def stream_claims(
    current_user: Annotated[CurrentUser, Depends(get_current_user_from_query)],
    stream_manager: Annotated[ClaimStreamManager, Depends(get_claim_stream_manager)],
    archived: bool = Query(False, description="Stream archived claims instead of active ones"),
) -> StreamingResponse:
    """Stream the live claim list for the selected filter mode."""
    mode = FilterMode.ARCHIVED if archived else FilterMode.ACTIVE
    LOGGER.info(f"Opening claim stream for {current_user.id} ({mode.value})")
    return StreamingResponse(
        stream_manager.stream_claims(mode),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable proxy buffering (Nginx)
        },
    )


@router.get(
    "/{claim_id}",
    response_model=ApiResponse,
    summary="Get a claim",
    operation_id="get_claim",
)
async def get_claim(
    request: Request,
    claim_id: str,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    claim_service: Annotated[ClaimService, Depends(get_claim_service)],
) -> ApiResponse:
    claim = await claim_service.get_claim(claim_id)
    return create_api_response(data=claim, message="Claim retrieved", request=request)


@router.patch(
    "/{claim_id}",
    response_model=ApiResponse,
    summary="Edit a claim",
    operation_id="edit_claim",
)
async def edit_claim(
    request: Request,
    claim_id: str,
    payload: ClaimUpdate,
    current_user: Annotated[CurrentUser, Depends(require_admin)],
    claim_service: Annotated[ClaimService, Depends(get_claim_service)],
) -> ApiResponse:
    claim = await claim_service.edit_claim(current_user, claim_id, payload)
    return create_api_response(data=claim, message="Claim updated", request=request)


@router.post(
    "/{claim_id}/archive",
    response_model=ApiResponse,
    summary="Archive a claim",
    operation_id="archive_claim",
)
async def archive_claim(
    request: Request,
    claim_id: str,
    current_user: Annotated[CurrentUser, Depends(require_admin)],
    claim_service: Annotated[ClaimService, Depends(get_claim_service)],
) -> ApiResponse:
    claim = await claim_service.archive_claim(current_user, claim_id)
    return create_api_response(data=claim, message="Claim archived", request=request)


@router.post(
    "/{claim_id}/restore",
    response_model=ApiResponse,
    summary="Restore an archived claim",
    operation_id="restore_claim",
)
async def restore_claim(
    request: Request,
    claim_id: str,
    current_user: Annotated[CurrentUser, Depends(require_admin)],
    claim_service: Annotated[ClaimService, Depends(get_claim_service)],
) -> ApiResponse:
    claim = await claim_service.restore_claim(current_user, claim_id)
    return create_api_response(data=claim, message="Claim restored", request=request)


@router.delete(
    "/{claim_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an archived claim",
    operation_id="delete_claim",
)
async def delete_claim(
    claim_id: str,
    current_user: Annotated[CurrentUser, Depends(require_admin)],
    claim_service: Annotated[ClaimService, Depends(get_claim_service)],
) -> Response:
    """Permanently delete a claim. Only archived claims can be deleted."""
    await claim_service.delete_claim(current_user, claim_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{claim_id}/complete",
    response_model=ApiResponse,
    summary="Mark a claim as completed",
    operation_id="complete_claim",
)
async def complete_claim(
    request: Request,
    claim_id: str,
    payload: ClaimComplete,
    current_user: Annotated[CurrentUser, Depends(require_staff)],
    claim_service: Annotated[ClaimService, Depends(get_claim_service)],
) -> ApiResponse:
    claim = await claim_service.complete_claim(current_user, claim_id, payload.resolution)
    return create_api_response(data=claim, message="Claim completed", request=request)
