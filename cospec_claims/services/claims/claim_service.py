"""Claim lifecycle operations: create, edit, archive, restore, delete, complete."""

from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from cospec_claims.core.config import settings
from cospec_claims.core.document_store import BaseDocumentStore, Query
from cospec_claims.core.exceptions import AppError, NotFoundError, PreconditionError, ValidationError
from cospec_claims.schemas.auth import CurrentUser
from cospec_claims.schemas.claim import (
    Claim,
    ClaimCreate,
    ClaimCreateResult,
    ClaimStatus,
    ClaimUpdate,
    ClaimView,
)
from cospec_claims.services.base_service import BaseService
from cospec_claims.services.claims.validation import utcnow, validate_for_create, validate_patch
from cospec_claims.services.claims.views import parse_claims, sort_claims, to_view
from cospec_claims.services.notifications.dispatcher import DispatchReport, NotificationDispatcher
from cospec_claims.services.technician_service import TechnicianService
from cospec_claims.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ClaimService(BaseService):
    """Mutating verbs over claims.

    Every operation takes the acting user explicitly. Role checks happen
    at the API boundary; this service trusts its caller. Nothing here
    keeps local state, so a failed call leaves the caller's view as it
    was until the next snapshot arrives.
    """

    def __init__(
        self,
        store: BaseDocumentStore,
        technicians: TechnicianService,
        dispatcher: NotificationDispatcher,
        collection: Optional[str] = None,
    ):
        super().__init__()
        self.store = store
        self.technicians = technicians
        self.dispatcher = dispatcher
        self.collection = collection or settings.claims_collection
        self._handlers = {
            "create_claim": self._create_claim_logic,
            "edit_claim": self._edit_claim_logic,
            "archive_claim": self._archive_claim_logic,
            "restore_claim": self._restore_claim_logic,
            "delete_claim": self._delete_claim_logic,
            "complete_claim": self._complete_claim_logic,
        }

    def validate(self, *args, **kwargs):
        if kwargs.get("user") is None:
            raise ValidationError("A session user is required for claim operations")

    async def run(self, *args, **kwargs) -> Any:
        action = kwargs.pop("action")
        handler = self._handlers.get(action)
        if handler is None:
            raise AppError(f"Unknown action: {action}")
        return await handler(**kwargs)

    # Public API

    async def create_claim(
        self, user: CurrentUser, data: Union[ClaimCreate, Mapping[str, Any]]
    ) -> ClaimCreateResult:
        """Validate, persist and notify.

        Notification failures become warnings on the result; the claim
        stays committed either way.
        """
        return await self.execute(action="create_claim", user=user, data=data)

    async def edit_claim(
        self, user: CurrentUser, claim_id: str, patch: Union[ClaimUpdate, Mapping[str, Any]]
    ) -> ClaimView:
        return await self.execute(action="edit_claim", user=user, claim_id=claim_id, patch=patch)

    async def archive_claim(self, user: CurrentUser, claim_id: str) -> ClaimView:
        return await self.execute(action="archive_claim", user=user, claim_id=claim_id)

    async def restore_claim(self, user: CurrentUser, claim_id: str) -> ClaimView:
        return await self.execute(action="restore_claim", user=user, claim_id=claim_id)

    async def delete_claim(self, user: CurrentUser, claim_id: str) -> None:
        """Hard-delete an archived claim.

        Raises:
            NotFoundError: If the claim does not exist
            PreconditionError: If the claim has not been archived first
        """
        return await self.execute(action="delete_claim", user=user, claim_id=claim_id)

    async def complete_claim(self, user: CurrentUser, claim_id: str, resolution: str) -> ClaimView:
        return await self.execute(
            action="complete_claim", user=user, claim_id=claim_id, resolution=resolution
        )

    async def get_claim(self, claim_id: str) -> ClaimView:
        claim = await self._load(claim_id)
        await self._ensure_technicians()
        return to_view(claim, self.technicians)

    async def list_claims(self, archived: bool = False) -> List[ClaimView]:
        docs = await self.store.query(self.collection, Query().where("is_archived", "==", archived))
        await self._ensure_technicians()
        return [to_view(c, self.technicians) for c in sort_claims(parse_claims(docs))]

    # Handlers

    async def _create_claim_logic(self, user: CurrentUser, data: Any) -> ClaimCreateResult:
        draft = validate_for_create(data)

        claim_id = await self.store.create(self.collection, draft.to_document())
        claim = Claim(id=claim_id, **draft.model_dump())
        LOGGER.info(
            f"Claim {claim_id} created by {user.display_name}",
            extra={"claim_id": claim_id, "technician_id": claim.technician_id},
        )

        report = await self._dispatch_created(claim)
        if report.any_succeeded:
            await self._mark_notified(claim_id)

        await self.technicians.record_assignment(claim.technician_id)

        return ClaimCreateResult(claim=to_view(claim, self.technicians), warnings=report.warnings())

    async def _edit_claim_logic(self, user: CurrentUser, claim_id: str, patch: Any) -> ClaimView:
        if isinstance(patch, ClaimUpdate):
            patch = patch.to_patch()
        changes: Dict[str, Any] = validate_patch(patch)
        changes["updated_at"] = utcnow().isoformat()

        await self.store.update(self.collection, claim_id, changes)
        LOGGER.info(f"Claim {claim_id} edited by {user.display_name}: {sorted(changes)}")
        return await self.get_claim(claim_id)

    async def _archive_claim_logic(self, user: CurrentUser, claim_id: str) -> ClaimView:
        now = utcnow().isoformat()
        await self.store.update(
            self.collection, claim_id, {"is_archived": True, "archived_at": now, "updated_at": now}
        )
        LOGGER.info(f"Claim {claim_id} archived by {user.display_name}")
        return await self.get_claim(claim_id)

    async def _restore_claim_logic(self, user: CurrentUser, claim_id: str) -> ClaimView:
        await self.store.update(
            self.collection,
            claim_id,
            {"is_archived": False, "archived_at": None, "updated_at": utcnow().isoformat()},
        )
        LOGGER.info(f"Claim {claim_id} restored by {user.display_name}")
        return await self.get_claim(claim_id)

    async def _delete_claim_logic(self, user: CurrentUser, claim_id: str) -> None:
        claim = await self._load(claim_id)
        if not claim.is_archived:
            LOGGER.warning(f"Refusing to delete active claim {claim_id} for {user.display_name}")
            raise PreconditionError("must archive before delete")

        await self.store.delete(self.collection, claim_id)
        LOGGER.info(f"Claim {claim_id} deleted by {user.display_name}")

    async def _complete_claim_logic(self, user: CurrentUser, claim_id: str, resolution: str) -> ClaimView:
        if not resolution or not resolution.strip():
            raise ValidationError("Required fields missing: resolution", fields=["resolution"])

        claim = await self._load(claim_id)
        now = utcnow().isoformat()
        await self.store.update(
            self.collection,
            claim_id,
            {
                "status": ClaimStatus.COMPLETED.value,
                "resolution": resolution.strip(),
                "completed_by": user.display_name,
                "completed_at": now,
                "updated_at": now,
            },
        )
        LOGGER.info(f"Claim {claim_id} completed by {user.display_name}")

        if claim.status != ClaimStatus.COMPLETED and claim.technician_id:
            await self.technicians.record_completion(claim.technician_id)
        return await self.get_claim(claim_id)

    # Helpers

    async def _load(self, claim_id: str) -> Claim:
        doc = await self.store.get(self.collection, claim_id)
        if doc is None:
            raise NotFoundError(f"Claim {claim_id} not found")
        try:
            return Claim.from_document(doc)
        except PydanticValidationError as e:
            LOGGER.error(f"Stored claim {claim_id} is malformed: {e}", extra={"claim_id": claim_id})
            raise AppError(f"Claim {claim_id} is malformed", original_error=e) from e

    async def _ensure_technicians(self) -> None:
        try:
            await self.technicians.load()
        except AppError as e:
            LOGGER.warning(f"Technician directory unavailable; showing raw ids: {e}")

    async def _dispatch_created(self, claim: Claim) -> DispatchReport:
        report = await self.dispatcher.notify_customer(claim)

        try:
            technician = await self.technicians.get(claim.technician_id)
        except AppError as e:
            LOGGER.warning(f"Could not resolve technician {claim.technician_id}: {e}")
            technician = None

        if technician is None:
            LOGGER.warning(f"Technician {claim.technician_id} not found; skipping technician notification")
        else:
            report.extend(await self.dispatcher.notify_technician(claim, technician))
        return report

    async def _mark_notified(self, claim_id: str) -> None:
        try:
            await self.store.update(self.collection, claim_id, {"notification_sent": True})
        except AppError as e:
            LOGGER.warning(f"Could not flag claim {claim_id} as notified: {e}")
