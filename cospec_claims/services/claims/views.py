from typing import Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from cospec_claims.core.document_store import Document
from cospec_claims.schemas.claim import Claim, ClaimView
from cospec_claims.services.technician_service import TechnicianService
from cospec_claims.utils.logging import get_logger

LOGGER = get_logger(__name__)


def parse_claims(docs: Iterable[Document]) -> List[Claim]:
    """Parse stored documents, skipping any that no longer fit the claim schema."""
    claims: List[Claim] = []
    for doc in docs:
        try:
            claims.append(Claim.from_document(doc))
        except PydanticValidationError as e:
            LOGGER.warning(
                f"Skipping malformed claim document {doc.get('id')}: {e}",
                extra={"claim_id": doc.get("id")},
            )
    return claims


def sort_claims(claims: Iterable[Claim]) -> List[Claim]:
    """Newest first; ties on ``created_at`` broken by id, descending."""
    return sorted(claims, key=lambda c: (c.created_at, c.id), reverse=True)


def to_view(claim: Claim, technicians: Optional[TechnicianService] = None) -> ClaimView:
    """Attach the technician display name. Never persisted."""
    name = technicians.resolve_name(claim.technician_id) if technicians else claim.technician_id
    return ClaimView(**claim.model_dump(), technician_name=name)
