"""Claim field validation and normalization."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Union

from pydantic import ValidationError as PydanticValidationError

from cospec_claims.core.exceptions import ValidationError
from cospec_claims.schemas.claim import (
    PROTECTED_CLAIM_FIELDS,
    REQUIRED_CLAIM_FIELDS,
    ClaimCreate,
    ClaimDraft,
    ClaimStatus,
    ClaimUpdate,
)

# Editable fields that may be omitted from a patch but never cleared
NON_NULLABLE_PATCH_FIELDS = REQUIRED_CLAIM_FIELDS + ("status",)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _error_fields(error: PydanticValidationError) -> List[str]:
    return [".".join(str(p) for p in err["loc"]) for err in error.errors()]


def validate_for_create(data: Union[ClaimCreate, Mapping[str, Any]]) -> ClaimDraft:
    """Check that every required field is filled in and build a draft.

    Raises:
        ValidationError: Listing every missing or blank required field
    """
    if not isinstance(data, ClaimCreate):
        try:
            data = ClaimCreate.model_validate(dict(data))
        except PydanticValidationError as e:
            fields = _error_fields(e)
            raise ValidationError(f"Invalid claim fields: {', '.join(fields)}", fields=fields, original_error=e) from e

    missing = [name for name in REQUIRED_CLAIM_FIELDS if _is_blank(getattr(data, name))]
    if missing:
        raise ValidationError(f"Required fields missing: {', '.join(missing)}", fields=missing)

    now = utcnow()
    return ClaimDraft(
        name=data.name.strip(),
        phone=data.phone.strip(),
        address=data.address.strip(),
        reason=data.reason.strip(),
        technician_id=data.technician_id.strip(),
        received_by=data.received_by.strip(),
        status=ClaimStatus.PENDING,
        notification_sent=False,
        is_archived=False,
        archived_at=None,
        created_at=now,
        updated_at=now,
    )


def validate_patch(patch: Mapping[str, Any]) -> Dict[str, Any]:
    """Validate a partial edit and return the normalized patch.

    Only the fields of ``ClaimUpdate`` are editable, with their declared
    types. Required fields may be omitted but not blanked. Identity and
    archival fields are owned by the store and by archive/restore.

    Raises:
        ValidationError: Naming every rejected field
    """
    protected = [name for name in PROTECTED_CLAIM_FIELDS if name in patch]
    if protected:
        raise ValidationError(f"Fields cannot be edited: {', '.join(protected)}", fields=protected)

    blank = [name for name in NON_NULLABLE_PATCH_FIELDS if name in patch and _is_blank(patch[name])]
    if blank:
        raise ValidationError(f"Required fields cannot be blank: {', '.join(blank)}", fields=blank)

    try:
        update = ClaimUpdate.model_validate(dict(patch))
    except PydanticValidationError as e:
        fields = _error_fields(e)
        if fields == ["status"]:
            message = f"Unknown claim status: {patch['status']}"
        else:
            message = f"Invalid claim fields: {', '.join(fields)}"
        raise ValidationError(message, fields=fields, original_error=e) from e

    normalized = {
        key: value.strip() if isinstance(value, str) else value
        for key, value in update.to_patch().items()
    }
    if not normalized:
        raise ValidationError("Nothing to update")
    return normalized
