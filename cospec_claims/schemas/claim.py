"""Claim schemas shared by the store, the services and the API."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ClaimStatus(str, Enum):
    """Closed set of claim statuses. Transitions between them are unrestricted."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


REQUIRED_CLAIM_FIELDS = ("name", "phone", "address", "reason", "technician_id", "received_by")

# Fields that only archive/restore or the store itself may write
PROTECTED_CLAIM_FIELDS = ("id", "is_archived", "archived_at")


class ClaimCreate(BaseModel):
    """Raw claim input as typed by staff."""

    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = Field(None, description="Customer full name")
    phone: Optional[str] = Field(None, description="Customer phone, e.g. +54 11 1234-5678")
    address: Optional[str] = Field(None, description="Service address")
    reason: Optional[str] = Field(None, description="Complaint description")
    technician_id: Optional[str] = Field(None, description="Assigned technician id")
    received_by: Optional[str] = Field(None, description="Staff member who took the claim")


class ClaimUpdate(BaseModel):
    """Partial edit of a claim. Only fields explicitly sent are applied."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    reason: Optional[str] = None
    technician_id: Optional[str] = None
    received_by: Optional[str] = None
    status: Optional[ClaimStatus] = None
    resolution: Optional[str] = None

    def to_patch(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_unset=True)


class ClaimComplete(BaseModel):
    resolution: str = Field(..., description="What the technician did to resolve the claim")


class ClaimDraft(BaseModel):
    """A validated claim that has not been assigned an id yet."""

    name: str
    phone: str
    address: str
    reason: str
    technician_id: Optional[str] = None
    received_by: str = ""
    status: ClaimStatus = ClaimStatus.PENDING
    resolution: Optional[str] = None
    completed_by: Optional[str] = None
    completed_at: Optional[datetime] = None
    notification_sent: bool = False
    is_archived: bool = False
    archived_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at", "completed_at", "archived_at")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        """Naive timestamps are taken as UTC so every claim sorts on one clock."""
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class Claim(ClaimDraft):
    """A persisted claim."""

    model_config = ConfigDict(extra="ignore")

    id: str

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Claim":
        return cls.model_validate(doc)


class ClaimView(Claim):
    """A claim as rendered, with the technician name joined in."""

    technician_name: Optional[str] = None


class ClaimCreateResult(BaseModel):
    claim: ClaimView
    warnings: List[str] = Field(default_factory=list)
