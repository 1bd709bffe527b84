"""Technician reference schema."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class Technician(BaseModel):
    """A worker that claims can be assigned to."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    phone: str = ""
    email: str = ""
    active: bool = True
    approved: bool = False
    available_for_assignment: bool = True
    current_assignments: int = 0
    completed_assignments: int = 0
    total_assignments: int = 0
    push_token: Optional[str] = Field(None, description="Browser push registration token")

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Technician":
        return cls.model_validate(doc)

    @property
    def is_assignable(self) -> bool:
        return self.active and self.approved and self.available_for_assignment
