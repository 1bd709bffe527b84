from datetime import datetime, timezone
from enum import Enum
from typing import Dict

from pydantic import BaseModel, Field


class SSEEventType(str, Enum):
    CLAIMS_SNAPSHOT = "claims:snapshot"
    CLAIMS_ERROR = "claims:error"
    HEARTBEAT = "heartbeat"


class SSEEvent(BaseModel):
    event_type: SSEEventType
    filter_mode: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: Dict
