"""SQLAlchemy models for the document store tables."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Index, String, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from cospec_claims.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentRecord(Base):
    """A schemaless document stored as JSON inside a named collection."""

    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(String(64), primary_key=True)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        Index("ix_documents_collection_updated_at", "collection", "updated_at"),
    )
