"""SQLAlchemy models."""

from cospec_claims.database.models import DocumentRecord

__all__ = ["DocumentRecord"]
