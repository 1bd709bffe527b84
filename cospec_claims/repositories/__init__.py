from cospec_claims.repositories.base_repository import BaseRepository
from cospec_claims.repositories.document_repository import DocumentRepository

__all__ = ["BaseRepository", "DocumentRepository"]
