"""Document store backends."""

from typing import Optional

from cospec_claims.core.config import Settings, settings as app_settings
from cospec_claims.core.document_store import BaseDocumentStore
from cospec_claims.core.exceptions import ConfigurationError
from cospec_claims.services.store.memory_store import MemoryDocumentStore
from cospec_claims.services.store.sql_store import SqlDocumentStore


def build_document_store(config: Optional[Settings] = None) -> BaseDocumentStore:
    """Create the store configured by ``STORE_BACKEND``."""
    config = config or app_settings
    backend = config.store.backend.lower()

    if backend == "memory":
        return MemoryDocumentStore()
    if backend == "sql":
        from cospec_claims.core.database import async_session_maker

        return SqlDocumentStore(async_session_maker, poll_interval=config.store.poll_interval)

    raise ConfigurationError(f"Unknown STORE_BACKEND: {config.store.backend}")


__all__ = ["MemoryDocumentStore", "SqlDocumentStore", "build_document_store"]
