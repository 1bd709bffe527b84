"""FastAPI dependency factories shared by the v1 endpoints."""

from typing import Annotated, Optional

from fastapi import Depends

from cospec_claims.core.document_store import BaseDocumentStore
from cospec_claims.services.claims.claim_service import ClaimService
from cospec_claims.services.claims.claim_stream import ClaimStreamManager
from cospec_claims.services.notifications.dispatcher import NotificationDispatcher
from cospec_claims.services.store import SqlDocumentStore, build_document_store
from cospec_claims.services.technician_service import TechnicianService
from cospec_claims.utils.logging import get_logger

LOGGER = get_logger(__name__)

_store: Optional[BaseDocumentStore] = None


def get_document_store() -> BaseDocumentStore:
    """Process-wide document store, created on first use."""
    global _store
    if _store is None:
        _store = build_document_store()
        LOGGER.info(f"Document store ready: {_store.backend_name}")
    return _store


async def close_document_store() -> None:
    global _store
    if isinstance(_store, SqlDocumentStore):
        await _store.close()
    _store = None


async def get_technician_service(
    store: Annotated[BaseDocumentStore, Depends(get_document_store)]
) -> TechnicianService:
    return TechnicianService(store)


async def get_notification_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher()


async def get_claim_service(
    store: Annotated[BaseDocumentStore, Depends(get_document_store)],
    technicians: Annotated[TechnicianService, Depends(get_technician_service)],
    dispatcher: Annotated[NotificationDispatcher, Depends(get_notification_dispatcher)],
) -> ClaimService:
    return ClaimService(store, technicians, dispatcher)


async def get_claim_stream_manager(
    store: Annotated[BaseDocumentStore, Depends(get_document_store)],
    technicians: Annotated[TechnicianService, Depends(get_technician_service)],
) -> ClaimStreamManager:
    return ClaimStreamManager(store, technicians)
