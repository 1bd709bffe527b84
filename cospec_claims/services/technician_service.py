"""Technician reference set used to resolve and notify assignees."""

from typing import Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from cospec_claims.core.config import settings
from cospec_claims.core.document_store import BaseDocumentStore
from cospec_claims.core.exceptions import AppError
from cospec_claims.schemas.technician import Technician
from cospec_claims.utils.logging import get_logger

LOGGER = get_logger(__name__)


class TechnicianService:
    """Read-mostly view over the technicians collection.

    The set is fetched once and cached; user management owns the records,
    so claims only read them and bump the assignment counters.
    """

    def __init__(self, store: BaseDocumentStore, collection: Optional[str] = None):
        self.store = store
        self.collection = collection or settings.technicians_collection
        self._by_id: Optional[Dict[str, Technician]] = None

    async def load(self) -> Dict[str, Technician]:
        if self._by_id is None:
            await self.refresh()
        return self._by_id

    async def refresh(self) -> Dict[str, Technician]:
        docs = await self.store.query(self.collection)
        by_id: Dict[str, Technician] = {}
        for doc in docs:
            try:
                technician = Technician.from_document(doc)
            except PydanticValidationError as e:
                LOGGER.warning(
                    f"Skipping malformed technician document {doc.get('id')}: {e}",
                    extra={"technician_id": doc.get("id")},
                )
                continue
            by_id[technician.id] = technician
        self._by_id = by_id
        LOGGER.info(f"Loaded {len(self._by_id)} technicians")
        return self._by_id

    @property
    def cached(self) -> Dict[str, Technician]:
        return self._by_id or {}

    async def get(self, technician_id: Optional[str]) -> Optional[Technician]:
        if not technician_id:
            return None
        technicians = await self.load()
        return technicians.get(technician_id)

    def resolve_name(self, technician_id: Optional[str]) -> Optional[str]:
        """Display name for a technician id, falling back to the id itself."""
        if not technician_id:
            return None
        technician = self.cached.get(technician_id)
        return technician.name if technician and technician.name else technician_id

    async def list_technicians(self) -> List[Technician]:
        technicians = await self.load()
        return sorted(technicians.values(), key=lambda t: t.name.lower())

    async def list_assignable(self) -> List[Technician]:
        return [t for t in await self.list_technicians() if t.is_assignable]

    async def _bump(self, technician_id: str, **deltas: int) -> None:
        patch: Dict[str, int] = {}
        try:
            technician = await self.get(technician_id)
            if technician is None:
                LOGGER.warning(f"Cannot update counters for unknown technician {technician_id}")
                return

            patch = {name: max(getattr(technician, name) + delta, 0) for name, delta in deltas.items()}
            await self.store.update(self.collection, technician_id, patch)
        except AppError as e:
            LOGGER.warning(
                f"Failed to update counters for technician {technician_id}: {e}",
                extra={"technician_id": technician_id, "patch": patch},
            )
            return
        self._by_id[technician_id] = technician.model_copy(update=patch)

    async def record_assignment(self, technician_id: str) -> None:
        await self._bump(technician_id, current_assignments=1, total_assignments=1)

    async def record_completion(self, technician_id: str) -> None:
        await self._bump(technician_id, current_assignments=-1, completed_assignments=1)
