"""SQL-backed document store with polling live subscriptions."""

import asyncio
import hashlib
import json
import uuid
from typing import List, Optional

from sqlalchemy.exc import ProgrammingError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cospec_claims.core.document_store import (
    BaseDocumentStore,
    Document,
    ErrorCallback,
    Query,
    SnapshotCallback,
    StoreHealth,
    Unsubscribe,
)
from cospec_claims.core.exceptions import IndexMissingError, NotFoundError, TransportError
from cospec_claims.repositories.document_repository import DocumentRepository
from cospec_claims.utils.logging import get_logger

LOGGER = get_logger(__name__)

_MISSING_SCHEMA_MARKERS = ("no such table", "does not exist", "undefined table", "index")


def translate_store_error(exc: Exception, action: str) -> TransportError:
    """Map a driver/SQLAlchemy failure onto the gateway error taxonomy."""
    message = str(exc)
    lowered = message.lower()
    if isinstance(exc, ProgrammingError) or any(m in lowered for m in _MISSING_SCHEMA_MARKERS):
        return IndexMissingError(
            f"Store schema or index missing during {action}: {message}",
            original_error=exc,
        )
    return TransportError(f"Store unavailable during {action}: {message}", original_error=exc)


class SqlDocumentStore(BaseDocumentStore):
    """Documents persisted as JSON rows through SQLAlchemy async sessions.

    Live subscriptions poll the collection and push a full snapshot
    whenever the matching set changes.
    """

    backend_name = "sql"

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        poll_interval: float = 2.0,
    ):
        self.session_maker = session_maker
        self.poll_interval = poll_interval
        self._tasks: set[asyncio.Task] = set()

    async def create(self, collection: str, data: Document) -> str:
        doc_id = uuid.uuid4().hex
        try:
            async with self.session_maker() as session:
                await DocumentRepository(session, collection).create(doc_id, data)
        except (SQLAlchemyError, OSError) as e:
            raise translate_store_error(e, f"create in {collection}") from e
        return doc_id

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        try:
            async with self.session_maker() as session:
                record = await DocumentRepository(session, collection).get(doc_id)
        except (SQLAlchemyError, OSError) as e:
            raise translate_store_error(e, f"get {collection}/{doc_id}") from e
        return dict(record.data) if record is not None else None

    async def update(self, collection: str, doc_id: str, patch: Document) -> None:
        try:
            async with self.session_maker() as session:
                record = await DocumentRepository(session, collection).merge(doc_id, patch)
        except (SQLAlchemyError, OSError) as e:
            raise translate_store_error(e, f"update {collection}/{doc_id}") from e
        if record is None:
            raise NotFoundError(f"Document {collection}/{doc_id} not found")

    async def delete(self, collection: str, doc_id: str) -> None:
        try:
            async with self.session_maker() as session:
                deleted = await DocumentRepository(session, collection).delete(doc_id)
        except (SQLAlchemyError, OSError) as e:
            raise translate_store_error(e, f"delete {collection}/{doc_id}") from e
        if not deleted:
            raise NotFoundError(f"Document {collection}/{doc_id} not found")

    async def query(self, collection: str, query: Optional[Query] = None) -> List[Document]:
        try:
            async with self.session_maker() as session:
                records = await DocumentRepository(session, collection).list_matching(query)
        except (SQLAlchemyError, OSError) as e:
            raise translate_store_error(e, f"query {collection}") from e
        return [dict(r.data) for r in records]

    def subscribe(
        self,
        collection: str,
        query: Query,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        task = asyncio.get_running_loop().create_task(
            self._poll(collection, query, on_snapshot, on_error)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        def unsubscribe() -> None:
            if not task.done():
                task.cancel()

        return unsubscribe

    async def _poll(
        self,
        collection: str,
        query: Query,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> None:
        last_fingerprint: Optional[str] = None
        while True:
            try:
                docs = await self.query(collection, query)
            except TransportError as e:
                LOGGER.warning(
                    f"Live query on {collection} failed: {e}",
                    extra={"collection": collection, "error_type": type(e).__name__},
                )
                on_error(e)
                return
            except Exception as e:
                LOGGER.error(f"Live query on {collection} failed unexpectedly: {e}", exc_info=True)
                on_error(TransportError(f"Live query on {collection} failed: {e}", original_error=e))
                return

            fingerprint = self._fingerprint(docs)
            if fingerprint != last_fingerprint:
                last_fingerprint = fingerprint
                try:
                    on_snapshot(docs)
                except Exception:
                    LOGGER.error(f"Snapshot listener failed on {collection}", exc_info=True)

            await asyncio.sleep(self.poll_interval)

    @staticmethod
    def _fingerprint(docs: List[Document]) -> str:
        payload = json.dumps(docs, sort_keys=True, default=str)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    async def close(self) -> None:
        """Cancel every live polling task."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def health_check(self) -> StoreHealth:
        try:
            await self.query("__health__")
        except TransportError as e:
            return StoreHealth(status="unhealthy", backend=self.backend_name, details={"error": str(e)})
        return StoreHealth(
            status="healthy",
            backend=self.backend_name,
            details={"live_queries": len(self._tasks)},
        )
