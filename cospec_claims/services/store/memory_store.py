"""In-process document store with synchronous snapshot push."""

import copy
import itertools
import uuid
from typing import Dict, List, Optional, Tuple

from cospec_claims.core.document_store import (
    BaseDocumentStore,
    Document,
    ErrorCallback,
    Query,
    SnapshotCallback,
    StoreHealth,
    Unsubscribe,
)
from cospec_claims.core.exceptions import NotFoundError
from cospec_claims.utils.logging import get_logger

LOGGER = get_logger(__name__)

_Listener = Tuple[str, Query, SnapshotCallback, ErrorCallback]


class MemoryDocumentStore(BaseDocumentStore):
    """Dict-backed store used for local development and tests.

    Listeners get a fresh full snapshot right after subscribing and after
    every committed mutation in their collection.
    """

    backend_name = "memory"

    def __init__(self):
        self._collections: Dict[str, Dict[str, Document]] = {}
        self._listeners: Dict[int, _Listener] = {}
        self._tokens = itertools.count(1)

    def _docs(self, collection: str) -> Dict[str, Document]:
        return self._collections.setdefault(collection, {})

    def _snapshot(self, collection: str, query: Query) -> List[Document]:
        docs = [copy.deepcopy(d) for d in self._docs(collection).values()]
        return query.apply(docs)

    def _publish(self, collection: str) -> None:
        for token, (coll, query, on_snapshot, _) in list(self._listeners.items()):
            if coll != collection or token not in self._listeners:
                continue
            try:
                on_snapshot(self._snapshot(collection, query))
            except Exception:
                LOGGER.error(
                    f"Snapshot listener {token} failed on collection {collection}",
                    exc_info=True,
                )

    async def create(self, collection: str, data: Document) -> str:
        doc_id = uuid.uuid4().hex
        self._docs(collection)[doc_id] = {**copy.deepcopy(data), "id": doc_id}
        self._publish(collection)
        return doc_id

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        doc = self._docs(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def update(self, collection: str, doc_id: str, patch: Document) -> None:
        docs = self._docs(collection)
        if doc_id not in docs:
            raise NotFoundError(f"Document {collection}/{doc_id} not found")
        docs[doc_id] = {**docs[doc_id], **copy.deepcopy(patch), "id": doc_id}
        self._publish(collection)

    async def delete(self, collection: str, doc_id: str) -> None:
        docs = self._docs(collection)
        if doc_id not in docs:
            raise NotFoundError(f"Document {collection}/{doc_id} not found")
        del docs[doc_id]
        self._publish(collection)

    async def query(self, collection: str, query: Optional[Query] = None) -> List[Document]:
        return self._snapshot(collection, query or Query())

    def subscribe(
        self,
        collection: str,
        query: Query,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        token = next(self._tokens)
        self._listeners[token] = (collection, query, on_snapshot, on_error)
        LOGGER.debug(f"Listener {token} subscribed to {collection}")
        on_snapshot(self._snapshot(collection, query))

        def unsubscribe() -> None:
            if self._listeners.pop(token, None) is not None:
                LOGGER.debug(f"Listener {token} unsubscribed from {collection}")

        return unsubscribe

    def fail_listeners(self, error: Exception, collection: Optional[str] = None) -> int:
        """Drop live listeners as if the transport had failed.

        Each dropped listener gets ``error`` through its error callback.

        Returns:
            Number of listeners dropped
        """
        dropped = 0
        for token, (coll, _, _, on_error) in list(self._listeners.items()):
            if collection is not None and coll != collection:
                continue
            del self._listeners[token]
            dropped += 1
            on_error(error)
        return dropped

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def health_check(self) -> StoreHealth:
        return StoreHealth(
            status="healthy",
            backend=self.backend_name,
            details={"collections": len(self._collections), "listeners": len(self._listeners)},
        )
