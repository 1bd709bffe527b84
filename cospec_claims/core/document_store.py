"""Persistence gateway contract.

Every read and write of claims and technicians goes through a
``BaseDocumentStore``. Implementations live in ``cospec_claims.services.store``.
"""

import operator
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

Document = Dict[str, Any]
SnapshotCallback = Callable[[List[Document]], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]

_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


@dataclass(frozen=True)
class FieldFilter:
    """Equality or range predicate on a single top-level field."""

    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in _OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")

    def matches(self, doc: Document) -> bool:
        actual = doc.get(self.field)
        if self.op in ("==", "!="):
            return _OPERATORS[self.op](actual, self.value)
        # Range predicates never match missing values
        if actual is None:
            return False
        try:
            return _OPERATORS[self.op](actual, self.value)
        except TypeError:
            return False


@dataclass(frozen=True)
class OrderBy:
    field: str
    descending: bool = False


@dataclass(frozen=True)
class Query:
    """Filters plus server-side ordering for a collection read."""

    filters: Tuple[FieldFilter, ...] = ()
    order_by: Tuple[OrderBy, ...] = ()

    def where(self, field_name: str, op: str, value: Any) -> "Query":
        return Query(self.filters + (FieldFilter(field_name, op, value),), self.order_by)

    def order(self, field_name: str, descending: bool = False) -> "Query":
        return Query(self.filters, self.order_by + (OrderBy(field_name, descending),))

    def matches(self, doc: Document) -> bool:
        return all(f.matches(doc) for f in self.filters)

    def apply(self, docs: List[Document]) -> List[Document]:
        """Filter and order documents the way the store would."""
        result = [doc for doc in docs if self.matches(doc)]
        # Stable sorts applied from the least significant key
        for order in reversed(self.order_by):
            present = [d for d in result if d.get(order.field) is not None]
            missing = [d for d in result if d.get(order.field) is None]
            present.sort(key=lambda d: d[order.field], reverse=order.descending)
            result = present + missing
        return result


@dataclass
class StoreHealth:
    status: str
    backend: str
    details: Dict[str, Any] = field(default_factory=dict)


class BaseDocumentStore(ABC):
    """Abstract push-capable document store."""

    backend_name: str = "abstract"

    @abstractmethod
    async def create(self, collection: str, data: Document) -> str:
        """Store a new document and return its server-assigned id.

        The id is also written into the stored document under ``id``.
        """

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        """Return a copy of the document, or None if it does not exist."""

    @abstractmethod
    async def update(self, collection: str, doc_id: str, patch: Document) -> None:
        """Merge ``patch`` into the document.

        Raises:
            NotFoundError: If the document does not exist
        """

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Hard-delete the document.

        Raises:
            NotFoundError: If the document does not exist
        """

    @abstractmethod
    async def query(self, collection: str, query: Optional[Query] = None) -> List[Document]:
        """One-shot read of every document matching ``query``."""

    @abstractmethod
    def subscribe(
        self,
        collection: str,
        query: Query,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        """Open a live feed of full snapshots for ``query``.

        ``on_snapshot`` receives the complete matching set each time it
        changes. ``on_error`` is called once on transport failure, after
        which the feed is closed; callers own any retry policy. The
        returned callable closes the feed and may be called repeatedly.
        """

    async def health_check(self) -> StoreHealth:
        return StoreHealth(status="healthy", backend=self.backend_name)
