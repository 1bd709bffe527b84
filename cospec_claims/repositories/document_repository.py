"""Repository for JSON documents grouped by collection."""

import operator
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import false, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from cospec_claims.core.document_store import FieldFilter, Query
from cospec_claims.database.models import DocumentRecord
from cospec_claims.repositories.base_repository import BaseRepository

_SQL_OPERATORS: Dict[str, Callable[[Any, Any], Any]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def _json_field(field_name: str, value: Any) -> Optional[Any]:
    """Typed accessor for a top-level JSON field, chosen from the compared value."""
    element = DocumentRecord.data[field_name]
    if isinstance(value, bool):
        return element.as_boolean()
    if isinstance(value, int):
        return element.as_integer()
    if isinstance(value, float):
        return element.as_float()
    if isinstance(value, str):
        return element.as_string()
    return None


def filter_clause(field_filter: FieldFilter) -> Optional[Any]:
    """Translate a field filter into a SQL predicate.

    Returns None when the value type has no JSON accessor; such filters
    are evaluated on the fetched documents instead. Missing fields follow
    the in-memory semantics: they never match ``==`` or a range and always
    match ``!=``.
    """
    if field_filter.value is None:
        element = DocumentRecord.data[field_filter.field].as_string()
        if field_filter.op == "==":
            return element.is_(None)
        if field_filter.op == "!=":
            return element.is_not(None)
        return false()

    column = _json_field(field_filter.field, field_filter.value)
    if column is None:
        return None
    if field_filter.op == "!=":
        return or_(column != field_filter.value, column.is_(None))
    return _SQL_OPERATORS[field_filter.op](column, field_filter.value)


class DocumentRepository(BaseRepository[DocumentRecord]):
    """CRUD over the ``documents`` table, scoped to one collection."""

    def __init__(self, session: AsyncSession, collection: str):
        super().__init__(session, DocumentRecord)
        self.collection = collection

    async def get(self, doc_id: str) -> Optional[DocumentRecord]:
        query = select(DocumentRecord).where(
            DocumentRecord.collection == self.collection,
            DocumentRecord.id == doc_id,
        )
        return await self._fetch_one(query)

    async def list_matching(self, query: Optional[Query] = None) -> List[DocumentRecord]:
        """List documents matching ``query``, filtered and ordered in SQL.

        Requested orderings compare the extracted JSON values (as text on
        PostgreSQL) and put missing values last; insertion order breaks ties.
        """
        query = query or Query()
        statement = select(DocumentRecord).where(DocumentRecord.collection == self.collection)

        residual: List[FieldFilter] = []
        for field_filter in query.filters:
            clause = filter_clause(field_filter)
            if clause is None:
                residual.append(field_filter)
            else:
                statement = statement.where(clause)

        ordering = []
        for order in query.order_by:
            element = DocumentRecord.data[order.field].as_string()
            ordering.append(element.desc().nulls_last() if order.descending else element.asc().nulls_last())
        statement = statement.order_by(*ordering, DocumentRecord.created_at.asc(), DocumentRecord.id.asc())

        records = await self._fetch_all(statement)
        if residual:
            records = [r for r in records if all(f.matches(r.data) for f in residual)]
        return records

    async def create(self, doc_id: str, data: Dict[str, Any]) -> DocumentRecord:
        record = DocumentRecord(
            collection=self.collection,
            id=doc_id,
            data={**data, "id": doc_id},
        )
        return await self.add(record)

    async def merge(self, doc_id: str, patch: Dict[str, Any]) -> Optional[DocumentRecord]:
        """Merge ``patch`` into the stored document.

        Returns:
            The updated record, or None if the document does not exist
        """
        record = await self.get(doc_id)
        if record is None:
            return None

        # Reassign so the JSON column is flagged dirty
        record.data = {**record.data, **patch, "id": doc_id}
        return await self.save(record)

    async def delete(self, doc_id: str) -> bool:
        """Delete a document.

        Returns:
            True if deleted, False if not found
        """
        record = await self.get(doc_id)
        if record is None:
            return False
        await self.remove(record)
        return True
