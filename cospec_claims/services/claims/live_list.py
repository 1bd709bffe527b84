"""Live, optimistic view over the claims collection.

``LiveClaimList`` owns one store subscription for the current filter mode,
keeps the last delivered snapshot and overlays pending optimistic edits on
top of it through :func:`reconcile`.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from pydantic import ValidationError as PydanticValidationError

from cospec_claims.core.config import settings
from cospec_claims.core.document_store import BaseDocumentStore, Document, Query, Unsubscribe
from cospec_claims.core.exceptions import IndexMissingError
from cospec_claims.schemas.claim import Claim, ClaimView
from cospec_claims.services.claims.views import parse_claims, sort_claims, to_view
from cospec_claims.services.technician_service import TechnicianService
from cospec_claims.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")

INDEX_MISSING_MESSAGE = (
    "The claims query needs a store index that has not been created. "
    "Ask an operator to create it; retrying will not help."
)
CONNECTIVITY_MESSAGE = "Lost connection to the claims store. Check the network and reload."

SERVER_STAMPED_FIELDS = ("archived_at", "completed_at", "updated_at")


class FilterMode(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


@dataclass
class ListError:
    kind: str  # index_missing | connectivity
    message: str


@dataclass
class PendingOp:
    """An optimistic edit not yet confirmed by a snapshot."""

    claim_id: str
    patch: Dict[str, Any] = field(default_factory=dict)
    issued_at: float = 0.0
    remove: bool = False


def is_index_error(error: BaseException) -> bool:
    return isinstance(error, IndexMissingError) or "index" in str(error).lower()


def _apply_patch(claim: Claim, patch: Dict[str, Any]) -> Claim:
    return Claim.model_validate({**claim.model_dump(), **patch})


def _compared_fields(patch: Dict[str, Any]) -> List[str]:
    fields = [name for name in patch if name in Claim.model_fields]
    # The server stamps its own times; an op is settled once its other fields match
    settled_by = [name for name in fields if name not in SERVER_STAMPED_FIELDS]
    return settled_by or fields


def _is_confirmed(op: PendingOp, server: Dict[str, Claim]) -> bool:
    claim = server.get(op.claim_id)
    if op.remove:
        return claim is None
    if claim is None:
        return False
    patched = _apply_patch(claim, op.patch)
    return all(getattr(patched, name) == getattr(claim, name) for name in _compared_fields(op.patch))


def reconcile(
    server_snapshot: List[Claim],
    pending_ops: List[PendingOp],
    now: float,
    ttl: float,
    filter_mode: Optional[FilterMode] = None,
) -> Tuple[List[Claim], List[PendingOp]]:
    """Overlay pending optimistic ops on the authoritative snapshot.

    Returns the rendered claims (sorted) and the ops still pending. Ops
    older than ``ttl`` or already reflected by the server are dropped.
    """
    server = {claim.id: claim for claim in server_snapshot}
    remaining: List[PendingOp] = []
    for op in sorted(pending_ops, key=lambda o: o.issued_at):
        if now - op.issued_at >= ttl:
            LOGGER.debug(f"Dropping expired optimistic op on claim {op.claim_id}")
            continue
        try:
            if _is_confirmed(op, server):
                continue
        except PydanticValidationError as e:
            LOGGER.warning(f"Dropping invalid optimistic op on claim {op.claim_id}: {e}")
            continue
        remaining.append(op)

    view = dict(server)
    for op in remaining:
        if op.claim_id not in view:
            continue
        if op.remove:
            del view[op.claim_id]
        else:
            view[op.claim_id] = _apply_patch(view[op.claim_id], op.patch)

    claims = list(view.values())
    if filter_mode is not None:
        archived = filter_mode == FilterMode.ARCHIVED
        claims = [c for c in claims if c.is_archived == archived]
    return sort_claims(claims), remaining


ChangeListener = Callable[["LiveClaimList"], None]


class LiveClaimList:
    """Keeps a live, ordered claim list for one filter mode.

    Transport errors are retried with linear backoff up to ``max_retries``
    times per subscription; index errors are terminal. Call :meth:`stop`
    when the list is no longer needed.
    """

    def __init__(
        self,
        store: BaseDocumentStore,
        technicians: Optional[TechnicianService] = None,
        *,
        collection: Optional[str] = None,
        filter_mode: FilterMode = FilterMode.ACTIVE,
        max_retries: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        optimistic_ttl: Optional[float] = None,
        on_change: Optional[ChangeListener] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.store = store
        self.technicians = technicians
        self.collection = collection or settings.claims_collection
        self.filter_mode = FilterMode(filter_mode)
        self.max_retries = settings.sync.max_retries if max_retries is None else max_retries
        self.retry_base_delay = (
            settings.sync.retry_base_delay if retry_base_delay is None else retry_base_delay
        )
        self.optimistic_ttl = settings.sync.optimistic_ttl if optimistic_ttl is None else optimistic_ttl
        self._clock = clock
        self._sleep = sleep

        self.retry_count = 0
        self.error: Optional[ListError] = None
        self.loading = False

        self._snapshot: List[Claim] = []
        self._view: List[ClaimView] = []
        self._pending: List[PendingOp] = []
        self._listeners: List[ChangeListener] = [on_change] if on_change else []
        self._unsubscribe: Optional[Unsubscribe] = None
        self._retry_task: Optional[asyncio.Task] = None
        self._generation = 0

    # State

    @property
    def snapshot(self) -> List[Claim]:
        """Last authoritative snapshot, ordered."""
        return list(self._snapshot)

    @property
    def view(self) -> List[ClaimView]:
        """Snapshot with pending optimistic ops applied and technician names joined."""
        return list(self._view)

    @property
    def pending_ops(self) -> List[PendingOp]:
        return list(self._pending)

    @property
    def pending_retry(self) -> Optional[asyncio.Task]:
        return self._retry_task

    @property
    def is_subscribed(self) -> bool:
        return self._unsubscribe is not None

    def add_listener(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # Lifecycle

    def start(self) -> None:
        self._teardown()
        self.retry_count = 0
        self.error = None
        self._subscribe()

    def stop(self) -> None:
        self._teardown()
        self.loading = False

    def set_filter_mode(self, mode: FilterMode) -> None:
        mode = FilterMode(mode)
        LOGGER.info(f"Switching claim list from {self.filter_mode.value} to {mode.value}")
        self.filter_mode = mode
        self._snapshot = []
        self._view = []
        self.start()

    def _teardown(self) -> None:
        self._generation += 1
        if self._retry_task is not None:
            self._retry_task.cancel()
            self._retry_task = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _subscribe(self) -> None:
        self._generation += 1
        generation = self._generation
        self.loading = True
        query = Query().where("is_archived", "==", self.filter_mode == FilterMode.ARCHIVED)

        def on_snapshot(docs: List[Document]) -> None:
            if generation == self._generation:
                self.on_snapshot_received(docs)

        def on_error(error: Exception) -> None:
            if generation == self._generation:
                self._unsubscribe = None
                self.on_transport_error(error)

        unsubscribe = self.store.subscribe(self.collection, query, on_snapshot, on_error)
        if generation == self._generation:
            self._unsubscribe = unsubscribe
        else:
            # Torn down from a listener during the initial delivery
            unsubscribe()

    # Store callbacks

    def on_snapshot_received(self, docs: List[Document]) -> None:
        """Replace the snapshot wholesale with the delivered documents."""
        self._snapshot = sort_claims(parse_claims(docs))
        self.loading = False
        self.error = None
        self._rebuild()

    def on_transport_error(self, error: Exception) -> None:
        self.loading = False

        if is_index_error(error):
            LOGGER.error(
                f"Claims live query needs a missing index: {error}",
                extra={"filter_mode": self.filter_mode.value},
            )
            self.error = ListError(kind="index_missing", message=INDEX_MISSING_MESSAGE)
            self._notify()
            return

        if self.retry_count >= self.max_retries:
            LOGGER.error(
                f"Claims live query failed after {self.retry_count} retries: {error}",
                extra={"filter_mode": self.filter_mode.value},
            )
            self.error = ListError(kind="connectivity", message=CONNECTIVITY_MESSAGE)
            self._notify()
            return

        self.retry_count += 1
        delay = self.retry_base_delay * self.retry_count
        LOGGER.warning(
            f"Claims live query failed, retry {self.retry_count}/{self.max_retries} in {delay}s: {error}",
            extra={"filter_mode": self.filter_mode.value, "retry_count": self.retry_count},
        )
        self._retry_task = asyncio.get_running_loop().create_task(self._retry_after(delay))

    async def _retry_after(self, delay: float) -> None:
        await self._sleep(delay)
        self._retry_task = None
        self._subscribe()

    # Optimistic updates

    async def run_optimistic(
        self,
        claim_id: str,
        patch: Dict[str, Any],
        action: Callable[[], Awaitable[T]],
        *,
        remove: bool = False,
    ) -> T:
        """Show ``patch`` immediately, then await ``action``.

        On failure the op is discarded, the view falls back to the last
        snapshot and the error is re-raised.
        """
        op = PendingOp(claim_id=claim_id, patch=dict(patch), issued_at=self._clock(), remove=remove)
        self._pending.append(op)
        self._rebuild()
        try:
            return await action()
        except Exception:
            self._pending = [p for p in self._pending if p is not op]
            self._rebuild()
            raise

    # Rendering

    def _rebuild(self) -> None:
        claims, self._pending = reconcile(
            self._snapshot,
            self._pending,
            now=self._clock(),
            ttl=self.optimistic_ttl,
            filter_mode=self.filter_mode,
        )
        self._view = [to_view(claim, self.technicians) for claim in claims]
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                LOGGER.error("Claim list listener failed", exc_info=True)
