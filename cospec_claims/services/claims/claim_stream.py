import asyncio
import json
from typing import AsyncGenerator, Optional

from cospec_claims.core.config import settings
from cospec_claims.core.document_store import BaseDocumentStore
from cospec_claims.core.exceptions import AppError
from cospec_claims.schemas.sse_schemas import SSEEvent, SSEEventType
from cospec_claims.services.claims.live_list import FilterMode, LiveClaimList
from cospec_claims.services.technician_service import TechnicianService
from cospec_claims.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ClaimStreamManager:
    """Streams a live claim list to one SSE connection."""

    def __init__(
        self,
        store: BaseDocumentStore,
        technicians: Optional[TechnicianService] = None,
        heartbeat_interval: Optional[float] = None,
        **list_options,
    ):
        self.store = store
        self.technicians = technicians
        self.heartbeat_interval = (
            settings.sync.heartbeat_interval if heartbeat_interval is None else heartbeat_interval
        )
        self.list_options = list_options

    async def stream_claims(
        self, filter_mode: FilterMode = FilterMode.ACTIVE
    ) -> AsyncGenerator[str, None]:
        """Stream SSE events for the claims in ``filter_mode``.

        Each connection gets its own ``LiveClaimList``; it is stopped when
        the client disconnects or the stream ends.
        """
        mode = FilterMode(filter_mode)
        queue: asyncio.Queue = asyncio.Queue()

        if self.technicians is not None:
            try:
                await self.technicians.load()
            except AppError as e:
                LOGGER.warning(f"Technician directory unavailable for stream: {e}")

        def on_change(live: LiveClaimList) -> None:
            if live.error is not None:
                queue.put_nowait(SSEEvent(
                    event_type=SSEEventType.CLAIMS_ERROR,
                    filter_mode=mode.value,
                    data={"kind": live.error.kind, "message": live.error.message},
                ))
            elif not live.loading:
                queue.put_nowait(SSEEvent(
                    event_type=SSEEventType.CLAIMS_SNAPSHOT,
                    filter_mode=mode.value,
                    data={"claims": [claim.model_dump(mode="json") for claim in live.view]},
                ))

        live = LiveClaimList(
            self.store, self.technicians, filter_mode=mode, on_change=on_change, **self.list_options
        )
        LOGGER.info(f"SSE claim stream opened ({mode.value})")

        try:
            live.start()
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=self.heartbeat_interval)
                except asyncio.TimeoutError:
                    event = SSEEvent(
                        event_type=SSEEventType.HEARTBEAT,
                        filter_mode=mode.value,
                        data={"message": "keep-alive"},
                    )

                yield self._format_sse(event)

                # Both error kinds mean the list will not recover on its own
                if event.event_type == SSEEventType.CLAIMS_ERROR:
                    break

        except asyncio.CancelledError:
            LOGGER.info(f"SSE claim stream cancelled ({mode.value})")
            raise
        finally:
            live.stop()
            LOGGER.info(f"SSE claim stream closed ({mode.value})")

    def _format_sse(self, event: SSEEvent) -> str:
        """Format an SSEEvent as a raw SSE message."""
        data = event.model_dump(mode="json")
        return f"event: {data['event_type']}\ndata: {json.dumps(data)}\n\n"
