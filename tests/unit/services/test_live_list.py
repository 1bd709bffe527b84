"""Unit tests for LiveClaimList and reconcile."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from cospec_claims.core.config import settings
from cospec_claims.core.exceptions import IndexMissingError, TransportError
from cospec_claims.schemas.claim import Claim, ClaimStatus
from cospec_claims.services.claims.live_list import FilterMode, LiveClaimList, PendingOp, reconcile

CLAIMS = settings.claims_collection


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def live(store, technicians, clock, sleep) -> LiveClaimList:
    return LiveClaimList(
        store,
        technicians,
        max_retries=3,
        retry_base_delay=1.0,
        optimistic_ttl=10.0,
        clock=clock,
        sleep=sleep,
    )


def _claim(claim_doc, claim_id: str, created_at: str, **overrides) -> Claim:
    return Claim.from_document({**claim_doc(claim_id, created_at, **overrides), "id": claim_id})


class TestSnapshots:
    """Tests for snapshot delivery and ordering."""

    @pytest.mark.asyncio
    async def test_orders_newest_first_with_id_tiebreak(self, live, store, claim_doc):
        same_time = "2026-03-01T09:00:00+00:00"
        first = await store.create(CLAIMS, claim_doc("A", same_time))
        second = await store.create(CLAIMS, claim_doc("B", same_time))
        newest = await store.create(CLAIMS, claim_doc("C", "2026-03-02T09:00:00+00:00"))

        live.start()

        tied = sorted([first, second], reverse=True)
        assert [c.id for c in live.view] == [newest] + tied
        assert live.loading is False
        live.stop()

    @pytest.mark.asyncio
    async def test_last_delivered_snapshot_wins(self, live, claim_doc):
        live.on_snapshot_received([{**claim_doc("Newer state", "2026-03-02T09:00:00+00:00"), "id": "a"}])
        live.on_snapshot_received([{**claim_doc("Older state", "2026-03-01T09:00:00+00:00"), "id": "b"}])

        assert [c.id for c in live.snapshot] == ["b"]
        assert [c.name for c in live.view] == ["Older state"]

    @pytest.mark.asyncio
    async def test_live_updates_reach_the_view(self, live, store, claim_doc):
        on_change = Mock()
        live.add_listener(on_change)
        live.start()
        assert live.view == []

        await store.create(CLAIMS, claim_doc("Nuevo", "2026-03-01T09:00:00+00:00"))

        assert [c.name for c in live.view] == ["Nuevo"]
        assert on_change.call_count >= 2
        live.stop()

    @pytest.mark.asyncio
    async def test_joins_technician_names(self, live, store, claim_doc, technician_id, technicians):
        await technicians.load()
        await store.create(CLAIMS, claim_doc("Con técnico", "2026-03-01T09:00:00+00:00", technician_id=technician_id))

        live.start()

        assert live.view[0].technician_name == "Carlos Gómez"
        live.stop()

    @pytest.mark.asyncio
    async def test_malformed_documents_are_skipped(self, live, claim_doc):
        live.on_snapshot_received([
            {"id": "broken", "name": "Sin fechas"},
            {**claim_doc("Ok", "2026-03-01T09:00:00+00:00"), "id": "ok"},
        ])

        assert [c.id for c in live.view] == ["ok"]

    @pytest.mark.asyncio
    async def test_naive_and_aware_timestamps_sort_together(self, live, store, claim_doc):
        await store.create(CLAIMS, claim_doc("Aware", "2026-03-01T09:00:00+00:00"))
        live.start()

        await store.create(CLAIMS, claim_doc("Naive", "2026-03-02T09:00:00"))

        assert [c.name for c in live.view] == ["Naive", "Aware"]
        assert live.view[0].created_at.tzinfo is not None
        live.stop()


class TestFilterMode:
    """Tests for switching between active and archived claims."""

    @pytest.mark.asyncio
    async def test_switching_mode_resubscribes_with_new_predicate(self, live, store, claim_doc):
        active = await store.create(CLAIMS, claim_doc("Activo", "2026-03-01T09:00:00+00:00"))
        archived = await store.create(
            CLAIMS,
            claim_doc("Archivado", "2026-03-01T10:00:00+00:00", is_archived=True, archived_at="2026-03-05T10:00:00+00:00"),
        )

        live.start()
        assert [c.id for c in live.view] == [active]

        live.set_filter_mode(FilterMode.ARCHIVED)

        assert [c.id for c in live.view] == [archived]
        assert store.listener_count == 1
        live.stop()
        assert store.listener_count == 0

    @pytest.mark.asyncio
    async def test_archiving_moves_claim_out_of_active_view(self, live, store, claim_doc):
        claim_id = await store.create(CLAIMS, claim_doc("Activo", "2026-03-01T09:00:00+00:00"))
        live.start()

        await store.update(CLAIMS, claim_id, {"is_archived": True, "archived_at": "2026-03-02T09:00:00+00:00"})

        assert live.view == []
        live.stop()


class TestRetry:
    """Tests for transport error handling."""

    @pytest.mark.asyncio
    async def test_linear_backoff_then_connectivity_error(self, live, store, sleep):
        live.start()

        for expected_count in (1, 2, 3):
            store.fail_listeners(TransportError("connection reset"))
            assert live.retry_count == expected_count
            assert live.error is None
            await live.pending_retry
            assert live.is_subscribed

        store.fail_listeners(TransportError("connection reset"))

        assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0, 3.0]
        assert live.error is not None
        assert live.error.kind == "connectivity"
        assert live.pending_retry is None
        assert not live.is_subscribed
        live.stop()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            IndexMissingError("documents table missing"),
            TransportError("The query requires an index. Create it here: https://console"),
        ],
    )
    async def test_index_errors_are_terminal(self, live, store, sleep, error):
        live.start()

        store.fail_listeners(error)

        assert live.error.kind == "index_missing"
        assert live.retry_count == 0
        assert live.pending_retry is None
        sleep.assert_not_awaited()
        live.stop()

    @pytest.mark.asyncio
    async def test_filter_change_resets_retry_count(self, live, store):
        live.start()
        store.fail_listeners(TransportError("timeout"))
        await live.pending_retry
        assert live.retry_count == 1

        live.set_filter_mode(FilterMode.ARCHIVED)

        assert live.retry_count == 0
        assert live.error is None
        live.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_retry(self, live, store):
        live.start()
        store.fail_listeners(TransportError("timeout"))
        retry = live.pending_retry

        live.stop()
        await asyncio.sleep(0)

        assert retry.cancelled()
        assert store.listener_count == 0

    @pytest.mark.asyncio
    async def test_successful_snapshot_after_retry_clears_loading(self, live, store, claim_doc):
        await store.create(CLAIMS, claim_doc("Visible", "2026-03-01T09:00:00+00:00"))
        live.start()
        store.fail_listeners(TransportError("timeout"))
        assert live.loading is False

        await live.pending_retry

        assert [c.name for c in live.view] == ["Visible"]
        assert live.loading is False
        live.stop()


class TestOptimisticUpdates:
    """Tests for run_optimistic."""

    @pytest.mark.asyncio
    async def test_patch_is_visible_while_action_runs(self, live, store, claim_doc):
        claim_id = await store.create(CLAIMS, claim_doc("Juan", "2026-03-01T09:00:00+00:00"))
        live.start()
        seen = {}

        async def action():
            seen["status"] = live.view[0].status
            await store.update(CLAIMS, claim_id, {"status": "completed"})
            return "done"

        result = await live.run_optimistic(claim_id, {"status": "completed"}, action)

        assert result == "done"
        assert seen["status"] == ClaimStatus.COMPLETED
        assert live.view[0].status == ClaimStatus.COMPLETED
        assert live.pending_ops == []
        live.stop()

    @pytest.mark.asyncio
    async def test_failed_action_rolls_back(self, live, store, claim_doc):
        claim_id = await store.create(CLAIMS, claim_doc("Juan", "2026-03-01T09:00:00+00:00"))
        live.start()

        async def action():
            raise TransportError("store unreachable")

        with pytest.raises(TransportError):
            await live.run_optimistic(claim_id, {"status": "completed"}, action)

        assert live.view[0].status == ClaimStatus.PENDING
        assert live.pending_ops == []
        live.stop()

    @pytest.mark.asyncio
    async def test_optimistic_archive_hides_claim_from_active_view(self, live, store, claim_doc):
        claim_id = await store.create(CLAIMS, claim_doc("Juan", "2026-03-01T09:00:00+00:00"))
        live.start()
        visible_during_action = []

        async def action():
            visible_during_action.extend(c.id for c in live.view)

        await live.run_optimistic(claim_id, {"is_archived": True}, action)

        assert visible_during_action == []
        live.stop()

    @pytest.mark.asyncio
    async def test_unconfirmed_op_expires(self, live, store, claim_doc, clock):
        claim_id = await store.create(CLAIMS, claim_doc("Juan", "2026-03-01T09:00:00+00:00"))
        live.start()

        async def action():
            return None

        await live.run_optimistic(claim_id, {"reason": "Optimista"}, action)
        assert live.view[0].reason == "Optimista"

        clock.now += 11
        await store.update(CLAIMS, claim_id, {"address": "Otra dirección"})

        assert live.view[0].reason == "Sin servicio"
        assert live.pending_ops == []
        live.stop()


class TestReconcile:
    """Tests for the pure reconcile function."""

    def test_young_op_overrides_server_value(self, claim_doc):
        server = [_claim(claim_doc, "a", "2026-03-01T09:00:00+00:00")]
        ops = [PendingOp("a", {"status": "in_progress"}, issued_at=95.0)]

        view, remaining = reconcile(server, ops, now=100.0, ttl=10.0)

        assert view[0].status == ClaimStatus.IN_PROGRESS
        assert remaining == ops

    def test_confirmed_op_is_dropped(self, claim_doc):
        server = [_claim(claim_doc, "a", "2026-03-01T09:00:00+00:00", status="in_progress")]
        ops = [PendingOp("a", {"status": "in_progress"}, issued_at=95.0)]

        view, remaining = reconcile(server, ops, now=100.0, ttl=10.0)

        assert view[0].status == ClaimStatus.IN_PROGRESS
        assert remaining == []

    def test_expired_op_is_dropped(self, claim_doc):
        server = [_claim(claim_doc, "a", "2026-03-01T09:00:00+00:00")]
        ops = [PendingOp("a", {"status": "completed"}, issued_at=80.0)]

        view, remaining = reconcile(server, ops, now=100.0, ttl=10.0)

        assert view[0].status == ClaimStatus.PENDING
        assert remaining == []

    def test_pending_removal_hides_claim(self, claim_doc):
        server = [
            _claim(claim_doc, "a", "2026-03-01T09:00:00+00:00"),
            _claim(claim_doc, "b", "2026-03-02T09:00:00+00:00"),
        ]
        ops = [PendingOp("a", issued_at=99.0, remove=True)]

        view, remaining = reconcile(server, ops, now=100.0, ttl=10.0)

        assert [c.id for c in view] == ["b"]
        assert len(remaining) == 1

    def test_removal_confirmed_once_server_drops_claim(self, claim_doc):
        server = [_claim(claim_doc, "b", "2026-03-02T09:00:00+00:00")]
        ops = [PendingOp("a", issued_at=99.0, remove=True)]

        _, remaining = reconcile(server, ops, now=100.0, ttl=10.0)

        assert remaining == []

    def test_filter_mode_drops_claims_that_changed_archive_state(self, claim_doc):
        server = [_claim(claim_doc, "a", "2026-03-01T09:00:00+00:00")]
        ops = [PendingOp("a", {"is_archived": True, "archived_at": "2026-03-03T00:00:00+00:00"}, issued_at=99.0)]

        active_view, _ = reconcile(server, ops, now=100.0, ttl=10.0, filter_mode=FilterMode.ACTIVE)
        archived_view, _ = reconcile(server, ops, now=100.0, ttl=10.0, filter_mode=FilterMode.ARCHIVED)

        assert active_view == []
        assert [c.id for c in archived_view] == ["a"]

    def test_archive_confirmed_despite_server_timestamp(self, claim_doc):
        server = [
            _claim(
                claim_doc,
                "a",
                "2026-03-01T09:00:00+00:00",
                is_archived=True,
                archived_at="2026-03-03T00:00:05+00:00",
            )
        ]
        ops = [PendingOp("a", {"is_archived": True, "archived_at": "2026-03-03T00:00:00+00:00"}, issued_at=99.0)]

        view, remaining = reconcile(server, ops, now=100.0, ttl=10.0, filter_mode=FilterMode.ARCHIVED)

        assert remaining == []
        assert view[0].archived_at.second == 5
