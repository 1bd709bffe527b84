"""Unit tests for ClaimService lifecycle operations."""

from unittest.mock import AsyncMock

import pytest

from cospec_claims.core.config import settings
from cospec_claims.core.exceptions import (
    AppError,
    DispatchError,
    NotFoundError,
    PreconditionError,
    TransportError,
    ValidationError,
)
from cospec_claims.schemas.claim import ClaimStatus, ClaimUpdate
from cospec_claims.services.claims.claim_service import ClaimService
from cospec_claims.services.store.memory_store import MemoryDocumentStore

CLAIMS = settings.claims_collection
TECHNICIANS = settings.technicians_collection


class TestCreateClaim:
    """Tests for create_claim validation, persistence and notifications."""

    @pytest.mark.asyncio
    async def test_new_claim_is_pending_and_notifies_customer_and_technician(
        self, claim_service, admin_user, claim_payload, store, whatsapp
    ):
        """A valid claim is stored pending and two WhatsApp messages go out."""
        result = await claim_service.create_claim(admin_user, claim_payload)

        claim = result.claim
        assert claim.id
        assert claim.name == "Juan Pérez"
        assert claim.status == ClaimStatus.PENDING
        assert claim.is_archived is False
        assert claim.archived_at is None
        assert claim.notification_sent is False
        assert claim.technician_name == "Carlos Gómez"
        assert result.warnings == []

        assert whatsapp.send_message.await_count == 2
        recipients = [call.args[0] for call in whatsapp.send_message.await_args_list]
        assert recipients == ["+54 11 1234-5678", "+54 11 5555-0001"]

        stored = await store.get(CLAIMS, claim.id)
        assert stored["notification_sent"] is True

    @pytest.mark.asyncio
    async def test_bumps_technician_assignment_counters(
        self, claim_service, admin_user, claim_payload, store, technician_id
    ):
        await claim_service.create_claim(admin_user, claim_payload)

        technician = await store.get(TECHNICIANS, technician_id)
        assert technician["current_assignments"] == 1
        assert technician["total_assignments"] == 1

    @pytest.mark.asyncio
    async def test_malformed_technician_record_does_not_fail_creation(
        self, claim_service, admin_user, claim_payload, store, whatsapp
    ):
        await store.create(TECHNICIANS, {"name": None, "phone": "+54 11 5555-0002"})

        result = await claim_service.create_claim(admin_user, claim_payload)

        assert result.warnings == []
        assert result.claim.technician_name == "Carlos Gómez"
        assert whatsapp.send_message.await_count == 2
        assert len(await store.query(CLAIMS)) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["name", "phone", "address", "reason", "technician_id", "received_by"])
    async def test_blank_required_field_rejected_before_store(
        self, claim_service, admin_user, claim_payload, store, whatsapp, field
    ):
        """Any blank required field fails validation and nothing is written."""
        claim_payload[field] = "   "

        with pytest.raises(ValidationError) as exc_info:
            await claim_service.create_claim(admin_user, claim_payload)

        assert field in exc_info.value.fields
        assert await store.query(CLAIMS) == []
        whatsapp.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_required_field_rejected(self, claim_service, admin_user, claim_payload, store):
        del claim_payload["address"]

        with pytest.raises(ValidationError):
            await claim_service.create_claim(admin_user, claim_payload)

        assert await store.query(CLAIMS) == []

    @pytest.mark.asyncio
    async def test_dispatch_failures_become_warnings(
        self, claim_service, admin_user, claim_payload, store, whatsapp
    ):
        """The claim stays committed when every notification fails."""
        whatsapp.send_message.side_effect = DispatchError("provider down", channel="whatsapp")

        result = await claim_service.create_claim(admin_user, claim_payload)

        assert len(result.warnings) == 2
        assert "cliente" in result.warnings[0]
        assert "técnico" in result.warnings[1]
        stored = await store.get(CLAIMS, result.claim.id)
        assert stored is not None
        assert stored["notification_sent"] is False

    @pytest.mark.asyncio
    async def test_partial_dispatch_failure_still_marks_notified(
        self, claim_service, admin_user, claim_payload, store, whatsapp
    ):
        whatsapp.send_message.side_effect = [None, DispatchError("bad number", channel="whatsapp")]

        result = await claim_service.create_claim(admin_user, claim_payload)

        assert len(result.warnings) == 1
        stored = await store.get(CLAIMS, result.claim.id)
        assert stored["notification_sent"] is True

    @pytest.mark.asyncio
    async def test_unknown_technician_only_notifies_customer(
        self, claim_service, admin_user, claim_payload, whatsapp
    ):
        claim_payload["technician_id"] = "does-not-exist"

        result = await claim_service.create_claim(admin_user, claim_payload)

        assert whatsapp.send_message.await_count == 1
        assert result.claim.technician_name == "does-not-exist"

    @pytest.mark.asyncio
    async def test_technician_with_push_token_gets_push(
        self, claim_service, admin_user, claim_payload, store, technician_id, push
    ):
        await store.update(TECHNICIANS, technician_id, {"push_token": "browser-token"})

        result = await claim_service.create_claim(admin_user, claim_payload)

        push.send.assert_awaited_once()
        kwargs = push.send.await_args.kwargs
        assert push.send.await_args.args[0] == "browser-token"
        assert kwargs["data"]["claimId"] == result.claim.id
        assert kwargs["data"]["customerName"] == "Juan Pérez"

    @pytest.mark.asyncio
    async def test_requires_session_user(self, claim_service, claim_payload):
        with pytest.raises(ValidationError):
            await claim_service.create_claim(None, claim_payload)


class TestArchiveRestoreDelete:
    """Tests for archive, restore and delete."""

    @pytest.mark.asyncio
    async def test_archive_and_restore_keep_flag_and_timestamp_together(
        self, claim_service, admin_user, claim_payload
    ):
        created = await claim_service.create_claim(admin_user, claim_payload)

        archived = await claim_service.archive_claim(admin_user, created.claim.id)
        assert archived.is_archived is True
        assert archived.archived_at is not None

        restored = await claim_service.restore_claim(admin_user, created.claim.id)
        assert restored.is_archived is False
        assert restored.archived_at is None

    @pytest.mark.asyncio
    async def test_archive_is_idempotent(self, claim_service, admin_user, claim_payload):
        created = await claim_service.create_claim(admin_user, claim_payload)

        first = await claim_service.archive_claim(admin_user, created.claim.id)
        second = await claim_service.archive_claim(admin_user, created.claim.id)

        assert second.is_archived is True
        assert second.archived_at >= first.archived_at
        assert second.model_dump(exclude={"archived_at", "updated_at"}) == first.model_dump(
            exclude={"archived_at", "updated_at"}
        )

    @pytest.mark.asyncio
    async def test_delete_requires_archive(self, claim_service, admin_user, claim_payload, store):
        created = await claim_service.create_claim(admin_user, claim_payload)

        with pytest.raises(PreconditionError, match="must archive before delete"):
            await claim_service.delete_claim(admin_user, created.claim.id)

        assert await store.get(CLAIMS, created.claim.id) is not None

    @pytest.mark.asyncio
    async def test_delete_archived_claim_removes_it(self, claim_service, admin_user, claim_payload, store):
        created = await claim_service.create_claim(admin_user, claim_payload)
        await claim_service.archive_claim(admin_user, created.claim.id)

        await claim_service.delete_claim(admin_user, created.claim.id)

        assert await store.get(CLAIMS, created.claim.id) is None
        with pytest.raises(NotFoundError):
            await claim_service.get_claim(created.claim.id)

    @pytest.mark.asyncio
    async def test_delete_missing_claim(self, claim_service, admin_user):
        with pytest.raises(NotFoundError):
            await claim_service.delete_claim(admin_user, "missing")

    @pytest.mark.asyncio
    async def test_archive_missing_claim(self, claim_service, admin_user):
        with pytest.raises(NotFoundError):
            await claim_service.archive_claim(admin_user, "missing")


class TestEditClaim:
    """Tests for partial edits."""

    @pytest.mark.asyncio
    async def test_edit_applies_only_sent_fields(self, claim_service, admin_user, claim_payload):
        created = await claim_service.create_claim(admin_user, claim_payload)

        edited = await claim_service.edit_claim(
            admin_user, created.claim.id, ClaimUpdate(reason="  Cable cortado  ", status="in_progress")
        )

        assert edited.reason == "Cable cortado"
        assert edited.status == ClaimStatus.IN_PROGRESS
        assert edited.name == "Juan Pérez"
        assert edited.updated_at >= created.claim.updated_at

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "patch",
        [
            {"name": ""},
            {"is_archived": True},
            {"status": "closed"},
            {"status": None},
            {"created_at": "not-a-date"},
            {"notification_sent": True},
            {"priority": "high"},
            {"phone": 1122334455},
            {},
        ],
    )
    async def test_invalid_patches_rejected(self, claim_service, admin_user, claim_payload, store, patch):
        created = await claim_service.create_claim(admin_user, claim_payload)
        before = await store.get(CLAIMS, created.claim.id)

        with pytest.raises(ValidationError):
            await claim_service.edit_claim(admin_user, created.claim.id, patch)

        assert await store.get(CLAIMS, created.claim.id) == before

    @pytest.mark.asyncio
    async def test_non_editable_field_rejected_before_write(self, claim_service, admin_user, claim_payload, store):
        created = await claim_service.create_claim(admin_user, claim_payload)
        before = await store.get(CLAIMS, created.claim.id)

        with pytest.raises(ValidationError) as exc_info:
            await claim_service.edit_claim(admin_user, created.claim.id, {"created_at": "not-a-date"})

        assert exc_info.value.fields == ["created_at"]
        assert (await store.get(CLAIMS, created.claim.id))["created_at"] == before["created_at"]
        assert (await claim_service.get_claim(created.claim.id)).created_at == created.claim.created_at


class TestCompleteClaim:
    """Tests for the technician completion flow."""

    @pytest.mark.asyncio
    async def test_complete_records_resolution_and_counters(
        self, claim_service, admin_user, technician_user, claim_payload, store, technician_id
    ):
        created = await claim_service.create_claim(admin_user, claim_payload)

        completed = await claim_service.complete_claim(technician_user, created.claim.id, "Se cambió el router")

        assert completed.status == ClaimStatus.COMPLETED
        assert completed.resolution == "Se cambió el router"
        assert completed.completed_by == "Carlos Gómez"
        assert completed.completed_at is not None

        technician = await store.get(TECHNICIANS, technician_id)
        assert technician["current_assignments"] == 0
        assert technician["completed_assignments"] == 1

    @pytest.mark.asyncio
    async def test_completing_twice_counts_once(
        self, claim_service, admin_user, technician_user, claim_payload, store, technician_id
    ):
        created = await claim_service.create_claim(admin_user, claim_payload)

        await claim_service.complete_claim(technician_user, created.claim.id, "Listo")
        await claim_service.complete_claim(technician_user, created.claim.id, "Listo de nuevo")

        technician = await store.get(TECHNICIANS, technician_id)
        assert technician["completed_assignments"] == 1

    @pytest.mark.asyncio
    async def test_blank_resolution_rejected(self, claim_service, technician_user, claim_payload, admin_user):
        created = await claim_service.create_claim(admin_user, claim_payload)

        with pytest.raises(ValidationError):
            await claim_service.complete_claim(technician_user, created.claim.id, "  ")


class TestReadsAndTransport:
    """Tests for one-shot reads and store failures."""

    @pytest.mark.asyncio
    async def test_list_claims_filters_and_sorts(self, claim_service, store, claim_doc, technician_id):
        older = await store.create(CLAIMS, claim_doc("Older", "2026-01-01T10:00:00+00:00", technician_id=technician_id))
        newer = await store.create(CLAIMS, claim_doc("Newer", "2026-01-02T10:00:00+00:00"))
        await store.create(
            CLAIMS,
            claim_doc("Archived", "2026-01-03T10:00:00+00:00", is_archived=True, archived_at="2026-01-04T10:00:00+00:00"),
        )

        active = await claim_service.list_claims(archived=False)
        archived = await claim_service.list_claims(archived=True)

        assert [c.id for c in active] == [newer, older]
        assert active[1].technician_name == "Carlos Gómez"
        assert [c.name for c in archived] == ["Archived"]

    @pytest.mark.asyncio
    async def test_malformed_stored_claims_are_skipped_in_listings(self, claim_service, store, claim_doc):
        good = await store.create(CLAIMS, claim_doc("Bien", "2026-01-01T10:00:00+00:00"))
        await store.create(CLAIMS, claim_doc("Sin teléfono", "2026-01-02T10:00:00+00:00", phone=None))

        listed = await claim_service.list_claims()

        assert [c.id for c in listed] == [good]

    @pytest.mark.asyncio
    async def test_malformed_stored_claim_raises_app_error(self, claim_service, store, claim_doc):
        broken = await store.create(CLAIMS, claim_doc("Sin teléfono", "2026-01-02T10:00:00+00:00", phone=None))

        with pytest.raises(AppError, match="malformed") as exc_info:
            await claim_service.get_claim(broken)

        assert exc_info.value.original_error is not None

    @pytest.mark.asyncio
    async def test_transport_errors_propagate_unchanged(self, admin_user, technicians, dispatcher):
        store = AsyncMock(spec=MemoryDocumentStore)
        error = TransportError("store unreachable")
        store.update.side_effect = error
        service = ClaimService(store, technicians, dispatcher)

        with pytest.raises(TransportError) as exc_info:
            await service.archive_claim(admin_user, "any-id")

        assert exc_info.value is error
