"""Pytest configuration and shared fixtures."""

import os

# Settings are read at import time
os.environ["STORE_BACKEND"] = "memory"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["AUTH_JWT_SECRET"] = "test-secret-key-with-at-least-32-bytes"
os.environ["TWILIO_ACCOUNT_SID"] = ""
os.environ["TWILIO_AUTH_TOKEN"] = ""
os.environ["PUSH_ENDPOINT_URL"] = ""

from typing import Any, Callable, Dict
from unittest.mock import AsyncMock

import jwt
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from cospec_claims.core.config import settings
from cospec_claims.main import app
from cospec_claims.schemas.auth import CurrentUser
from cospec_claims.services.claims.claim_service import ClaimService
from cospec_claims.services.notifications.dispatcher import NotificationDispatcher
from cospec_claims.services.notifications.push_client import PushClient
from cospec_claims.services.notifications.whatsapp_client import WhatsAppClient
from cospec_claims.services.store.memory_store import MemoryDocumentStore
from cospec_claims.services.technician_service import TechnicianService


def make_claim_doc(name: str, created_at: str, **overrides: Any) -> Dict[str, Any]:
    """Build a stored claim document with sensible defaults."""
    doc = {
        "name": name,
        "phone": "+54 11 4000-0000",
        "address": "Calle Falsa 123",
        "reason": "Sin servicio",
        "technician_id": None,
        "received_by": "Ana",
        "status": "pending",
        "resolution": None,
        "completed_by": None,
        "completed_at": None,
        "notification_sent": False,
        "is_archived": False,
        "archived_at": None,
        "created_at": created_at,
        "updated_at": created_at,
    }
    doc.update(overrides)
    return doc


@pytest.fixture
def claim_doc() -> Callable[..., Dict[str, Any]]:
    return make_claim_doc


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest_asyncio.fixture
async def technician_id(store: MemoryDocumentStore) -> str:
    """A seeded, assignable technician with a phone and no push token."""
    return await store.create(
        settings.technicians_collection,
        {
            "name": "Carlos Gómez",
            "phone": "+54 11 5555-0001",
            "email": "carlos@cospec.com.ar",
            "active": True,
            "approved": True,
            "available_for_assignment": True,
            "current_assignments": 0,
            "completed_assignments": 0,
            "total_assignments": 0,
        },
    )


@pytest.fixture
def technicians(store: MemoryDocumentStore) -> TechnicianService:
    return TechnicianService(store)


@pytest.fixture
def whatsapp() -> AsyncMock:
    return AsyncMock(spec=WhatsAppClient)


@pytest.fixture
def push() -> AsyncMock:
    return AsyncMock(spec=PushClient)


@pytest.fixture
def dispatcher(whatsapp: AsyncMock, push: AsyncMock) -> NotificationDispatcher:
    return NotificationDispatcher(whatsapp=whatsapp, push=push)


@pytest.fixture
def claim_service(
    store: MemoryDocumentStore, technicians: TechnicianService, dispatcher: NotificationDispatcher
) -> ClaimService:
    return ClaimService(store, technicians, dispatcher)


@pytest.fixture
def admin_user() -> CurrentUser:
    return CurrentUser(id="admin-1", email="admin@cospec.com.ar", role="admin", approved=True, full_name="Ana Admin")


@pytest.fixture
def technician_user() -> CurrentUser:
    return CurrentUser(id="tech-user-1", email="carlos@cospec.com.ar", role="technician", approved=True, full_name="Carlos Gómez")


@pytest.fixture
def claim_payload(technician_id: str) -> Dict[str, Any]:
    """The canonical claim typed in by staff."""
    return {
        "name": "Juan Pérez",
        "phone": "+54 11 1234-5678",
        "address": "Av. Rivadavia 1234",
        "reason": "Sin conexión a internet",
        "technician_id": technician_id,
        "received_by": "Ana",
    }


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Sign identity provider tokens with the test secret."""

    def _make_token(role: str = "admin", approved: bool = True, sub: str = "user-1", **claims: Any) -> str:
        payload = {"sub": sub, "email": f"{sub}@cospec.com.ar", "role": role, "approved": approved, **claims}
        return jwt.encode(payload, settings.auth.jwt_secret, algorithm=settings.auth.jwt_algorithm)

    return _make_token
