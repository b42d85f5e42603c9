"""
API test fixtures: FastAPI TestClient wired to the in-memory store
"""
import pytest
from fastapi.testclient import TestClient
from jose import jwt

from app.api.dependencies import get_inventory_service, get_loyalty_service, get_settlement_service
from app.core.config import settings
from app.main import app
from app.services.inventory_service import InventoryService
from app.services.loyalty_service import LoyaltyService

TEST_SECRET = "test-secret"


@pytest.fixture
def client(monkeypatch, db, service, clock):
    """TestClient whose services share the test's store and pinned clock"""
    monkeypatch.setattr(settings, "AUTH_SECRET", TEST_SECRET)
    app.dependency_overrides[get_settlement_service] = lambda: service
    app.dependency_overrides[get_loyalty_service] = lambda: LoyaltyService(db.unit_of_work, clock)
    app.dependency_overrides[get_inventory_service] = lambda: InventoryService(db.unit_of_work)

    yield TestClient(app)

    app.dependency_overrides.clear()


def auth_headers(employee_id, role, permissions=None):
    payload = {"sub": employee_id, "role": role, "name": f"{role.title()} {employee_id}"}
    if permissions:
        payload["permissions"] = permissions
    token = jwt.encode(payload, TEST_SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def cashier_headers():
    return auth_headers("E-100", "cashier")


@pytest.fixture
def supervisor_headers():
    return auth_headers("E-200", "supervisor")


@pytest.fixture
def manager_headers():
    return auth_headers("E-300", "manager")
