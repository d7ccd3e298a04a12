"""
Pytest Configuration and Fixtures.
Shared test fixtures for all test modules.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from medclaim.core.config import Settings
from medclaim.core.enums import BackendMode
from medclaim.gateways.base import BackendServices
from medclaim.gateways.demo_gateway import DemoStore, create_demo_backend
from medclaim.schemas.claim import Claim
from medclaim.services.notifications import Notifier

TEST_PASSWORD = "secret123"


@pytest.fixture
def test_settings() -> Settings:
    """Demo-mode settings isolated from the environment and .env files."""
    return Settings(
        _env_file=None,
        ENVIRONMENT="testing",
        BACKEND_MODE=BackendMode.DEMO,
        DEMO_JWT_SECRET="t" * 48,
        DEMO_SEED_CLAIMS=False,
        DEMO_AUTO_CONFIRM=True,
    )


@pytest.fixture
def demo_store() -> DemoStore:
    """Empty in-memory backend."""
    return DemoStore(seed_claims=False)


@pytest.fixture
def demo_backend(test_settings, demo_store) -> BackendServices:
    return create_demo_backend(test_settings, demo_store)


@pytest.fixture
def registered_user(demo_store):
    """A confirmed demo account."""
    return demo_store.add_user("asha@medclaim.in", TEST_PASSWORD, "Asha Rao", confirmed=True)


@pytest.fixture
def notifier() -> Notifier:
    return Notifier()


@pytest.fixture
def make_claim() -> Callable[..., Claim]:
    """Build a Claim as the backend would return it."""

    def _make(patient_name: str = "Test Patient", minutes_ago: int = 0, **overrides) -> Claim:
        data = {
            "id": str(uuid4()),
            "patient_name": patient_name,
            "diagnosis": "Fracture",
            "treatment": "Cast",
            "cost": 5000,
            "status": "pending",
            "document_url": None,
            "created_at": datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
        }
        data.update(overrides)
        return Claim.model_validate(data)

    return _make


@pytest.fixture
def mock_supabase_client():
    """Create a mock supabase AsyncClient."""
    client = MagicMock()
    client.auth = MagicMock()
    client.auth.sign_in_with_password = AsyncMock()
    client.auth.sign_up = AsyncMock()
    client.auth.sign_out = AsyncMock()
    client.remove_channel = AsyncMock()
    client.remove_all_channels = AsyncMock()
    return client


@pytest.fixture
def wait_until():
    """Poll a predicate on the running loop until it holds."""

    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        deadline = asyncio.get_running_loop().time() + timeout
        while not predicate():
            if asyncio.get_running_loop().time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.01)

    return _wait


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "e2e: mark test as an end-to-end test"
    )
