"""Shared fixtures for API tests."""

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from catalog_sync.api.admin import get_orchestrator
from catalog_sync.infrastructure.config import settings
from catalog_sync.main import app
from catalog_sync.sync.orchestrator import CatalogSyncOrchestrator


@pytest.fixture
def client() -> TestClient:
    """Create test client without authentication."""
    return TestClient(app)


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Get authentication headers."""
    return {"Authorization": f"Bearer {settings.admin_api_key}"}


@pytest.fixture
def auth_client(auth_headers: dict[str, str]) -> TestClient:
    """Create test client with a valid admin key."""
    return TestClient(app, headers=auth_headers)


@pytest.fixture
def use_orchestrator() -> Iterator:
    """Route admin requests to a given orchestrator instead of the database.

    Usage:
        use_orchestrator(orchestrator)
    """

    def install(orchestrator: CatalogSyncOrchestrator) -> None:
        app.dependency_overrides[get_orchestrator] = lambda: orchestrator

    yield install
    app.dependency_overrides.pop(get_orchestrator, None)
