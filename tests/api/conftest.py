"""API test fixtures - TestClient over the full service graph on the in-memory store."""

import pytest
from starlette.testclient import TestClient

from api.app import build_services, create_app


# =============================================================================
# SERVICES
# =============================================================================


@pytest.fixture
def services(store, notifier, config):
    """Every service wired as in production, over the seeded in-memory store."""
    services = build_services(store, notifier, config)
    yield services
    services["delivery"].shutdown(wait=True)


# =============================================================================
# APP & CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def app(services):
    """FastAPI app with tenant middleware, error handlers, and data/actions routes."""
    return create_app(services)


@pytest.fixture
def client(app, tenant_id):
    """Client bound to the primary test tenant."""
    c = TestClient(app, raise_server_exceptions=False)
    c.headers["X-Tenant-ID"] = str(tenant_id)
    return c


@pytest.fixture
def client_b(app, tenant_b_id):
    """Client bound to the secondary test tenant."""
    c = TestClient(app, raise_server_exceptions=False)
    c.headers["X-Tenant-ID"] = str(tenant_b_id)
    return c


@pytest.fixture
def untenanted_client(app):
    """Client that sends no tenant header."""
    return TestClient(app, raise_server_exceptions=False)
