"""
Shared test fixtures.
"""

import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

import pytest
from unittest.mock import MagicMock, patch

from tests.factories import RawRecordFactory


# ===================
# SINGLETONS
# ===================

@pytest.fixture(autouse=True)
def reset_singletons():
    """Drop cached service and client instances between tests."""
    import integrations.dispatch_api as dispatch_api
    import services.allocation_session_service as session_module
    import services.order_grouping_service as grouping_module

    dispatch_api._dispatch_client = None
    grouping_module._order_grouping_service = None
    session_module._allocation_session_service = None
    yield
    dispatch_api._dispatch_client = None
    grouping_module._order_grouping_service = None
    session_module._allocation_session_service = None


# ===================
# MOCK DISPATCH API
# ===================

@pytest.fixture
def mock_gateway() -> MagicMock:
    """
    Mock DispatchGateway.

    Usage:
        def test_something(mock_gateway):
            mock_gateway.fetch_pending.return_value = [...]
    """
    gateway = MagicMock()
    gateway.fetch_pending.return_value = []
    gateway.submit.return_value = {}
    gateway.create_order.return_value = {"id": "created-1"}
    gateway.fetch_skus.return_value = []
    return gateway


@pytest.fixture
def sample_raw_records() -> list:
    """Two customers; DO-100 has sections A and B with Palm and Soya lines."""
    return [
        RawRecordFactory.create(id="r1", order_no="DO-100A", oil_type="Palm", order_quantity=100),
        RawRecordFactory.create(id="r2", order_no="DO-100A", oil_type="Soya", order_quantity=50),
        RawRecordFactory.create(id="r3", order_no="DO-100B", oil_type="Palm", order_quantity=40),
        RawRecordFactory.create(
            id="r4", order_no="DO-200", customer_name="Gupta Oils",
            oil_type="Mustard", order_quantity=25, rate_floor="42.50",
        ),
    ]


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client(mock_gateway):
    """
    FastAPI test client backed by the mock dispatch gateway.

    Usage:
        def test_endpoint(test_client, mock_gateway):
            mock_gateway.fetch_pending.return_value = [...]
            response = test_client.get("/api/order-groups")
    """
    from fastapi.testclient import TestClient
    from main import app

    with patch("services.order_grouping_service.get_dispatch_client", return_value=mock_gateway):
        yield TestClient(app)
