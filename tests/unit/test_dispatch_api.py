"""
Unit tests for the dispatch API client.

The HTTP session is always mocked.
"""

from unittest.mock import MagicMock

import pytest
import requests

from exceptions import DispatchApiError
from integrations.dispatch_api import DispatchApiClient, extract_records, get_dispatch_client
from models.workflow import WorkflowStage


# ===================
# FIXTURES
# ===================

def make_response(body=None, status_code=200, json_error=False):
    response = MagicMock()
    response.status_code = status_code
    if json_error:
        response.json.side_effect = ValueError("Expecting value")
    else:
        response.json.return_value = body
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(
            f"{status_code} Server Error", response=response
        )
    return response


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def client(session):
    return DispatchApiClient(base_url="http://dispatch.test/api/v1/", timeout=5, session=session)


# ===================
# READ TESTS
# ===================

class TestFetchPending:

    def test_orders_envelope(self, client, session):
        session.request.return_value = make_response(
            {"success": True, "data": {"orders": [{"id": 1}, {"id": 2}]}}
        )

        records = client.fetch_pending(WorkflowStage.PRE_APPROVAL, limit=500)

        assert records == [{"id": 1}, {"id": 2}]
        session.request.assert_called_once_with(
            "GET",
            "http://dispatch.test/api/v1/pre-approval/pending",
            timeout=5,
            params={"limit": 500},
        )

    def test_dispatches_envelope(self, client, session):
        session.request.return_value = make_response(
            {"success": True, "data": {"dispatches": [{"d_sr_number": "DSR-1"}]}}
        )

        records = client.fetch_pending(WorkflowStage.ACTUAL_DISPATCH, limit=10)

        assert records == [{"d_sr_number": "DSR-1"}]

    def test_success_false_raises(self, client, session):
        session.request.return_value = make_response({"success": False, "message": "Stage closed"})

        with pytest.raises(DispatchApiError) as exc:
            client.fetch_pending(WorkflowStage.APPROVAL, limit=10)

        assert exc.value.message == "Stage closed"
        assert exc.value.status_code == 503

    def test_http_error_raises_with_upstream_status(self, client, session):
        session.request.return_value = make_response({"message": "Internal"}, status_code=500)

        with pytest.raises(DispatchApiError) as exc:
            client.fetch_pending(WorkflowStage.APPROVAL, limit=10)

        assert exc.value.details["upstream_status"] == 500
        assert exc.value.message == "Internal"

    def test_connection_error_raises(self, client, session):
        session.request.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(DispatchApiError) as exc:
            client.fetch_pending(WorkflowStage.APPROVAL, limit=10)

        assert "unreachable" in exc.value.message

    def test_invalid_json_raises(self, client, session):
        session.request.return_value = make_response(json_error=True)

        with pytest.raises(DispatchApiError):
            client.fetch_pending(WorkflowStage.APPROVAL, limit=10)


class TestFetchSkus:

    def test_names_are_deduplicated(self, client, session):
        session.request.return_value = make_response({
            "success": True,
            "data": [{"sku_name": "Palm 15kg Tin"}, {"sku_name": " Palm 15kg Tin "}, {"sku_name": ""}, "Soya 1L"],
        })

        assert client.fetch_skus() == ["Palm 15kg Tin", "Soya 1L"]

    def test_nested_skus(self, client, session):
        session.request.return_value = make_response(
            {"success": True, "data": {"skus": [{"sku_name": "Mustard 1L"}]}}
        )

        assert client.fetch_skus() == ["Mustard 1L"]


# ===================
# WRITE TESTS
# ===================

class TestWrites:

    def test_submit_quotes_record_id(self, client, session):
        session.request.return_value = make_response({"success": True, "data": {"ok": 1}})

        result = client.submit(WorkflowStage.ACTUAL_DISPATCH, "DSR/12", {"final_rate": 45.0})

        assert result == {"ok": 1}
        args, kwargs = session.request.call_args
        assert args == ("POST", "http://dispatch.test/api/v1/actual-dispatch/submit/DSR%2F12")
        assert kwargs["json"] == {"final_rate": 45.0}

    def test_create_order(self, client, session):
        session.request.return_value = make_response({"success": True, "data": {"id": "o-1"}})

        result = client.create_order({"order_no": "DO-1C", "products": []})

        assert result == {"id": "o-1"}
        assert session.request.call_args.args[1] == "http://dispatch.test/api/v1/orders"


def test_extract_records_ignores_unknown_shapes():
    assert extract_records({"rows": []}) == []
    assert extract_records("nope") == []
    assert extract_records([{"id": 1}, "x"]) == [{"id": 1}]


def test_singleton_client():
    assert get_dispatch_client() is get_dispatch_client()
