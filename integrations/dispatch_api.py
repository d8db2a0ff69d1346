"""
Order dispatch REST API client.

Reads pending records per workflow stage and writes approvals back.
Every response uses the envelope {success, message, data}.
"""

from typing import Any, Optional, Protocol
from urllib.parse import quote

import requests
import structlog

from config import settings
from exceptions import DispatchApiError
from models.workflow import WorkflowStage

logger = structlog.get_logger(__name__)


# Keys under "data" that may hold the record list, first present wins
RECORD_LIST_KEYS = ("orders", "dispatches", "records")


class DispatchGateway(Protocol):
    """Collaborator used by the grouping and submission services."""

    def fetch_pending(self, stage: WorkflowStage, limit: int) -> list[dict]:
        ...

    def submit(self, stage: WorkflowStage, record_id: str, payload: dict) -> dict:
        ...

    def create_order(self, payload: dict) -> dict:
        ...

    def fetch_skus(self) -> list[str]:
        ...


def extract_records(data: Any) -> list[dict]:
    """Pull the record list out of an envelope's data field."""
    if isinstance(data, list):
        return [r for r in data if isinstance(r, dict)]
    if isinstance(data, dict):
        for key in RECORD_LIST_KEYS:
            records = data.get(key)
            if isinstance(records, list):
                return [r for r in records if isinstance(r, dict)]
    return []


class DispatchApiClient:
    """requests-based DispatchGateway."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or settings.dispatch_api_url).rstrip("/")
        self.timeout = timeout or settings.dispatch_api_timeout_seconds
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        """
        Send one request and unwrap the envelope.

        Returns:
            The envelope's data field

        Raises:
            DispatchApiError: On network failure, HTTP error or success=false
        """
        url = f"{self.base_url}{path}"

        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            message = _error_message(e.response) or str(e)
            logger.error("dispatch_api_http_error", method=method, url=url, status=status, error=message)
            raise DispatchApiError(message, status_code=status, details={"url": url})
        except requests.exceptions.RequestException as e:
            logger.error("dispatch_api_request_failed", method=method, url=url, error=str(e))
            raise DispatchApiError(f"Dispatch API unreachable: {str(e)}", details={"url": url})

        try:
            body = response.json()
        except ValueError as e:
            logger.error("dispatch_api_invalid_json", method=method, url=url, error=str(e))
            raise DispatchApiError("Dispatch API returned invalid JSON", details={"url": url})

        if not isinstance(body, dict) or not body.get("success"):
            message = body.get("message") if isinstance(body, dict) else None
            logger.error("dispatch_api_rejected", method=method, url=url, error=message)
            raise DispatchApiError(message or "Dispatch API request failed", details={"url": url})

        return body.get("data")

    def fetch_pending(self, stage: WorkflowStage, limit: int) -> list[dict]:
        """Pending raw records of a workflow stage."""
        data = self._request("GET", stage.pending_path, params={"limit": limit})
        records = extract_records(data)
        logger.info("pending_records_fetched", stage=stage.value, count=len(records))
        return records

    def submit(self, stage: WorkflowStage, record_id: str, payload: dict) -> dict:
        """Submit one line's approval for a stage."""
        path = stage.submit_path(quote(str(record_id), safe=""))
        data = self._request("POST", path, json=payload)
        logger.info("line_submitted", stage=stage.value, record_id=record_id)
        return data if isinstance(data, dict) else {}

    def create_order(self, payload: dict) -> dict:
        """Create a new order section, returns the created record data."""
        data = self._request("POST", "/orders", json=payload)
        logger.info("order_created", order_no=payload.get("order_no"))
        return data if isinstance(data, dict) else {"records": data or []}

    def fetch_skus(self) -> list[str]:
        """SKU names from the SKU master, in server order, without duplicates."""
        data = self._request("GET", "/skus")
        if isinstance(data, list):
            items = data
        elif isinstance(data, dict):
            items = data.get("skus") or extract_records(data)
        else:
            items = []

        names: list[str] = []
        for item in items:
            name = item.get("sku_name") if isinstance(item, dict) else item
            if isinstance(name, str) and name.strip() and name.strip() not in names:
                names.append(name.strip())
        return names


def _error_message(response: Optional[requests.Response]) -> Optional[str]:
    """Server message from an error response, if it sent one."""
    if response is None:
        return None
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        message = body.get("message") or body.get("error")
        return str(message) if message else None
    return None


# Singleton
_dispatch_client: Optional[DispatchApiClient] = None


def get_dispatch_client() -> DispatchApiClient:
    """Get the singleton dispatch API client instance."""
    global _dispatch_client
    if _dispatch_client is None:
        _dispatch_client = DispatchApiClient()
    return _dispatch_client
