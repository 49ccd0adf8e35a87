"""
Tracking API Client

Read-only access to the audit trail, stock items and the threshold-alert
feed. The engine never writes to this API.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from pydantic import ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential

from stocktrail.activity.records import AuditRecord, Stock
from stocktrail.alerts.models import AlertFeed
from stocktrail.core.config import Settings, get_settings

logger = structlog.get_logger()


class TrackingApiClient:
    """Client for the tracking service."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.headers = {"Accept": "application/json"}
        if token:
            self.headers["Authorization"] = f"Bearer {token}"

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **kwargs: Any) -> "TrackingApiClient":
        settings = settings or get_settings()
        return cls(
            settings.tracking_api_url,
            token=settings.tracking_api_token,
            timeout=settings.request_timeout_seconds,
            **kwargs,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        async with self._client() as client:
            response = await client.get(path, params=params)
            response.raise_for_status()
            return response.json()

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(min=1, max=10), reraise=True)
    async def fetch_tracking(self, entity_id: int | str, limit: int | None = None) -> list[AuditRecord]:
        """Fetch audit records for one stock item. Malformed items are skipped."""
        params: dict[str, Any] = {"entityId": entity_id}
        if limit is not None:
            params["limit"] = limit
        payload = await self._get_json("/tracking", params=params)
        items = payload.get("tracking", []) if isinstance(payload, dict) else payload

        records = []
        for item in items or []:
            try:
                records.append(AuditRecord.model_validate(item))
            except ValidationError as exc:
                logger.info(
                    "tracking_api.record_skipped",
                    entity_id=entity_id,
                    record_id=item.get("id") if isinstance(item, dict) else None,
                    error_count=exc.error_count(),
                )
        return records

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(min=1, max=10), reraise=True)
    async def fetch_stock(self, entity_id: int | str) -> Stock:
        """Fetch a stock item with its current shades."""
        payload = await self._get_json(f"/stock/{entity_id}")
        if isinstance(payload, dict) and isinstance(payload.get("stock"), dict):
            payload = payload["stock"]
        return Stock.model_validate(payload)

    async def fetch_alerts(self) -> AlertFeed:
        """Fetch the current threshold-alert feed. Not retried: callers poll."""
        payload = await self._get_json("/alerts")
        if not isinstance(payload, dict):
            raise ValueError("Alert feed payload is not an object")
        return AlertFeed.from_payload(payload)
