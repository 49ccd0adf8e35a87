"""
Test Configuration — shared factories for audit records, shades and alert feeds.

The durable store always uses the in-memory backend; HTTP is faked with
httpx.MockTransport or in-process sources.
"""

import asyncio
from datetime import datetime, timezone
from itertools import count

import pytest

from stocktrail.activity.records import AuditRecord, Shade, Stock
from stocktrail.alerts.models import AlertFeed
from stocktrail.alerts.storage import MemoryKeyValueStore, NotificationStorage
from stocktrail.core import config as config_module

NOW = datetime(2026, 10, 16, 15, 30, tzinfo=timezone.utc)

_record_ids = count(1)


def make_record(action, description="", performed_at=NOW, entity_id=1, **extra):
    return AuditRecord.model_validate(
        {
            "id": extra.pop("id", next(_record_ids)),
            "entityId": entity_id,
            "action": action,
            "description": description,
            "performedBy": extra.pop("performed_by", "alice"),
            "performedAt": performed_at.isoformat(),
            **extra,
        }
    )


def make_shade(shade_id, color, quantity, color_name=None, **extra):
    return Shade.model_validate(
        {
            "id": shade_id,
            "color": color,
            "colorName": color_name or color,
            "quantity": quantity,
            **extra,
        }
    )


def alert_payload(low_shades=(), high_shades=(), low_stocks=()):
    return {
        "lowShadeAlerts": list(low_shades),
        "highShadeAlerts": list(high_shades),
        "lowStocks": list(low_stocks),
        "thresholds": {"lowShade": 10, "highShade": 500, "lowStock": 5},
    }


def low_shade(stock_id=1, shade_id=11, quantity=3):
    return {
        "stockId": stock_id,
        "stockCode": f"STK-{stock_id:03d}",
        "product": "Velvet",
        "quantity": quantity,
        "shadeId": shade_id,
        "shadeName": "Crimson",
    }


def low_stock(stock_id=2, quantity=1):
    return {"stockId": stock_id, "stockCode": f"STK-{stock_id:03d}", "product": "Denim", "quantity": quantity}


class FakeAlertSource:
    """Serves queued payloads; an Exception instance in the queue is raised instead."""

    def __init__(self, *payloads):
        self.payloads = list(payloads)
        self.calls = 0
        self.gate: asyncio.Event | None = None

    def push(self, payload):
        self.payloads.append(payload)

    async def fetch_alerts(self) -> AlertFeed:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        payload = self.payloads.pop(0) if len(self.payloads) > 1 else self.payloads[0]
        if isinstance(payload, Exception):
            raise payload
        return AlertFeed.from_payload(payload)


@pytest.fixture(autouse=True)
def _local_settings(monkeypatch):
    monkeypatch.setenv("APP_ENV", "test")
    config_module.get_settings.cache_clear()
    yield
    config_module.get_settings.cache_clear()


@pytest.fixture
def kv_backend():
    return MemoryKeyValueStore()


@pytest.fixture
def storage(kv_backend):
    return NotificationStorage(kv_backend)


@pytest.fixture
def shades():
    return [
        make_shade(1, "#ff0000", 117, color_name="Red"),
        make_shade(2, "#204080", 40, color_name="Navy"),
        make_shade(3, "#00ff00", 0, color_name="Green"),
    ]


@pytest.fixture
def stock(shades):
    return Stock.model_validate(
        {
            "id": 1,
            "stockId": "STK-001",
            "product": "Velvet",
            "category": {"name": "Fabric"},
            "quantity": 157,
            "createdAt": "2026-07-03T09:00:00Z",
            "updatedAt": "2026-10-15T09:00:00Z",
            "shades": [s.model_dump(by_alias=True) for s in shades],
        }
    )
