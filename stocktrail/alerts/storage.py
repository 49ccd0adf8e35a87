"""
Durable notification storage.

Two logical keys hold the alert state across restarts:
  - notifications_key: JSON list of Notification objects
  - cleared_keys_key:  JSON list of cleared alert keys

Reads that fail or do not parse fall back to empty state; writes are
best-effort. In-memory state stays authoritative for the running session.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod

import redis.asyncio as aioredis
import structlog
from pydantic import ValidationError

from stocktrail.alerts.models import Notification
from stocktrail.core.config import Settings, get_settings

logger = structlog.get_logger()


# ── Key-value backends ─────────────────────────────────────────────────────


class KeyValueStore(ABC):
    """Minimal string key-value interface the notification store persists through."""

    @abstractmethod
    async def get(self, key: str) -> str | None: ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None: ...

    async def close(self) -> None:
        return None


class MemoryKeyValueStore(KeyValueStore):
    """Process-local backend for tests and single-session hosts."""

    def __init__(self, initial: dict[str, str] | None = None):
        self.data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value


class RedisKeyValueStore(KeyValueStore):
    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self._redis: aioredis.Redis | None = None

    def _client(self) -> aioredis.Redis:
        if self._redis is None:
            self._redis = aioredis.from_url(self.redis_url, decode_responses=True)
        return self._redis

    async def get(self, key: str) -> str | None:
        return await self._client().get(key)

    async def set(self, key: str, value: str) -> None:
        await self._client().set(key, value)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


def build_key_value_store(settings: Settings | None = None) -> KeyValueStore:
    settings = settings or get_settings()
    backend = settings.notification_backend.strip().lower()
    if backend == "redis":
        return RedisKeyValueStore(settings.redis_url)
    if backend == "memory":
        return MemoryKeyValueStore()
    raise ValueError(f"Unknown notification backend: {settings.notification_backend!r}")


# ── Notification state codec ───────────────────────────────────────────────


class NotificationStorage:
    """Reads and writes notification state through a KeyValueStore."""

    def __init__(
        self,
        backend: KeyValueStore,
        notifications_key: str = "stock-notifications",
        cleared_keys_key: str = "cleared-notification-ids",
    ):
        self.backend = backend
        self.notifications_key = notifications_key
        self.cleared_keys_key = cleared_keys_key

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "NotificationStorage":
        settings = settings or get_settings()
        return cls(
            build_key_value_store(settings),
            notifications_key=settings.notifications_key,
            cleared_keys_key=settings.cleared_keys_key,
        )

    async def _read_json(self, key: str) -> object | None:
        try:
            raw = await self.backend.get(key)
        except Exception as exc:  # noqa: BLE001
            logger.warning("notification_storage.read_failed", key=key, error=str(exc))
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            logger.warning("notification_storage.unparsable", key=key, error=str(exc))
            return None

    async def load_notifications(self) -> list[Notification]:
        data = await self._read_json(self.notifications_key)
        if not isinstance(data, list):
            return []
        try:
            return [Notification.model_validate(item) for item in data]
        except ValidationError as exc:
            logger.warning(
                "notification_storage.unparsable",
                key=self.notifications_key,
                error_count=exc.error_count(),
            )
            return []

    async def load_cleared_keys(self) -> set[str]:
        data = await self._read_json(self.cleared_keys_key)
        if not isinstance(data, list):
            return set()
        return {str(key) for key in data}

    async def _write(self, key: str, value: str) -> bool:
        try:
            await self.backend.set(key, value)
            return True
        except Exception as exc:  # noqa: BLE001
            logger.warning("notification_storage.write_failed", key=key, error=str(exc))
            return False

    async def save(self, notifications: list[Notification], cleared_keys: set[str] | frozenset[str]) -> bool:
        """Write both keys; returns False if either write failed."""
        payload = json.dumps([n.model_dump(mode="json") for n in notifications])
        saved_notifications = await self._write(self.notifications_key, payload)
        saved_cleared = await self._write(self.cleared_keys_key, json.dumps(sorted(cleared_keys)))
        return saved_notifications and saved_cleared

    async def close(self) -> None:
        try:
            await self.backend.close()
        except Exception as exc:  # noqa: BLE001
            logger.warning("notification_storage.close_failed", error=str(exc))
