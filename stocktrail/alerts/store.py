"""
Notification Store — polling-driven, deduplicated alert notifications.

Owns two collections and nothing else mutates them:
  - live notifications, newest first (at most one per alert key)
  - cleared alert keys, which suppress recreation until the condition
    disappears from a poll

Lifecycle:
  1. load()     — read persisted state once
  2. start()    — poll now, then every poll_interval seconds
  3. mark_as_read / mark_all_as_read / clear / clear_all from the host
  4. dispose()  — stop the timer; an in-flight poll finishes and is discarded

Only one poll runs at a time: a tick that finds a poll in flight is
skipped, not queued. Writes to durable storage are fire-and-forget and are
drained before each poll starts.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Protocol

import structlog

from stocktrail.alerts.engine import reconcile
from stocktrail.alerts.models import AlertFeed, Notification
from stocktrail.alerts.storage import NotificationStorage
from stocktrail.core.config import Settings, get_settings

logger = structlog.get_logger()


class AlertSource(Protocol):
    async def fetch_alerts(self) -> AlertFeed: ...


class PollStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"  # another poll was in flight
    FAILED = "failed"  # fetch or decode error; state untouched
    DISCARDED = "discarded"  # store disposed while fetching


@dataclass
class PollResult:
    status: PollStatus
    created: list[Notification] = field(default_factory=list)
    suppressed: int = 0
    evicted: int = 0
    error: str | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationStore:
    """Deduplicated notification list fed by periodic alert polls."""

    def __init__(
        self,
        source: AlertSource,
        storage: NotificationStorage,
        poll_interval: float = 60.0,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.source = source
        self.storage = storage
        self.poll_interval = poll_interval
        self.clock = clock
        self.logger = logger.bind(component="notification_store")

        self._notifications: list[Notification] = []
        self._cleared_keys: set[str] = set()
        self._loaded = False
        self._alive = True
        self._in_flight = False
        self._dirty = False
        self._timer: asyncio.Task | None = None
        self._poll_tasks: set[asyncio.Task] = set()
        self._pending_writes: set[asyncio.Task] = set()
        self._write_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, source: AlertSource, settings: Settings | None = None) -> "NotificationStore":
        settings = settings or get_settings()
        return cls(
            source,
            NotificationStorage.from_settings(settings),
            poll_interval=settings.alert_poll_interval_seconds,
        )

    # ── Read-only views ────────────────────────────────────────────────────

    @property
    def notifications(self) -> tuple[Notification, ...]:
        return tuple(self._notifications)

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self._notifications if not n.read)

    @property
    def cleared_keys(self) -> frozenset[str]:
        return frozenset(self._cleared_keys)

    @property
    def poll_in_flight(self) -> bool:
        return self._in_flight

    @property
    def disposed(self) -> bool:
        return not self._alive

    # ── Startup ────────────────────────────────────────────────────────────

    async def load(self) -> None:
        """Read persisted state. Cleared or duplicate entries are dropped."""
        cleared = await self.storage.load_cleared_keys()
        seen: set[str] = set()
        notifications = []
        for notification in await self.storage.load_notifications():
            if notification.alert_key in cleared or notification.alert_key in seen:
                continue
            seen.add(notification.alert_key)
            notifications.append(notification)

        self._cleared_keys = cleared
        self._notifications = notifications
        self._loaded = True
        self.logger.info(
            "notification_store.loaded",
            notifications=len(notifications),
            cleared_keys=len(cleared),
        )

    # ── Mutations ──────────────────────────────────────────────────────────

    def mark_as_read(self, notification_id: str) -> bool:
        for index, notification in enumerate(self._notifications):
            if notification.id == notification_id:
                if not notification.read:
                    self._notifications[index] = notification.model_copy(update={"read": True})
                    self._persist()
                return True
        return False

    def mark_all_as_read(self) -> int:
        unread = [i for i, n in enumerate(self._notifications) if not n.read]
        for index in unread:
            self._notifications[index] = self._notifications[index].model_copy(update={"read": True})
        if unread:
            self._persist()
        return len(unread)

    def clear(self, notification_id: str) -> bool:
        """Remove a notification and suppress its key until the condition resolves."""
        for notification in self._notifications:
            if notification.id == notification_id:
                self._notifications = [n for n in self._notifications if n.id != notification_id]
                self._cleared_keys.add(notification.alert_key)
                self._persist()
                return True
        return False

    def clear_all(self) -> int:
        cleared = len(self._notifications)
        if not cleared:
            return 0
        self._cleared_keys.update(n.alert_key for n in self._notifications)
        self._notifications = []
        self._persist()
        return cleared

    # ── Polling ────────────────────────────────────────────────────────────

    async def poll(self) -> PollResult:
        """Fetch the alert feed and reconcile it. Never raises."""
        if self._in_flight:
            self.logger.debug("alerts.poll_skipped", reason="in_flight")
            return PollResult(status=PollStatus.SKIPPED)
        if not self._alive:
            return PollResult(status=PollStatus.DISCARDED)

        self._in_flight = True
        try:
            if not self._loaded:
                await self.load()
            await self.flush()

            try:
                feed = await self.source.fetch_alerts()
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("alerts.poll_failed", error=str(exc), error_type=type(exc).__name__)
                return PollResult(status=PollStatus.FAILED, error=str(exc))

            if not self._alive:
                self.logger.info("alerts.poll_discarded", snapshots=len(feed.snapshots))
                return PollResult(status=PollStatus.DISCARDED)

            return self._apply(feed)
        finally:
            self._in_flight = False

    def _apply(self, feed: AlertFeed) -> PollResult:
        outcome = reconcile(
            feed.snapshots,
            live_keys=(n.alert_key for n in self._notifications),
            cleared_keys=self._cleared_keys,
            now=self.clock(),
        )
        evicted = len(self._cleared_keys) - len(outcome.cleared_keys)

        if outcome.created:
            self._notifications = [*reversed(outcome.created), *self._notifications]
        self._cleared_keys = set(outcome.cleared_keys)
        if outcome.created or evicted:
            self._persist()

        self.logger.info(
            "alerts.poll_complete",
            snapshots=len(feed.snapshots),
            created=len(outcome.created),
            suppressed=outcome.suppressed,
            evicted=evicted,
        )
        return PollResult(
            status=PollStatus.SUCCESS,
            created=outcome.created,
            suppressed=outcome.suppressed,
            evicted=evicted,
        )

    # ── Scheduling ─────────────────────────────────────────────────────────

    def start(self) -> None:
        """Poll immediately, then on every interval. Needs a running event loop."""
        if self._timer is not None or not self._alive:
            return
        self._timer = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while self._alive:
            self._launch_poll()
            await asyncio.sleep(self.poll_interval)

    def _launch_poll(self) -> None:
        if self._in_flight or self._poll_tasks:
            self.logger.debug("alerts.tick_skipped", reason="in_flight")
            return
        task = asyncio.get_running_loop().create_task(self.poll())
        self._poll_tasks.add(task)
        task.add_done_callback(self._poll_tasks.discard)

    async def dispose(self) -> None:
        """Stop the timer, flush and close storage. An in-flight poll completes and its result is dropped."""
        self._alive = False
        if self._timer is not None:
            self._timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._timer
            self._timer = None
        await self.flush()
        await self.storage.close()
        self.logger.info("notification_store.disposed")

    # ── Persistence ────────────────────────────────────────────────────────

    def _persist(self) -> None:
        self._dirty = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the next flush() or poll writes the state.
            return
        task = loop.create_task(self._write_state())
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _write_state(self) -> None:
        async with self._write_lock:
            if not self._dirty:
                return
            self._dirty = False
            saved = await self.storage.save(list(self._notifications), self._cleared_keys)
            if not saved:
                self._dirty = True

    async def flush(self) -> None:
        """Wait for pending writes and persist anything still unsaved."""
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)
        if self._dirty:
            await self._write_state()
