"""Recent-activity views over the audit trail."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable

from stocktrail.activity.records import AuditAction, AuditRecord


@dataclass(frozen=True)
class DailyActivity:
    day: date
    counts: dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.counts.values())


def recent_changes(records: Iterable[AuditRecord], limit: int = 10) -> list[AuditRecord]:
    """Newest records first, at most ``limit`` of them."""
    ordered = sorted(records, key=lambda r: r.performed_at, reverse=True)
    return ordered[: max(limit, 0)]


def daily_activity(records: Iterable[AuditRecord], days: int = 10) -> list[DailyActivity]:
    """Action counts per calendar day, oldest first, for the last ``days`` active days."""
    grouped: dict[date, dict[str, int]] = {}
    for record in records:
        day = record.performed_at.date()
        counts = grouped.setdefault(day, {action.value: 0 for action in AuditAction})
        action = str(getattr(record.action, "value", record.action))
        counts[action] = counts.get(action, 0) + 1

    ordered = [DailyActivity(day=day, counts=grouped[day]) for day in sorted(grouped)]
    if days <= 0:
        return []
    return ordered[-days:]
