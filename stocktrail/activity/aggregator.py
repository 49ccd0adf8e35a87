"""
Change Aggregator — per-shade and per-stock statistics from the audit trail.

Algorithm:
  1. Seed one ShadeAnalytics per current shade (counters at zero).
  2. Walk the records oldest first:
       UPDATE → color-change lines from the description
       CREATE → one addition per color code, sized by the shade's live quantity
  3. Fold each event into its shade: additions, reductions, counts.
     Events naming a shade that no longer exists are dropped.

Inputs:
  - Current shades of a stock item (live quantities)
  - Audit records in any order

Outputs:
  - ShadeChange timeline rows
  - ShadeAnalytics map keyed by shade id (unsorted; see rank_shades)
  - ActivitySummary and StockChangeSummary for the history view
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Iterable, Sequence

from stocktrail.activity.parser import distinct_color_codes, extract_color_changes, extract_stock_adjustments
from stocktrail.activity.records import AuditAction, AuditRecord, Shade, find_shade


def change_type(delta: int) -> str:
    if delta > 0:
        return "increase"
    if delta < 0:
        return "decrease"
    return "no-change"


def sort_chronologically(records: Iterable[AuditRecord]) -> list[AuditRecord]:
    """Oldest first; the tracking API gives no ordering guarantee."""
    return sorted(records, key=lambda r: r.performed_at)


@dataclass(frozen=True)
class ShadeChange:
    """One quantity change attributed to a current shade."""

    shade_id: int | str
    color_key: str
    color: str
    unit: str
    old_quantity: int
    new_quantity: int
    delta: int
    performed_at: datetime
    performed_by: str
    action: str

    @property
    def change_type(self) -> str:
        return change_type(self.delta)


@dataclass(frozen=True)
class ShadeAnalytics:
    """Cumulative additions and reductions for one shade."""

    shade_id: int | str
    color_name: str
    color: str
    unit: str
    current_quantity: int
    total_additions: int = 0
    total_reductions: int = 0
    addition_count: int = 0
    reduction_count: int = 0
    last_updated: datetime | None = None

    @property
    def net_change(self) -> int:
        return self.total_additions - self.total_reductions

    @property
    def total_changes(self) -> int:
        return self.addition_count + self.reduction_count

    def apply(self, delta: int, performed_at: datetime | None = None) -> "ShadeAnalytics":
        """Return a copy with ``delta`` folded in; zero deltas only touch ``last_updated``."""
        updates: dict[str, Any] = {}
        if delta > 0:
            updates["total_additions"] = self.total_additions + delta
            updates["addition_count"] = self.addition_count + 1
        elif delta < 0:
            updates["total_reductions"] = self.total_reductions + abs(delta)
            updates["reduction_count"] = self.reduction_count + 1
        if performed_at is not None:
            updates["last_updated"] = performed_at
        return replace(self, **updates)

    def to_dict(self) -> dict[str, Any]:
        return {
            "shade_id": self.shade_id,
            "color_name": self.color_name,
            "color": self.color,
            "unit": self.unit,
            "current_quantity": self.current_quantity,
            "total_additions": self.total_additions,
            "total_reductions": self.total_reductions,
            "addition_count": self.addition_count,
            "reduction_count": self.reduction_count,
            "net_change": self.net_change,
            "total_changes": self.total_changes,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


@dataclass(frozen=True)
class ActivitySummary:
    total_activities: int
    created: int
    updated: int
    adjusted: int
    deleted: int
    image_uploads: int
    total_shades: int
    total_shade_quantity: int
    total_shade_length: float


@dataclass(frozen=True)
class StockChangeSummary:
    increment_count: int
    increment_total: int
    decrement_count: int
    decrement_total: int

    @property
    def net_change(self) -> int:
        return self.increment_total - self.decrement_total

    @property
    def change_count(self) -> int:
        return self.increment_count + self.decrement_count

    @property
    def average_increment(self) -> float:
        return round(self.increment_total / self.increment_count, 1) if self.increment_count else 0.0

    @property
    def average_decrement(self) -> float:
        return round(self.decrement_total / self.decrement_count, 1) if self.decrement_count else 0.0

    @property
    def average_net_change(self) -> float:
        return round(self.net_change / self.change_count, 1) if self.change_count else 0.0


# ── Shade changes ──────────────────────────────────────────────────────────


def _shade_changes_for_record(record: AuditRecord, shades: Sequence[Shade]) -> list[ShadeChange]:
    if record.action == AuditAction.UPDATE:
        changes = []
        for event in extract_color_changes(record.description, record):
            shade = find_shade(shades, event.color_key)
            if shade is None:
                continue
            changes.append(
                ShadeChange(
                    shade_id=shade.id,
                    color_key=event.color_key,
                    color=shade.color,
                    unit=shade.unit,
                    old_quantity=event.old_quantity,
                    new_quantity=event.new_quantity,
                    delta=event.delta,
                    performed_at=record.performed_at,
                    performed_by=record.performed_by,
                    action=AuditAction.UPDATE.value,
                )
            )
        return changes

    if record.action == AuditAction.CREATE:
        # CREATE descriptions carry no quantities: the live quantity stands in
        # for the initial stock.
        changes = []
        for code in distinct_color_codes(record.description):
            shade = find_shade(shades, code)
            if shade is None:
                continue
            changes.append(
                ShadeChange(
                    shade_id=shade.id,
                    color_key=code,
                    color=shade.color,
                    unit=shade.unit,
                    old_quantity=0,
                    new_quantity=shade.quantity,
                    delta=shade.quantity,
                    performed_at=record.performed_at,
                    performed_by=record.performed_by,
                    action=AuditAction.CREATE.value,
                )
            )
        return changes

    return []


def compute_shade_changes(shades: Sequence[Shade], records: Iterable[AuditRecord]) -> list[ShadeChange]:
    """Per-shade change timeline, oldest first. Orphaned events are dropped."""
    changes: list[ShadeChange] = []
    for record in sort_chronologically(records):
        changes.extend(_shade_changes_for_record(record, shades))
    return changes


# ── Shade analytics ────────────────────────────────────────────────────────


def seed_shade_analytics(shades: Sequence[Shade]) -> dict[int | str, ShadeAnalytics]:
    return {
        shade.id: ShadeAnalytics(
            shade_id=shade.id,
            color_name=shade.color_name,
            color=shade.color,
            unit=shade.unit,
            current_quantity=shade.quantity,
            last_updated=shade.updated_at,
        )
        for shade in shades
    }


def compute_shade_analytics(
    shades: Sequence[Shade], records: Iterable[AuditRecord]
) -> dict[int | str, ShadeAnalytics]:
    """
    Aggregate additions and reductions per current shade.

    Returns a map keyed by shade id; ordering is left to the caller
    (see rank_shades).

    CREATE records are credited with the shade's *current* quantity, so a
    shade that changed after creation reports an inflated creation figure.
    The audit trail holds no creation-time baseline to do better.
    """
    analytics = seed_shade_analytics(shades)
    for change in compute_shade_changes(shades, records):
        current = analytics.get(change.shade_id)
        if current is None:
            continue
        analytics[change.shade_id] = current.apply(change.delta, change.performed_at)
    return analytics


def rank_shades(analytics: dict[int | str, ShadeAnalytics] | Iterable[ShadeAnalytics]) -> list[ShadeAnalytics]:
    """Most active shades first (ties keep their input order)."""
    values = analytics.values() if isinstance(analytics, dict) else analytics
    return sorted(values, key=lambda a: a.total_changes, reverse=True)


# ── Summaries ──────────────────────────────────────────────────────────────


def summarize_activity(records: Sequence[AuditRecord], shades: Sequence[Shade] = ()) -> ActivitySummary:
    """Counts per action plus shade totals for the history header."""

    def count(action: AuditAction) -> int:
        return sum(1 for r in records if r.action == action)

    return ActivitySummary(
        total_activities=len(records),
        created=count(AuditAction.CREATE),
        updated=count(AuditAction.UPDATE),
        adjusted=count(AuditAction.ADJUST),
        deleted=count(AuditAction.DELETE),
        image_uploads=count(AuditAction.IMAGE_UPLOAD),
        total_shades=len(shades),
        total_shade_quantity=sum(s.quantity for s in shades),
        total_shade_length=round(sum(s.length for s in shades), 2),
    )


def adjustment_deltas(record: AuditRecord) -> list[int]:
    """Deltas of an ADJUST record.

    The structured ``newData.adjustment`` wins when present; otherwise the
    description's adjustment lines are used.
    """
    new_data = record.new_data or {}
    adjustment = new_data.get("adjustment")
    if isinstance(adjustment, (int, float)) and not isinstance(adjustment, bool):
        return [int(adjustment)]
    return [event.delta for event in extract_stock_adjustments(record.description, record)]


def summarize_stock_changes(
    shade_changes: Sequence[ShadeChange], records: Iterable[AuditRecord]
) -> StockChangeSummary:
    """Increments and decrements across shade changes and ADJUST records.

    Shade changes are folded into one net change, mirroring how the stock
    total moves when individual shades change.
    """
    deltas: list[int] = []
    if shade_changes:
        added = sum(c.delta for c in shade_changes if c.delta > 0)
        reduced = sum(-c.delta for c in shade_changes if c.delta < 0)
        deltas.append(added - reduced)

    for record in records:
        if record.action == AuditAction.ADJUST:
            deltas.extend(adjustment_deltas(record))

    increments = [d for d in deltas if d > 0]
    decrements = [-d for d in deltas if d < 0]
    return StockChangeSummary(
        increment_count=len(increments),
        increment_total=sum(increments),
        decrement_count=len(decrements),
        decrement_total=sum(decrements),
    )
