"""
Period Bucketer — contiguous time buckets for activity trends.

Buckets are anchored to the stock item's creation date and to "now":

  DAY    7 calendar days ending today
  WEEK   4 most recent weeks, aligned to the configured first weekday
  MONTH  every month from the anchor's month through the current month
  YEAR   every year from the anchor's year through the current year

Month and year buckets grow with the age of the item, so they are produced
lazily; callers that only want recent buckets can iterate newest first and
stop early.

Bucket i covers [start_i, start_{i+1}); the last bucket runs to now + 1 day
so same-day activity is always included.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, Iterator, Sequence

from stocktrail.activity.parser import distinct_color_codes, extract_color_changes, extract_stock_adjustments
from stocktrail.activity.records import AuditAction, AuditRecord, Shade, ensure_aware, find_shade

DAY_BUCKETS = 7
WEEK_BUCKETS = 4
SUNDAY = 6


class Granularity(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


@dataclass(frozen=True)
class PeriodBucket:
    label: str
    period_start: datetime
    period_end_exclusive: datetime
    stock_added: int = 0
    stock_reduced: int = 0
    shades_added: int = 0
    shades_removed: int = 0
    activity_count: int = 0

    @property
    def net_stock(self) -> int:
        return self.stock_added - self.stock_reduced

    @property
    def is_empty(self) -> bool:
        return not (
            self.activity_count
            or self.stock_added
            or self.stock_reduced
            or self.shades_added
            or self.shades_removed
        )

    def contains(self, moment: datetime) -> bool:
        return self.period_start <= moment < self.period_end_exclusive


# ── Bucket generation ──────────────────────────────────────────────────────


def _midnight(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def _month_start(year: int, month_index: int, tz) -> datetime:
    """First instant of the month ``month_index`` months after January of ``year``."""
    year_offset, month0 = divmod(month_index, 12)
    return datetime(year + year_offset, month0 + 1, 1, tzinfo=tz)


def _short_date(moment: datetime) -> str:
    return f"{moment:%b} {moment.day}"


class _PeriodPlan:
    """Closed-form start/label for each bucket index, oldest = 0."""

    def __init__(self, anchor: datetime, granularity: Granularity, now: datetime, week_starts_on: int):
        now = ensure_aware(now)
        anchor = ensure_aware(anchor).astimezone(now.tzinfo)
        if anchor > now:
            anchor = now

        self.granularity = Granularity(granularity)
        self.now = now
        self.anchor = anchor
        self.tz = now.tzinfo
        today = _midnight(now)

        if self.granularity is Granularity.DAY:
            self.count = DAY_BUCKETS
            self._first = today - timedelta(days=DAY_BUCKETS - 1)
        elif self.granularity is Granularity.WEEK:
            self.count = WEEK_BUCKETS
            days_since_week_start = (today.weekday() - week_starts_on) % 7
            current_week = today - timedelta(days=days_since_week_start)
            self._first = current_week - timedelta(weeks=WEEK_BUCKETS - 1)
        elif self.granularity is Granularity.MONTH:
            self.count = (now.year - anchor.year) * 12 + (now.month - anchor.month) + 1
        else:
            self.count = now.year - anchor.year + 1

    def start(self, index: int) -> datetime:
        if self.granularity is Granularity.DAY:
            return self._first + timedelta(days=index)
        if self.granularity is Granularity.WEEK:
            return self._first + timedelta(weeks=index)
        if self.granularity is Granularity.MONTH:
            return _month_start(self.anchor.year, self.anchor.month - 1 + index, self.tz)
        return datetime(self.anchor.year + index, 1, 1, tzinfo=self.tz)

    def end(self, index: int) -> datetime:
        if index < self.count - 1:
            return self.start(index + 1)
        return self.now + timedelta(days=1)

    def label(self, start: datetime) -> str:
        if self.granularity is Granularity.DAY:
            return _short_date(start)
        if self.granularity is Granularity.WEEK:
            return f"Week of {_short_date(start)}"
        if self.granularity is Granularity.MONTH:
            return f"{start:%b %Y}"
        return str(start.year)

    def bucket(self, index: int) -> PeriodBucket:
        start = self.start(index)
        return PeriodBucket(label=self.label(start), period_start=start, period_end_exclusive=self.end(index))


def iter_periods(
    anchor: datetime,
    granularity: Granularity | str,
    now: datetime | None = None,
    newest_first: bool = False,
    week_starts_on: int = SUNDAY,
) -> Iterator[PeriodBucket]:
    """Lazily yield empty buckets for ``granularity``.

    Naive timestamps are read as UTC; calendar boundaries follow ``now``'s
    timezone. An anchor in the future is clamped to ``now``. An unknown
    granularity raises ``ValueError`` here, not on first iteration.
    """
    plan = _PeriodPlan(anchor, Granularity(granularity), now or datetime.now(timezone.utc), week_starts_on)
    indexes = range(plan.count - 1, -1, -1) if newest_first else range(plan.count)

    def _buckets() -> Iterator[PeriodBucket]:
        for index in indexes:
            yield plan.bucket(index)

    return _buckets()


def build_periods(
    anchor: datetime,
    granularity: Granularity | str,
    now: datetime | None = None,
    week_starts_on: int = SUNDAY,
) -> list[PeriodBucket]:
    """All buckets, oldest first, contiguous and non-overlapping."""
    return list(iter_periods(anchor, granularity, now, week_starts_on=week_starts_on))


# ── Assignment ─────────────────────────────────────────────────────────────


def _record_totals(record: AuditRecord, shades: Sequence[Shade] | None) -> dict[str, int]:
    totals = {"stock_added": 0, "stock_reduced": 0, "shades_added": 0, "shades_removed": 0}

    def add_delta(delta: int) -> None:
        if delta > 0:
            totals["stock_added"] += delta
        elif delta < 0:
            totals["stock_reduced"] += abs(delta)

    if record.action == AuditAction.CREATE:
        codes = distinct_color_codes(record.description)
        totals["shades_added"] += len(codes)
        changes = extract_color_changes(record.description)
        for change in changes:
            if change.delta > 0:
                totals["stock_added"] += change.delta
        if shades:
            explicit = {change.color_key.casefold() for change in changes}
            for code in codes:
                if code.casefold() in explicit:
                    continue
                shade = find_shade(shades, code)
                if shade is not None and shade.quantity > 0:
                    totals["stock_added"] += shade.quantity
    elif record.action == AuditAction.UPDATE:
        for change in extract_color_changes(record.description):
            add_delta(change.delta)
    elif record.action == AuditAction.ADJUST:
        for adjustment in extract_stock_adjustments(record.description):
            add_delta(adjustment.delta)
    elif record.action == AuditAction.DELETE:
        totals["shades_removed"] += len(distinct_color_codes(record.description))

    return totals


def _find_bucket(periods: Sequence[PeriodBucket], moment: datetime) -> int | None:
    # Buckets are contiguous and sorted, so a binary search on the starts works.
    lo, hi = 0, len(periods)
    while lo < hi:
        mid = (lo + hi) // 2
        if periods[mid].period_start <= moment:
            lo = mid + 1
        else:
            hi = mid
    index = lo - 1
    if index >= 0 and periods[index].contains(moment):
        return index
    return None


def assign(
    records: Iterable[AuditRecord],
    periods: Sequence[PeriodBucket],
    shades: Sequence[Shade] | None = None,
) -> list[PeriodBucket]:
    """Return ``periods`` populated with the records that fall inside them.

    Records outside every bucket are ignored. Passing ``shades`` credits
    CREATE records with the live quantity of the shades they mention.
    """
    ordered = sorted(periods, key=lambda p: p.period_start)
    sums = [
        {"stock_added": 0, "stock_reduced": 0, "shades_added": 0, "shades_removed": 0, "activity_count": 0}
        for _ in ordered
    ]

    for record in records:
        index = _find_bucket(ordered, record.performed_at)
        if index is None:
            continue
        bucket_sums = sums[index]
        bucket_sums["activity_count"] += 1
        for field, value in _record_totals(record, shades).items():
            bucket_sums[field] += value

    return [
        replace(
            bucket,
            stock_added=bucket.stock_added + totals["stock_added"],
            stock_reduced=bucket.stock_reduced + totals["stock_reduced"],
            shades_added=bucket.shades_added + totals["shades_added"],
            shades_removed=bucket.shades_removed + totals["shades_removed"],
            activity_count=bucket.activity_count + totals["activity_count"],
        )
        for bucket, totals in zip(ordered, sums)
    ]


def drop_empty_periods(periods: Iterable[PeriodBucket]) -> list[PeriodBucket]:
    """Keep only buckets with activity or a non-zero delta."""
    return [p for p in periods if not p.is_empty]
