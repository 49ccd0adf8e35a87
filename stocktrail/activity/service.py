"""
Stock history — fetch a stock item's audit trail and compute its analytics.

The one place in the activity package that performs I/O; everything it
returns is computed by the pure parser/aggregator/bucketer functions.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

import httpx
import structlog
from pydantic import ValidationError

from stocktrail.activity.aggregator import (
    ActivitySummary,
    ShadeAnalytics,
    ShadeChange,
    StockChangeSummary,
    compute_shade_analytics,
    compute_shade_changes,
    rank_shades,
    summarize_activity,
    summarize_stock_changes,
)
from stocktrail.activity.periods import Granularity, PeriodBucket, assign, build_periods, drop_empty_periods
from stocktrail.activity.records import AuditRecord, Stock
from stocktrail.activity.timeline import DailyActivity, daily_activity, recent_changes
from stocktrail.core.config import get_settings

logger = structlog.get_logger()


class TrackingSource(Protocol):
    async def fetch_stock(self, entity_id: int | str) -> Stock: ...

    async def fetch_tracking(self, entity_id: int | str, limit: int | None = None) -> list[AuditRecord]: ...


@dataclass(frozen=True)
class StockHistory:
    stock: Stock
    records: list[AuditRecord]
    shade_changes: list[ShadeChange]
    shade_analytics: list[ShadeAnalytics]  # most active first
    periods: list[PeriodBucket]  # non-empty only, oldest first
    summary: ActivitySummary
    stock_changes: StockChangeSummary
    recent_changes: list[AuditRecord]  # newest first
    daily_activity: list[DailyActivity]  # oldest first


def build_stock_history(
    stock: Stock,
    records: list[AuditRecord],
    granularity: Granularity | str = Granularity.MONTH,
    now: datetime | None = None,
    week_starts_on: int | None = None,
) -> StockHistory:
    """Compute every analytics view for one stock item."""
    now = now or datetime.now(timezone.utc)
    if week_starts_on is None:
        week_starts_on = get_settings().week_starts_on

    shades = list(stock.shades)
    shade_changes = compute_shade_changes(shades, records)
    periods = build_periods(stock.created_at, granularity, now, week_starts_on=week_starts_on)

    return StockHistory(
        stock=stock,
        records=records,
        shade_changes=shade_changes,
        shade_analytics=rank_shades(compute_shade_analytics(shades, records)),
        periods=drop_empty_periods(assign(records, periods, shades)),
        summary=summarize_activity(records, shades),
        stock_changes=summarize_stock_changes(shade_changes, records),
        recent_changes=recent_changes(records),
        daily_activity=daily_activity(records),
    )


async def load_stock_history(
    client: TrackingSource,
    entity_id: int | str,
    granularity: Granularity | str = Granularity.MONTH,
    now: datetime | None = None,
    limit: int | None = None,
) -> StockHistory | None:
    """
    Fetch a stock item plus its audit trail and build the history view.

    Returns None when the tracking API cannot be reached or answers with
    something unreadable; the failure is logged.
    """
    settings = get_settings()
    try:
        stock = await client.fetch_stock(entity_id)
        records = await client.fetch_tracking(entity_id, limit or settings.tracking_default_limit)
    except (httpx.HTTPError, ValidationError, ValueError) as exc:
        logger.warning(
            "stock_history.fetch_failed",
            entity_id=entity_id,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return None

    history = build_stock_history(stock, records, granularity, now, week_starts_on=settings.week_starts_on)
    logger.info(
        "stock_history.built",
        entity_id=entity_id,
        records=len(records),
        shades=len(stock.shades),
        periods=len(history.periods),
    )
    return history
