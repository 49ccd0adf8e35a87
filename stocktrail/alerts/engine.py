"""
Alert Engine — severity, messages, identity keys and per-poll reconciliation.

Alert keys:
  kind + ":" + (shade id, or stock id when the alert is not shade-scoped)

Reconciliation (one call per successful poll):
  - key in the cleared set       → suppressed
  - key already has a live entry → left untouched (read state included)
  - otherwise                    → one new unread notification
  - cleared keys missing from the poll are evicted, so a condition that
    resolves and later recurs notifies again
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from stocktrail.alerts.models import AlertKind, AlertSnapshot, Notification, StockRef

# ──────────────────────────────────────────────────────────────────────────
# Classification
# ──────────────────────────────────────────────────────────────────────────

SEVERITY_BY_KIND = {
    AlertKind.LOW_STOCK: "high",
    AlertKind.LOW_SHADE: "medium",
    AlertKind.HIGH_SHADE: "low",
}


def classify_severity(kind: AlertKind) -> str:
    """Classify alert severity by breach kind."""
    return SEVERITY_BY_KIND.get(AlertKind(kind), "low")


def alert_key(snapshot: AlertSnapshot) -> str:
    """Stable identity of the condition behind a snapshot."""
    subject = snapshot.shade_id if snapshot.shade_id is not None else snapshot.entity_id
    return f"{snapshot.kind.value}:{subject}"


def _format_quantity(quantity: int | float) -> str:
    if isinstance(quantity, float) and quantity.is_integer():
        return str(int(quantity))
    return str(quantity)


def build_message(snapshot: AlertSnapshot) -> str:
    qty = _format_quantity(snapshot.quantity)
    if snapshot.kind is AlertKind.LOW_SHADE:
        return f"{snapshot.product} ({snapshot.code}) shade {snapshot.shade_name} is low ({qty} units)"
    if snapshot.kind is AlertKind.HIGH_SHADE:
        return f"{snapshot.product} shade {snapshot.shade_name} is overstocked ({qty} units)"
    return f"{snapshot.product} is low ({qty} units remaining)"


def build_notification(snapshot: AlertSnapshot, now: datetime) -> Notification:
    return Notification(
        id=uuid.uuid4().hex,
        alert_key=alert_key(snapshot),
        kind=snapshot.kind,
        message=build_message(snapshot),
        severity=classify_severity(snapshot.kind),
        timestamp=now,
        read=False,
        stock_ref=StockRef(id=snapshot.entity_id, code=snapshot.code, product=snapshot.product),
    )


# ──────────────────────────────────────────────────────────────────────────
# Reconciliation
# ──────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Reconciliation:
    created: list[Notification]
    cleared_keys: frozenset[str]
    suppressed: int = 0


def reconcile(
    snapshots: Iterable[AlertSnapshot],
    live_keys: Iterable[str],
    cleared_keys: Iterable[str],
    now: datetime,
) -> Reconciliation:
    """Decide which snapshots become notifications and which cleared keys expire."""
    live = set(live_keys)
    cleared = set(cleared_keys)
    seen: set[str] = set()
    created: list[Notification] = []
    suppressed = 0

    for snapshot in snapshots:
        key = alert_key(snapshot)
        seen.add(key)
        if key in cleared:
            suppressed += 1
            continue
        if key in live:
            continue
        notification = build_notification(snapshot, now)
        created.append(notification)
        live.add(key)

    return Reconciliation(
        created=created,
        cleared_keys=frozenset(cleared & seen),
        suppressed=suppressed,
    )
