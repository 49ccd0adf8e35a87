"""
Description Parser — structured quantity changes from audit descriptions.

The tracking service writes changes as free text. Three fixed grammars
carry numeric meaning:

  Color change:      #204080: quantity: 137 → 117 (-20)
  Stock adjustment:  Stock DECREMENT: POO1 | 3 units | From: 7 → To: 4
  Color code:        any #abc or #aabbcc mention (used by CREATE records)

Every extractor is total: text that matches nothing yields an empty list,
never an exception. No state is kept between calls.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stocktrail.activity.records import AuditRecord

_ARROW = r"(?:→|->)"

COLOR_CHANGE_PATTERN = re.compile(
    rf"(#\w+):\s*quantity:\s*(\d+)\s*{_ARROW}\s*(\d+)\s*\(([+-]?\d+)\)",
)
STOCK_ADJUSTMENT_PATTERN = re.compile(
    rf"Stock\s+(INCREMENT|DECREMENT):\s*([^|]+?)\s*\|\s*(\d+)\s*units\s*\|"
    rf"\s*From:\s*(\d+)\s*{_ARROW}\s*To:\s*(\d+)",
    re.IGNORECASE,
)
COLOR_CODE_PATTERN = re.compile(r"#(?:[a-f0-9]{6}|[a-f0-9]{3})\b", re.IGNORECASE)


class AdjustmentDirection(str, Enum):
    INCREMENT = "INCREMENT"
    DECREMENT = "DECREMENT"


@dataclass(frozen=True)
class ColorChangeEvent:
    """A shade quantity change recovered from one color-change line."""

    color_key: str
    old_quantity: int
    new_quantity: int
    source_record_id: int | str | None = None
    performed_at: datetime | None = None
    performed_by: str = ""
    action: str = ""

    @property
    def delta(self) -> int:
        return self.new_quantity - self.old_quantity


@dataclass(frozen=True)
class StockAdjustmentEvent:
    """A whole-stock adjustment recovered from one adjustment line."""

    code: str
    old_quantity: int
    new_quantity: int
    delta: int
    direction: AdjustmentDirection
    source_record_id: int | str | None = None
    performed_at: datetime | None = None


def _provenance(record: AuditRecord | None) -> dict:
    if record is None:
        return {}
    return {
        "source_record_id": record.id,
        "performed_at": record.performed_at,
    }


def extract_color_changes(description: str | None, record: AuditRecord | None = None) -> list[ColorChangeEvent]:
    """Return every color-change line in ``description``, in textual order.

    ``record`` only supplies provenance fields on the returned events.
    """
    if not description:
        return []

    extra = _provenance(record)
    if record is not None:
        extra["performed_by"] = record.performed_by
        extra["action"] = str(getattr(record.action, "value", record.action))

    return [
        ColorChangeEvent(
            color_key=match.group(1),
            old_quantity=int(match.group(2)),
            new_quantity=int(match.group(3)),
            **extra,
        )
        for match in COLOR_CHANGE_PATTERN.finditer(description)
    ]


def extract_stock_adjustments(
    description: str | None, record: AuditRecord | None = None
) -> list[StockAdjustmentEvent]:
    """Return every stock-adjustment line in ``description``, in textual order.

    The delta comes from the stated unit count and direction, even when it
    disagrees with From/To: upstream descriptions are not self-consistent.
    """
    if not description:
        return []

    extra = _provenance(record)
    events = []
    for match in STOCK_ADJUSTMENT_PATTERN.finditer(description):
        direction = AdjustmentDirection(match.group(1).upper())
        units = int(match.group(3))
        events.append(
            StockAdjustmentEvent(
                code=match.group(2),
                old_quantity=int(match.group(4)),
                new_quantity=int(match.group(5)),
                delta=-units if direction is AdjustmentDirection.DECREMENT else units,
                direction=direction,
                **extra,
            )
        )
    return events


def extract_color_codes(description: str | None) -> list[str]:
    """Return every 3- or 6-digit hex color code mentioned, in textual order."""
    if not description:
        return []
    return COLOR_CODE_PATTERN.findall(description)


def distinct_color_codes(description: str | None) -> list[str]:
    """Like :func:`extract_color_codes`, keeping only the first mention of each code."""
    seen: set[str] = set()
    codes = []
    for code in extract_color_codes(description):
        folded = code.casefold()
        if folded not in seen:
            seen.add(folded)
            codes.append(code)
    return codes
