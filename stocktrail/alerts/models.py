"""Alert feed snapshots and the notifications derived from them."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from stocktrail.activity.records import TrackingModel, ensure_aware

logger = structlog.get_logger()


class AlertKind(str, Enum):
    LOW_SHADE = "LOW_SHADE"
    HIGH_SHADE = "HIGH_SHADE"
    LOW_STOCK = "LOW_STOCK"


# /alerts response field → alert kind
FEED_SECTIONS = {
    "lowShadeAlerts": AlertKind.LOW_SHADE,
    "highShadeAlerts": AlertKind.HIGH_SHADE,
    "lowStocks": AlertKind.LOW_STOCK,
}


class AlertSnapshot(TrackingModel):
    """One threshold breach as reported by a single poll."""

    kind: AlertKind
    entity_id: int | str = Field(validation_alias=AliasChoices("stockId", "entityId", "entity_id"))
    shade_id: int | str | None = None
    shade_name: str = ""
    product: str = ""
    quantity: int | float = 0
    code: str = Field(default="", validation_alias=AliasChoices("stockCode", "code"))

    @field_validator("shade_name", "product", "code", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class AlertFeed(BaseModel):
    """Every snapshot from one ``GET /alerts`` response."""

    snapshots: list[AlertSnapshot] = Field(default_factory=list)
    thresholds: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "AlertFeed":
        """Decode every section; rows that fail validation are logged and skipped."""
        snapshots = []
        for section, kind in FEED_SECTIONS.items():
            for item in payload.get(section) or []:
                if not isinstance(item, dict):
                    logger.info("alerts.snapshot_skipped", section=section, error_count=1)
                    continue
                try:
                    snapshots.append(AlertSnapshot.model_validate({**item, "kind": kind}))
                except ValidationError as exc:
                    logger.info("alerts.snapshot_skipped", section=section, error_count=exc.error_count())
        thresholds = payload.get("thresholds") or {}
        return cls(snapshots=snapshots, thresholds=thresholds if isinstance(thresholds, dict) else {})


class StockRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int | str
    code: str = ""
    product: str = ""


class Notification(BaseModel):
    """A user-visible alert; at most one live per alert key."""

    model_config = ConfigDict(frozen=True)

    id: str
    alert_key: str
    kind: AlertKind
    message: str
    severity: str
    timestamp: datetime
    read: bool = False
    stock_ref: StockRef

    @field_validator("timestamp")
    @classmethod
    def _aware_timestamp(cls, value: datetime) -> datetime:
        return ensure_aware(value)
