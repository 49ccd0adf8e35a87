"""
Tracking payloads — audit records, stock items and their shades.

The tracking API speaks camelCase JSON; these models accept it through
aliases and expose snake_case attributes. All models are frozen: records
are read-only input and are never mutated by the engine.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class AuditAction(str, Enum):
    """Actions the tracking service writes to the audit trail."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    ADJUST = "ADJUST"
    DELETE = "DELETE"
    IMAGE_UPLOAD = "IMAGE_UPLOAD"


def ensure_aware(value: datetime) -> datetime:
    """Read naive timestamps as UTC so they compare against aware clocks."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TrackingModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class AuditRecord(TrackingModel):
    """One immutable audit-trail entry for a stock item."""

    id: int | str
    entity_id: int | str = Field(validation_alias=AliasChoices("entityId", "stockId", "entity_id"))
    # Unknown actions are kept verbatim; the engine does not validate records.
    action: AuditAction | str = Field(union_mode="left_to_right")
    description: str = ""
    old_data: dict[str, Any] | None = None
    new_data: dict[str, Any] | None = None
    performed_by: str = ""
    performed_at: datetime

    @field_validator("description", "performed_by", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("performed_at")
    @classmethod
    def _aware_timestamp(cls, value: datetime) -> datetime:
        return ensure_aware(value)


class Shade(TrackingModel):
    """A color/quantity variant of a stock item."""

    id: int | str
    color_name: str = ""
    color: str = ""
    quantity: int = 0
    unit: str = "Rolls"
    length: float = 0.0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("unit", mode="before")
    @classmethod
    def _default_unit(cls, value: Any) -> Any:
        return value or "Rolls"

    @field_validator("created_at", "updated_at")
    @classmethod
    def _aware_timestamps(cls, value: datetime | None) -> datetime | None:
        return ensure_aware(value) if value is not None else None

    def matches(self, color_key: str) -> bool:
        """True when ``color_key`` names this shade by color or color name."""
        key = color_key.strip().casefold()
        if not key:
            return False
        return key in (self.color.strip().casefold(), self.color_name.strip().casefold())


class Stock(TrackingModel):
    """A stock item with its current shades."""

    id: int | str
    stock_id: str = ""
    product: str = ""
    category: str = ""
    quantity: int = 0
    created_at: datetime
    updated_at: datetime | None = None
    shades: tuple[Shade, ...] = ()

    @field_validator("category", mode="before")
    @classmethod
    def _category_name(cls, value: Any) -> Any:
        # The API sometimes embeds the category object
        if isinstance(value, dict):
            return value.get("name", "")
        return "" if value is None else value

    @field_validator("shades", mode="before")
    @classmethod
    def _none_to_no_shades(cls, value: Any) -> Any:
        return () if value is None else value

    @field_validator("created_at", "updated_at")
    @classmethod
    def _aware_timestamps(cls, value: datetime | None) -> datetime | None:
        return ensure_aware(value) if value is not None else None


def find_shade(shades: list[Shade] | tuple[Shade, ...], color_key: str) -> Shade | None:
    """Return the first shade named by ``color_key``, or None."""
    for shade in shades:
        if shade.matches(color_key):
            return shade
    return None
