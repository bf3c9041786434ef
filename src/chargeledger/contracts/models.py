"""Pydantic v2 models for run records, charge results and charge records."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel

from chargeledger.contracts.enums import ChargeOutcome, PricingModel


class PlatformModel(BaseModel):
    """Base for payloads received from the platform API (camelCase, open schema)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ChargeEventPricing(PlatformModel):
    """Price of a single charge event as configured on the platform."""

    event_title: str
    event_description: str | None = None
    event_price_usd: Decimal = Field(ge=0)


class PricingPerEvent(PlatformModel):
    """Pay-per-event schedule: event id to its pricing."""

    actor_charge_events: dict[str, ChargeEventPricing] = Field(default_factory=dict)


class PricingInfo(PlatformModel):
    """Pricing info attached to a run."""

    pricing_model: str
    pricing_per_event: PricingPerEvent | None = None

    @property
    def is_pay_per_event(self) -> bool:
        return self.pricing_model == PricingModel.PAY_PER_EVENT.value


class RunOptions(PlatformModel):
    """Subset of run options relevant to charging."""

    max_total_charge_usd: Decimal | None = None
    memory_mbytes: int | None = None


class RunRecord(PlatformModel):
    """Authoritative run record as returned by the run-record source.

    ``pricing_info`` and ``charged_event_counts`` are only present when the run
    is billed per event.
    """

    id: str
    status: str | None = None
    pricing_info: PricingInfo | None = None
    charged_event_counts: dict[str, int] | None = None
    options: RunOptions = Field(default_factory=RunOptions)


class ChargeResult(BaseModel):
    """Result of ChargeLedger.charge()."""

    charged_count: int = Field(ge=0)
    outcome: ChargeOutcome
    event_charge_limit_reached: bool

    model_config = {"extra": "forbid", "frozen": True}


class ChargeRecord(BaseModel):
    """One charged unit, written once to the metadata dataset."""

    event_id: str
    event_title: str
    event_price_usd: Decimal = Field(ge=0)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "forbid", "frozen": True}

    @field_serializer("event_price_usd")
    def serialize_price(self, value: Decimal) -> float:
        return float(value)

    def as_item(self) -> dict[str, Any]:
        """Convert to a dataset item (camelCase keys, JSON-safe values)."""
        data = self.model_dump(mode="json")
        return {
            "eventId": data["event_id"],
            "eventTitle": data["event_title"],
            "eventPriceUsd": data["event_price_usd"],
            "timestamp": data["timestamp"],
            "metadata": data["metadata"],
        }


class DatasetInfo(BaseModel):
    """Identity of an append-only dataset; persisted in the key/value store."""

    id: str
    name: str | None = None
    item_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"extra": "ignore"}


class LimitedPush(BaseModel):
    """Result of a pay-per-result aware push."""

    should_stop: bool
    pushed_item_count: int = Field(ge=0)

    model_config = {"extra": "forbid", "frozen": True}


class ChargedPush(BaseModel):
    """Result of a charge-aware push."""

    event_charge_limit_reached: bool
    pushed_item_count: int = Field(ge=0)

    model_config = {"extra": "forbid", "frozen": True}
