"""Contracts shared between the ledger, its providers and callers."""

from chargeledger.contracts.enums import ChargeOutcome, PricingModel
from chargeledger.contracts.models import (
    ChargedPush,
    ChargeEventPricing,
    ChargeRecord,
    ChargeResult,
    DatasetInfo,
    LimitedPush,
    PricingInfo,
    PricingPerEvent,
    RunOptions,
    RunRecord,
)

__all__ = [
    "ChargeEventPricing",
    "ChargeOutcome",
    "ChargeRecord",
    "ChargeResult",
    "ChargedPush",
    "DatasetInfo",
    "LimitedPush",
    "PricingInfo",
    "PricingModel",
    "PricingPerEvent",
    "RunOptions",
    "RunRecord",
]
