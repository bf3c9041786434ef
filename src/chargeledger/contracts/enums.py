"""Enum definitions for charging contracts."""

from enum import Enum


class ChargeOutcome(str, Enum):
    """Outcome of a single charge attempt."""

    EVENT_NOT_REGISTERED = "event_not_registered"
    CHARGE_LIMIT_REACHED = "charge_limit_reached"
    CHARGE_SUCCESSFUL = "charge_successful"


class PricingModel(str, Enum):
    """Pricing model reported by the platform for a run."""

    PAY_PER_EVENT = "PAY_PER_EVENT"
    PRICE_PER_DATASET_ITEM = "PRICE_PER_DATASET_ITEM"
    FLAT_PRICE_PER_MONTH = "FLAT_PRICE_PER_MONTH"
    FREE = "FREE"
