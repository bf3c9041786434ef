"""Core charging logic: budget math, the charge ledger and result limiting."""

from chargeledger.core.budget import (
    Budget,
    EventSpec,
    affordable_units,
    compute_cost,
    remaining_budget_usd,
    round_usd,
)
from chargeledger.core.ledger import (
    CHARGE_LOGGER_NAME,
    METADATA_DATASET_KEY,
    ChargeLedger,
    event_specs_from_run,
    open_metadata_dataset,
)
from chargeledger.core.push import push_data_charge_aware
from chargeledger.core.results import ResultLimiter

__all__ = [
    "Budget",
    "CHARGE_LOGGER_NAME",
    "ChargeLedger",
    "EventSpec",
    "METADATA_DATASET_KEY",
    "ResultLimiter",
    "affordable_units",
    "compute_cost",
    "event_specs_from_run",
    "open_metadata_dataset",
    "push_data_charge_aware",
    "remaining_budget_usd",
    "round_usd",
]
