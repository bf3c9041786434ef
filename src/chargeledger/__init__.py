"""Budget-limited pay-per-event charging for long-running metered jobs."""

from chargeledger.contracts import ChargedPush, ChargeOutcome, ChargeResult, LimitedPush, RunRecord
from chargeledger.core import ChargeLedger, ResultLimiter, push_data_charge_aware

__all__ = [
    "ChargeLedger",
    "ChargeOutcome",
    "ChargeResult",
    "ChargedPush",
    "LimitedPush",
    "ResultLimiter",
    "RunRecord",
    "push_data_charge_aware",
]
