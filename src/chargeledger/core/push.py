"""Charge-aware push: charge per item, then push only what was paid for."""

import logging
from collections.abc import Sequence
from typing import Any

from chargeledger.contracts.enums import ChargeOutcome
from chargeledger.contracts.models import ChargedPush
from chargeledger.core.ledger import ChargeLedger
from chargeledger.core.results import ResultLimiter

logger = logging.getLogger(__name__)


async def push_data_charge_aware(
    items: dict[str, Any] | Sequence[dict[str, Any]],
    event_id: str,
    ledger: ChargeLedger,
    limiter: ResultLimiter,
) -> ChargedPush:
    """Charge ``event_id`` once per item and push the charged items.

    Each item doubles as the metadata of its charge. Pushing goes through the
    result limiter so runs that are still billed per result keep their item
    cap; for pay-per-event runs the limiter simply pushes.

    Args:
        items: One item or a batch
        event_id: Event charged for each item
        ledger: Pay-per-event ledger
        limiter: Pay-per-result limiter wrapping the results dataset

    Returns:
        ChargedPush; stop the run when event_charge_limit_reached is True
    """
    batch = [items] if isinstance(items, dict) else list(items)
    result = await ledger.charge(event_id, batch)
    if result.outcome == ChargeOutcome.CHARGE_LIMIT_REACHED:
        logger.info(f"Charge limit reached for {event_id}, dropping {len(batch)} items")

    limited = await limiter.push(batch[: result.charged_count])
    return ChargedPush(
        event_charge_limit_reached=result.event_charge_limit_reached or limited.should_stop,
        pushed_item_count=limited.pushed_item_count,
    )
