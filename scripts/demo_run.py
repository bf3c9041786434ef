#!/usr/bin/env python3
"""Demo runner for pay-per-event charging.

Usage:
    python scripts/demo_run.py

Outside the platform the run record below is used and charge requests are
only logged. Set IS_AT_HOME=true, RUN_ID and API_TOKEN to charge a real run.
Running the demo twice against the same local storage shows the metadata
dataset being reused.
"""

import asyncio
import logging
import math
import sys
from typing import Any

from chargeledger.core import ChargeLedger, ResultLimiter, push_data_charge_aware
from chargeledger.providers.datasets import open_dataset
from chargeledger.providers.registry import (
    build_charge_notifier,
    build_run_record_provider,
    build_storage,
)
from chargeledger.settings import get_settings

logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)

START_EVENT = "actor-start-gb"
RESULT_EVENT = "product-result"

LOCAL_RUN: dict[str, Any] = {
    "id": "local-demo-run",
    "status": "RUNNING",
    "pricingInfo": {
        "pricingModel": "PAY_PER_EVENT",
        "pricingPerEvent": {
            "actorChargeEvents": {
                START_EVENT: {"eventTitle": "Actor start per 1 GB", "eventPriceUsd": 0.005},
                RESULT_EVENT: {"eventTitle": "Product result", "eventPriceUsd": 0.002},
            }
        },
    },
    "chargedEventCounts": {START_EVENT: 0, RESULT_EVENT: 0},
    "options": {"maxTotalChargeUsd": 0.015, "memoryMbytes": 2048},
}


async def main() -> int:
    """Charge the start event once, push dummy items, stop on limit."""
    settings = get_settings()
    kv_store, datasets = build_storage(settings)

    ledger = await ChargeLedger.initialize(
        run_provider=build_run_record_provider(settings, local_run=LOCAL_RUN),
        kv_store=kv_store,
        datasets=datasets,
        notifier=build_charge_notifier(settings),
        metadata_dataset_key=settings.metadata_dataset_key,
    )
    results = await open_dataset(datasets, name="default")
    limiter = ResultLimiter(results, max_items=settings.max_paid_dataset_items)

    # Charged once per run, even if the run migrates or is resurrected
    if ledger.charged_event_count(START_EVENT) == 0:
        run_gbs = math.ceil(settings.memory_mbytes / 1024)
        start_result = await ledger.charge(START_EVENT, [{} for _ in range(run_gbs)])
        logger.info(f"Charge result for {START_EVENT}: {start_result.model_dump()}")

    items = [{"itemIndex": i} for i in range(5)]
    pushed = await push_data_charge_aware(items, RESULT_EVENT, ledger=ledger, limiter=limiter)
    logger.info(f"Pushed {pushed.pushed_item_count}/{len(items)} items")

    if pushed.event_charge_limit_reached:
        logger.info(f"Stopping because we reached the max total charge of {ledger.max_total_charge_usd}")
    logger.info(f"Ledger summary: {ledger.summary()}")
    return pushed.pushed_item_count


if __name__ == "__main__":
    asyncio.run(main())
