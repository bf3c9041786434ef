"""Pay-per-event charge ledger with a hard spending cap."""

import asyncio
import logging
import math
import weakref
from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any

from chargeledger.contracts.enums import ChargeOutcome
from chargeledger.contracts.models import ChargeRecord, ChargeResult, DatasetInfo, RunRecord
from chargeledger.core.budget import (
    Budget,
    EventSpec,
    affordable_units,
    compute_cost,
    remaining_budget_usd,
)
from chargeledger.providers.charge_notifier import ChargeNotifier
from chargeledger.providers.datasets import Dataset, DatasetClient
from chargeledger.providers.kv_store import KeyValueStore
from chargeledger.providers.run_record import RunRecordProvider

logger = logging.getLogger(__name__)

CHARGE_LOGGER_NAME = "chargeledger.charges"
METADATA_DATASET_KEY = "METADATA_DATASET_INFO"

_charge_logger = logging.getLogger(CHARGE_LOGGER_NAME)

# Serializes metadata dataset creation between ledgers in one process
_metadata_dataset_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Lock]" = (
    weakref.WeakKeyDictionary()
)


def _metadata_dataset_lock() -> asyncio.Lock:
    loop = asyncio.get_running_loop()
    lock = _metadata_dataset_locks.get(loop)
    if lock is None:
        lock = _metadata_dataset_locks[loop] = asyncio.Lock()
    return lock


def event_specs_from_run(run: RunRecord) -> dict[str, EventSpec]:
    """Extract registered event kinds from a run record (empty if not pay-per-event)."""
    pricing = run.pricing_info
    if pricing is None or pricing.pricing_per_event is None:
        return {}
    return {
        event_id: EventSpec(
            event_id=event_id,
            unit_price_usd=event.event_price_usd,
            display_title=event.event_title,
        )
        for event_id, event in pricing.pricing_per_event.actor_charge_events.items()
    }


async def open_metadata_dataset(
    kv_store: KeyValueStore,
    datasets: DatasetClient,
    key: str = METADATA_DATASET_KEY,
) -> Dataset:
    """Reuse the metadata dataset recorded in ``kv_store`` or create one.

    The dataset is unnamed, so its info is persisted under ``key`` to find it
    again after a restart. Creation is guarded by a process-wide lock and by
    set-if-absent on the pointer, so racing initializers end up sharing the
    first dataset.
    """
    async with _metadata_dataset_lock():
        stored = await kv_store.get_value(key)
        if stored is None:
            created = await datasets.get_or_create()
            if await kv_store.set_value_if_absent(key, created.model_dump(mode="json")):
                logger.info(f"Created metadata dataset {created.id}")
                return Dataset(datasets, created)
            stored = await kv_store.get_value(key)
            logger.warning(f"Metadata dataset already created by another process, abandoning {created.id}")
        info = DatasetInfo.model_validate(stored)
        logger.debug(f"Reusing metadata dataset {info.id}")
        return Dataset(datasets, info)


class ChargeLedger:
    """Tracks pay-per-event charges for one run and keeps them within budget.

    State is seeded from the run record's authoritative charged counts and
    then only grows in memory. Unregistered events are free and unlimited.
    Build instances with :meth:`initialize`.
    """

    def __init__(
        self,
        event_specs: Mapping[str, EventSpec],
        budget: Budget,
        metadata_dataset: Dataset,
        notifier: ChargeNotifier,
        charge_counts: Mapping[str, int] | None = None,
    ) -> None:
        self._specs: dict[str, EventSpec] = dict(event_specs)
        self._budget = budget
        self._metadata_dataset = metadata_dataset
        self._notifier = notifier
        counts = charge_counts or {}
        for event_id, count in counts.items():
            if count < 0:
                raise ValueError(f"Charged count for {event_id} must be >= 0, got {count}")
        self._charge_counts: dict[str, int] = {event_id: counts.get(event_id, 0) for event_id in self._specs}
        self._event_locks: dict[str, asyncio.Lock] = {event_id: asyncio.Lock() for event_id in self._specs}

    @classmethod
    async def initialize(
        cls,
        run_provider: RunRecordProvider,
        kv_store: KeyValueStore,
        datasets: DatasetClient,
        notifier: ChargeNotifier,
        metadata_dataset_key: str = METADATA_DATASET_KEY,
    ) -> "ChargeLedger":
        """Resync from the run record and open the metadata dataset.

        Raises:
            RunRecordUnavailable: If the run record cannot be fetched; no
                ledger is produced in that case
        """
        run = await run_provider.get_run()
        specs = event_specs_from_run(run)
        charge_counts = run.charged_event_counts or {}
        budget = Budget.from_max_total(run.options.max_total_charge_usd)
        metadata_dataset = await open_metadata_dataset(kv_store, datasets, metadata_dataset_key)

        ledger = cls(
            event_specs=specs,
            budget=budget,
            metadata_dataset=metadata_dataset,
            notifier=notifier,
            charge_counts={event_id: charge_counts.get(event_id, 0) for event_id in specs},
        )
        logger.info(
            f"Charge ledger initialized for run {run.id}: {len(specs)} registered events, "
            f"max total charge {budget.max_total_charge_usd or 'unbounded'}, "
            f"remaining {ledger.remaining_charge_budget_usd()}"
        )
        return ledger

    @property
    def max_total_charge_usd(self) -> Decimal | None:
        """Configured cap, or None when unbounded."""
        return self._budget.max_total_charge_usd

    @property
    def event_specs(self) -> Mapping[str, EventSpec]:
        return dict(self._specs)

    @property
    def metadata_dataset(self) -> Dataset:
        return self._metadata_dataset

    def is_registered(self, event_id: str) -> bool:
        return event_id in self._specs

    def charged_event_count(self, event_id: str) -> int:
        """Units charged so far for ``event_id`` (0 for unregistered events)."""
        return self._charge_counts.get(event_id, 0)

    def remaining_charge_budget_usd(self) -> Decimal:
        """How much more registered events can charge before reaching the cap."""
        return remaining_budget_usd(self._budget, self._specs, self._charge_counts)

    def units_affordable(self, event_id: str) -> int | float:
        """How many more units of ``event_id`` fit into the remaining budget.

        Returns ``math.inf`` for unregistered events.
        """
        spec = self._specs.get(event_id)
        if spec is None:
            return math.inf
        return affordable_units(self.remaining_charge_budget_usd(), spec.unit_price_usd)

    def summary(self) -> dict[str, Any]:
        """Charged counts and dollars per registered event."""
        by_event = {
            event_id: {
                "event_title": spec.display_title,
                "charge_count": self._charge_counts[event_id],
                "dollars": compute_cost(spec.unit_price_usd, self._charge_counts[event_id]),
            }
            for event_id, spec in self._specs.items()
        }
        return {
            "by_event": by_event,
            "max_total_charge_usd": self.max_total_charge_usd,
            "remaining_charge_budget_usd": self.remaining_charge_budget_usd(),
        }

    async def charge(self, event_id: str, metadata: Sequence[dict[str, Any]]) -> ChargeResult:
        """Charge one unit of ``event_id`` per metadata entry, within budget.

        The request is silently truncated to what the budget allows; the
        returned ``charged_count`` says how many units were charged. Callers
        should stop producing chargeable work once
        ``event_charge_limit_reached`` is True.

        Raises:
            Exception: Whatever the metadata dataset raises on append
        """
        spec = self._specs.get(event_id)
        if spec is None:
            return ChargeResult(
                charged_count=len(metadata),
                outcome=ChargeOutcome.EVENT_NOT_REGISTERED,
                event_charge_limit_reached=False,
            )

        async with self._event_locks[event_id]:
            # No await between the affordability check and the count update
            affordable = self.units_affordable(event_id)
            if affordable <= 0:
                return ChargeResult(
                    charged_count=0,
                    outcome=ChargeOutcome.CHARGE_LIMIT_REACHED,
                    event_charge_limit_reached=True,
                )
            chargeable_count = int(min(len(metadata), affordable))
            self._charge_counts[event_id] += chargeable_count

            if chargeable_count > 0:
                await self._notify(event_id, chargeable_count)
                records = [
                    ChargeRecord(
                        event_id=event_id,
                        event_title=spec.display_title,
                        event_price_usd=spec.unit_price_usd,
                        metadata=dict(item),
                    ).as_item()
                    for item in metadata[:chargeable_count]
                ]
                await self._metadata_dataset.push_data(records)

            remaining_units = self.units_affordable(event_id)

        _charge_logger.debug(
            f"Charged for {chargeable_count} {event_id} events, remaining events: {remaining_units}, "
            f"remaining cost: {self.remaining_charge_budget_usd()}"
        )
        return ChargeResult(
            charged_count=chargeable_count,
            outcome=ChargeOutcome.CHARGE_SUCCESSFUL,
            event_charge_limit_reached=remaining_units <= 0,
        )

    async def _notify(self, event_id: str, count: int) -> None:
        """Best-effort notification; the local state change is never rolled back."""
        try:
            await self._notifier.notify(event_id, count)
        except Exception as e:
            logger.exception(f"The charging request for {count} x {event_id} failed: {e}")
