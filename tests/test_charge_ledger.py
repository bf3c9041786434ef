"""Tests for ChargeLedger charging semantics."""

import asyncio
import logging
import math
import random
from decimal import Decimal

import pytest

from chargeledger.contracts.enums import ChargeOutcome
from chargeledger.core.ledger import CHARGE_LOGGER_NAME, ChargeLedger
from chargeledger.providers.charge_notifier import ChargeNotificationError, RecordingChargeNotifier
from chargeledger.providers.run_record import MockRunRecordProvider


async def _ledger(run, kv_store, datasets, notifier) -> ChargeLedger:
    return await ChargeLedger.initialize(MockRunRecordProvider(run), kv_store, datasets, notifier)


def _metadata(count: int) -> list[dict]:
    return [{"index": i} for i in range(count)]


class TestScenarios:
    """End-to-end charging scenarios."""

    @pytest.mark.asyncio
    async def test_request_above_budget_is_clamped(self, make_run, kv_store, datasets, notifier) -> None:
        """$1/unit, $5 budget, 10 requested: 5 charged and limit reached."""
        ledger = await _ledger(make_run({"result": 1}, max_total_charge_usd=5), kv_store, datasets, notifier)

        result = await ledger.charge("result", _metadata(10))

        assert result.charged_count == 5
        assert result.outcome == ChargeOutcome.CHARGE_SUCCESSFUL
        assert result.event_charge_limit_reached is True
        assert notifier.calls == [("result", 5)]

    @pytest.mark.asyncio
    async def test_request_within_budget(self, make_run, kv_store, datasets, notifier) -> None:
        """$2/unit, $5 budget, 2 requested: both charged, $1 left."""
        ledger = await _ledger(make_run({"result": 2}, max_total_charge_usd=5), kv_store, datasets, notifier)

        result = await ledger.charge("result", _metadata(2))

        assert result.charged_count == 2
        assert result.outcome == ChargeOutcome.CHARGE_SUCCESSFUL
        assert ledger.remaining_charge_budget_usd() == Decimal("1")
        # $1 left cannot pay for another $2 unit
        assert ledger.units_affordable("result") == 0
        assert result.event_charge_limit_reached is True

    @pytest.mark.asyncio
    async def test_request_within_budget_with_units_left(self, make_run, kv_store, datasets, notifier) -> None:
        """Limit is not reached while at least one more unit is affordable."""
        ledger = await _ledger(make_run({"result": 2}, max_total_charge_usd=5), kv_store, datasets, notifier)

        result = await ledger.charge("result", _metadata(1))

        assert result.charged_count == 1
        assert result.event_charge_limit_reached is False
        assert ledger.units_affordable("result") == 1

    @pytest.mark.asyncio
    async def test_charge_after_budget_exhausted(self, make_run, kv_store, datasets, notifier) -> None:
        """With $1 left and a $2 price the next charge is refused without side effects."""
        ledger = await _ledger(make_run({"result": 2}, max_total_charge_usd=5), kv_store, datasets, notifier)
        await ledger.charge("result", _metadata(2))

        result = await ledger.charge("result", _metadata(1))

        assert result.charged_count == 0
        assert result.outcome == ChargeOutcome.CHARGE_LIMIT_REACHED
        assert result.event_charge_limit_reached is True
        assert ledger.charged_event_count("result") == 2
        assert len(notifier.calls) == 1
        assert len(datasets.items[ledger.metadata_dataset.id]) == 2

    @pytest.mark.asyncio
    async def test_unregistered_event_passes_through(self, make_run, kv_store, datasets, notifier) -> None:
        """Events outside the pricing schedule are free and never limited."""
        ledger = await _ledger(make_run({"result": 1}, max_total_charge_usd=5), kv_store, datasets, notifier)

        result = await ledger.charge("other", _metadata(100))

        assert result.charged_count == 100
        assert result.outcome == ChargeOutcome.EVENT_NOT_REGISTERED
        assert result.event_charge_limit_reached is False
        assert notifier.calls == []
        assert datasets.items[ledger.metadata_dataset.id] == []
        assert ledger.units_affordable("other") == math.inf
        assert ledger.charged_event_count("other") == 0

    @pytest.mark.asyncio
    async def test_restart_resumes_from_prior_counts(self, make_run, kv_store, datasets, notifier) -> None:
        """3 units already charged at $1 with a $5 budget leaves 2 affordable."""
        run = make_run({"result": 1}, counts={"result": 3}, max_total_charge_usd=5)
        ledger = await _ledger(run, kv_store, datasets, notifier)

        assert ledger.units_affordable("result") == 2
        assert ledger.charged_event_count("result") == 3


class TestChargeSemantics:
    """Invariants of the charge operation."""

    @pytest.mark.asyncio
    async def test_exhaustion_is_monotone(self, make_run, kv_store, datasets, notifier) -> None:
        """Once the limit is reached every later charge returns 0."""
        ledger = await _ledger(make_run({"result": 1}, max_total_charge_usd=3), kv_store, datasets, notifier)
        first = await ledger.charge("result", _metadata(3))
        assert first.event_charge_limit_reached is True

        for _ in range(3):
            again = await ledger.charge("result", _metadata(1))
            assert again.charged_count == 0
            assert again.outcome == ChargeOutcome.CHARGE_LIMIT_REACHED

    @pytest.mark.asyncio
    async def test_unbounded_budget_never_limits(self, make_run, kv_store, datasets, notifier) -> None:
        """Without maxTotalChargeUsd every unit is charged."""
        ledger = await _ledger(make_run({"result": 1000}), kv_store, datasets, notifier)

        result = await ledger.charge("result", _metadata(50))

        assert result.charged_count == 50
        assert result.event_charge_limit_reached is False
        assert ledger.max_total_charge_usd is None
        assert ledger.units_affordable("result") == math.inf

    @pytest.mark.asyncio
    async def test_run_without_pricing_info(self, make_run, kv_store, datasets, notifier) -> None:
        """A run not billed per event treats every event as unregistered."""
        ledger = await _ledger(make_run(max_total_charge_usd=1), kv_store, datasets, notifier)

        result = await ledger.charge("result", _metadata(10))

        assert result.outcome == ChargeOutcome.EVENT_NOT_REGISTERED
        assert result.charged_count == 10
        assert ledger.event_specs == {}

    @pytest.mark.asyncio
    async def test_budget_shared_between_events(self, make_run, kv_store, datasets, notifier) -> None:
        """Charging one event shrinks what the other can afford."""
        run = make_run({"start": 1, "result": 0.5}, max_total_charge_usd=3)
        ledger = await _ledger(run, kv_store, datasets, notifier)

        await ledger.charge("start", _metadata(2))

        assert ledger.units_affordable("result") == 2
        result = await ledger.charge("result", _metadata(5))
        assert result.charged_count == 2
        assert result.event_charge_limit_reached is True
        assert ledger.units_affordable("start") == 0

    @pytest.mark.asyncio
    async def test_zero_units_requested(self, make_run, kv_store, datasets, notifier) -> None:
        """An empty metadata list charges nothing and sends nothing."""
        ledger = await _ledger(make_run({"result": 1}, max_total_charge_usd=5), kv_store, datasets, notifier)

        result = await ledger.charge("result", [])

        assert result.charged_count == 0
        assert result.outcome == ChargeOutcome.CHARGE_SUCCESSFUL
        assert result.event_charge_limit_reached is False
        assert notifier.calls == []

    @pytest.mark.asyncio
    async def test_tenth_cent_prices_exhaust_exactly(self, make_run, kv_store, datasets, notifier) -> None:
        """Ten $0.1 units fit into $1 even when charged one at a time."""
        ledger = await _ledger(make_run({"result": 0.1}, max_total_charge_usd=1), kv_store, datasets, notifier)

        charged = 0
        for _ in range(10):
            charged += (await ledger.charge("result", _metadata(1))).charged_count

        assert charged == 10
        assert ledger.remaining_charge_budget_usd() == Decimal("0")
        assert ledger.units_affordable("result") == 0

    @pytest.mark.asyncio
    async def test_random_sequences_never_exceed_budget(self, make_run, kv_store, datasets, notifier) -> None:
        """Charged dollars stay within the cap for arbitrary request sequences."""
        prices = {"a": Decimal("0.3"), "b": Decimal("0.07"), "c": Decimal("1.25")}
        ledger = await _ledger(
            make_run({k: float(v) for k, v in prices.items()}, max_total_charge_usd=7.5),
            kv_store,
            datasets,
            notifier,
        )

        spent = Decimal(0)
        for _ in range(200):
            event_id = random.choice(list(prices))
            requested = random.randint(0, 6)
            result = await ledger.charge(event_id, _metadata(requested))
            assert result.charged_count <= requested
            spent += result.charged_count * prices[event_id]

        assert spent <= Decimal("7.5")
        assert ledger.remaining_charge_budget_usd() == Decimal("7.5") - spent


class TestSideEffects:
    """Notification and metadata record behavior."""

    @pytest.mark.asyncio
    async def test_metadata_records_written_per_unit(self, make_run, kv_store, datasets, notifier) -> None:
        """One record per charged unit, carrying its own metadata."""
        ledger = await _ledger(make_run({"result": 1}, max_total_charge_usd=2), kv_store, datasets, notifier)

        await ledger.charge("result", [{"url": "a"}, {"url": "b"}, {"url": "c"}])

        records = datasets.items[ledger.metadata_dataset.id]
        assert [r["metadata"] for r in records] == [{"url": "a"}, {"url": "b"}]
        assert records[0]["eventId"] == "result"
        assert records[0]["eventTitle"] == "Title of result"
        assert records[0]["eventPriceUsd"] == 1.0
        assert "timestamp" in records[0]

    @pytest.mark.asyncio
    async def test_notification_failure_is_swallowed(
        self, make_run, kv_store, datasets, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A failed notification is logged; the charge still counts."""
        caplog.set_level(logging.ERROR)
        failing = RecordingChargeNotifier(
            fail_with=ChargeNotificationError("boom", event_id="result", count=2, idempotency_key="k")
        )
        ledger = await _ledger(make_run({"result": 1}, max_total_charge_usd=5), kv_store, datasets, failing)

        result = await ledger.charge("result", _metadata(2))

        assert result.charged_count == 2
        assert result.outcome == ChargeOutcome.CHARGE_SUCCESSFUL
        assert ledger.charged_event_count("result") == 2
        assert len(datasets.items[ledger.metadata_dataset.id]) == 2
        assert any("charging request" in r.message for r in caplog.records)

    @pytest.mark.asyncio
    async def test_state_updated_before_notification(self, make_run, kv_store, datasets) -> None:
        """The in-memory count already includes the charge when the notifier runs."""
        seen: list[int] = []
        ledger_ref: list[ChargeLedger] = []

        class InspectingNotifier:
            async def notify(self, event_id: str, count: int) -> None:
                seen.append(ledger_ref[0].charged_event_count(event_id))

        ledger = await _ledger(
            make_run({"result": 1}, max_total_charge_usd=5), kv_store, datasets, InspectingNotifier()
        )
        ledger_ref.append(ledger)

        await ledger.charge("result", _metadata(3))

        assert seen == [3]

    @pytest.mark.asyncio
    async def test_append_failure_propagates(self, make_run, kv_store, datasets, notifier) -> None:
        """Failing to write the audit records fails the charge call."""
        ledger = await _ledger(make_run({"result": 1}, max_total_charge_usd=5), kv_store, datasets, notifier)
        del datasets.items[ledger.metadata_dataset.id]

        with pytest.raises(LookupError):
            await ledger.charge("result", _metadata(1))

    @pytest.mark.asyncio
    async def test_charge_debug_line_logged(
        self, make_run, kv_store, datasets, notifier, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Each successful charge logs remaining events and cost."""
        caplog.set_level(logging.DEBUG, logger=CHARGE_LOGGER_NAME)
        ledger = await _ledger(make_run({"result": 1}, max_total_charge_usd=5), kv_store, datasets, notifier)

        await ledger.charge("result", _metadata(2))

        messages = [r.message for r in caplog.records if r.name == CHARGE_LOGGER_NAME]
        assert len(messages) == 1
        assert "Charged for 2 result events" in messages[0]
        assert "remaining events: 3" in messages[0]


class TestConcurrency:
    """Concurrent charge calls within one process."""

    @pytest.mark.asyncio
    async def test_concurrent_charges_do_not_overspend(self, make_run, kv_store, datasets) -> None:
        """Parallel one-unit charges against a 5-unit budget charge exactly 5."""

        class SlowNotifier(RecordingChargeNotifier):
            async def notify(self, event_id: str, count: int) -> None:
                await asyncio.sleep(0.001)
                await super().notify(event_id, count)

        slow = SlowNotifier()
        ledger = await _ledger(make_run({"result": 1}, max_total_charge_usd=5), kv_store, datasets, slow)

        results = await asyncio.gather(*(ledger.charge("result", _metadata(1)) for _ in range(20)))

        assert sum(r.charged_count for r in results) == 5
        assert slow.total_for("result") == 5
        assert ledger.charged_event_count("result") == 5
        assert len(datasets.items[ledger.metadata_dataset.id]) == 5

    @pytest.mark.asyncio
    async def test_concurrent_charges_across_events_share_budget(self, make_run, kv_store, datasets) -> None:
        """Different events charged concurrently still respect the shared cap."""

        class SlowNotifier(RecordingChargeNotifier):
            async def notify(self, event_id: str, count: int) -> None:
                await asyncio.sleep(0.001)
                await super().notify(event_id, count)

        ledger = await _ledger(
            make_run({"a": 1, "b": 1}, max_total_charge_usd=6), kv_store, datasets, SlowNotifier()
        )

        calls = [ledger.charge(event_id, _metadata(2)) for event_id in ("a", "b") * 5]
        results = await asyncio.gather(*calls)

        assert sum(r.charged_count for r in results) == 6
        assert ledger.remaining_charge_budget_usd() == Decimal("0")
