"""Budget models and affordability math for pay-per-event charging."""

import math
from collections.abc import Mapping
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal

from pydantic import BaseModel, Field

# Money is rounded to 6 places, unit ratios to 4 places before flooring
USD_QUANTUM = Decimal("0.000001")
UNITS_QUANTUM = Decimal("0.0001")

UNBOUNDED_USD = Decimal("Infinity")


def round_usd(amount: Decimal) -> Decimal:
    """Round a USD amount to 6 decimal places; infinities pass through."""
    if not amount.is_finite():
        return amount
    return amount.quantize(USD_QUANTUM, rounding=ROUND_HALF_UP)


def compute_cost(unit_price_usd: Decimal, count: int) -> Decimal:
    """Compute total cost of ``count`` units."""
    return round_usd(unit_price_usd * count)


class EventSpec(BaseModel):
    """Price and title of one registered event kind. Immutable for the run."""

    event_id: str
    unit_price_usd: Decimal = Field(ge=0)
    display_title: str

    model_config = {"extra": "forbid", "frozen": True}


class Budget(BaseModel):
    """Maximum total charge for a run. ``None`` means unbounded."""

    max_total_charge_usd: Decimal | None = Field(default=None, gt=0)

    model_config = {"extra": "forbid", "frozen": True}

    @property
    def is_unbounded(self) -> bool:
        return self.max_total_charge_usd is None

    @classmethod
    def from_max_total(cls, max_total_charge_usd: Decimal | float | None) -> "Budget":
        """Build a budget from the run option; missing or zero means unbounded."""
        if not max_total_charge_usd:
            return cls()
        return cls(max_total_charge_usd=Decimal(str(max_total_charge_usd)))


def remaining_budget_usd(
    budget: Budget,
    specs: Mapping[str, EventSpec],
    charge_counts: Mapping[str, int],
) -> Decimal:
    """How much more money registered events can charge.

    Returns UNBOUNDED_USD when the budget is unbounded. The result can be
    negative when the authoritative counts already exceed the budget.
    """
    if budget.is_unbounded:
        return UNBOUNDED_USD
    spent = sum(
        (compute_cost(spec.unit_price_usd, charge_counts.get(event_id, 0)) for event_id, spec in specs.items()),
        Decimal(0),
    )
    return round_usd(budget.max_total_charge_usd - spent)


def affordable_units(remaining_usd: Decimal, unit_price_usd: Decimal) -> int | float:
    """How many units at ``unit_price_usd`` fit into ``remaining_usd``.

    Returns ``math.inf`` for an unbounded budget or a free event. The ratio is
    rounded to 4 places before flooring so 4.99999... counts as 5.
    """
    if not remaining_usd.is_finite() or unit_price_usd == 0:
        return math.inf
    ratio = (remaining_usd / unit_price_usd).quantize(UNITS_QUANTUM, rounding=ROUND_HALF_UP)
    return int(ratio.to_integral_value(rounding=ROUND_FLOOR))
