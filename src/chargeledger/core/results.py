"""Pay-per-result limiter: caps how many result items a run may push."""

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from chargeledger.contracts.models import LimitedPush
from chargeledger.providers.datasets import Dataset

logger = logging.getLogger(__name__)


class ResultLimiter:
    """Pushes result items without exceeding ``max_items`` across restarts.

    With ``max_items=None`` the run is not billed per result and every item is
    pushed. Otherwise the first push reads how many items the results dataset
    already holds; concurrent first pushes wait for that single read.
    """

    def __init__(self, dataset: Dataset, max_items: int | None = None) -> None:
        if max_items is not None and max_items < 0:
            raise ValueError("max_items must be >= 0")
        self.dataset = dataset
        self.max_items = max_items
        self._pushed_item_count = 0
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @property
    def pushed_item_count(self) -> int:
        """Items in the results dataset, as known to this limiter."""
        return self._pushed_item_count

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            self._pushed_item_count = await self.dataset.item_count()
            self._initialized = True
            logger.debug(f"Result limiter resumed at {self._pushed_item_count}/{self.max_items} items")

    async def push(self, items: dict[str, Any] | Sequence[dict[str, Any]]) -> LimitedPush:
        """Push as many of ``items`` as the limit allows.

        Returns:
            LimitedPush with the number pushed by this call and whether the
            limit has been reached
        """
        batch = [items] if isinstance(items, dict) else list(items)
        if self.max_items is None:
            await self.dataset.push_data(batch)
            return LimitedPush(should_stop=False, pushed_item_count=len(batch))

        await self._ensure_initialized()

        to_push = batch[: max(self.max_items - self._pushed_item_count, 0)]
        if to_push:
            # Count before awaiting so concurrent pushes see the reservation
            self._pushed_item_count += len(to_push)
            await self.dataset.push_data(to_push)

        return LimitedPush(
            should_stop=self._pushed_item_count >= self.max_items,
            pushed_item_count=len(to_push),
        )
