"""Pytest configuration and fixtures."""

import random
from typing import Any

import pytest

from chargeledger.contracts.models import RunRecord
from chargeledger.db.session import reset_session_factory
from chargeledger.providers.charge_notifier import RecordingChargeNotifier
from chargeledger.providers.datasets import InMemoryDatasetClient
from chargeledger.providers.kv_store import InMemoryKeyValueStore


@pytest.fixture(autouse=True)
def reset_db_state():
    """Reset database engine/session state before each test.

    This prevents event loop conflicts when running multiple async tests.
    """
    reset_session_factory()
    yield
    reset_session_factory()


@pytest.fixture(autouse=True)
def seed_random():
    """Seed random for deterministic tests."""
    random.seed(42)
    yield


def _make_run(
    prices: dict[str, float] | None = None,
    counts: dict[str, int] | None = None,
    max_total_charge_usd: float | None = None,
    run_id: str = "run-1",
) -> RunRecord:
    """Build a run record the way the platform API returns it (camelCase)."""
    data: dict[str, Any] = {"id": run_id, "options": {}}
    if prices is not None:
        data["pricingInfo"] = {
            "pricingModel": "PAY_PER_EVENT",
            "pricingPerEvent": {
                "actorChargeEvents": {
                    event_id: {"eventTitle": f"Title of {event_id}", "eventPriceUsd": price}
                    for event_id, price in prices.items()
                }
            },
        }
        data["chargedEventCounts"] = counts or {}
    if max_total_charge_usd is not None:
        data["options"]["maxTotalChargeUsd"] = max_total_charge_usd
    return RunRecord.model_validate(data)


@pytest.fixture
def make_run():
    """Factory for run records."""
    return _make_run


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def datasets() -> InMemoryDatasetClient:
    return InMemoryDatasetClient()


@pytest.fixture
def notifier() -> RecordingChargeNotifier:
    return RecordingChargeNotifier()


@pytest.fixture
async def redis_client():
    """Create a Redis async client for testing; skip if Redis is not running."""
    import redis.asyncio as redis
    from redis.exceptions import ConnectionError as RedisConnectionError

    from chargeledger.settings import get_settings

    settings = get_settings()
    client = redis.from_url(settings.redis_url)
    try:
        await client.ping()
    except (RedisConnectionError, OSError):
        await client.aclose()
        pytest.skip("Redis is not available")
    yield client
    await client.aclose()


@pytest.fixture
async def clean_redis(redis_client):
    """Clean chargeledger keys before/after test."""
    from chargeledger.providers.kv_store import KV_KEY_PREFIX

    async def cleanup():
        keys = await redis_client.keys(f"{KV_KEY_PREFIX}:*")
        if keys:
            await redis_client.delete(*keys)

    await cleanup()
    yield redis_client
    await cleanup()


@pytest.fixture
async def migrated_db():
    """Skip unless PostgreSQL is reachable and the datasets schema exists."""
    from sqlalchemy import text

    from chargeledger.db.engine import get_async_engine

    try:
        async with get_async_engine().connect() as conn:
            await conn.execute(text("SELECT 1 FROM dataset_items LIMIT 1"))
    except Exception as e:
        pytest.skip(f"PostgreSQL with migrated schema is not available: {e}")
    yield
