"""Build provider instances from settings."""

import logging
from pathlib import Path

from redis.asyncio import Redis

from chargeledger.contracts.models import RunRecord
from chargeledger.providers.charge_notifier import (
    ApiChargeNotifier,
    ChargeNotifier,
    LoggingChargeNotifier,
)
from chargeledger.providers.datasets import (
    DatasetClient,
    FileSystemDatasetClient,
    InMemoryDatasetClient,
    PostgresDatasetClient,
)
from chargeledger.providers.kv_store import (
    FileSystemKeyValueStore,
    InMemoryKeyValueStore,
    KeyValueStore,
    RedisKeyValueStore,
)
from chargeledger.providers.run_record import (
    ApiRunRecordProvider,
    MockRunRecordProvider,
    RunRecordProvider,
    RunRecordUnavailable,
)
from chargeledger.settings import Settings

logger = logging.getLogger(__name__)


def build_run_record_provider(
    settings: Settings,
    local_run: RunRecord | dict | None = None,
) -> RunRecordProvider:
    """Use the platform API when running on the platform, else the local mock."""
    if settings.is_at_home:
        if not settings.run_id:
            raise RunRecordUnavailable("run_id must be set when running on the platform")
        return ApiRunRecordProvider(
            base_url=settings.api_base_url,
            run_id=settings.run_id,
            token=settings.api_token,
            timeout_seconds=settings.charge_request_timeout_seconds,
        )
    if local_run is None:
        raise RunRecordUnavailable("A local run record is required outside the platform")
    return MockRunRecordProvider(local_run)


def build_charge_notifier(settings: Settings) -> ChargeNotifier:
    """Send real charge requests only when running on the platform."""
    if settings.is_at_home and settings.run_id:
        return ApiChargeNotifier(
            base_url=settings.api_base_url,
            run_id=settings.run_id,
            token=settings.api_token,
            max_retries=settings.charge_request_max_retries,
            timeout_seconds=settings.charge_request_timeout_seconds,
        )
    return LoggingChargeNotifier()


def build_storage(
    settings: Settings,
    redis: Redis | None = None,
) -> tuple[KeyValueStore, DatasetClient]:
    """Build the key/value store and dataset client for the configured backend.

    The "postgres" backend keeps datasets in PostgreSQL and the key/value
    store in Redis; ``redis`` must be provided for it.
    """
    backend = settings.storage_backend
    if backend == "memory":
        return InMemoryKeyValueStore(), InMemoryDatasetClient()
    if backend == "postgres":
        if redis is None:
            raise ValueError("The postgres storage backend needs a Redis client for the key/value store")
        return RedisKeyValueStore(redis, namespace=settings.run_id or "local"), PostgresDatasetClient()

    root = Path(settings.local_storage_dir)
    logger.debug(f"Using local storage at {root.resolve()}")
    return (
        FileSystemKeyValueStore(root / "key_value_stores" / "default"),
        FileSystemDatasetClient(root / "datasets"),
    )
