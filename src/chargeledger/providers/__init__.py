"""Adapters for the platform services the ledger depends on."""

from chargeledger.providers.charge_notifier import (
    ApiChargeNotifier,
    ChargeNotificationError,
    ChargeNotifier,
    LoggingChargeNotifier,
    RecordingChargeNotifier,
)
from chargeledger.providers.datasets import (
    Dataset,
    DatasetClient,
    FileSystemDatasetClient,
    InMemoryDatasetClient,
    PostgresDatasetClient,
    open_dataset,
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

__all__ = [
    "ApiChargeNotifier",
    "ApiRunRecordProvider",
    "ChargeNotificationError",
    "ChargeNotifier",
    "Dataset",
    "DatasetClient",
    "FileSystemDatasetClient",
    "FileSystemKeyValueStore",
    "InMemoryDatasetClient",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "LoggingChargeNotifier",
    "MockRunRecordProvider",
    "PostgresDatasetClient",
    "RecordingChargeNotifier",
    "RedisKeyValueStore",
    "RunRecordProvider",
    "RunRecordUnavailable",
    "open_dataset",
]
