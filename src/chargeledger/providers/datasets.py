"""Append-only datasets for result items and charge metadata records."""

import json
import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol
from uuid import uuid4

from chargeledger.contracts.models import DatasetInfo
from chargeledger.db.repos import DatasetRepo
from chargeledger.db.session import db_session

logger = logging.getLogger(__name__)

Item = dict[str, Any]


class DatasetClient(Protocol):
    """Protocol for the platform's append-only record storage."""

    async def get_or_create(self, name: str | None = None) -> DatasetInfo:
        """Return the named dataset, creating it if needed.

        Unnamed calls always create a new dataset.
        """
        ...

    async def get_info(self, dataset_id: str) -> DatasetInfo | None:
        """Return dataset info (including item_count), or None if unknown."""
        ...

    async def push_items(self, dataset_id: str, items: Sequence[Item]) -> None:
        """Append items to the dataset. Items are never modified afterwards."""
        ...


class Dataset:
    """Handle for one dataset."""

    def __init__(self, client: DatasetClient, info: DatasetInfo) -> None:
        self.client = client
        self.info = info

    @property
    def id(self) -> str:
        return self.info.id

    async def push_data(self, items: Item | Sequence[Item]) -> None:
        """Append one item or a batch of items."""
        batch = [items] if isinstance(items, dict) else list(items)
        if not batch:
            return
        await self.client.push_items(self.id, batch)

    async def get_info(self) -> DatasetInfo:
        info = await self.client.get_info(self.id)
        if info is None:
            raise LookupError(f"Dataset {self.id} no longer exists")
        return info

    async def item_count(self) -> int:
        return (await self.get_info()).item_count


async def open_dataset(client: DatasetClient, name: str | None = None) -> Dataset:
    """Get or create a dataset and return a handle for it."""
    info = await client.get_or_create(name)
    return Dataset(client, info)


class InMemoryDatasetClient:
    """Datasets held in memory; supports inspection in tests."""

    def __init__(self) -> None:
        self.infos: dict[str, DatasetInfo] = {}
        self.items: dict[str, list[Item]] = {}

    async def get_or_create(self, name: str | None = None) -> DatasetInfo:
        if name is not None:
            for info in self.infos.values():
                if info.name == name:
                    return info
        info = DatasetInfo(id=uuid4().hex, name=name)
        self.infos[info.id] = info
        self.items[info.id] = []
        return info

    async def get_info(self, dataset_id: str) -> DatasetInfo | None:
        info = self.infos.get(dataset_id)
        if info is None:
            return None
        return info.model_copy(update={"item_count": len(self.items[dataset_id])})

    async def push_items(self, dataset_id: str, items: Sequence[Item]) -> None:
        if dataset_id not in self.items:
            raise LookupError(f"Dataset {dataset_id} does not exist")
        self.items[dataset_id].extend(json.loads(json.dumps(list(items))))


class FileSystemDatasetClient:
    """Datasets stored as directories of numbered JSON files.

    Layout: ``<root>/<dataset_id>/__info__.json`` plus one
    ``000000001.json``-style file per item.
    """

    INFO_FILE = "__info__.json"

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _read_info(self, directory: Path) -> DatasetInfo:
        return DatasetInfo.model_validate_json((directory / self.INFO_FILE).read_text(encoding="utf-8"))

    def _count_items(self, directory: Path) -> int:
        return sum(1 for p in directory.glob("*.json") if p.name != self.INFO_FILE)

    async def get_or_create(self, name: str | None = None) -> DatasetInfo:
        if name is not None:
            directory = self.root / name
            if directory.exists():
                return self._read_info(directory)
            info = DatasetInfo(id=name, name=name)
        else:
            info = DatasetInfo(id=uuid4().hex)
        directory = self.root / info.id
        directory.mkdir(parents=True, exist_ok=True)
        (directory / self.INFO_FILE).write_text(info.model_dump_json(), encoding="utf-8")
        logger.debug(f"Created dataset {info.id} at {directory}")
        return info

    async def get_info(self, dataset_id: str) -> DatasetInfo | None:
        directory = self.root / dataset_id
        if not (directory / self.INFO_FILE).exists():
            return None
        info = self._read_info(directory)
        return info.model_copy(update={"item_count": self._count_items(directory)})

    async def push_items(self, dataset_id: str, items: Sequence[Item]) -> None:
        directory = self.root / dataset_id
        if not (directory / self.INFO_FILE).exists():
            raise LookupError(f"Dataset {dataset_id} does not exist")
        index = self._count_items(directory)
        for item in items:
            index += 1
            (directory / f"{index:09d}.json").write_text(json.dumps(item, indent=2), encoding="utf-8")


class PostgresDatasetClient:
    """Datasets stored in the ``datasets`` and ``dataset_items`` tables."""

    async def get_or_create(self, name: str | None = None) -> DatasetInfo:
        async with db_session() as session:
            repo = DatasetRepo(session)
            if name is not None:
                row = await repo.get_by_name(name)
                if row is not None:
                    return _row_to_info(row, await repo.count_items(row["id"]))
            row = await repo.create_dataset(name=name)
            await session.commit()
        return _row_to_info(row, 0)

    async def get_info(self, dataset_id: str) -> DatasetInfo | None:
        async with db_session() as session:
            repo = DatasetRepo(session)
            row = await repo.get_by_id(dataset_id)
            if row is None:
                return None
            return _row_to_info(row, await repo.count_items(dataset_id))

    async def push_items(self, dataset_id: str, items: Sequence[Item]) -> None:
        async with db_session() as session:
            repo = DatasetRepo(session)
            await repo.append_items(dataset_id, list(items))
            await session.commit()

    async def list_items(self, dataset_id: str, limit: int = 100, offset: int = 0) -> list[Item]:
        """Read items back in insertion order."""
        async with db_session() as session:
            payloads = await DatasetRepo(session).list_items(dataset_id, limit=limit, offset=offset)
        return [json.loads(p) if isinstance(p, str) else p for p in payloads]


def _row_to_info(row: dict[str, Any], item_count: int) -> DatasetInfo:
    created_at = row.get("created_at") or datetime.now(timezone.utc)
    return DatasetInfo(id=str(row["id"]), name=row.get("name"), item_count=item_count, created_at=created_at)
