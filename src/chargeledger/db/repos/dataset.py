"""Dataset repository: append-only item storage."""

import json
from typing import Any
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from chargeledger.db.repos.base import BaseRepo


class DatasetRepo(BaseRepo):
    """Repository for datasets and dataset_items tables."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_dataset(self, name: str | None = None) -> dict[str, Any]:
        """Insert a new dataset row and return it."""
        dataset_id = self.generate_uuid()
        now = self.now()

        await self.session.execute(
            text("""
                INSERT INTO datasets (id, name, created_at)
                VALUES (:id, :name, :created_at)
            """),
            {"id": dataset_id, "name": name, "created_at": now},
        )
        return {"id": dataset_id, "name": name, "created_at": now}

    async def get_by_id(self, entity_id: str | UUID) -> dict[str, Any] | None:
        """Get dataset by ID."""
        dataset_id = self.parse_uuid(entity_id)
        if dataset_id is None:
            return None
        result = await self.session.execute(
            text("""
                SELECT id, name, created_at
                FROM datasets
                WHERE id = :dataset_id
            """),
            {"dataset_id": dataset_id},
        )
        row = result.mappings().fetchone()
        return dict(row) if row else None

    async def get_by_name(self, name: str) -> dict[str, Any] | None:
        """Get dataset by its unique name."""
        result = await self.session.execute(
            text("""
                SELECT id, name, created_at
                FROM datasets
                WHERE name = :name
            """),
            {"name": name},
        )
        row = result.mappings().fetchone()
        return dict(row) if row else None

    async def append_items(self, dataset_id: str | UUID, items: list[dict[str, Any]]) -> int:
        """Append items to a dataset.

        Returns:
            Number of rows inserted
        """
        parsed_id = self.parse_uuid(dataset_id)
        if parsed_id is None:
            raise ValueError(f"Invalid dataset id: {dataset_id}")
        if not items:
            return 0
        now = self.now()
        await self.session.execute(
            text("""
                INSERT INTO dataset_items (dataset_id, payload, created_at)
                VALUES (:dataset_id, CAST(:payload AS JSONB), :created_at)
            """),
            [
                {"dataset_id": parsed_id, "payload": json.dumps(item), "created_at": now}
                for item in items
            ],
        )
        return len(items)

    async def count_items(self, dataset_id: str | UUID) -> int:
        """Count items in a dataset."""
        parsed_id = self.parse_uuid(dataset_id)
        if parsed_id is None:
            return 0
        result = await self.session.execute(
            text("SELECT COUNT(*) FROM dataset_items WHERE dataset_id = :dataset_id"),
            {"dataset_id": parsed_id},
        )
        return int(result.scalar_one())

    async def list_items(
        self,
        dataset_id: str | UUID,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """List item payloads in insertion order."""
        parsed_id = self.parse_uuid(dataset_id)
        if parsed_id is None:
            return []
        result = await self.session.execute(
            text("""
                SELECT payload
                FROM dataset_items
                WHERE dataset_id = :dataset_id
                ORDER BY id
                LIMIT :limit OFFSET :offset
            """),
            {"dataset_id": parsed_id, "limit": limit, "offset": offset},
        )
        return [row["payload"] for row in result.mappings().fetchall()]
