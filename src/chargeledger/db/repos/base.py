"""Base repository with append-only invariants."""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4


class BaseRepo(ABC):
    """Base repository class for charge storage.

    Invariants:
    - Item rows are append-only: repositories expose no UPDATE or DELETE for them
    - UUID generation: app-side uuid4() for new entities
    - Timestamps are timezone-aware UTC
    """

    @staticmethod
    def now() -> datetime:
        """Get current UTC timestamp."""
        return datetime.now(timezone.utc)

    @staticmethod
    def generate_uuid() -> UUID:
        """Generate a new UUID for an entity id."""
        return uuid4()

    @staticmethod
    def parse_uuid(value: str | UUID) -> UUID | None:
        """Parse an id coming from callers; None if it is not a UUID."""
        if isinstance(value, UUID):
            return value
        try:
            return UUID(value)
        except ValueError:
            return None

    @abstractmethod
    async def get_by_id(self, entity_id: str | UUID) -> Any:
        """Get entity by ID.

        Returns:
            Entity row or None if not found
        """
        raise NotImplementedError
