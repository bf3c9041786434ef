"""Repository classes for database access."""

from chargeledger.db.repos.base import BaseRepo
from chargeledger.db.repos.dataset import DatasetRepo

__all__ = [
    "BaseRepo",
    "DatasetRepo",
]
