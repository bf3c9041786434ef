"""Database access layer."""

from chargeledger.db.engine import get_async_engine
from chargeledger.db.session import db_session

__all__ = ["get_async_engine", "db_session"]
