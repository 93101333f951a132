"""Database engine, session, and transaction helpers."""
from .base import Base
from .session import Database, transaction

__all__ = ["Base", "Database", "transaction"]
