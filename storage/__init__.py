"""Persistence Layer - SQLite-backed transfer storage."""

from .database import TransferStore
from .pool import SqlitePool

__all__ = [
    "TransferStore",
    "SqlitePool",
]
