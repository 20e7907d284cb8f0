"""LedgerStore implementations."""

from core.stores.memory_store import MemoryLedgerStore
from core.stores.postgres_store import PostgresLedgerStore

__all__ = ["MemoryLedgerStore", "PostgresLedgerStore"]
