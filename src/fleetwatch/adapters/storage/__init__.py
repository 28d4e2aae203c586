"""Storage adapters implementing RepositoryPort."""

from fleetwatch.adapters.storage.in_memory import InMemoryRepository
from fleetwatch.adapters.storage.sqlite import SQLiteRepository

__all__ = [
    "InMemoryRepository",
    "SQLiteRepository",
]
