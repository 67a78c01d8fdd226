"""Storage backends for Care Fayre.

- InMemoryMarketplaceStorage: Tests and local development
- SQLiteMarketplaceStorage: Single-file persistent store
"""

from carefayre.storage.base import DuplicateRecordError, MarketplaceStorage
from carefayre.storage.memory import InMemoryMarketplaceStorage
from carefayre.storage.sqlite import SQLiteMarketplaceStorage

__all__ = [
    "MarketplaceStorage",
    "DuplicateRecordError",
    "InMemoryMarketplaceStorage",
    "SQLiteMarketplaceStorage",
]
