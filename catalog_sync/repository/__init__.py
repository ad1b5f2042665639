"""Repository layer: the store interface the sync engine reads and writes through."""

from catalog_sync.repository.base import CatalogStore
from catalog_sync.repository.memory import InMemoryCatalogStore

__all__ = ["CatalogStore", "InMemoryCatalogStore"]
