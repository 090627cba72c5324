"""Module catalog accessors."""

from module_registry.catalog.base import CatalogAccessor
from module_registry.catalog.memory import MemoryCatalog
from module_registry.catalog.database import Database
from module_registry.catalog.sqlite import SQLiteCatalog

__all__ = ["CatalogAccessor", "MemoryCatalog", "Database", "SQLiteCatalog"]
