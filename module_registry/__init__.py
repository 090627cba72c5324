"""Module registry core: version ranges, dependency resolution and conflict detection."""

__version__ = "0.1.0"

from module_registry.catalog import CatalogAccessor, MemoryCatalog, SQLiteCatalog
from module_registry.config import RegistrySettings, get_settings
from module_registry.services import (
    CallbackEventSink,
    EventOutbox,
    EventSink,
    ModuleRegistryService,
)

__all__ = [
    "CatalogAccessor",
    "MemoryCatalog",
    "SQLiteCatalog",
    "RegistrySettings",
    "get_settings",
    "CallbackEventSink",
    "EventOutbox",
    "EventSink",
    "ModuleRegistryService",
]
