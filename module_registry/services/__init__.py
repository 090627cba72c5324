"""Registry services."""

from module_registry.services.events import CallbackEventSink, EventOutbox, EventSink
from module_registry.services.lifecycle import VersionLifecycle, validate_metadata, version_state
from module_registry.services.registry_service import ModuleRegistryService

__all__ = [
    "CallbackEventSink",
    "EventOutbox",
    "EventSink",
    "VersionLifecycle",
    "validate_metadata",
    "version_state",
    "ModuleRegistryService",
]
