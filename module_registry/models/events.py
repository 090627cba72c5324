"""Lifecycle event records."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from module_registry.models.module import utcnow


class EventType(str, Enum):
    """Lifecycle events emitted by the registry."""

    MODULE_REGISTERED = "module:registered"
    MODULE_UPDATED = "module:updated"
    MODULE_REVIEWED = "module:reviewed"
    VERSION_PUBLISHED = "module:version:published"
    MODULE_INSTALLED = "module:installed"
    INSTALLATION_UPDATED = "module:installation:updated"
    VERSION_DEPRECATED = "module:version:deprecated"
    VERSION_YANKED = "module:version:yanked"
    MODULE_RATED = "module:rated"


@dataclass(frozen=True)
class RegistryEvent:
    """Plain event record handed to an event sink.

    Attributes:
        type: Event type.
        payload: Event data.
        occurred_at: Emission timestamp.
    """

    type: EventType
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utcnow)
