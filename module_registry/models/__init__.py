"""Data models for the module registry."""

from module_registry.models.module import (
    Author,
    AuthorInfo,
    Capability,
    CapabilitySpec,
    Compatibility,
    CompatibilitySpec,
    Dependency,
    DependencySpec,
    InstallationUpdate,
    MetadataSpec,
    MetadataUpdate,
    Module,
    ModuleCreate,
    ModuleInstallation,
    ModuleMetadata,
    ModuleSearchFilters,
    ModuleStatus,
    ModuleType,
    ModuleUpdate,
    ModuleVersion,
    ProtocolSpec,
    ProtocolSupport,
    ReviewStatus,
)
from module_registry.models.resolution import (
    ConflictSeverity,
    ConflictType,
    DependencyResolution,
    InstallationPlan,
    ModuleConflict,
    ResolvedDependency,
)
from module_registry.models.events import EventType, RegistryEvent

__all__ = [
    # Module models
    "Author",
    "AuthorInfo",
    "Capability",
    "CapabilitySpec",
    "Compatibility",
    "CompatibilitySpec",
    "Dependency",
    "DependencySpec",
    "InstallationUpdate",
    "MetadataSpec",
    "MetadataUpdate",
    "Module",
    "ModuleCreate",
    "ModuleInstallation",
    "ModuleMetadata",
    "ModuleSearchFilters",
    "ModuleStatus",
    "ModuleType",
    "ModuleUpdate",
    "ModuleVersion",
    "ProtocolSpec",
    "ProtocolSupport",
    "ReviewStatus",
    # Resolution models
    "ConflictSeverity",
    "ConflictType",
    "DependencyResolution",
    "InstallationPlan",
    "ModuleConflict",
    "ResolvedDependency",
    # Events
    "EventType",
    "RegistryEvent",
]
