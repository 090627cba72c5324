"""Dependency resolution and conflict result models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ConflictType(str, Enum):
    """Classes of module conflicts."""

    VERSION = "version"
    CAPABILITY = "capability"
    PERMISSION = "permission"
    DEPENDENCY = "dependency"


class ConflictSeverity(str, Enum):
    """Whether a conflict prevents installation."""

    BLOCKING = "blocking"
    ADVISORY = "advisory"


DEFAULT_SEVERITY = {
    ConflictType.VERSION: ConflictSeverity.BLOCKING,
    ConflictType.CAPABILITY: ConflictSeverity.BLOCKING,
    ConflictType.DEPENDENCY: ConflictSeverity.BLOCKING,
    ConflictType.PERMISSION: ConflictSeverity.ADVISORY,
}


@dataclass
class ModuleConflict:
    """Detected incompatibility between two modules.

    Attributes:
        type: Conflict class.
        module_id: Module the conflict was found for.
        conflicting_module_id: The other module involved.
        description: Human-readable description.
        resolution: Optional hint on how to resolve the conflict.
        severity: Blocking or advisory; derived from the type when omitted.
    """

    type: ConflictType
    module_id: str
    conflicting_module_id: str
    description: str
    resolution: Optional[str] = None
    severity: Optional[ConflictSeverity] = None

    def __post_init__(self) -> None:
        if self.severity is None:
            self.severity = DEFAULT_SEVERITY[self.type]

    @property
    def blocking(self) -> bool:
        return self.severity == ConflictSeverity.BLOCKING


@dataclass
class ResolvedDependency:
    """Dependency selected during resolution.

    Attributes:
        module_id: Selected module ID.
        name: Module name.
        version: Selected concrete version.
        constraint: Range that led to the selection.
        required: False when reached through an optional dependency.
    """

    module_id: str
    name: str
    version: str
    constraint: str
    required: bool = True


@dataclass
class DependencyResolution:
    """Result of dependency resolution.

    Attributes:
        resolved: Whether every required dependency was resolved.
        dependencies: Selected dependencies, in discovery order.
        conflicts: Cycles, missing targets and version clashes.
        install_order: Module IDs, dependencies before dependents.
        warnings: Non-fatal findings.
    """

    resolved: bool = True
    dependencies: list[ResolvedDependency] = field(default_factory=list)
    conflicts: list[ModuleConflict] = field(default_factory=list)
    install_order: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def add_conflict(self, conflict: ModuleConflict) -> None:
        self.conflicts.append(conflict)
        self.resolved = False


@dataclass
class InstallationPlan:
    """Resolution and conflict check for one user's installation.

    Attributes:
        module_id: Candidate module.
        user_id: Installing user.
        resolution: Dependency resolution of the candidate.
        conflicts: Conflicts against the user's installed modules.
    """

    module_id: str
    user_id: str
    resolution: DependencyResolution
    conflicts: list[ModuleConflict] = field(default_factory=list)

    @property
    def blocking_conflicts(self) -> list[ModuleConflict]:
        return [c for c in self.conflicts if c.blocking]

    @property
    def can_install(self) -> bool:
        return self.resolution.resolved and not self.blocking_conflicts
