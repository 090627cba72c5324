"""Version ranges, dependency resolution and conflict detection."""

from module_registry.resolver.semver import (
    Version,
    VersionRange,
    compare_versions,
    find_best_match,
    is_valid_version,
    parse_range,
    parse_version,
    ranges_intersect,
    satisfies,
)
from module_registry.resolver.dependency import DependencyResolver
from module_registry.resolver.conflicts import ConflictDetector

__all__ = [
    "Version",
    "VersionRange",
    "compare_versions",
    "find_best_match",
    "is_valid_version",
    "parse_range",
    "parse_version",
    "ranges_intersect",
    "satisfies",
    "DependencyResolver",
    "ConflictDetector",
]
