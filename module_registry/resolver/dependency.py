"""Dependency resolution for modules."""

import logging
from dataclasses import dataclass, field
from typing import Optional

from module_registry.catalog.base import CatalogAccessor
from module_registry.exceptions import UnknownModuleError, VersionNotFoundError
from module_registry.models.module import Dependency, Module, ModuleMetadata
from module_registry.models.resolution import (
    ConflictType,
    DependencyResolution,
    ModuleConflict,
    ResolvedDependency,
)
from module_registry.resolver.semver import (
    compare_versions,
    find_best_match,
    parse_range,
    satisfies,
)

logger = logging.getLogger(__name__)

# (dependency name, version constraint)
NodeKey = tuple[str, str]


@dataclass(frozen=True)
class PathEntry:
    """One module on the path from the root to the current node."""

    module_id: str
    name: str
    key: Optional[NodeKey]


@dataclass
class Candidate:
    """Catalog version selected for a dependency.

    Attributes:
        module: Module record owning the version.
        version: Selected version string.
        metadata: Metadata of the selected version.
        deprecated: Whether the selected version is deprecated.
    """

    module: Module
    version: str
    metadata: ModuleMetadata
    deprecated: bool = False


@dataclass
class _Frame:
    module_id: str
    name: str
    key: Optional[NodeKey]
    dependencies: list[Dependency]
    path: tuple[PathEntry, ...]
    cursor: int = 0


@dataclass
class _WalkState:
    """State of one resolve() call; never shared between calls."""

    resolution: DependencyResolution
    selected: dict[str, tuple[str, str]] = field(default_factory=dict)
    finished: dict[NodeKey, str] = field(default_factory=dict)
    emitted: set[str] = field(default_factory=set)


class DependencyResolver:
    """Resolver for module dependencies.

    Walks the dependency graph depth-first over an explicit stack, so deep
    graphs cannot exhaust the interpreter stack. Each frame carries its own
    immutable path; cycle and memoization state lives in the call.

    Attributes:
        catalog: Catalog to read modules and versions from.
        platform_version: Optional platform version to check compatibility against.
    """

    def __init__(
        self,
        catalog: CatalogAccessor,
        platform_version: Optional[str] = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            catalog: Catalog accessor instance.
            platform_version: Platform version for compatibility warnings.
        """
        self.catalog = catalog
        self.platform_version = platform_version

    async def resolve(
        self,
        module_id: str,
        version: Optional[str] = None,
    ) -> DependencyResolution:
        """Resolve the transitive dependencies of a module.

        Args:
            module_id: Module to resolve.
            version: Version to resolve; defaults to the module's current version.

        Returns:
            DependencyResolution with an install order, dependencies first.
            Cycles and unsatisfiable dependencies are reported as conflicts
            with ``resolved`` set to False; callers must check it.

        Raises:
            UnknownModuleError: If the module does not exist.
            VersionNotFoundError: If the requested version does not exist.
        """
        module = await self.catalog.get_module(module_id)
        if not module:
            raise UnknownModuleError(module_id)

        state = _WalkState(resolution=DependencyResolution())
        root_version, metadata = await self._root_metadata(module, version, state.resolution)
        self._check_platform(module.name, root_version, metadata, state.resolution)

        state.selected[module.name] = (module.id, root_version)
        root = PathEntry(module.id, module.name, None)
        stack = [_Frame(module.id, module.name, None, list(metadata.dependencies), (root,))]

        while stack:
            frame = stack[-1]
            if frame.cursor >= len(frame.dependencies):
                stack.pop()
                self._finish(frame, state)
                continue

            dependency = frame.dependencies[frame.cursor]
            frame.cursor += 1
            child = await self._visit(dependency, frame, state)
            if child is not None:
                stack.append(child)

        resolution = state.resolution
        logger.info(
            f"Resolved {module.name}@{root_version}: "
            f"{len(resolution.install_order)} modules, "
            f"{len(resolution.conflicts)} conflicts"
        )
        return resolution

    async def _root_metadata(
        self,
        module: Module,
        version: Optional[str],
        resolution: DependencyResolution,
    ) -> tuple[str, ModuleMetadata]:
        """Pick the metadata to resolve the root module against."""
        if version is None or version == module.version:
            record = await self.catalog.get_version(module.id, module.version)
            if record and record.yanked:
                resolution.warnings.append(f"{module.name}@{module.version} has been yanked")
            return module.version, module.metadata

        record = await self.catalog.get_version(module.id, version)
        if not record:
            raise VersionNotFoundError(module.id, version)
        if record.yanked:
            resolution.warnings.append(f"{module.name}@{version} has been yanked")
        return record.version, record.metadata

    async def _visit(
        self,
        dependency: Dependency,
        frame: _Frame,
        state: _WalkState,
    ) -> Optional[_Frame]:
        """Process one dependency edge.

        Returns:
            A frame to descend into, or None if the edge needs no expansion.
        """
        resolution = state.resolution
        key: NodeKey = (dependency.id, dependency.version)

        for entry in frame.path:
            if entry.key == key:
                self._record_cycle(frame, entry.module_id, dependency.id, resolution)
                return None

        if key in state.finished:
            # Diamond: already expanded through another parent
            return None

        existing = state.selected.get(dependency.id)
        if existing is not None:
            existing_id, existing_version = existing
            if satisfies(existing_version, dependency.version):
                if any(entry.module_id == existing_id for entry in frame.path):
                    self._record_cycle(frame, existing_id, dependency.id, resolution)
                else:
                    state.finished[key] = existing_id
                return None

            message = (
                f"{frame.name} requires {dependency.id}@{dependency.version} "
                f"but {existing_version} is already selected"
            )
            if dependency.optional:
                resolution.warnings.append(message)
            else:
                resolution.add_conflict(
                    ModuleConflict(
                        type=ConflictType.VERSION,
                        module_id=frame.module_id,
                        conflicting_module_id=existing_id,
                        description=f"Conflict: {message}",
                    )
                )
            return None

        candidate = await self.select_candidate(dependency)
        if candidate is None:
            if dependency.optional:
                logger.debug(
                    f"Skipping missing optional dependency {dependency.id}@{dependency.version}"
                )
                return None
            resolution.add_conflict(
                ModuleConflict(
                    type=ConflictType.DEPENDENCY,
                    module_id=frame.module_id,
                    conflicting_module_id=dependency.id,
                    description=(
                        f"Required dependency not found: {dependency.id}@{dependency.version}"
                    ),
                )
            )
            return None

        target = candidate.module
        if candidate.deprecated:
            resolution.warnings.append(f"{target.name}@{candidate.version} is deprecated")
        self._check_platform(target.name, candidate.version, candidate.metadata, resolution)

        state.selected[dependency.id] = (target.id, candidate.version)
        resolution.dependencies.append(
            ResolvedDependency(
                module_id=target.id,
                name=target.name,
                version=candidate.version,
                constraint=dependency.version,
                required=not dependency.optional,
            )
        )
        logger.debug(f"{frame.name} -> {target.name}@{candidate.version}")

        return _Frame(
            module_id=target.id,
            name=target.name,
            key=key,
            dependencies=list(candidate.metadata.dependencies),
            path=frame.path + (PathEntry(target.id, target.name, key),),
        )

    def _finish(self, frame: _Frame, state: _WalkState) -> None:
        """Mark a frame's node resolved and append it to the install order."""
        if frame.key is not None:
            state.finished[frame.key] = frame.module_id
        if frame.module_id not in state.emitted:
            state.emitted.add(frame.module_id)
            state.resolution.install_order.append(frame.module_id)

    def _record_cycle(
        self,
        frame: _Frame,
        target_id: str,
        target_name: str,
        resolution: DependencyResolution,
    ) -> None:
        start = next(i for i, entry in enumerate(frame.path) if entry.module_id == target_id)
        names = [entry.name for entry in frame.path[start:]] + [target_name]
        cycle = " -> ".join(names)
        logger.warning(f"Circular dependency detected: {cycle}")
        resolution.add_conflict(
            ModuleConflict(
                type=ConflictType.DEPENDENCY,
                module_id=frame.module_id,
                conflicting_module_id=target_id,
                description=f"Circular dependency detected: {cycle}",
            )
        )

    def _check_platform(
        self,
        name: str,
        version: str,
        metadata: ModuleMetadata,
        resolution: DependencyResolution,
    ) -> None:
        if not self.platform_version:
            return
        minimum = metadata.compatibility.min_platform_version
        if minimum and compare_versions(minimum, self.platform_version) > 0:
            resolution.warnings.append(
                f"{name}@{version} requires platform {minimum}, "
                f"but {self.platform_version} is being used"
            )

    async def select_candidate(self, dependency: Dependency) -> Optional[Candidate]:
        """Find the newest non-yanked version satisfying a dependency.

        Every module record carrying the dependency's name is considered,
        together with the version history of each.

        Args:
            dependency: Dependency to satisfy.

        Returns:
            Best candidate or None if nothing matches.
        """
        version_range = parse_range(dependency.version)
        candidates: list[Candidate] = []
        for module in await self.catalog.find_modules_by_name(dependency.id):
            candidates.extend(await self._available_versions(module))

        best = find_best_match((c.version for c in candidates), version_range)
        if best is None:
            return None
        return next(c for c in candidates if c.version == best)

    async def _available_versions(self, module: Module) -> list[Candidate]:
        records = await self.catalog.list_versions(module.id)
        if not records:
            return [Candidate(module, module.version, module.metadata)]

        return [
            Candidate(
                module=module,
                version=record.version,
                metadata=module.metadata if record.version == module.version else record.metadata,
                deprecated=record.deprecated,
            )
            for record in records
            if not record.yanked
        ]
