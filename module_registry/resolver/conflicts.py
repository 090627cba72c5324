"""Conflict detection between a candidate module and installed modules."""

import logging
from typing import Iterable

from module_registry.catalog.base import CatalogAccessor
from module_registry.exceptions import UnknownModuleError
from module_registry.models.module import Module, ModuleInstallation, ModuleMetadata
from module_registry.models.resolution import ConflictType, ModuleConflict
from module_registry.resolver.semver import ranges_intersect

logger = logging.getLogger(__name__)

PERMISSION_RESOLUTION = "Review and approve permission sharing"
OPTIONAL_CAPABILITY_RESOLUTION = "Install without the optional capability"


class ConflictDetector:
    """Checks a candidate module against a user's installed modules.

    Version, capability and permission checks run independently for every
    installed module; all findings are returned.

    Attributes:
        catalog: Catalog to read modules and versions from.
    """

    def __init__(self, catalog: CatalogAccessor) -> None:
        self.catalog = catalog

    async def check_conflicts(
        self,
        candidate_id: str,
        installed: Iterable[ModuleInstallation],
    ) -> list[ModuleConflict]:
        """Find conflicts between a candidate and installed modules.

        Args:
            candidate_id: Module that is about to be installed.
            installed: The user's current installations.

        Returns:
            All detected conflicts; empty if there are none.

        Raises:
            UnknownModuleError: If the candidate does not exist.
        """
        candidate = await self.catalog.get_module(candidate_id)
        if not candidate:
            raise UnknownModuleError(candidate_id)

        conflicts: list[ModuleConflict] = []
        for installation in installed:
            if installation.module_id == candidate.id:
                continue

            installed_module = await self.catalog.get_module(installation.module_id)
            if not installed_module:
                logger.warning(
                    f"Installed module {installation.module_id} of user "
                    f"{installation.user_id} is missing from the catalog"
                )
                continue

            installed_metadata = await self._installed_metadata(installed_module, installation)
            conflicts.extend(self._version_conflicts(candidate, installed_module, installation))
            conflicts.extend(
                self._capability_conflicts(candidate, installed_module, installed_metadata)
            )
            conflicts.extend(
                self._permission_conflicts(candidate, installed_module, installed_metadata)
            )

        if conflicts:
            logger.info(f"Found {len(conflicts)} conflicts for {candidate.name}@{candidate.version}")
        return conflicts

    async def _installed_metadata(
        self,
        module: Module,
        installation: ModuleInstallation,
    ) -> ModuleMetadata:
        """Metadata of the version the user actually has installed."""
        if installation.version == module.version:
            return module.metadata
        record = await self.catalog.get_version(module.id, installation.version)
        return record.metadata if record else module.metadata

    def _version_conflicts(
        self,
        candidate: Module,
        installed_module: Module,
        installation: ModuleInstallation,
    ) -> list[ModuleConflict]:
        # Same name under a different ID is a conflict whether or not the
        # versions would be compatible.
        if installed_module.name != candidate.name:
            return []
        return [
            ModuleConflict(
                type=ConflictType.VERSION,
                module_id=candidate.id,
                conflicting_module_id=installed_module.id,
                description=(
                    f"Module {candidate.name} is already installed with version "
                    f"{installation.version}"
                ),
                resolution=f"Uninstall {candidate.name}@{installation.version} first",
            )
        ]

    def _capability_conflicts(
        self,
        candidate: Module,
        installed_module: Module,
        installed_metadata: ModuleMetadata,
    ) -> list[ModuleConflict]:
        conflicts = []
        for capability in candidate.metadata.capabilities:
            for provided in installed_metadata.capabilities:
                if provided.id != capability.id:
                    continue
                if ranges_intersect(provided.version, capability.version):
                    continue
                conflicts.append(
                    ModuleConflict(
                        type=ConflictType.CAPABILITY,
                        module_id=candidate.id,
                        conflicting_module_id=installed_module.id,
                        description=(
                            f"Capability {capability.id} version conflict: requires "
                            f"{capability.version}, but {installed_module.name} "
                            f"provides {provided.version}"
                        ),
                        resolution=(
                            OPTIONAL_CAPABILITY_RESOLUTION if capability.optional else None
                        ),
                    )
                )
        return conflicts

    def _permission_conflicts(
        self,
        candidate: Module,
        installed_module: Module,
        installed_metadata: ModuleMetadata,
    ) -> list[ModuleConflict]:
        installed_permissions = set(installed_metadata.permissions)
        shared = [p for p in candidate.metadata.permissions if p in installed_permissions]
        if not shared:
            return []
        return [
            ModuleConflict(
                type=ConflictType.PERMISSION,
                module_id=candidate.id,
                conflicting_module_id=installed_module.id,
                description=(
                    "Permission conflict: both modules request permissions: "
                    f"{', '.join(shared)}"
                ),
                resolution=PERMISSION_RESOLUTION,
            )
        ]
