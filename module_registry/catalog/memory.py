"""In-memory module catalog."""

import asyncio
import copy
import logging
from dataclasses import replace
from typing import Any, Optional

from module_registry.catalog.base import CatalogAccessor
from module_registry.exceptions import (
    DuplicateInstallationError,
    DuplicateModuleError,
    VersionAlreadyExistsError,
)
from module_registry.models.module import (
    Module,
    ModuleInstallation,
    ModuleSearchFilters,
    ModuleVersion,
    utcnow,
)

logger = logging.getLogger(__name__)


class MemoryCatalog(CatalogAccessor):
    """Dict-backed catalog.

    Writes run under one lock, so uniqueness checks and inserts cannot
    interleave. Records are copied on the way in and out; callers never
    hold references to stored state.

    Attributes:
        modules: Modules by ID.
        versions: Version records by (module_id, version).
        installations: Installations by (user_id, module_id).
    """

    def __init__(self) -> None:
        self.modules: dict[str, Module] = {}
        self.versions: dict[tuple[str, str], ModuleVersion] = {}
        self.installations: dict[tuple[str, str], ModuleInstallation] = {}
        self._lock = asyncio.Lock()

    # Modules

    async def get_module(self, module_id: str) -> Optional[Module]:
        module = self.modules.get(module_id)
        return copy.deepcopy(module) if module else None

    async def get_module_by_name_version(self, name: str, version: str) -> Optional[Module]:
        for module in self.modules.values():
            if module.name == name and module.version == version:
                return copy.deepcopy(module)
        return None

    async def find_modules_by_name(self, name: str) -> list[Module]:
        return [copy.deepcopy(m) for m in self.modules.values() if m.name == name]

    async def search_modules(self, filters: ModuleSearchFilters) -> list[Module]:
        found = [m for m in self.modules.values() if filters.matches(m)]
        found.sort(key=lambda m: (m.install_count, m.rating), reverse=True)
        return copy.deepcopy(found)

    async def create_module(self, module: Module, initial_version: ModuleVersion) -> Module:
        async with self._lock:
            if any(
                m.name == module.name and m.version == module.version
                for m in self.modules.values()
            ):
                raise DuplicateModuleError(module.name, module.version)

            self.modules[module.id] = copy.deepcopy(module)
            key = (module.id, initial_version.version)
            self.versions[key] = copy.deepcopy(replace(initial_version, module_id=module.id))

        logger.debug(f"Stored module {module.name}@{module.version} as {module.id}")
        return copy.deepcopy(module)

    async def update_module(self, module_id: str, changes: dict[str, Any]) -> Optional[Module]:
        async with self._lock:
            module = self.modules.get(module_id)
            if module is None:
                return None
            self._check_name_version(module, changes)
            return self._apply(module, changes)

    async def increment_install_count(self, module_id: str) -> bool:
        async with self._lock:
            module = self.modules.get(module_id)
            if module is None:
                return False
            module.install_count += 1
            return True

    async def add_rating(self, module_id: str, stars: float) -> Optional[Module]:
        async with self._lock:
            module = self.modules.get(module_id)
            if module is None:
                return None
            count = module.rating_count
            return self._apply(
                module,
                {
                    "rating": (module.rating * count + stars) / (count + 1),
                    "rating_count": count + 1,
                },
            )

    async def publish_version(
        self,
        version: ModuleVersion,
        changes: dict[str, Any],
    ) -> Optional[Module]:
        async with self._lock:
            module = self.modules.get(version.module_id)
            if module is None:
                return None
            key = (version.module_id, version.version)
            if key in self.versions:
                raise VersionAlreadyExistsError(version.module_id, version.version)
            self._check_name_version(module, changes)

            self.versions[key] = copy.deepcopy(version)
            return self._apply(module, changes)

    def _check_name_version(self, module: Module, changes: dict[str, Any]) -> None:
        """Raise if the changes would duplicate another module's (name, version)."""
        name = changes.get("name", module.name)
        version = changes.get("version", module.version)
        if (name, version) != (module.name, module.version) and any(
            m.name == name and m.version == version and m.id != module.id
            for m in self.modules.values()
        ):
            raise DuplicateModuleError(name, version)

    def _apply(self, module: Module, changes: dict[str, Any]) -> Module:
        updated = replace(module, **copy.deepcopy(changes), updated_at=utcnow())
        self.modules[module.id] = updated
        return copy.deepcopy(updated)

    # Versions

    async def list_versions(self, module_id: str) -> list[ModuleVersion]:
        found = [v for (mid, _), v in self.versions.items() if mid == module_id]
        # Later inserts first when timestamps tie
        found.reverse()
        found.sort(key=lambda v: v.created_at, reverse=True)
        return copy.deepcopy(found)

    async def get_version(self, module_id: str, version: str) -> Optional[ModuleVersion]:
        record = self.versions.get((module_id, version))
        return copy.deepcopy(record) if record else None

    async def update_version(
        self,
        module_id: str,
        version: str,
        changes: dict[str, Any],
    ) -> Optional[ModuleVersion]:
        async with self._lock:
            record = self.versions.get((module_id, version))
            if record is None:
                return None
            updated = replace(record, **copy.deepcopy(changes))
            self.versions[(module_id, version)] = updated
            return copy.deepcopy(updated)

    # Installations

    async def get_installation(self, user_id: str, module_id: str) -> Optional[ModuleInstallation]:
        record = self.installations.get((user_id, module_id))
        return copy.deepcopy(record) if record else None

    async def list_installations(self, user_id: str) -> list[ModuleInstallation]:
        return [
            copy.deepcopy(inst)
            for (uid, _), inst in self.installations.items()
            if uid == user_id
        ]

    async def create_installation(self, installation: ModuleInstallation) -> ModuleInstallation:
        async with self._lock:
            key = (installation.user_id, installation.module_id)
            if key in self.installations:
                raise DuplicateInstallationError(installation.user_id, installation.module_id)
            self.installations[key] = copy.deepcopy(installation)
        return copy.deepcopy(installation)

    async def update_installation(
        self,
        user_id: str,
        module_id: str,
        changes: dict[str, Any],
    ) -> Optional[ModuleInstallation]:
        async with self._lock:
            record = self.installations.get((user_id, module_id))
            if record is None:
                return None
            updated = replace(record, **copy.deepcopy(changes), updated_at=utcnow())
            self.installations[(user_id, module_id)] = updated
            return copy.deepcopy(updated)
