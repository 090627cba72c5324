"""Abstract base class for module catalogs."""

from abc import ABC, abstractmethod
from typing import Any, Optional

from module_registry.models.module import (
    Module,
    ModuleInstallation,
    ModuleSearchFilters,
    ModuleVersion,
)


class CatalogAccessor(ABC):
    """Read/write access to persisted modules, versions and installations.

    Implementations must make their own writes visible to subsequent reads
    and must enforce uniqueness of (name, version), (module_id, version) and
    (user_id, module_id) themselves, so that two concurrent creates of the
    same key cannot both succeed.

    ``update_*`` methods take a mapping of field name to new value and
    return the updated record, or None when the record does not exist.
    """

    # Modules

    @abstractmethod
    async def get_module(self, module_id: str) -> Optional[Module]:
        ...

    @abstractmethod
    async def get_module_by_name_version(self, name: str, version: str) -> Optional[Module]:
        ...

    @abstractmethod
    async def find_modules_by_name(self, name: str) -> list[Module]:
        """Get every module record carrying a name, whatever its version."""
        ...

    @abstractmethod
    async def search_modules(self, filters: ModuleSearchFilters) -> list[Module]:
        """Search modules.

        Args:
            filters: Search filters.

        Returns:
            Matching modules, most installed first, then highest rated.
        """
        ...

    @abstractmethod
    async def create_module(self, module: Module, initial_version: ModuleVersion) -> Module:
        """Create a module together with its first version record.

        Both records are written or neither is.

        Raises:
            DuplicateModuleError: If (name, version) is already registered.
        """
        ...

    @abstractmethod
    async def update_module(self, module_id: str, changes: dict[str, Any]) -> Optional[Module]:
        ...

    @abstractmethod
    async def increment_install_count(self, module_id: str) -> bool:
        """Atomically add one to a module's install count.

        Returns:
            True if the module exists.
        """
        ...

    @abstractmethod
    async def add_rating(self, module_id: str, stars: float) -> Optional[Module]:
        """Atomically fold one rating into a module's running average.

        Returns:
            The updated module, or None if it does not exist.
        """
        ...

    @abstractmethod
    async def publish_version(
        self,
        version: ModuleVersion,
        changes: dict[str, Any],
    ) -> Optional[Module]:
        """Record a new version and apply ``changes`` to its module.

        Both writes happen or neither does.

        Returns:
            The updated module, or None if it does not exist.

        Raises:
            VersionAlreadyExistsError: If the version is already recorded.
            DuplicateModuleError: If the changes collide with another
                module's (name, version).
        """
        ...

    # Versions

    @abstractmethod
    async def list_versions(self, module_id: str) -> list[ModuleVersion]:
        """Get all versions of a module, newest record first."""
        ...

    @abstractmethod
    async def get_version(self, module_id: str, version: str) -> Optional[ModuleVersion]:
        ...

    @abstractmethod
    async def update_version(
        self,
        module_id: str,
        version: str,
        changes: dict[str, Any],
    ) -> Optional[ModuleVersion]:
        ...

    # Installations

    @abstractmethod
    async def get_installation(self, user_id: str, module_id: str) -> Optional[ModuleInstallation]:
        ...

    @abstractmethod
    async def list_installations(self, user_id: str) -> list[ModuleInstallation]:
        ...

    @abstractmethod
    async def create_installation(self, installation: ModuleInstallation) -> ModuleInstallation:
        """Record a new installation.

        Raises:
            DuplicateInstallationError: If the user already has the module.
        """
        ...

    @abstractmethod
    async def update_installation(
        self,
        user_id: str,
        module_id: str,
        changes: dict[str, Any],
    ) -> Optional[ModuleInstallation]:
        ...

    async def close(self) -> None:
        """Release resources held by the catalog."""
