"""Module registry service for business logic."""

import logging
from numbers import Real
from typing import Any, Iterable, Optional

from module_registry.catalog.base import CatalogAccessor
from module_registry.config import RegistrySettings, get_settings
from module_registry.exceptions import (
    DuplicateModuleError,
    InstallationNotFoundError,
    InvalidRatingError,
    RegistryException,
    UnknownModuleError,
    VersionNotFoundError,
    VersionYankedError,
)
from module_registry.models.events import EventType, RegistryEvent
from module_registry.models.module import (
    InstallationUpdate,
    MetadataSpec,
    MetadataUpdate,
    Module,
    ModuleCreate,
    ModuleInstallation,
    ModuleMetadata,
    ModuleSearchFilters,
    ModuleStatus,
    ModuleUpdate,
    ModuleVersion,
    ReviewStatus,
    utcnow,
)
from module_registry.models.resolution import (
    DependencyResolution,
    InstallationPlan,
    ModuleConflict,
)
from module_registry.resolver import semver
from module_registry.resolver.conflicts import ConflictDetector
from module_registry.resolver.dependency import DependencyResolver
from module_registry.services.events import EventOutbox, EventSink
from module_registry.services.lifecycle import VersionLifecycle, validate_metadata

logger = logging.getLogger(__name__)

MIN_RATING = 0
MAX_RATING = 5


class ModuleRegistryService:
    """Service for module registry operations.

    Composes the catalog, dependency resolver, conflict detector and version
    lifecycle, and emits a RegistryEvent for every state change.

    Attributes:
        catalog: Catalog accessor.
        events: Sink receiving lifecycle events.
        settings: Registry settings.
        lifecycle: Review and version state machine.
        resolver: Dependency resolver.
        detector: Conflict detector.
    """

    def __init__(
        self,
        catalog: CatalogAccessor,
        event_sink: Optional[EventSink] = None,
        settings: Optional[RegistrySettings] = None,
    ) -> None:
        """Initialize the service.

        Args:
            catalog: Catalog accessor.
            event_sink: Event sink; defaults to an EventOutbox.
            settings: Registry settings; defaults to the global settings.
        """
        self.catalog = catalog
        self.events = event_sink if event_sink is not None else EventOutbox()
        self.settings = settings or get_settings()
        self.lifecycle = VersionLifecycle(catalog)
        self.resolver = DependencyResolver(catalog, self.settings.platform_version)
        self.detector = ConflictDetector(catalog)

    async def _emit(self, event_type: EventType, **payload: Any) -> None:
        await self.events.emit(RegistryEvent(type=event_type, payload=payload))

    async def _require_module(self, module_id: str) -> Module:
        module = await self.catalog.get_module(module_id)
        if not module:
            raise UnknownModuleError(module_id)
        return module

    # Modules

    async def register_module(self, data: ModuleCreate) -> Module:
        """Register a new module.

        Args:
            data: Registration payload.

        Returns:
            Registered module.

        Raises:
            InvalidVersionFormatError: If the version or a constraint is malformed.
            DuplicateModuleError: If name and version are already registered.
        """
        try:
            semver.parse_version(data.version)
            metadata = data.metadata.to_metadata()
            validate_metadata(data.name, metadata)

            if await self.catalog.get_module_by_name_version(data.name, data.version):
                raise DuplicateModuleError(data.name, data.version)

            module = Module(
                name=data.name,
                version=data.version,
                type=data.type,
                author=data.author.to_author(),
                description=data.description,
                metadata=metadata,
                requires_review=self.settings.require_review,
                checksum=data.checksum,
                download_url=data.download_url,
            )
            if not self.settings.require_review:
                module.review_status = ReviewStatus.APPROVED
                module.status = ModuleStatus.ACTIVE
                module.published_at = utcnow()

            # The catalog re-checks uniqueness atomically
            created = await self.catalog.create_module(
                module,
                ModuleVersion(
                    module_id=module.id,
                    version=data.version,
                    metadata=metadata,
                    checksum=data.checksum or "",
                    download_url=data.download_url or "",
                ),
            )
        except RegistryException as e:
            logger.error(f"Failed to register module {data.name}@{data.version}: {e.message}")
            raise

        await self._emit(
            EventType.MODULE_REGISTERED,
            module_id=created.id,
            name=created.name,
            version=created.version,
            type=created.type.value,
        )
        logger.info(f"Module registered: {created.name}@{created.version}")
        return created

    async def update_module(self, module_id: str, data: ModuleUpdate) -> Module:
        """Update mutable module fields.

        Args:
            module_id: Module ID.
            data: Fields to change; unset fields are kept.

        Returns:
            Updated module.

        Raises:
            UnknownModuleError: If the module does not exist.
        """
        module = await self._require_module(module_id)

        changes: dict[str, Any] = {}
        if data.description is not None:
            changes["description"] = data.description
        if data.status is not None:
            changes["status"] = data.status
        if data.download_url is not None:
            changes["download_url"] = data.download_url
        if data.metadata is not None:
            metadata = data.metadata.to_metadata()
            validate_metadata(module.name, metadata)
            changes["metadata"] = metadata

        updated = await self.catalog.update_module(module_id, changes)
        if not updated:
            raise UnknownModuleError(module_id)

        await self._emit(
            EventType.MODULE_UPDATED,
            module_id=module_id,
            updates=data.model_dump(exclude_none=True, mode="json"),
        )
        logger.info(f"Module updated: {module_id}")
        return updated

    async def publish_version(self, module_id: str, data: ModuleCreate) -> ModuleVersion:
        """Publish a new version of a module.

        Args:
            module_id: Module ID.
            data: New version payload.

        Returns:
            Created version record.

        Raises:
            UnknownModuleError: If the module does not exist.
            InvalidVersionFormatError: If the version is malformed.
            VersionNotGreaterError: If the version does not exceed the current one.
            VersionAlreadyExistsError: If the version is already recorded.
        """
        try:
            module = await self._require_module(module_id)
            _, version = await self.lifecycle.publish(module, data)
        except RegistryException as e:
            logger.error(f"Failed to publish {data.name}@{data.version}: {e.message}")
            raise

        await self._emit(
            EventType.VERSION_PUBLISHED,
            module_id=module_id,
            version=version.version,
        )
        return version

    async def search_modules(
        self,
        filters: Optional[ModuleSearchFilters] = None,
    ) -> list[Module]:
        """Search modules, most installed first.

        Deprecated modules are left out unless ``include_deprecated`` is set
        or a status filter asks for them.
        """
        return await self.catalog.search_modules(filters or ModuleSearchFilters())

    async def get_module(self, module_id: str) -> Module:
        """Get a module by ID.

        Raises:
            UnknownModuleError: If the module does not exist.
        """
        return await self._require_module(module_id)

    async def get_module_by_name_and_version(
        self,
        name: str,
        version: str,
    ) -> Optional[Module]:
        return await self.catalog.get_module_by_name_version(name, version)

    async def get_versions(self, module_id: str) -> list[ModuleVersion]:
        """List all versions of a module, newest first.

        Raises:
            UnknownModuleError: If the module does not exist.
        """
        await self._require_module(module_id)
        return await self.catalog.list_versions(module_id)

    async def get_latest_version(self, module_id: str) -> Optional[ModuleVersion]:
        """Get the highest version that is neither deprecated nor yanked.

        Args:
            module_id: Module ID.

        Returns:
            Latest usable version, or None if every version is excluded.

        Raises:
            UnknownModuleError: If the module does not exist.
        """
        await self._require_module(module_id)
        candidates = [
            v for v in await self.catalog.list_versions(module_id)
            if not v.deprecated and not v.yanked
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda v: semver.parse_version(v.version))

    # Installations

    async def _require_installable(self, module: Module, version: str) -> ModuleVersion:
        record = await self.catalog.get_version(module.id, version)
        if not record:
            raise VersionNotFoundError(module.id, version)
        if record.yanked:
            raise VersionYankedError(module.id, version)
        return record

    async def record_installation(
        self,
        user_id: str,
        module_id: str,
        version: Optional[str] = None,
        config: Optional[dict[str, Any]] = None,
        profile_ids: Optional[list[str]] = None,
    ) -> ModuleInstallation:
        """Record that a user installed a module.

        A first installation creates the record and bumps the module's
        install count; a repeat installation updates the record in place.

        Args:
            user_id: Installing user.
            module_id: Installed module.
            version: Installed version; defaults to the module's current version.
            config: Optional module configuration.
            profile_ids: Optional profiles using the module.

        Returns:
            The installation record.

        Raises:
            UnknownModuleError: If the module does not exist.
            VersionNotFoundError: If the version does not exist.
            VersionYankedError: If a yanked version is newly installed.
        """
        try:
            module = await self._require_module(module_id)
            version = version or module.version
            existing = await self.catalog.get_installation(user_id, module_id)

            if existing and existing.version == version:
                # Reinstalling what is already there
                if not await self.catalog.get_version(module_id, version):
                    raise VersionNotFoundError(module_id, version)
            else:
                await self._require_installable(module, version)

            if existing:
                changes: dict[str, Any] = {"version": version}
                if config is not None:
                    changes["config"] = config
                if profile_ids is not None:
                    changes["profile_ids"] = profile_ids
                installation = await self.catalog.update_installation(
                    user_id, module_id, changes
                )
            else:
                installation = await self.catalog.create_installation(
                    ModuleInstallation(
                        user_id=user_id,
                        module_id=module_id,
                        version=version,
                        config=config or {},
                        profile_ids=profile_ids or [],
                    )
                )
                await self.catalog.increment_install_count(module_id)
        except RegistryException as e:
            logger.error(f"Failed to record installation of {module_id} for {user_id}: {e.message}")
            raise

        if existing:
            await self._emit(
                EventType.INSTALLATION_UPDATED,
                user_id=user_id,
                module_id=module_id,
                updates={"version": version},
            )
        else:
            await self._emit(
                EventType.MODULE_INSTALLED,
                user_id=user_id,
                module_id=module_id,
                version=version,
            )
            logger.info(f"Module installed: {module.name}@{version} for user {user_id}")
        return installation

    async def get_installation(
        self,
        user_id: str,
        module_id: str,
    ) -> Optional[ModuleInstallation]:
        return await self.catalog.get_installation(user_id, module_id)

    async def get_user_installations(self, user_id: str) -> list[ModuleInstallation]:
        return await self.catalog.list_installations(user_id)

    async def update_installation(
        self,
        user_id: str,
        module_id: str,
        data: InstallationUpdate,
    ) -> ModuleInstallation:
        """Update a user's installation.

        Args:
            user_id: Installing user.
            module_id: Installed module.
            data: Fields to change; unset fields are kept.

        Returns:
            Updated installation.

        Raises:
            InstallationNotFoundError: If the user has no such installation.
            VersionNotFoundError: If a new version does not exist.
            VersionYankedError: If the installation is moved to a yanked version.
        """
        existing = await self.catalog.get_installation(user_id, module_id)
        if not existing:
            raise InstallationNotFoundError(user_id, module_id)

        changes = data.model_dump(exclude_none=True)
        if "version" in changes and changes["version"] != existing.version:
            module = await self._require_module(module_id)
            await self._require_installable(module, changes["version"])

        updated = await self.catalog.update_installation(user_id, module_id, changes)
        if not updated:
            raise InstallationNotFoundError(user_id, module_id)

        await self._emit(
            EventType.INSTALLATION_UPDATED,
            user_id=user_id,
            module_id=module_id,
            updates=changes,
        )
        return updated

    # Resolution

    async def resolve_dependencies(
        self,
        module_id: str,
        version: Optional[str] = None,
    ) -> DependencyResolution:
        """Resolve the transitive dependencies of a module.

        Unsatisfiable dependencies are reported in the result, not raised.
        """
        return await self.resolver.resolve(module_id, version)

    async def check_for_conflicts(
        self,
        module_id: str,
        installed: Iterable[ModuleInstallation],
    ) -> list[ModuleConflict]:
        """Check a candidate module against a set of installations."""
        return await self.detector.check_conflicts(module_id, installed)

    async def plan_installation(
        self,
        module_id: str,
        user_id: str,
        version: Optional[str] = None,
    ) -> InstallationPlan:
        """Resolve a module and check it against a user's installations.

        Args:
            module_id: Candidate module.
            user_id: Installing user.
            version: Candidate version; defaults to the current version.

        Returns:
            InstallationPlan; ``can_install`` tells whether to proceed.
        """
        resolution = await self.resolver.resolve(module_id, version)
        installed = await self.catalog.list_installations(user_id)
        conflicts = await self.detector.check_conflicts(module_id, installed)

        plan = InstallationPlan(
            module_id=module_id,
            user_id=user_id,
            resolution=resolution,
            conflicts=conflicts,
        )
        logger.info(
            f"Installation plan for {module_id} (user {user_id}): "
            f"can_install={plan.can_install}"
        )
        return plan

    def compare_versions(self, v1: str, v2: str) -> int:
        return semver.compare_versions(v1, v2)

    def is_version_compatible(self, version: str, constraint: str) -> bool:
        return semver.satisfies(version, constraint)

    # Review and version lifecycle

    async def _review(self, module_id: str, action: str) -> Module:
        module = await self._require_module(module_id)
        try:
            updated = await getattr(self.lifecycle, action)(module)
        except RegistryException as e:
            logger.error(f"Failed to {action} module {module_id}: {e.message}")
            raise

        await self._emit(
            EventType.MODULE_REVIEWED,
            module_id=module_id,
            review_status=updated.review_status.value,
        )
        return updated

    async def request_review(self, module_id: str) -> Module:
        return await self._review(module_id, "request_review")

    async def approve_module(self, module_id: str) -> Module:
        return await self._review(module_id, "approve")

    async def reject_module(self, module_id: str) -> Module:
        return await self._review(module_id, "reject")

    async def request_changes(self, module_id: str) -> Module:
        return await self._review(module_id, "request_changes")

    async def deprecate_version(
        self,
        module_id: str,
        version: str,
        reason: Optional[str] = None,
    ) -> ModuleVersion:
        """Deprecate a version of an approved module.

        Raises:
            UnknownModuleError: If the module does not exist.
            VersionNotFoundError: If the version does not exist.
            InvalidLifecycleTransitionError: If the transition is not allowed.
        """
        try:
            module = await self._require_module(module_id)
            record = await self.lifecycle.deprecate(module, version, reason)
        except RegistryException as e:
            logger.error(f"Failed to deprecate {module_id}@{version}: {e.message}")
            raise

        await self._emit(
            EventType.VERSION_DEPRECATED,
            module_id=module_id,
            version=version,
            reason=reason,
        )
        return record

    async def yank_version(
        self,
        module_id: str,
        version: str,
        reason: Optional[str] = None,
    ) -> ModuleVersion:
        """Yank a version of an approved module.

        Raises:
            UnknownModuleError: If the module does not exist.
            VersionNotFoundError: If the version does not exist.
            InvalidLifecycleTransitionError: If the version is already yanked.
        """
        try:
            module = await self._require_module(module_id)
            record = await self.lifecycle.yank(module, version, reason)
        except RegistryException as e:
            logger.error(f"Failed to yank {module_id}@{version}: {e.message}")
            raise

        await self._emit(
            EventType.VERSION_YANKED,
            module_id=module_id,
            version=version,
            reason=reason,
        )
        return record

    # Metadata

    async def _replace_metadata(
        self,
        module: Module,
        metadata: ModuleMetadata,
        updates: dict[str, Any],
    ) -> Module:
        updated = await self.catalog.update_module(module.id, {"metadata": metadata})
        if not updated:
            raise UnknownModuleError(module.id)

        await self._emit(EventType.MODULE_UPDATED, module_id=module.id, updates=updates)
        return updated

    async def update_metadata(self, module_id: str, data: MetadataUpdate) -> Module:
        """Merge fields into a module's current metadata.

        Args:
            module_id: Module ID.
            data: Fields to replace; unset fields are kept.

        Returns:
            Updated module.
        """
        module = await self._require_module(module_id)

        merged = MetadataSpec.model_validate(
            {**module.metadata.to_dict(), **data.model_dump(exclude_none=True)}
        )
        metadata = merged.to_metadata()
        validate_metadata(module.name, metadata)

        updated = await self._replace_metadata(
            module,
            metadata,
            {"metadata": data.model_dump(exclude_none=True, mode="json")},
        )
        logger.info(f"Module metadata updated: {module_id}")
        return updated

    async def add_tags(self, module_id: str, tags: list[str]) -> Module:
        """Add tags to a module; tags already present are kept once."""
        module = await self._require_module(module_id)
        metadata = module.metadata
        metadata.tags = list(dict.fromkeys([*metadata.tags, *tags]))

        updated = await self._replace_metadata(module, metadata, {"tags_added": tags})
        logger.info(f"Tags added to module {module_id}: {', '.join(tags)}")
        return updated

    async def remove_tags(self, module_id: str, tags: list[str]) -> Module:
        module = await self._require_module(module_id)
        metadata = module.metadata
        removed = set(tags)
        metadata.tags = [t for t in metadata.tags if t not in removed]

        updated = await self._replace_metadata(module, metadata, {"tags_removed": tags})
        logger.info(f"Tags removed from module {module_id}: {', '.join(tags)}")
        return updated

    # Statistics

    async def increment_install_count(self, module_id: str) -> None:
        """Increment a module's install count.

        Raises:
            UnknownModuleError: If the module does not exist.
        """
        if not await self.catalog.increment_install_count(module_id):
            raise UnknownModuleError(module_id)
        logger.debug(f"Install count incremented for module: {module_id}")

    async def rate(self, module_id: str, stars: float, user_id: str) -> Module:
        """Add a rating to a module's running average.

        Args:
            module_id: Module ID.
            stars: Rating between 0 and 5 inclusive.
            user_id: Rating user.

        Returns:
            Module with the updated rating.

        Raises:
            InvalidRatingError: If the rating is out of range.
            UnknownModuleError: If the module does not exist.
        """
        if (
            isinstance(stars, bool)
            or not isinstance(stars, Real)
            or not MIN_RATING <= stars <= MAX_RATING
        ):
            logger.error(f"Rejected rating {stars!r} for module {module_id}")
            raise InvalidRatingError(stars)

        updated = await self.catalog.add_rating(module_id, stars)
        if not updated:
            logger.error(f"Failed to rate module {module_id}: not found")
            raise UnknownModuleError(module_id)

        await self._emit(
            EventType.MODULE_RATED,
            module_id=module_id,
            rating=stars,
            user_id=user_id,
            new_rating=updated.rating,
        )
        logger.info(f"Module rated: {module_id} - {stars} stars by user {user_id}")
        return updated
