"""Review and version lifecycle of modules."""

import logging
from typing import Optional

from module_registry.catalog.base import CatalogAccessor
from module_registry.exceptions import (
    DuplicateModuleError,
    InvalidLifecycleTransitionError,
    UnknownModuleError,
    ValidationError,
    VersionAlreadyExistsError,
    VersionNotFoundError,
    VersionNotGreaterError,
)
from module_registry.models.module import (
    Module,
    ModuleCreate,
    ModuleMetadata,
    ModuleStatus,
    ModuleVersion,
    ReviewStatus,
    utcnow,
)
from module_registry.resolver.semver import compare_versions, parse_range, parse_version

logger = logging.getLogger(__name__)

# Review states each review action may start from
_REVIEW_TRANSITIONS: dict[str, frozenset[ReviewStatus]] = {
    "request review for": frozenset({ReviewStatus.PENDING, ReviewStatus.NEEDS_CHANGES}),
    "approve": frozenset({ReviewStatus.PENDING}),
    "reject": frozenset({ReviewStatus.PENDING}),
    "request changes for": frozenset({ReviewStatus.PENDING}),
}


def validate_metadata(name: str, metadata: ModuleMetadata) -> None:
    """Check that every version and constraint in metadata parses.

    Args:
        name: Name of the module owning the metadata.
        metadata: Metadata to check.

    Raises:
        InvalidVersionFormatError: If a constraint or platform version is malformed.
        ValidationError: If the module depends on itself.
    """
    for dependency in metadata.dependencies:
        if dependency.id == name:
            raise ValidationError(
                f"Module {name} cannot depend on itself",
                field="metadata.dependencies",
            )
        parse_range(dependency.version)

    for capability in metadata.capabilities:
        parse_range(capability.version)

    parse_version(metadata.compatibility.min_platform_version)
    parse_version(metadata.compatibility.target_platform_version)


def version_state(module: Module, version: ModuleVersion) -> str:
    """Effective state of one version.

    Yanked wins over deprecated, which wins over the module's review state.
    """
    if version.yanked:
        return "yanked"
    if version.deprecated:
        return "deprecated"
    return module.review_status.value


def _prefix_notes(marker: str, reason: Optional[str], notes: str) -> str:
    if not reason:
        return notes
    return f"{marker}: {reason}\n\n{notes}"


class VersionLifecycle:
    """Applies review and version state transitions.

    Every transition is validated against the current state before the
    catalog is written; invalid ones raise InvalidLifecycleTransitionError
    and leave the catalog untouched.

    Attributes:
        catalog: Catalog accessor.
    """

    def __init__(self, catalog: CatalogAccessor) -> None:
        self.catalog = catalog

    async def _set_review_status(
        self,
        module: Module,
        action: str,
        review_status: ReviewStatus,
        **extra,
    ) -> Module:
        if module.review_status not in _REVIEW_TRANSITIONS[action]:
            raise InvalidLifecycleTransitionError(action, module.review_status.value)

        updated = await self.catalog.update_module(
            module.id, {"review_status": review_status, **extra}
        )
        if not updated:
            raise UnknownModuleError(module.id)

        logger.info(f"Review status of {module.name}@{module.version}: {review_status.value}")
        return updated

    async def request_review(self, module: Module) -> Module:
        """Put a module (back) into review."""
        return await self._set_review_status(module, "request review for", ReviewStatus.PENDING)

    async def approve(self, module: Module) -> Module:
        """Approve a pending module.

        The first approval stamps ``published_at`` and activates an
        inactive module.
        """
        extra = {}
        if module.published_at is None:
            extra["published_at"] = utcnow()
        if module.status == ModuleStatus.INACTIVE:
            extra["status"] = ModuleStatus.ACTIVE
        return await self._set_review_status(module, "approve", ReviewStatus.APPROVED, **extra)

    async def reject(self, module: Module) -> Module:
        return await self._set_review_status(module, "reject", ReviewStatus.REJECTED)

    async def request_changes(self, module: Module) -> Module:
        return await self._set_review_status(
            module, "request changes for", ReviewStatus.NEEDS_CHANGES
        )

    async def _get_version_for(self, action: str, module: Module, version: str) -> ModuleVersion:
        if module.review_status != ReviewStatus.APPROVED:
            raise InvalidLifecycleTransitionError(action, module.review_status.value)

        record = await self.catalog.get_version(module.id, version)
        if not record:
            raise VersionNotFoundError(module.id, version)
        return record

    async def deprecate(
        self,
        module: Module,
        version: str,
        reason: Optional[str] = None,
    ) -> ModuleVersion:
        """Mark a version deprecated.

        Args:
            module: Approved module owning the version.
            version: Version to deprecate.
            reason: Optional reason, prepended to the release notes.

        Returns:
            Updated version record.

        Raises:
            InvalidLifecycleTransitionError: If the module is not approved or
                the version is already deprecated or yanked.
            VersionNotFoundError: If the version does not exist.
        """
        record = await self._get_version_for("deprecate", module, version)
        if record.deprecated or record.yanked:
            raise InvalidLifecycleTransitionError(
                "deprecate", version_state(module, record), target="version"
            )

        updated = await self.catalog.update_version(
            module.id,
            version,
            {
                "deprecated": True,
                "release_notes": _prefix_notes("DEPRECATED", reason, record.release_notes),
            },
        )
        logger.info(f"Module version deprecated: {module.name}@{version}")
        return updated

    async def yank(
        self,
        module: Module,
        version: str,
        reason: Optional[str] = None,
    ) -> ModuleVersion:
        """Mark a version yanked.

        Yanked versions are never selected for new installs. Installations
        that already reference the version are left alone.

        Args:
            module: Approved module owning the version.
            version: Version to yank.
            reason: Optional reason, prepended to the release notes.

        Returns:
            Updated version record.

        Raises:
            InvalidLifecycleTransitionError: If the module is not approved or
                the version is already yanked.
            VersionNotFoundError: If the version does not exist.
        """
        record = await self._get_version_for("yank", module, version)
        if record.yanked:
            raise InvalidLifecycleTransitionError("yank", "yanked", target="version")

        updated = await self.catalog.update_version(
            module.id,
            version,
            {
                "yanked": True,
                "release_notes": _prefix_notes("YANKED", reason, record.release_notes),
            },
        )
        logger.info(f"Module version yanked: {module.name}@{version}")
        return updated

    async def publish(self, module: Module, data: ModuleCreate) -> tuple[Module, ModuleVersion]:
        """Publish a new version of a module.

        Args:
            module: Module to publish to.
            data: New version data; ``description`` becomes the release notes.

        Returns:
            Tuple of (updated module, created version).

        Raises:
            ValidationError: If the payload names a different module.
            InvalidVersionFormatError: If the version does not parse.
            VersionNotGreaterError: If the version is not above the current one.
            VersionAlreadyExistsError: If the version is already recorded.
            DuplicateModuleError: If another module record already carries
                this name and version.
        """
        if data.name != module.name:
            raise ValidationError(
                f"Cannot publish {data.name} as a version of {module.name}",
                field="name",
            )

        parse_version(data.version)
        if compare_versions(data.version, module.version) <= 0:
            raise VersionNotGreaterError(data.version, module.version)

        if await self.catalog.get_version(module.id, data.version):
            raise VersionAlreadyExistsError(module.id, data.version)
        if await self.catalog.get_module_by_name_version(module.name, data.version):
            raise DuplicateModuleError(module.name, data.version)

        metadata = data.metadata.to_metadata()
        validate_metadata(module.name, metadata)

        version = ModuleVersion(
            module_id=module.id,
            version=data.version,
            metadata=metadata,
            checksum=data.checksum or "",
            download_url=data.download_url or "",
            release_notes=data.description,
        )
        updated = await self.catalog.publish_version(
            version,
            {
                "version": data.version,
                "metadata": metadata,
                "checksum": data.checksum,
                "download_url": data.download_url,
            },
        )
        if not updated:
            raise UnknownModuleError(module.id)

        logger.info(f"Module version published: {module.name}@{data.version}")
        return updated, version
