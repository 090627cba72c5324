"""Module-related data models."""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class ModuleType(str, Enum):
    """Kinds of modules in the registry."""

    PERSONALITY = "personality"
    TOOL = "tool"
    AGENT = "agent"
    MODALITY = "modality"
    THEME = "theme"


class ReviewStatus(str, Enum):
    """Review states of a module."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_CHANGES = "needs_changes"


class ModuleStatus(str, Enum):
    """Activation states of a module."""

    INACTIVE = "inactive"
    ACTIVE = "active"
    DEPRECATED = "deprecated"
    SUSPENDED = "suspended"


@dataclass
class Author:
    """Module author.

    Attributes:
        id: Author's user ID.
        name: Display name.
        website: Optional homepage.
        email: Optional contact address.
    """

    id: str
    name: str
    website: Optional[str] = None
    email: Optional[str] = None


@dataclass
class Dependency:
    """Dependency on another module.

    Attributes:
        id: Name of the required module.
        version: Version range (e.g., "^1.0.0").
        optional: Whether a missing target is tolerated.
    """

    id: str
    version: str = "*"
    optional: bool = False


@dataclass
class Capability:
    """Named, versioned feature a module provides or requires.

    Attributes:
        id: Capability name.
        version: Version or version range.
        optional: Whether the capability is optional.
    """

    id: str
    version: str = "*"
    optional: bool = False


@dataclass
class ProtocolSupport:
    name: str
    version: str


@dataclass
class Compatibility:
    """Platform compatibility declaration.

    Attributes:
        min_platform_version: Lowest supported platform version.
        target_platform_version: Platform version the module targets.
        supported_protocols: Protocols the module speaks.
        supported_modalities: Modalities the module handles.
    """

    min_platform_version: str = "0.0.0"
    target_platform_version: str = "0.0.0"
    supported_protocols: list[ProtocolSupport] = field(default_factory=list)
    supported_modalities: list[str] = field(default_factory=list)


@dataclass
class ModuleMetadata:
    """Version-scoped module metadata.

    Attributes:
        schema_version: Metadata schema version.
        license: License identifier.
        tags: Search tags, without duplicates.
        dependencies: Ordered dependency list.
        permissions: Requested permissions, without duplicates.
        capabilities: Ordered capability list.
        compatibility: Platform compatibility.
        ui_components: Opaque UI component descriptors.
    """

    schema_version: str = "1.0"
    license: str = ""
    tags: list[str] = field(default_factory=list)
    dependencies: list[Dependency] = field(default_factory=list)
    permissions: list[str] = field(default_factory=list)
    capabilities: list[Capability] = field(default_factory=list)
    compatibility: Compatibility = field(default_factory=Compatibility)
    ui_components: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ModuleMetadata":
        """Build metadata from its dictionary form.

        Args:
            data: Output of ``to_dict`` or an equivalent payload.

        Returns:
            ModuleMetadata object.
        """
        compat = data.get("compatibility") or {}
        return cls(
            schema_version=data.get("schema_version", "1.0"),
            license=data.get("license", ""),
            tags=list(data.get("tags", [])),
            dependencies=[Dependency(**d) for d in data.get("dependencies", [])],
            permissions=list(data.get("permissions", [])),
            capabilities=[Capability(**c) for c in data.get("capabilities", [])],
            compatibility=Compatibility(
                min_platform_version=compat.get("min_platform_version", "0.0.0"),
                target_platform_version=compat.get("target_platform_version", "0.0.0"),
                supported_protocols=[
                    ProtocolSupport(**p) for p in compat.get("supported_protocols", [])
                ],
                supported_modalities=list(compat.get("supported_modalities", [])),
            ),
            ui_components=list(data.get("ui_components", [])),
        )


@dataclass
class Module:
    """Registered module at its current version.

    Attributes:
        name: Module name, unique together with version.
        version: Current semantic version.
        type: Module type.
        author: Module author.
        description: Short description.
        metadata: Metadata of the current version.
        id: Opaque identifier.
        requires_review: Whether publication needs review.
        review_status: Review state.
        status: Activation state.
        checksum: Package checksum of the current version.
        download_url: Package URL of the current version.
        install_count: Number of recorded installations.
        rating: Average rating in [0, 5].
        rating_count: Number of ratings.
        published_at: Time of first approval.
        created_at: Creation timestamp.
        updated_at: Last update timestamp.
    """

    name: str
    version: str
    type: ModuleType
    author: Author
    description: str = ""
    metadata: ModuleMetadata = field(default_factory=ModuleMetadata)
    id: str = field(default_factory=new_id)
    requires_review: bool = True
    review_status: ReviewStatus = ReviewStatus.PENDING
    status: ModuleStatus = ModuleStatus.INACTIVE
    checksum: Optional[str] = None
    download_url: Optional[str] = None
    install_count: int = 0
    rating: float = 0.0
    rating_count: int = 0
    published_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class ModuleVersion:
    """Historical record of one published version.

    Attributes:
        module_id: Owning module ID.
        version: Semantic version string.
        metadata: Metadata snapshot of this version.
        checksum: Package checksum.
        download_url: Package URL.
        release_notes: Release notes, prefixed on deprecation or yank.
        deprecated: Whether this version is deprecated.
        yanked: Whether this version is yanked.
        id: Opaque identifier.
        created_at: Creation timestamp.
    """

    module_id: str
    version: str
    metadata: ModuleMetadata = field(default_factory=ModuleMetadata)
    checksum: str = ""
    download_url: str = ""
    release_notes: str = ""
    deprecated: bool = False
    yanked: bool = False
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class ModuleInstallation:
    """A user's installation of a module.

    Attributes:
        user_id: Installing user.
        module_id: Installed module.
        version: Installed version.
        enabled: Whether the module is enabled.
        config: Module configuration.
        profile_ids: Profiles using the module.
        id: Opaque identifier.
        installed_at: First installation timestamp.
        updated_at: Last update timestamp.
    """

    user_id: str
    module_id: str
    version: str
    enabled: bool = True
    config: dict[str, Any] = field(default_factory=dict)
    profile_ids: list[str] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    installed_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


# Pydantic Models for inbound payloads


class AuthorInfo(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    website: Optional[str] = None
    email: Optional[str] = None

    def to_author(self) -> Author:
        return Author(**self.model_dump())


class DependencySpec(BaseModel):
    id: str = Field(..., min_length=1)
    version: str = "*"
    optional: bool = False


class CapabilitySpec(BaseModel):
    id: str = Field(..., min_length=1)
    version: str = "*"
    optional: bool = False


class ProtocolSpec(BaseModel):
    name: str
    version: str


class CompatibilitySpec(BaseModel):
    min_platform_version: str = "0.0.0"
    target_platform_version: str = "0.0.0"
    supported_protocols: list[ProtocolSpec] = Field(default_factory=list)
    supported_modalities: list[str] = Field(default_factory=list)


class MetadataSpec(BaseModel):
    """Metadata block of a registration or publish payload.

    Attributes:
        schema_version: Metadata schema version.
        license: License identifier.
        tags: Search tags.
        dependencies: Dependencies on other modules.
        permissions: Requested permissions.
        capabilities: Declared capabilities.
        compatibility: Platform compatibility.
        ui_components: Opaque UI component descriptors.
    """

    schema_version: str = "1.0"
    license: str = ""
    tags: list[str] = Field(default_factory=list)
    dependencies: list[DependencySpec] = Field(default_factory=list)
    permissions: list[str] = Field(default_factory=list)
    capabilities: list[CapabilitySpec] = Field(default_factory=list)
    compatibility: CompatibilitySpec = Field(default_factory=CompatibilitySpec)
    ui_components: list[dict[str, Any]] = Field(default_factory=list)

    def to_metadata(self) -> ModuleMetadata:
        data = self.model_dump()
        data["tags"] = list(dict.fromkeys(data["tags"]))
        data["permissions"] = list(dict.fromkeys(data["permissions"]))
        return ModuleMetadata.from_dict(data)


class ModuleCreate(BaseModel):
    """Registration payload, also used to publish a new version.

    Attributes:
        name: Module name.
        description: Short description; release notes when publishing.
        version: Semantic version string.
        type: Module type.
        author: Module author.
        metadata: Metadata block.
        checksum: Package checksum.
        download_url: Package URL.
    """

    name: str = Field(..., min_length=1, max_length=100, pattern=r"^[A-Za-z0-9_.-]+$")
    description: str = Field(default="", max_length=2000)
    version: str
    type: ModuleType
    author: AuthorInfo
    metadata: MetadataSpec = Field(default_factory=MetadataSpec)
    checksum: Optional[str] = None
    download_url: Optional[str] = None


class ModuleUpdate(BaseModel):
    """Update payload for mutable module fields."""

    description: Optional[str] = Field(default=None, max_length=2000)
    status: Optional[ModuleStatus] = None
    metadata: Optional[MetadataSpec] = None
    download_url: Optional[str] = None


class MetadataUpdate(BaseModel):
    """Partial metadata update; unset fields keep their value."""

    schema_version: Optional[str] = None
    license: Optional[str] = None
    tags: Optional[list[str]] = None
    dependencies: Optional[list[DependencySpec]] = None
    permissions: Optional[list[str]] = None
    capabilities: Optional[list[CapabilitySpec]] = None
    compatibility: Optional[CompatibilitySpec] = None
    ui_components: Optional[list[dict[str, Any]]] = None


class ModuleSearchFilters(BaseModel):
    """Search filters.

    Attributes:
        type: Only modules of this type.
        status: Only modules in this status.
        author: Only modules by this author ID.
        tags: Modules carrying any of these tags.
        min_rating: Minimum average rating.
        search_text: Case-insensitive match on name, description or tags.
        include_deprecated: Include deprecated modules when no status is given.
    """

    type: Optional[ModuleType] = None
    status: Optional[ModuleStatus] = None
    author: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    min_rating: Optional[float] = Field(default=None, ge=0, le=5)
    search_text: Optional[str] = None
    include_deprecated: bool = False

    def matches(self, module: Module) -> bool:
        """Check whether a module passes every filter."""
        if self.type and module.type != self.type:
            return False

        if self.status:
            if module.status != self.status:
                return False
        elif not self.include_deprecated and module.status == ModuleStatus.DEPRECATED:
            return False

        if self.author and module.author.id != self.author:
            return False

        if self.tags and not set(self.tags) & set(module.metadata.tags):
            return False

        if self.min_rating is not None and module.rating < self.min_rating:
            return False

        if self.search_text:
            needle = self.search_text.lower()
            haystack = [module.name, module.description, *module.metadata.tags]
            if not any(needle in text.lower() for text in haystack):
                return False

        return True


class InstallationUpdate(BaseModel):
    """Update payload for an installation."""

    version: Optional[str] = None
    enabled: Optional[bool] = None
    config: Optional[dict[str, Any]] = None
    profile_ids: Optional[list[str]] = None
