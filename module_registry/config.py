"""Configuration module using Pydantic Settings."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RegistrySettings(BaseSettings):
    """Registry settings loaded from environment variables and .env file.

    Attributes:
        database_url: SQLite database URL for the SQLite catalog.
        platform_version: Platform version modules are checked against.
        require_review: Whether new modules start in review.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MODULE_REGISTRY_",
        extra="ignore",
        case_sensitive=False,
    )

    database_url: str = Field(
        default="sqlite:///./data/modules.db",
        description="Database connection URL",
    )
    platform_version: str = Field(
        default="1.0.0",
        description="Current platform version",
    )
    require_review: bool = Field(
        default=True,
        description="New modules must be approved before they are published",
    )

    @field_validator("platform_version")
    @classmethod
    def check_platform_version(cls, v: str) -> str:
        # resolver imports the catalog, which reads settings
        from module_registry.resolver.semver import is_valid_version

        if not is_valid_version(v):
            raise ValueError(f"platform_version must be a semantic version, got '{v}'")
        return v


# Global settings instance
_settings: RegistrySettings | None = None


def get_settings() -> RegistrySettings:
    """Get the global settings instance.

    Returns:
        RegistrySettings instance.
    """
    global _settings
    if _settings is None:
        _settings = RegistrySettings()
    return _settings
