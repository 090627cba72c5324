"""Pytest configuration and fixtures."""

from pathlib import Path
from typing import Optional

import pytest
import pytest_asyncio

from module_registry.catalog import CatalogAccessor, Database, MemoryCatalog, SQLiteCatalog
from module_registry.config import RegistrySettings
from module_registry.models import (
    AuthorInfo,
    CapabilitySpec,
    DependencySpec,
    MetadataSpec,
    ModuleCreate,
    ModuleType,
)
from module_registry.services import EventOutbox, ModuleRegistryService


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "sqlite: mark test as using the SQLite catalog")


def make_module(
    name: str,
    version: str = "1.0.0",
    dependencies: Optional[list[tuple[str, str, bool]]] = None,
    capabilities: Optional[list[tuple[str, str, bool]]] = None,
    permissions: Optional[list[str]] = None,
    tags: Optional[list[str]] = None,
    min_platform_version: str = "0.0.0",
    description: str = "",
    module_type: ModuleType = ModuleType.TOOL,
) -> ModuleCreate:
    """Build a registration payload.

    Dependencies and capabilities are given as (id, range, optional) tuples.
    """
    return ModuleCreate(
        name=name,
        version=version,
        type=module_type,
        description=description,
        author=AuthorInfo(id="author-1", name="Test Author"),
        metadata=MetadataSpec(
            license="MIT",
            tags=tags or [],
            dependencies=[
                DependencySpec(id=d, version=v, optional=o) for d, v, o in dependencies or []
            ],
            capabilities=[
                CapabilitySpec(id=c, version=v, optional=o) for c, v, o in capabilities or []
            ],
            permissions=permissions or [],
            compatibility={"min_platform_version": min_platform_version},
        ),
    )


@pytest.fixture
def settings() -> RegistrySettings:
    """Settings with review enabled and no .env lookup."""
    return RegistrySettings(_env_file=None, require_review=True, platform_version="1.0.0")


@pytest.fixture
def open_settings() -> RegistrySettings:
    """Settings that approve modules on registration."""
    return RegistrySettings(_env_file=None, require_review=False, platform_version="1.0.0")


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def catalog(request, tmp_path: Path):
    """Catalog backing the service fixtures; runs each test on both backends."""
    if request.param == "memory":
        yield MemoryCatalog()
        return

    db = Database(f"sqlite:///{tmp_path / 'catalog.db'}")
    await db.initialize()
    sqlite = SQLiteCatalog(db)
    yield sqlite
    await sqlite.close()


@pytest.fixture
def outbox() -> EventOutbox:
    return EventOutbox()


@pytest.fixture
def service(
    catalog: CatalogAccessor,
    outbox: EventOutbox,
    settings: RegistrySettings,
) -> ModuleRegistryService:
    """Registry service with review required."""
    return ModuleRegistryService(catalog, event_sink=outbox, settings=settings)


@pytest.fixture
def open_service(
    catalog: CatalogAccessor,
    outbox: EventOutbox,
    open_settings: RegistrySettings,
) -> ModuleRegistryService:
    """Registry service that approves modules on registration."""
    return ModuleRegistryService(catalog, event_sink=outbox, settings=open_settings)


@pytest_asyncio.fixture
async def sqlite_catalog(tmp_path: Path):
    """SQLite catalog in a temporary directory.

    Args:
        tmp_path: Pytest temporary path fixture.
    """
    db = Database(f"sqlite:///{tmp_path / 'modules.db'}")
    await db.initialize()
    catalog = SQLiteCatalog(db)
    yield catalog
    await catalog.close()
