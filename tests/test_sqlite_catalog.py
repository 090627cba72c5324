"""Tests for the SQLite catalog."""

import pytest

from conftest import make_module
from module_registry.catalog import Database
from module_registry.exceptions import (
    DuplicateInstallationError,
    DuplicateModuleError,
    VersionAlreadyExistsError,
)
from module_registry.models import (
    Author,
    Capability,
    Dependency,
    Module,
    ModuleInstallation,
    ModuleMetadata,
    ModuleSearchFilters,
    ModuleStatus,
    ModuleType,
    ModuleVersion,
    ReviewStatus,
)
from module_registry.services import EventOutbox, ModuleRegistryService

pytestmark = pytest.mark.sqlite


def new_module(name: str = "tool", version: str = "1.0.0", **kwargs) -> Module:
    return Module(
        name=name,
        version=version,
        type=ModuleType.TOOL,
        author=Author(id="author-1", name="Test Author", email="author@example.com"),
        **kwargs,
    )


async def store(catalog, module: Module) -> Module:
    return await catalog.create_module(
        module,
        ModuleVersion(module_id=module.id, version=module.version, metadata=module.metadata),
    )


class TestModules:
    """Tests for module rows."""

    @pytest.mark.asyncio
    async def test_round_trip(self, sqlite_catalog) -> None:
        metadata = ModuleMetadata(
            license="MIT",
            tags=["weather"],
            dependencies=[Dependency(id="http-client", version="^1.0.0")],
            permissions=["network"],
            capabilities=[Capability(id="forecast", version="1.2.0", optional=True)],
        )
        module = await store(sqlite_catalog, new_module(metadata=metadata, checksum="abc"))

        loaded = await sqlite_catalog.get_module(module.id)

        assert loaded.name == "tool"
        assert loaded.type == ModuleType.TOOL
        assert loaded.author.email == "author@example.com"
        assert loaded.metadata == metadata
        assert loaded.review_status == ReviewStatus.PENDING
        assert loaded.checksum == "abc"
        assert loaded.created_at == module.created_at
        assert (await sqlite_catalog.get_module_by_name_version("tool", "1.0.0")).id == module.id
        assert await sqlite_catalog.get_module("missing") is None

    @pytest.mark.asyncio
    async def test_duplicate_name_version_rejected(self, sqlite_catalog) -> None:
        """Test that the UNIQUE constraint rejects a duplicate and rolls back."""
        await store(sqlite_catalog, new_module())
        duplicate = new_module()

        with pytest.raises(DuplicateModuleError):
            await store(sqlite_catalog, duplicate)

        assert await sqlite_catalog.get_module(duplicate.id) is None
        assert await sqlite_catalog.list_versions(duplicate.id) == []
        assert len(await sqlite_catalog.find_modules_by_name("tool")) == 1

    @pytest.mark.asyncio
    async def test_update_module(self, sqlite_catalog) -> None:
        module = await store(sqlite_catalog, new_module())

        updated = await sqlite_catalog.update_module(
            module.id,
            {"status": ModuleStatus.ACTIVE, "rating": 4.5, "rating_count": 2},
        )

        assert updated.status == ModuleStatus.ACTIVE
        assert updated.rating == 4.5
        assert updated.updated_at >= module.updated_at
        assert await sqlite_catalog.update_module("missing", {"rating": 1.0}) is None

    @pytest.mark.asyncio
    async def test_update_unknown_field(self, sqlite_catalog) -> None:
        module = await store(sqlite_catalog, new_module())

        with pytest.raises(ValueError):
            await sqlite_catalog.update_module(module.id, {"popularity": 3})

    @pytest.mark.asyncio
    async def test_increment_install_count(self, sqlite_catalog) -> None:
        module = await store(sqlite_catalog, new_module())

        assert await sqlite_catalog.increment_install_count(module.id)
        assert not await sqlite_catalog.increment_install_count("missing")
        assert (await sqlite_catalog.get_module(module.id)).install_count == 1

    @pytest.mark.asyncio
    async def test_add_rating(self, sqlite_catalog) -> None:
        """Test that ratings fold into the average in one statement."""
        module = await store(sqlite_catalog, new_module())

        await sqlite_catalog.add_rating(module.id, 4)
        rated = await sqlite_catalog.add_rating(module.id, 3)

        assert rated.rating == pytest.approx(3.5)
        assert rated.rating_count == 2
        assert await sqlite_catalog.add_rating("missing", 3) is None

    @pytest.mark.asyncio
    async def test_search(self, sqlite_catalog) -> None:
        popular = await store(
            sqlite_catalog,
            new_module("popular", metadata=ModuleMetadata(tags=["search"]), install_count=10),
        )
        await store(sqlite_catalog, new_module("quiet", metadata=ModuleMetadata(tags=["other"])))
        await store(sqlite_catalog, new_module("old", status=ModuleStatus.DEPRECATED))

        found = await sqlite_catalog.search_modules(ModuleSearchFilters())
        assert [m.name for m in found] == ["popular", "quiet"]

        found = await sqlite_catalog.search_modules(ModuleSearchFilters(tags=["search"]))
        assert [m.id for m in found] == [popular.id]

        found = await sqlite_catalog.search_modules(
            ModuleSearchFilters(status=ModuleStatus.DEPRECATED)
        )
        assert [m.name for m in found] == ["old"]


class TestVersions:
    """Tests for version rows."""

    @pytest.mark.asyncio
    async def test_versions_newest_first(self, sqlite_catalog) -> None:
        module = await store(sqlite_catalog, new_module())
        updated = await sqlite_catalog.publish_version(
            ModuleVersion(module_id=module.id, version="1.1.0"), {"version": "1.1.0"}
        )

        versions = await sqlite_catalog.list_versions(module.id)

        assert updated.version == "1.1.0"
        assert [v.version for v in versions] == ["1.1.0", "1.0.0"]

    @pytest.mark.asyncio
    async def test_duplicate_version_rejected(self, sqlite_catalog) -> None:
        module = await store(sqlite_catalog, new_module())

        with pytest.raises(VersionAlreadyExistsError):
            await sqlite_catalog.publish_version(
                ModuleVersion(module_id=module.id, version="1.0.0"), {"version": "1.0.0"}
            )

    @pytest.mark.asyncio
    async def test_update_version(self, sqlite_catalog) -> None:
        module = await store(sqlite_catalog, new_module())

        updated = await sqlite_catalog.update_version(
            module.id, "1.0.0", {"yanked": True, "release_notes": "YANKED: bad"}
        )

        assert updated.yanked
        assert not updated.deprecated
        assert updated.release_notes == "YANKED: bad"
        assert await sqlite_catalog.update_version(module.id, "9.9.9", {"yanked": True}) is None


class TestInstallations:
    """Tests for installation rows."""

    @pytest.mark.asyncio
    async def test_installation_round_trip(self, sqlite_catalog) -> None:
        module = await store(sqlite_catalog, new_module())
        installation = await sqlite_catalog.create_installation(
            ModuleInstallation(
                user_id="user-1",
                module_id=module.id,
                version="1.0.0",
                config={"units": "metric"},
                profile_ids=["work"],
            )
        )

        loaded = await sqlite_catalog.get_installation("user-1", module.id)

        assert loaded.id == installation.id
        assert loaded.config == {"units": "metric"}
        assert loaded.profile_ids == ["work"]
        assert loaded.enabled
        assert [i.id for i in await sqlite_catalog.list_installations("user-1")] == [installation.id]

    @pytest.mark.asyncio
    async def test_duplicate_installation_rejected(self, sqlite_catalog) -> None:
        module = await store(sqlite_catalog, new_module())
        await sqlite_catalog.create_installation(
            ModuleInstallation(user_id="user-1", module_id=module.id, version="1.0.0")
        )

        with pytest.raises(DuplicateInstallationError):
            await sqlite_catalog.create_installation(
                ModuleInstallation(user_id="user-1", module_id=module.id, version="1.0.0")
            )

    @pytest.mark.asyncio
    async def test_update_installation(self, sqlite_catalog) -> None:
        module = await store(sqlite_catalog, new_module())
        await sqlite_catalog.create_installation(
            ModuleInstallation(user_id="user-1", module_id=module.id, version="1.0.0")
        )

        updated = await sqlite_catalog.update_installation(
            "user-1", module.id, {"enabled": False, "config": {"a": 1}}
        )

        assert not updated.enabled
        assert updated.config == {"a": 1}
        assert await sqlite_catalog.update_installation("user-2", module.id, {"enabled": False}) is None


class TestDatabase:
    """Tests for the database wrapper."""

    @pytest.mark.asyncio
    async def test_in_memory_database(self) -> None:
        db = Database("sqlite:///:memory:")
        assert not await db.health_check()

        await db.initialize()
        assert await db.health_check()

        await db.close()
        assert db.connection is None


@pytest.mark.asyncio
async def test_service_over_sqlite(sqlite_catalog, open_settings) -> None:
    """Test registration, publishing and resolution against SQLite."""
    service = ModuleRegistryService(sqlite_catalog, event_sink=EventOutbox(), settings=open_settings)
    http_client = await service.register_module(make_module("http-client", "1.0.0"))
    await service.publish_version(http_client.id, make_module("http-client", "1.1.0"))
    core_search = await service.register_module(
        make_module(
            "core-search",
            dependencies=[("http-client", "^1.0.0", False), ("cache-layer", "^1.0.0", True)],
        )
    )
    await service.yank_version(http_client.id, "1.1.0")

    resolution = await service.resolve_dependencies(core_search.id)

    assert resolution.resolved
    assert resolution.install_order == [http_client.id, core_search.id]
    assert resolution.dependencies[0].version == "1.0.0"

    with pytest.raises(DuplicateModuleError):
        await service.register_module(make_module("core-search"))
