"""Tests for the review and version lifecycle."""

import pytest

from conftest import make_module
from module_registry.exceptions import (
    InvalidLifecycleTransitionError,
    InvalidVersionFormatError,
    ValidationError,
    VersionAlreadyExistsError,
    VersionNotFoundError,
    VersionNotGreaterError,
)
from module_registry.models import ModuleStatus, ReviewStatus
from module_registry.services import VersionLifecycle, validate_metadata, version_state


@pytest.fixture
def lifecycle(catalog) -> VersionLifecycle:
    return VersionLifecycle(catalog)


class TestReview:
    """Tests for review transitions."""

    @pytest.mark.asyncio
    async def test_registration_starts_pending(self, service) -> None:
        module = await service.register_module(make_module("tool"))

        assert module.review_status == ReviewStatus.PENDING
        assert module.status == ModuleStatus.INACTIVE
        assert module.published_at is None

    @pytest.mark.asyncio
    async def test_approve_publishes(self, service, lifecycle) -> None:
        module = await service.register_module(make_module("tool"))

        approved = await lifecycle.approve(module)

        assert approved.review_status == ReviewStatus.APPROVED
        assert approved.status == ModuleStatus.ACTIVE
        assert approved.published_at is not None

    @pytest.mark.asyncio
    async def test_reject_is_terminal(self, service, lifecycle) -> None:
        module = await service.register_module(make_module("tool"))
        rejected = await lifecycle.reject(module)

        assert rejected.review_status == ReviewStatus.REJECTED
        for action in (lifecycle.approve, lifecycle.reject, lifecycle.request_review):
            with pytest.raises(InvalidLifecycleTransitionError):
                await action(rejected)

    @pytest.mark.asyncio
    async def test_approve_only_from_pending(self, service, lifecycle) -> None:
        module = await service.register_module(make_module("tool"))
        approved = await lifecycle.approve(module)

        with pytest.raises(InvalidLifecycleTransitionError) as exc_info:
            await lifecycle.approve(approved)
        assert exc_info.value.state == "approved"

    @pytest.mark.asyncio
    async def test_changes_requested_then_review_again(self, service, lifecycle) -> None:
        module = await service.register_module(make_module("tool"))

        needs_changes = await lifecycle.request_changes(module)
        assert needs_changes.review_status == ReviewStatus.NEEDS_CHANGES

        with pytest.raises(InvalidLifecycleTransitionError):
            await lifecycle.approve(needs_changes)

        pending = await lifecycle.request_review(needs_changes)
        assert pending.review_status == ReviewStatus.PENDING
        assert (await lifecycle.approve(pending)).review_status == ReviewStatus.APPROVED

    @pytest.mark.asyncio
    async def test_published_at_is_kept(self, open_service, lifecycle, catalog) -> None:
        module = await open_service.register_module(make_module("tool"))
        first = module.published_at
        pending = await catalog.update_module(module.id, {"review_status": ReviewStatus.PENDING})

        approved = await lifecycle.approve(pending)

        assert approved.published_at == first


class TestDeprecateAndYank:
    """Tests for version flags."""

    @pytest.mark.asyncio
    async def test_deprecate_prefixes_notes(self, open_service, lifecycle) -> None:
        module = await open_service.register_module(make_module("tool"))
        await open_service.publish_version(
            module.id, make_module("tool", "1.1.0", description="Faster search")
        )

        record = await lifecycle.deprecate(module, "1.1.0", reason="memory leak")

        assert record.deprecated
        assert record.release_notes == "DEPRECATED: memory leak\n\nFaster search"
        assert version_state(module, record) == "deprecated"

    @pytest.mark.asyncio
    async def test_deprecate_without_reason_keeps_notes(self, open_service, lifecycle) -> None:
        module = await open_service.register_module(make_module("tool"))
        await open_service.publish_version(
            module.id, make_module("tool", "1.1.0", description="Faster search")
        )

        record = await lifecycle.deprecate(module, "1.1.0")

        assert record.release_notes == "Faster search"

    @pytest.mark.asyncio
    async def test_deprecate_keeps_review_status(self, open_service, lifecycle, catalog) -> None:
        module = await open_service.register_module(make_module("tool"))

        await lifecycle.deprecate(module, "1.0.0")

        assert (await catalog.get_module(module.id)).review_status == ReviewStatus.APPROVED

    @pytest.mark.asyncio
    async def test_deprecate_requires_approval(self, service, lifecycle) -> None:
        module = await service.register_module(make_module("tool"))

        with pytest.raises(InvalidLifecycleTransitionError):
            await lifecycle.deprecate(module, "1.0.0")

    @pytest.mark.asyncio
    async def test_deprecate_twice(self, open_service, lifecycle) -> None:
        module = await open_service.register_module(make_module("tool"))
        await lifecycle.deprecate(module, "1.0.0")

        with pytest.raises(InvalidLifecycleTransitionError):
            await lifecycle.deprecate(module, "1.0.0")

    @pytest.mark.asyncio
    async def test_deprecated_version_can_be_yanked(self, open_service, lifecycle) -> None:
        module = await open_service.register_module(make_module("tool"))
        await lifecycle.deprecate(module, "1.0.0", reason="old")

        record = await lifecycle.yank(module, "1.0.0", reason="security")

        assert record.yanked and record.deprecated
        assert record.release_notes == "YANKED: security\n\nDEPRECATED: old\n\n"
        assert version_state(module, record) == "yanked"

    @pytest.mark.asyncio
    async def test_yank_is_one_way(self, open_service, lifecycle) -> None:
        module = await open_service.register_module(make_module("tool"))
        record = await lifecycle.yank(module, "1.0.0")

        with pytest.raises(InvalidLifecycleTransitionError):
            await lifecycle.yank(module, "1.0.0")
        with pytest.raises(InvalidLifecycleTransitionError):
            await lifecycle.deprecate(module, "1.0.0")
        assert record.yanked

    @pytest.mark.asyncio
    async def test_unknown_version(self, open_service, lifecycle) -> None:
        module = await open_service.register_module(make_module("tool"))

        with pytest.raises(VersionNotFoundError):
            await lifecycle.yank(module, "3.0.0")


class TestPublish:
    """Tests for publishing new versions."""

    @pytest.mark.asyncio
    async def test_publish_updates_module(self, service, lifecycle, catalog) -> None:
        module = await service.register_module(make_module("tool", "1.0.0"))
        data = make_module("tool", "1.1.0", permissions=["network"], description="notes")
        data.checksum = "sha256:abc"

        updated, record = await lifecycle.publish(module, data)

        assert updated.version == "1.1.0"
        assert updated.checksum == "sha256:abc"
        assert updated.metadata.permissions == ["network"]
        assert record.version == "1.1.0"
        assert record.release_notes == "notes"
        assert record.metadata.permissions == ["network"]
        assert (await catalog.get_version(module.id, "1.0.0")).metadata.permissions == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("version", ["1.0.0", "0.9.0", "1.0.0-rc.1", "1.0.0+build.2"])
    async def test_publish_requires_greater_version(self, service, lifecycle, version) -> None:
        module = await service.register_module(make_module("tool", "1.0.0"))

        with pytest.raises(VersionNotGreaterError):
            await lifecycle.publish(module, make_module("tool", version))

    @pytest.mark.asyncio
    async def test_publish_invalid_version(self, service, lifecycle) -> None:
        module = await service.register_module(make_module("tool", "1.0.0"))

        with pytest.raises(InvalidVersionFormatError):
            await lifecycle.publish(module, make_module("tool", "2.0"))

    @pytest.mark.asyncio
    async def test_publish_existing_version(self, service, lifecycle, catalog) -> None:
        module = await service.register_module(make_module("tool", "2.0.0"))
        # A stale module record, still at 1.0.0, while 2.0.0 is recorded
        stale = await catalog.update_module(module.id, {"version": "1.0.0"})

        with pytest.raises(VersionAlreadyExistsError):
            await lifecycle.publish(stale, make_module("tool", "2.0.0"))

    @pytest.mark.asyncio
    async def test_publish_other_module_name(self, service, lifecycle) -> None:
        module = await service.register_module(make_module("tool", "1.0.0"))

        with pytest.raises(ValidationError):
            await lifecycle.publish(module, make_module("other", "2.0.0"))


class TestValidateMetadata:
    """Tests for metadata validation."""

    def test_valid_metadata(self) -> None:
        data = make_module("tool", dependencies=[("base", "^1.0.0", False)])
        validate_metadata("tool", data.metadata.to_metadata())

    def test_invalid_dependency_range(self) -> None:
        data = make_module("tool", dependencies=[("base", "latest", False)])

        with pytest.raises(InvalidVersionFormatError):
            validate_metadata("tool", data.metadata.to_metadata())

    def test_invalid_capability_range(self) -> None:
        data = make_module("tool", capabilities=[("chat", ">=one", False)])

        with pytest.raises(InvalidVersionFormatError):
            validate_metadata("tool", data.metadata.to_metadata())

    def test_invalid_platform_version(self) -> None:
        data = make_module("tool", min_platform_version="1.0")

        with pytest.raises(InvalidVersionFormatError):
            validate_metadata("tool", data.metadata.to_metadata())

    def test_self_dependency(self) -> None:
        data = make_module("tool", dependencies=[("tool", "*", False)])

        with pytest.raises(ValidationError) as exc_info:
            validate_metadata("tool", data.metadata.to_metadata())
        assert exc_info.value.field == "metadata.dependencies"
