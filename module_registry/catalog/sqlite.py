"""SQLite-backed module catalog."""

import asyncio
import json
import logging
from dataclasses import asdict
from datetime import datetime
from enum import Enum
from typing import Any, Optional

import aiosqlite

from module_registry.catalog.base import CatalogAccessor
from module_registry.catalog.database import Database
from module_registry.exceptions import (
    DuplicateInstallationError,
    DuplicateModuleError,
    VersionAlreadyExistsError,
)
from module_registry.models.module import (
    Author,
    Module,
    ModuleInstallation,
    ModuleMetadata,
    ModuleSearchFilters,
    ModuleStatus,
    ModuleType,
    ModuleVersion,
    ReviewStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

_MODULE_COLUMNS = (
    "id", "name", "version", "type", "author", "description", "metadata",
    "requires_review", "review_status", "status", "checksum", "download_url",
    "install_count", "rating", "rating_count", "published_at", "created_at",
    "updated_at",
)
_VERSION_COLUMNS = (
    "id", "module_id", "version", "metadata", "checksum", "download_url",
    "release_notes", "deprecated", "yanked", "created_at",
)
_INSTALLATION_COLUMNS = (
    "id", "user_id", "module_id", "version", "enabled", "config",
    "profile_ids", "installed_at", "updated_at",
)


def _to_column(key: str, value: Any) -> Any:
    """Serialize a record field for storage."""
    if value is None:
        return None
    if key == "author":
        return json.dumps(asdict(value))
    if key == "metadata":
        return json.dumps(value.to_dict())
    if key in ("config", "profile_ids"):
        return json.dumps(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteCatalog(CatalogAccessor):
    """Catalog stored in SQLite.

    Uniqueness is enforced by the schema's UNIQUE constraints; integrity
    errors are translated into registry exceptions.

    Attributes:
        db: Database instance.
    """

    def __init__(self, db: Database) -> None:
        """Initialize the catalog.

        Args:
            db: Initialized database instance.
        """
        self.db = db
        self._write_lock = asyncio.Lock()

    async def close(self) -> None:
        await self.db.close()

    # Row conversion

    def _row_to_module(self, row) -> Module:
        """Convert a database row to a Module object.

        Args:
            row: Database row.

        Returns:
            Module object.
        """
        return Module(
            id=row["id"],
            name=row["name"],
            version=row["version"],
            type=ModuleType(row["type"]),
            author=Author(**json.loads(row["author"])),
            description=row["description"],
            metadata=ModuleMetadata.from_dict(json.loads(row["metadata"])),
            requires_review=bool(row["requires_review"]),
            review_status=ReviewStatus(row["review_status"]),
            status=ModuleStatus(row["status"]),
            checksum=row["checksum"],
            download_url=row["download_url"],
            install_count=row["install_count"],
            rating=row["rating"],
            rating_count=row["rating_count"],
            published_at=_parse_time(row["published_at"]),
            created_at=_parse_time(row["created_at"]),
            updated_at=_parse_time(row["updated_at"]),
        )

    def _row_to_version(self, row) -> ModuleVersion:
        return ModuleVersion(
            id=row["id"],
            module_id=row["module_id"],
            version=row["version"],
            metadata=ModuleMetadata.from_dict(json.loads(row["metadata"])),
            checksum=row["checksum"] or "",
            download_url=row["download_url"] or "",
            release_notes=row["release_notes"] or "",
            deprecated=bool(row["deprecated"]),
            yanked=bool(row["yanked"]),
            created_at=_parse_time(row["created_at"]),
        )

    def _row_to_installation(self, row) -> ModuleInstallation:
        return ModuleInstallation(
            id=row["id"],
            user_id=row["user_id"],
            module_id=row["module_id"],
            version=row["version"],
            enabled=bool(row["enabled"]),
            config=json.loads(row["config"]) if row["config"] else {},
            profile_ids=json.loads(row["profile_ids"]) if row["profile_ids"] else [],
            installed_at=_parse_time(row["installed_at"]),
            updated_at=_parse_time(row["updated_at"]),
        )

    async def _insert(self, table: str, columns: tuple[str, ...], record: Any) -> None:
        placeholders = ", ".join("?" for _ in columns)
        await self.db.execute(
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
            tuple(_to_column(c, getattr(record, c)) for c in columns),
        )

    async def _update(
        self,
        table: str,
        columns: tuple[str, ...],
        changes: dict[str, Any],
        where: str,
        params: tuple,
    ) -> int:
        unknown = set(changes) - set(columns)
        if unknown:
            raise ValueError(f"Unknown {table} fields: {', '.join(sorted(unknown))}")

        set_clauses = [f"{key} = ?" for key in changes]
        values = [_to_column(key, value) for key, value in changes.items()]
        cursor = await self.db.execute(
            f"UPDATE {table} SET {', '.join(set_clauses)} WHERE {where}",
            tuple(values) + params,
        )
        return cursor.rowcount

    # Modules

    async def get_module(self, module_id: str) -> Optional[Module]:
        row = await self.db.fetch_one("SELECT * FROM modules WHERE id = ?", (module_id,))
        return self._row_to_module(row) if row else None

    async def get_module_by_name_version(self, name: str, version: str) -> Optional[Module]:
        row = await self.db.fetch_one(
            "SELECT * FROM modules WHERE name = ? AND version = ?",
            (name, version),
        )
        return self._row_to_module(row) if row else None

    async def find_modules_by_name(self, name: str) -> list[Module]:
        rows = await self.db.fetch_all(
            "SELECT * FROM modules WHERE name = ? ORDER BY rowid", (name,)
        )
        return [self._row_to_module(row) for row in rows]

    async def search_modules(self, filters: ModuleSearchFilters) -> list[Module]:
        query = "SELECT * FROM modules WHERE 1=1"
        params: list = []

        if filters.type:
            query += " AND type = ?"
            params.append(filters.type.value)

        if filters.status:
            query += " AND status = ?"
            params.append(filters.status.value)

        if filters.min_rating is not None:
            query += " AND rating >= ?"
            params.append(filters.min_rating)

        query += " ORDER BY install_count DESC, rating DESC, rowid"

        rows = await self.db.fetch_all(query, tuple(params))
        # Tags, author and free text live in JSON columns
        modules = [self._row_to_module(row) for row in rows]
        return [m for m in modules if filters.matches(m)]

    async def create_module(self, module: Module, initial_version: ModuleVersion) -> Module:
        async with self._write_lock:
            try:
                await self._insert("modules", _MODULE_COLUMNS, module)
                initial_version.module_id = module.id
                await self._insert("module_versions", _VERSION_COLUMNS, initial_version)
                await self.db.commit()
            except aiosqlite.IntegrityError as e:
                await self.db.rollback()
                logger.info(f"Rejected duplicate module {module.name}@{module.version}: {e}")
                raise DuplicateModuleError(module.name, module.version) from e

        logger.info(f"Created module: {module.name}@{module.version}")
        return module

    async def update_module(self, module_id: str, changes: dict[str, Any]) -> Optional[Module]:
        changes = {**changes, "updated_at": utcnow()}
        async with self._write_lock:
            try:
                count = await self._update(
                    "modules", _MODULE_COLUMNS, changes, "id = ?", (module_id,)
                )
                await self.db.commit()
            except aiosqlite.IntegrityError as e:
                await self.db.rollback()
                raise DuplicateModuleError(
                    changes.get("name", "?"), changes.get("version", "?")
                ) from e

        if not count:
            return None
        return await self.get_module(module_id)

    async def increment_install_count(self, module_id: str) -> bool:
        async with self._write_lock:
            cursor = await self.db.execute(
                "UPDATE modules SET install_count = install_count + 1 WHERE id = ?",
                (module_id,),
            )
            await self.db.commit()
        return cursor.rowcount > 0

    async def add_rating(self, module_id: str, stars: float) -> Optional[Module]:
        async with self._write_lock:
            cursor = await self.db.execute(
                """
                UPDATE modules
                SET rating = (rating * rating_count + ?) / (rating_count + 1),
                    rating_count = rating_count + 1,
                    updated_at = ?
                WHERE id = ?
                """,
                (float(stars), utcnow().isoformat(), module_id),
            )
            await self.db.commit()

        if not cursor.rowcount:
            return None
        return await self.get_module(module_id)

    async def publish_version(
        self,
        version: ModuleVersion,
        changes: dict[str, Any],
    ) -> Optional[Module]:
        changes = {**changes, "updated_at": utcnow()}
        async with self._write_lock:
            try:
                count = await self._update(
                    "modules", _MODULE_COLUMNS, changes, "id = ?", (version.module_id,)
                )
            except aiosqlite.IntegrityError as e:
                await self.db.rollback()
                logger.info(
                    f"Rejected publish of {version.module_id}@{version.version}: {e}"
                )
                raise DuplicateModuleError(
                    changes.get("name", "?"), changes.get("version", version.version)
                ) from e
            if not count:
                await self.db.rollback()
                return None

            try:
                await self._insert("module_versions", _VERSION_COLUMNS, version)
            except aiosqlite.IntegrityError as e:
                # Also undoes the module update above
                await self.db.rollback()
                raise VersionAlreadyExistsError(version.module_id, version.version) from e
            await self.db.commit()

        logger.info(f"Published version {version.version} of module {version.module_id}")
        return await self.get_module(version.module_id)

    # Versions

    async def list_versions(self, module_id: str) -> list[ModuleVersion]:
        rows = await self.db.fetch_all(
            "SELECT * FROM module_versions WHERE module_id = ? ORDER BY created_at DESC, rowid DESC",
            (module_id,),
        )
        return [self._row_to_version(row) for row in rows]

    async def get_version(self, module_id: str, version: str) -> Optional[ModuleVersion]:
        row = await self.db.fetch_one(
            "SELECT * FROM module_versions WHERE module_id = ? AND version = ?",
            (module_id, version),
        )
        return self._row_to_version(row) if row else None

    async def update_version(
        self,
        module_id: str,
        version: str,
        changes: dict[str, Any],
    ) -> Optional[ModuleVersion]:
        async with self._write_lock:
            count = await self._update(
                "module_versions",
                _VERSION_COLUMNS,
                changes,
                "module_id = ? AND version = ?",
                (module_id, version),
            )
            await self.db.commit()

        if not count:
            return None
        return await self.get_version(module_id, version)

    # Installations

    async def get_installation(self, user_id: str, module_id: str) -> Optional[ModuleInstallation]:
        row = await self.db.fetch_one(
            "SELECT * FROM module_installations WHERE user_id = ? AND module_id = ?",
            (user_id, module_id),
        )
        return self._row_to_installation(row) if row else None

    async def list_installations(self, user_id: str) -> list[ModuleInstallation]:
        rows = await self.db.fetch_all(
            "SELECT * FROM module_installations WHERE user_id = ? ORDER BY installed_at",
            (user_id,),
        )
        return [self._row_to_installation(row) for row in rows]

    async def create_installation(self, installation: ModuleInstallation) -> ModuleInstallation:
        async with self._write_lock:
            try:
                await self._insert(
                    "module_installations", _INSTALLATION_COLUMNS, installation
                )
                await self.db.commit()
            except aiosqlite.IntegrityError as e:
                await self.db.rollback()
                raise DuplicateInstallationError(
                    installation.user_id, installation.module_id
                ) from e
        return installation

    async def update_installation(
        self,
        user_id: str,
        module_id: str,
        changes: dict[str, Any],
    ) -> Optional[ModuleInstallation]:
        changes = {**changes, "updated_at": utcnow()}
        async with self._write_lock:
            count = await self._update(
                "module_installations",
                _INSTALLATION_COLUMNS,
                changes,
                "user_id = ? AND module_id = ?",
                (user_id, module_id),
            )
            await self.db.commit()

        if not count:
            return None
        return await self.get_installation(user_id, module_id)
