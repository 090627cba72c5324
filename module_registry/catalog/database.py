"""Async SQLite database management."""

import logging
from pathlib import Path
from typing import Optional

import aiosqlite

from module_registry.config import get_settings

logger = logging.getLogger(__name__)


class Database:
    """Async SQLite database manager.

    Handles connection management and schema creation.

    Attributes:
        db_path: Path to the SQLite database file, or ":memory:".
        connection: Active database connection.
    """

    def __init__(self, db_url: Optional[str] = None) -> None:
        """Initialize the database manager.

        Args:
            db_url: Database URL (default: from settings).
        """
        url = db_url or get_settings().database_url
        # Extract path from sqlite:/// URL
        if url.startswith("sqlite:///"):
            url = url[10:]
        self.db_path = url if url == ":memory:" else Path(url)
        self.connection: Optional[aiosqlite.Connection] = None

    async def initialize(self) -> None:
        """Initialize the database connection and schema.

        Creates the database directory if needed and sets up tables.
        """
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.connection = await aiosqlite.connect(str(self.db_path))
        self.connection.row_factory = aiosqlite.Row

        await self.connection.execute("PRAGMA foreign_keys = ON")

        await self._create_schema()

        logger.info(f"Database initialized at {self.db_path}")

    async def close(self) -> None:
        """Close the database connection."""
        if self.connection:
            await self.connection.close()
            self.connection = None
            logger.info("Database connection closed")

    async def _create_schema(self) -> None:
        """Create database tables if they don't exist."""
        schema = """
        -- Modules: one row per registered (name, version)
        CREATE TABLE IF NOT EXISTS modules (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            version TEXT NOT NULL,
            type TEXT NOT NULL,
            author TEXT NOT NULL,
            description TEXT DEFAULT '',
            metadata TEXT NOT NULL DEFAULT '{}',
            requires_review BOOLEAN DEFAULT 1,
            review_status TEXT DEFAULT 'pending',
            status TEXT DEFAULT 'inactive',
            checksum TEXT,
            download_url TEXT,
            install_count INTEGER DEFAULT 0,
            rating REAL DEFAULT 0,
            rating_count INTEGER DEFAULT 0,
            published_at TIMESTAMP,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(name, version)
        );

        -- Immutable version history
        CREATE TABLE IF NOT EXISTS module_versions (
            id TEXT PRIMARY KEY,
            module_id TEXT NOT NULL REFERENCES modules(id) ON DELETE CASCADE,
            version TEXT NOT NULL,
            metadata TEXT NOT NULL DEFAULT '{}',
            checksum TEXT DEFAULT '',
            download_url TEXT DEFAULT '',
            release_notes TEXT DEFAULT '',
            deprecated BOOLEAN DEFAULT 0,
            yanked BOOLEAN DEFAULT 0,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(module_id, version)
        );

        -- Per-user installations
        CREATE TABLE IF NOT EXISTS module_installations (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            module_id TEXT NOT NULL REFERENCES modules(id),
            version TEXT NOT NULL,
            enabled BOOLEAN DEFAULT 1,
            config TEXT DEFAULT '{}',
            profile_ids TEXT DEFAULT '[]',
            installed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(user_id, module_id)
        );

        -- Create indexes for performance
        CREATE INDEX IF NOT EXISTS idx_modules_name ON modules(name);
        CREATE INDEX IF NOT EXISTS idx_modules_type ON modules(type);
        CREATE INDEX IF NOT EXISTS idx_versions_module ON module_versions(module_id);
        CREATE INDEX IF NOT EXISTS idx_installations_user ON module_installations(user_id);
        """
        await self.connection.executescript(schema)
        await self.connection.commit()

    async def execute(
        self,
        query: str,
        params: tuple = (),
    ) -> aiosqlite.Cursor:
        """Execute a query and return the cursor.

        Args:
            query: SQL query string.
            params: Query parameters.

        Returns:
            Database cursor.
        """
        return await self.connection.execute(query, params)

    async def fetch_one(
        self,
        query: str,
        params: tuple = (),
    ) -> Optional[aiosqlite.Row]:
        """Fetch a single row.

        Args:
            query: SQL query string.
            params: Query parameters.

        Returns:
            Single row or None.
        """
        cursor = await self.connection.execute(query, params)
        return await cursor.fetchone()

    async def fetch_all(
        self,
        query: str,
        params: tuple = (),
    ) -> list[aiosqlite.Row]:
        """Fetch all rows.

        Args:
            query: SQL query string.
            params: Query parameters.

        Returns:
            List of rows.
        """
        cursor = await self.connection.execute(query, params)
        return await cursor.fetchall()

    async def commit(self) -> None:
        """Commit the current transaction."""
        await self.connection.commit()

    async def rollback(self) -> None:
        """Roll back the current transaction."""
        await self.connection.rollback()

    async def health_check(self) -> bool:
        """Check database connectivity.

        Returns:
            True if database is healthy, False otherwise.
        """
        if not self.connection:
            return False
        try:
            cursor = await self.connection.execute("SELECT 1")
            result = await cursor.fetchone()
        except aiosqlite.Error as e:
            logger.error(f"Database health check failed: {e}")
            return False
        return result is not None and result[0] == 1
