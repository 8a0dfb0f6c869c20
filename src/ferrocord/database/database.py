"""
Database coordinator for SQLite.

The :class:`Database` opens the single :class:`ConnectionManager`, creates
the schema, and hands the manager to repositories. It is instantiated by
``main`` and passed by handle; there is no module-level instance so tests can
run several independent databases side by side.
"""

from __future__ import annotations

from pathlib import Path

from ferrocord.database.db_connection import ConnectionManager
from ferrocord.database.db_schema import SchemaManager
from ferrocord.util.logger import get_logger

logger = get_logger("database")


class Database:
    """
    Central database coordinator.

    Lifecycle:
        1. Call initialize() at program startup
        2. Pass ``connections`` to repositories
        3. Call shutdown() at program end
    """

    def __init__(self, db_path: Path, timeout_seconds: float = 5.0):
        """
        Args:
            db_path: Path to the SQLite database file
            timeout_seconds: Busy timeout for transactions waiting on the file lock
        """
        self.db_path = db_path
        self.connections = ConnectionManager(timeout_seconds=timeout_seconds)
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> bool:
        """
        Open the connection and create the schema.

        Returns:
            True if initialization succeeded, False otherwise
        """
        if self._initialized:
            logger.debug("[DATABASE] Already initialized, skipping")
            return True

        try:
            await self.connections.open(self.db_path)
            await SchemaManager.initialize_schema(self.connections.connection)
        except Exception as e:
            logger.error("[DATABASE] Database initialization failed: %s", e)
            await self.connections.close()
            return False

        self._initialized = True
        logger.info("[DATABASE] Database initialized at %s", self.db_path)
        return True

    async def shutdown(self) -> None:
        """Close the connection. Safe to call when never initialized."""
        if not self._initialized:
            return

        await self.connections.close()
        self._initialized = False
        logger.info("[DATABASE] Database shutdown complete")
