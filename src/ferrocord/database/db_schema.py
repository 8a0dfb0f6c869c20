"""
Database schema initialization.

Creates the tag knowledge-base tables, their indexes, and the triggers that
keep tag names and alias names in one shared namespace.
"""

import aiosqlite
from ferrocord.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 1

# Message carried by the IntegrityError raised from the collision triggers
NAME_COLLISION_MESSAGE = "name collision"


class SchemaManager:
    """Creates tables, indexes and triggers for the tag knowledge base."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        """
        Create all database tables, indexes, and triggers if missing.

        Args:
            db: Open database connection
        """
        await SchemaManager._create_tables(db)
        await SchemaManager._create_indexes(db)
        await SchemaManager._create_triggers(db)
        await SchemaManager._update_schema_version(db)
        await db.commit()
        logger.info("[SCHEMA] Database schema initialized (version %d)", SCHEMA_VERSION)

    @staticmethod
    async def _create_tables(db: aiosqlite.Connection) -> None:
        """Create all required database tables."""
        await db.execute("""
            CREATE TABLE IF NOT EXISTS tags (
                name TEXT PRIMARY KEY NOT NULL,
                content TEXT NOT NULL,
                creator_user_id INTEGER NOT NULL,
                last_editor_user_id INTEGER,
                creation_date TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                last_edit_date TEXT,
                times_used INTEGER NOT NULL DEFAULT 0 CHECK (times_used >= 0),
                restricted INTEGER NOT NULL DEFAULT 0
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS tag_aliases (
                alias TEXT PRIMARY KEY NOT NULL,
                tag_name TEXT NOT NULL,
                FOREIGN KEY (tag_name) REFERENCES tags (name)
                    ON DELETE CASCADE
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    @staticmethod
    async def _create_indexes(db: aiosqlite.Connection) -> None:
        """Create indexes for alias lookups and stats queries."""
        await db.execute("CREATE INDEX IF NOT EXISTS idx_tag_aliases_tag ON tag_aliases(tag_name)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_tags_creator ON tags(creator_user_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_tags_times_used ON tags(times_used DESC, name)")

    @staticmethod
    async def _create_triggers(db: aiosqlite.Connection) -> None:
        """Create triggers that reject a name already used in the other namespace.

        Primary keys make names unique inside each table; these triggers make
        them unique across both, inside the same statement, so two racing
        writers cannot both succeed.
        """
        await db.execute(f"""
            CREATE TRIGGER IF NOT EXISTS tags_reject_alias_name
            BEFORE INSERT ON tags
            FOR EACH ROW
            WHEN EXISTS (SELECT 1 FROM tag_aliases WHERE alias = NEW.name)
            BEGIN
                SELECT RAISE(ABORT, '{NAME_COLLISION_MESSAGE}');
            END
        """)

        await db.execute(f"""
            CREATE TRIGGER IF NOT EXISTS tag_aliases_reject_tag_name
            BEFORE INSERT ON tag_aliases
            FOR EACH ROW
            WHEN EXISTS (SELECT 1 FROM tags WHERE name = NEW.alias)
            BEGIN
                SELECT RAISE(ABORT, '{NAME_COLLISION_MESSAGE}');
            END
        """)

        await db.execute("""
            CREATE TRIGGER IF NOT EXISTS tags_times_used_monotonic
            BEFORE UPDATE OF times_used ON tags
            FOR EACH ROW
            WHEN NEW.times_used < OLD.times_used
            BEGIN
                SELECT RAISE(ABORT, 'times_used cannot decrease');
            END
        """)

    @staticmethod
    async def _update_schema_version(db: aiosqlite.Connection) -> None:
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
