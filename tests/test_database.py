"""Tests for the database coordinator, connection manager and schema."""

import sqlite3

import pytest

from ferrocord.database.database import Database
from ferrocord.database.db_connection import ConnectionManager
from ferrocord.database.db_schema import NAME_COLLISION_MESSAGE, SCHEMA_VERSION


async def _names(conn, kind):
    cursor = await conn.execute("SELECT name FROM sqlite_master WHERE type = ?", (kind,))
    return {row[0] for row in await cursor.fetchall()}


class TestInitialize:
    """Tests for Database.initialize and the schema it creates."""

    @pytest.mark.asyncio
    async def test_creates_tables_and_triggers(self, database):
        async with database.connections.read() as conn:
            tables = await _names(conn, "table")
            triggers = await _names(conn, "trigger")

        assert {"tags", "tag_aliases", "schema_version"} <= tables
        assert {"tags_reject_alias_name", "tag_aliases_reject_tag_name", "tags_times_used_monotonic"} <= triggers

    @pytest.mark.asyncio
    async def test_records_schema_version(self, database):
        async with database.connections.read() as conn:
            cursor = await conn.execute("SELECT version FROM schema_version")
            assert [row[0] for row in await cursor.fetchall()] == [SCHEMA_VERSION]

    @pytest.mark.asyncio
    async def test_initialize_twice_is_harmless(self, database):
        assert database.initialized
        assert await database.initialize()

    @pytest.mark.asyncio
    async def test_creates_missing_parent_directory(self, tmp_path):
        db = Database(tmp_path / "nested" / "dir" / "tags.db")

        assert await db.initialize()
        assert (tmp_path / "nested" / "dir" / "tags.db").exists()
        await db.shutdown()

    @pytest.mark.asyncio
    async def test_failure_returns_false(self, tmp_path):
        # a directory cannot be opened as a database file
        target = tmp_path / "not_a_file"
        target.mkdir()
        db = Database(target)

        assert await db.initialize() is False
        assert not db.initialized
        assert not db.connections.is_open

    @pytest.mark.asyncio
    async def test_data_survives_reopen(self, tmp_path):
        path = tmp_path / "tags.db"
        db = Database(path)
        await db.initialize()
        async with db.connections.transaction() as conn:
            await conn.execute("INSERT INTO tags (name, content, creator_user_id) VALUES ('fmt', 'x', 1)")
        await db.shutdown()

        reopened = Database(path)
        await reopened.initialize()
        async with reopened.connections.read() as conn:
            cursor = await conn.execute("SELECT content FROM tags WHERE name = 'fmt'")
            assert (await cursor.fetchone())[0] == "x"
        await reopened.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown_without_initialize(self, tmp_path):
        await Database(tmp_path / "never.db").shutdown()


class TestSchemaConstraints:
    """The schema itself enforces one shared name space and cascades."""

    @pytest.mark.asyncio
    async def test_alias_cannot_take_a_tag_name(self, database):
        async with database.connections.transaction() as conn:
            await conn.execute("INSERT INTO tags (name, content, creator_user_id) VALUES ('fmt', 'x', 1)")

        with pytest.raises(sqlite3.IntegrityError, match=NAME_COLLISION_MESSAGE):
            async with database.connections.transaction() as conn:
                await conn.execute("INSERT INTO tag_aliases (alias, tag_name) VALUES ('fmt', 'fmt')")

    @pytest.mark.asyncio
    async def test_tag_cannot_take_an_alias_name(self, database):
        async with database.connections.transaction() as conn:
            await conn.execute("INSERT INTO tags (name, content, creator_user_id) VALUES ('rustfmt', 'x', 1)")
            await conn.execute("INSERT INTO tag_aliases (alias, tag_name) VALUES ('fmt', 'rustfmt')")

        with pytest.raises(sqlite3.IntegrityError, match=NAME_COLLISION_MESSAGE):
            async with database.connections.transaction() as conn:
                await conn.execute("INSERT INTO tags (name, content, creator_user_id) VALUES ('fmt', 'y', 2)")

    @pytest.mark.asyncio
    async def test_deleting_tag_cascades_to_aliases(self, database):
        async with database.connections.transaction() as conn:
            await conn.execute("INSERT INTO tags (name, content, creator_user_id) VALUES ('rustfmt', 'x', 1)")
            await conn.execute("INSERT INTO tag_aliases (alias, tag_name) VALUES ('fmt', 'rustfmt')")
            await conn.execute("DELETE FROM tags WHERE name = 'rustfmt'")

        async with database.connections.read() as conn:
            cursor = await conn.execute("SELECT COUNT(*) FROM tag_aliases")
            assert (await cursor.fetchone())[0] == 0

    @pytest.mark.asyncio
    async def test_alias_must_point_at_existing_tag(self, database):
        with pytest.raises(sqlite3.IntegrityError):
            async with database.connections.transaction() as conn:
                await conn.execute("INSERT INTO tag_aliases (alias, tag_name) VALUES ('fmt', 'missing')")

    @pytest.mark.asyncio
    async def test_times_used_cannot_decrease(self, database):
        async with database.connections.transaction() as conn:
            await conn.execute(
                "INSERT INTO tags (name, content, creator_user_id, times_used) VALUES ('fmt', 'x', 1, 3)"
            )

        with pytest.raises(sqlite3.IntegrityError):
            async with database.connections.transaction() as conn:
                await conn.execute("UPDATE tags SET times_used = 2 WHERE name = 'fmt'")


class TestConnectionManager:
    """Tests for the shared connection wrapper."""

    @pytest.mark.asyncio
    async def test_transaction_rolls_back_on_error(self, database):
        with pytest.raises(RuntimeError):
            async with database.connections.transaction() as conn:
                await conn.execute("INSERT INTO tags (name, content, creator_user_id) VALUES ('fmt', 'x', 1)")
                raise RuntimeError("abort")

        async with database.connections.read() as conn:
            cursor = await conn.execute("SELECT COUNT(*) FROM tags")
            assert (await cursor.fetchone())[0] == 0

    def test_connection_before_open_raises(self):
        manager = ConnectionManager()

        assert not manager.is_open
        with pytest.raises(RuntimeError):
            manager.connection

    @pytest.mark.asyncio
    async def test_open_twice_keeps_first_connection(self, tmp_path):
        manager = ConnectionManager()
        await manager.open(tmp_path / "a.db")
        first = manager.connection

        await manager.open(tmp_path / "b.db")

        assert manager.connection is first
        await manager.close()
        assert not manager.is_open
