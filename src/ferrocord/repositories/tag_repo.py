"""
Persistent storage for tags and their aliases.

Every public method normalizes the names it receives (see
:func:`ferrocord.util.text.normalize_name`) and runs as one self-contained
unit of work on the shared :class:`ConnectionManager`. Domain failures are
returned as :class:`ErrorKind` values; only unexpected database errors raise.

Name uniqueness across tags and aliases is enforced by the schema (primary
keys plus the collision triggers), so concurrent ``create`` calls for the
same name end in exactly one success and one ``NAME_COLLISION``.

Aliases always point directly at a tag. Aliasing an alias is rejected with
``ALIAS_OF_ALIAS`` instead of building chains.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import List, Optional, Tuple, Union

import aiosqlite

from ferrocord.database.db_connection import ConnectionManager
from ferrocord.datatypes.error_datatypes import ErrorKind
from ferrocord.datatypes.tag_datatypes import (
    Alias,
    Deleted,
    MemberTagStats,
    ServerTagStats,
    Tag,
    TagInfo,
    TagSummary,
)
from ferrocord.util.logger import get_logger
from ferrocord.util.text import normalize_name

logger = get_logger("tag_repository")

_TAG_COLUMNS = (
    "name, content, creator_user_id, last_editor_user_id, "
    "creation_date, last_edit_date, times_used, restricted"
)
_SUMMARY_COLUMNS = "name, creator_user_id, times_used, restricted"


class _Abort(Exception):
    """Raised inside a transaction to roll it back and report ``kind``."""

    def __init__(self, kind: ErrorKind) -> None:
        super().__init__(kind.value)
        self.kind = kind


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _row_to_tag(row) -> Tag:
    return Tag(
        name=row["name"],
        content=row["content"],
        creator_id=int(row["creator_user_id"]),
        last_editor_id=int(row["last_editor_user_id"]) if row["last_editor_user_id"] is not None else None,
        created_at=str(row["creation_date"]),
        last_edited_at=str(row["last_edit_date"]) if row["last_edit_date"] is not None else None,
        times_used=int(row["times_used"]),
        restricted=bool(row["restricted"]),
    )


def _row_to_summary(row) -> TagSummary:
    return TagSummary(
        name=row["name"],
        creator_id=int(row["creator_user_id"]),
        times_used=int(row["times_used"]),
        restricted=bool(row["restricted"]),
    )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# ------------------------------------------------------------------
# Row-level helpers (callers hold the connection lock)
# ------------------------------------------------------------------

async def _fetch_tag(conn: aiosqlite.Connection, name: str) -> Optional[Tag]:
    cursor = await conn.execute(f"SELECT {_TAG_COLUMNS} FROM tags WHERE name = ?", (name,))
    row = await cursor.fetchone()
    return _row_to_tag(row) if row else None


async def _fetch_alias_target(conn: aiosqlite.Connection, alias: str) -> Optional[str]:
    cursor = await conn.execute("SELECT tag_name FROM tag_aliases WHERE alias = ?", (alias,))
    row = await cursor.fetchone()
    return row["tag_name"] if row else None


async def _resolve(conn: aiosqlite.Connection, key: str) -> Optional[Tag]:
    """Tag table first, then one hop through the alias table."""
    tag = await _fetch_tag(conn, key)
    if tag is not None:
        return tag
    target = await _fetch_alias_target(conn, key)
    if target is None:
        return None
    return await _fetch_tag(conn, target)


async def _fetch_aliases(conn: aiosqlite.Connection, tag_name: str) -> List[str]:
    cursor = await conn.execute(
        "SELECT alias FROM tag_aliases WHERE tag_name = ? ORDER BY alias", (tag_name,)
    )
    return [row["alias"] for row in await cursor.fetchall()]


async def _scalar(conn: aiosqlite.Connection, sql: str, params: tuple = ()) -> int:
    cursor = await conn.execute(sql, params)
    row = await cursor.fetchone()
    return int(row[0]) if row and row[0] is not None else 0


class TagRepository:
    """Transactional CRUD and alias resolution over the tag knowledge base."""

    def __init__(self, connections: ConnectionManager) -> None:
        self._connections = connections

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def resolve(self, key: str) -> Union[Tag, ErrorKind]:
        """Return the tag named ``key`` or aliased by ``key``, else ``NOT_FOUND``."""
        name = normalize_name(key)
        if not name:
            return ErrorKind.NOT_FOUND

        async with self._connections.read() as conn:
            tag = await _resolve(conn, name)
        return tag if tag is not None else ErrorKind.NOT_FOUND

    async def list(
        self,
        prefix: Optional[str] = None,
        limit: int = 30,
        offset: int = 0,
        creator_id: Optional[int] = None,
    ) -> List[TagSummary]:
        """Return tag summaries ordered by name for stable pagination.

        Args:
            prefix: Only names starting with this (normalized) prefix
            limit: Page size; non-positive limits return nothing
            offset: Rows to skip
            creator_id: Only tags created by this user
        """
        if limit <= 0:
            return []

        where, params = self._list_filter(prefix, creator_id)
        async with self._connections.read() as conn:
            cursor = await conn.execute(
                f"SELECT {_SUMMARY_COLUMNS} FROM tags{where} ORDER BY name LIMIT ? OFFSET ?",
                (*params, limit, max(0, offset)),
            )
            rows = await cursor.fetchall()
        return [_row_to_summary(row) for row in rows]

    async def count(self, prefix: Optional[str] = None, creator_id: Optional[int] = None) -> int:
        """Number of tags ``list`` would page through with the same filters."""
        where, params = self._list_filter(prefix, creator_id)
        async with self._connections.read() as conn:
            return await _scalar(conn, f"SELECT COUNT(*) FROM tags{where}", params)

    @staticmethod
    def _list_filter(prefix: Optional[str], creator_id: Optional[int]) -> Tuple[str, tuple]:
        clauses: List[str] = []
        params: List[object] = []
        normalized = normalize_name(prefix)
        if normalized:
            clauses.append("name LIKE ? ESCAPE '\\'")
            params.append(_escape_like(normalized) + "%")
        if creator_id is not None:
            clauses.append("creator_user_id = ?")
            params.append(creator_id)
        where = (" WHERE " + " AND ".join(clauses)) if clauses else ""
        return where, tuple(params)

    async def aliases_of(self, key: str) -> Union[List[str], ErrorKind]:
        """Return every alias of the tag ``key`` resolves to."""
        name = normalize_name(key)
        async with self._connections.read() as conn:
            tag = await _resolve(conn, name) if name else None
            if tag is None:
                return ErrorKind.NOT_FOUND
            return await _fetch_aliases(conn, tag.name)

    async def info(self, key: str) -> Union[TagInfo, ErrorKind]:
        """Return the tag with its aliases and its usage rank (1 = most used, ties by name)."""
        name = normalize_name(key)
        async with self._connections.read() as conn:
            tag = await _resolve(conn, name) if name else None
            if tag is None:
                return ErrorKind.NOT_FOUND
            aliases = await _fetch_aliases(conn, tag.name)
            ahead = await _scalar(
                conn,
                "SELECT COUNT(*) FROM tags WHERE times_used > ? OR (times_used = ? AND name < ?)",
                (tag.times_used, tag.times_used, tag.name),
            )
            total = await _scalar(conn, "SELECT COUNT(*) FROM tags")
        return TagInfo(tag=tag, aliases=tuple(aliases), rank=ahead + 1, total_tags=total)

    async def server_stats(self) -> ServerTagStats:
        async with self._connections.read() as conn:
            stats = ServerTagStats(
                total_tags=await _scalar(conn, "SELECT COUNT(*) FROM tags"),
                total_uses=await _scalar(conn, "SELECT SUM(times_used) FROM tags"),
            )
            cursor = await conn.execute(
                f"SELECT {_SUMMARY_COLUMNS} FROM tags ORDER BY times_used DESC, name LIMIT 3"
            )
            stats.top_tags = [_row_to_summary(row) for row in await cursor.fetchall()]

            cursor = await conn.execute(
                "SELECT creator_user_id, COUNT(*) FROM tags GROUP BY creator_user_id "
                "ORDER BY COUNT(*) DESC, creator_user_id LIMIT 3"
            )
            stats.top_creators = [(int(row[0]), int(row[1])) for row in await cursor.fetchall()]

            cursor = await conn.execute(
                "SELECT creator_user_id, SUM(times_used) FROM tags GROUP BY creator_user_id "
                "ORDER BY SUM(times_used) DESC, creator_user_id LIMIT 3"
            )
            stats.top_creators_by_uses = [(int(row[0]), int(row[1])) for row in await cursor.fetchall()]
        return stats

    async def member_stats(self, user_id: int) -> MemberTagStats:
        async with self._connections.read() as conn:
            stats = MemberTagStats(
                user_id=user_id,
                owned_tags=await _scalar(conn, "SELECT COUNT(*) FROM tags WHERE creator_user_id = ?", (user_id,)),
                owned_tag_uses=await _scalar(
                    conn, "SELECT SUM(times_used) FROM tags WHERE creator_user_id = ?", (user_id,)
                ),
            )
            cursor = await conn.execute(
                f"SELECT {_SUMMARY_COLUMNS} FROM tags WHERE creator_user_id = ? "
                "ORDER BY times_used DESC, name LIMIT 3",
                (user_id,),
            )
            stats.top_tags = [_row_to_summary(row) for row in await cursor.fetchall()]
        return stats

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, name: str, content: str, creator_id: int) -> Union[Tag, ErrorKind]:
        """Create a tag; ``NAME_COLLISION`` if the name is taken by a tag or an alias."""
        key = normalize_name(name)
        if not key or not content or not content.strip():
            return ErrorKind.INVALID_ARGUMENT

        try:
            async with self._connections.transaction() as conn:
                try:
                    await conn.execute(
                        "INSERT INTO tags (name, content, creator_user_id, creation_date) VALUES (?, ?, ?, ?)",
                        (key, content, creator_id, _now()),
                    )
                except sqlite3.IntegrityError:
                    raise _Abort(ErrorKind.NAME_COLLISION)
                tag = await _fetch_tag(conn, key)
        except _Abort as abort:
            logger.debug("[TAG REPO] create(%r) rejected: %s", key, abort.kind)
            return abort.kind

        logger.info("[TAG REPO] Tag %r created by %s", key, creator_id)
        return tag

    async def edit(self, name: str, content: str, editor_id: int) -> Union[Tag, ErrorKind]:
        """Replace the content of the tag ``name`` resolves to.

        Content, last editor and edit timestamp change together. Permission
        to edit is decided by the permission gate before this is called.
        """
        key = normalize_name(name)
        if not content or not content.strip():
            return ErrorKind.INVALID_ARGUMENT

        try:
            async with self._connections.transaction() as conn:
                tag = await _resolve(conn, key) if key else None
                if tag is None:
                    raise _Abort(ErrorKind.NOT_FOUND)
                await conn.execute(
                    "UPDATE tags SET content = ?, last_editor_user_id = ?, last_edit_date = ? WHERE name = ?",
                    (content, editor_id, _now(), tag.name),
                )
                updated = await _fetch_tag(conn, tag.name)
        except _Abort as abort:
            return abort.kind

        logger.info("[TAG REPO] Tag %r edited by %s", updated.name, editor_id)
        return updated

    async def delete(self, name: str) -> Union[Deleted, ErrorKind]:
        """Delete an alias, or a tag together with all of its aliases.

        If ``name`` is an alias only that alias is removed and the tag
        survives. If it is a tag, the tag row and (through the cascading
        foreign key) every alias pointing at it disappear in one transaction.
        """
        key = normalize_name(name)
        if not key:
            return ErrorKind.NOT_FOUND

        try:
            async with self._connections.transaction() as conn:
                cursor = await conn.execute("DELETE FROM tag_aliases WHERE alias = ?", (key,))
                if cursor.rowcount == 1:
                    result = Deleted(name=key, alias_only=True)
                else:
                    aliases = await _fetch_aliases(conn, key)
                    cursor = await conn.execute("DELETE FROM tags WHERE name = ?", (key,))
                    if cursor.rowcount != 1:
                        raise _Abort(ErrorKind.NOT_FOUND)
                    result = Deleted(name=key, alias_only=False, aliases_removed=tuple(aliases))
        except _Abort as abort:
            return abort.kind

        logger.info(
            "[TAG REPO] Deleted %s %r%s",
            "alias" if result.alias_only else "tag",
            key,
            f" and {len(result.aliases_removed)} alias(es)" if result.aliases_removed else "",
        )
        return result

    async def add_alias(self, alias: str, target_name: str) -> Union[Alias, ErrorKind]:
        """Point ``alias`` at the tag ``target_name``.

        Returns:
            ``NAME_COLLISION`` if the alias string is already a tag or alias,
            ``ALIAS_OF_ALIAS`` if ``target_name`` is itself an alias,
            ``NOT_FOUND`` if ``target_name`` does not exist.
        """
        alias_key = normalize_name(alias)
        target_key = normalize_name(target_name)
        if not alias_key or not target_key:
            return ErrorKind.INVALID_ARGUMENT

        try:
            async with self._connections.transaction() as conn:
                if await _fetch_tag(conn, target_key) is None:
                    if await _fetch_alias_target(conn, target_key) is not None:
                        raise _Abort(ErrorKind.ALIAS_OF_ALIAS)
                    raise _Abort(ErrorKind.NOT_FOUND)
                try:
                    await conn.execute(
                        "INSERT INTO tag_aliases (alias, tag_name) VALUES (?, ?)",
                        (alias_key, target_key),
                    )
                except sqlite3.IntegrityError:
                    raise _Abort(ErrorKind.NAME_COLLISION)
        except _Abort as abort:
            logger.debug("[TAG REPO] add_alias(%r -> %r) rejected: %s", alias_key, target_key, abort.kind)
            return abort.kind

        logger.info("[TAG REPO] Alias %r -> %r created", alias_key, target_key)
        return Alias(alias=alias_key, tag_name=target_key)

    async def set_restricted(self, name: str, restricted: bool = True) -> Union[Tag, ErrorKind]:
        """Mark the tag ``name`` resolves to as restricted (or lift the restriction)."""
        key = normalize_name(name)
        try:
            async with self._connections.transaction() as conn:
                tag = await _resolve(conn, key) if key else None
                if tag is None:
                    raise _Abort(ErrorKind.NOT_FOUND)
                await conn.execute(
                    "UPDATE tags SET restricted = ? WHERE name = ?", (1 if restricted else 0, tag.name)
                )
                updated = await _fetch_tag(conn, tag.name)
        except _Abort as abort:
            return abort.kind

        logger.info("[TAG REPO] Tag %r restricted=%s", updated.name, restricted)
        return updated

    async def rename(self, old_name: str, new_name: str, editor_id: int) -> Union[Tag, ErrorKind]:
        """Make ``new_name`` the canonical name and keep ``old_name`` as its alias.

        Content, creator, creation date, usage count and restriction carry
        over. Existing aliases of the old tag are re-pointed to the new one.
        ``new_name`` may be one of the tag's own aliases, which promotes that
        alias to canonical.

        Returns:
            ``NOT_FOUND`` if ``old_name`` is not a tag, ``ALIAS_OF_ALIAS`` if
            ``old_name`` is an alias, ``NAME_COLLISION`` if ``new_name`` is
            used by anything other than an alias of this tag.
        """
        old_key = normalize_name(old_name)
        new_key = normalize_name(new_name)
        if not old_key or not new_key:
            return ErrorKind.INVALID_ARGUMENT

        try:
            async with self._connections.transaction() as conn:
                tag = await _fetch_tag(conn, old_key)
                if tag is None:
                    if await _fetch_alias_target(conn, old_key) is not None:
                        raise _Abort(ErrorKind.ALIAS_OF_ALIAS)
                    raise _Abort(ErrorKind.NOT_FOUND)
                if new_key == old_key:
                    raise _Abort(ErrorKind.NAME_COLLISION)

                new_target = await _fetch_alias_target(conn, new_key)
                if new_target == old_key:
                    await conn.execute("DELETE FROM tag_aliases WHERE alias = ?", (new_key,))

                try:
                    await conn.execute(
                        f"INSERT INTO tags ({_TAG_COLUMNS}) "
                        "SELECT ?, content, creator_user_id, ?, creation_date, ?, times_used, restricted "
                        "FROM tags WHERE name = ?",
                        (new_key, editor_id, _now(), old_key),
                    )
                except sqlite3.IntegrityError:
                    raise _Abort(ErrorKind.NAME_COLLISION)

                await conn.execute("UPDATE tag_aliases SET tag_name = ? WHERE tag_name = ?", (new_key, old_key))
                await conn.execute("DELETE FROM tags WHERE name = ?", (old_key,))
                await conn.execute("INSERT INTO tag_aliases (alias, tag_name) VALUES (?, ?)", (old_key, new_key))
                renamed = await _fetch_tag(conn, new_key)
        except _Abort as abort:
            return abort.kind

        logger.info("[TAG REPO] Tag %r renamed to %r by %s", old_key, new_key, editor_id)
        return renamed

    async def increment_usage(self, name: str) -> None:
        """Bump ``times_used`` of the tag ``name`` resolves to.

        Never raises: a failed counter bump is logged and dropped so it can
        not fail the lookup it accompanies.
        """
        key = normalize_name(name)
        if not key:
            return
        try:
            async with self._connections.transaction() as conn:
                tag = await _resolve(conn, key)
                if tag is None:
                    logger.debug("[TAG REPO] increment_usage(%r): tag vanished", key)
                    return
                await conn.execute("UPDATE tags SET times_used = times_used + 1 WHERE name = ?", (tag.name,))
        except Exception:
            logger.exception("[TAG REPO] Failed to increment usage of %r", key)
