"""
Data structures for the tag knowledge base.

Rows from the ``tags`` and ``tag_aliases`` tables are turned into these
frozen dataclasses by :class:`ferrocord.repositories.tag_repo.TagRepository`.
Timestamps are ISO-8601 strings in UTC, exactly as stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple


@dataclass(frozen=True, slots=True)
class Tag:
    """A named snippet maintained by the community.

    Attributes:
        name: Normalized, unique name (primary key)
        content: Text payload, stored and returned as-is
        creator_id: Discord user id of the creator, never changes
        last_editor_id: Discord user id of the last editor, None until the first edit
        created_at: Creation timestamp
        last_edited_at: Timestamp of the last content edit, None until the first edit
        times_used: How often the tag has been displayed
        restricted: When True only the creator or an elevated member may mutate it
    """
    name: str
    content: str
    creator_id: int
    last_editor_id: Optional[int]
    created_at: str
    last_edited_at: Optional[str]
    times_used: int
    restricted: bool


@dataclass(frozen=True, slots=True)
class Alias:
    """A secondary name pointing directly at one tag."""
    alias: str
    tag_name: str


@dataclass(frozen=True, slots=True)
class TagSummary:
    """Listing row: enough to render a page of tag names."""
    name: str
    creator_id: int
    times_used: int
    restricted: bool


@dataclass(frozen=True, slots=True)
class Deleted:
    """Outcome of a successful delete.

    Deleting an alias name removes only that alias (``alias_only`` is True).
    Deleting a tag name removes the tag and every alias that pointed at it.
    """
    name: str
    alias_only: bool = False
    aliases_removed: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class TagInfo:
    """A tag with its aliases and its usage rank among all tags."""
    tag: Tag
    aliases: Tuple[str, ...]
    rank: int
    total_tags: int


@dataclass(slots=True)
class ServerTagStats:
    total_tags: int = 0
    total_uses: int = 0
    top_tags: List[TagSummary] = field(default_factory=list)
    top_creators: List[Tuple[int, int]] = field(default_factory=list)
    top_creators_by_uses: List[Tuple[int, int]] = field(default_factory=list)


@dataclass(slots=True)
class MemberTagStats:
    user_id: int
    owned_tags: int = 0
    owned_tag_uses: int = 0
    top_tags: List[TagSummary] = field(default_factory=list)
