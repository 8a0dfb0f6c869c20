"""Repository layer for tag knowledge-base access."""
from ferrocord.repositories.tag_repo import TagRepository

__all__ = [
    "TagRepository",
]
