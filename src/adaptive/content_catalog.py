"""
Content catalog collaborator.

The planner only needs two queries from whatever owns the curriculum:
- due_items(user_id, now): content ids the learner should review
- new_item_candidates(user_id, limit): never-reviewed content ids in curriculum order

Ordering and filtering policy belong to the catalog; the planner applies
its own truncation and tie-break rules on top.
"""
from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Protocol

from src.delivery.profile_store import ProfileStore


class ContentCatalog(Protocol):
    async def due_items(self, user_id: str, now: datetime) -> list[str]: ...

    async def new_item_candidates(self, user_id: str, limit: int) -> list[str]: ...


class InMemoryContentCatalog:
    """
    Curriculum held in memory, answering from ProfileStore snapshots.

    Args:
        curriculum: Content ids in teaching order
        profiles: Store used to tell reviewed content from new content
    """

    def __init__(self, curriculum: Iterable[str], profiles: ProfileStore):
        self.curriculum = list(dict.fromkeys(curriculum))
        self.profiles = profiles

    @classmethod
    def from_file(cls, path: Path, profiles: ProfileStore) -> InMemoryContentCatalog:
        """Load a JSON list of content ids (or objects with an ``id`` key)."""
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        ids = [entry["id"] if isinstance(entry, dict) else str(entry) for entry in data]
        return cls(ids, profiles)

    def _known(self, user_id: str) -> dict:
        if user_id not in self.profiles:
            return {}
        return self.profiles.snapshot(user_id).memory_items

    async def due_items(self, user_id: str, now: datetime) -> list[str]:
        return [
            content_id
            for content_id, item in self._known(user_id).items()
            if item.is_due(now)
        ]

    async def new_item_candidates(self, user_id: str, limit: int) -> list[str]:
        if limit <= 0:
            return []
        known = self._known(user_id)
        return [content_id for content_id in self.curriculum if content_id not in known][:limit]
