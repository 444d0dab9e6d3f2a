"""Persistent, deduplicated history of what the user has researched."""

import logging
import time
import uuid
from typing import Callable, List, Optional

from pydantic import ValidationError

from sift.exceptions import StorageError
from sift.models import ProductContext, ResearchEntry
from sift.storage import HISTORY_KEY, KeyValueStore
from sift.text.normalize import (
    MAX_REQUIREMENTS,
    derive_categories,
    derive_keywords,
    derive_product_name,
    derive_requirements,
)

logger = logging.getLogger(__name__)

MAX_ENTRIES = 50
MAX_AGE_DAYS = 30
MIN_QUERY_LENGTH = 3
DAY_SECONDS = 24 * 60 * 60


class ResearchHistoryStore:
    """
    Most-recent-first collection of :class:`ResearchEntry` kept in the durable store.

    Storage failures never propagate: reads degrade to an empty history and
    writes are dropped with a log line, so capturing research can't crash
    because of a broken store.
    """

    def __init__(
        self,
        store: KeyValueStore,
        max_entries: int = MAX_ENTRIES,
        max_age_days: int = MAX_AGE_DAYS,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.max_entries = max_entries
        self.max_age_days = max_age_days
        self.clock = clock

    def _load(self) -> List[ResearchEntry]:
        try:
            raw = self.store.get(HISTORY_KEY)
        except StorageError as e:
            logger.error(f"Failed to load research history: {e}")
            return []
        if not isinstance(raw, list):
            return []

        entries: List[ResearchEntry] = []
        for item in raw:
            try:
                entries.append(ResearchEntry.model_validate(item))
            except ValidationError:
                logger.warning("Skipping malformed research history entry")
        return entries

    def _save(self, entries: List[ResearchEntry]) -> bool:
        try:
            self.store.set(HISTORY_KEY, [entry.to_wire() for entry in entries])
        except StorageError as e:
            logger.error(f"Failed to save research history: {e}")
            return False
        return True

    def _new_id(self, context: ProductContext, now: float) -> str:
        if context.conversation_id:
            return context.conversation_id
        return f"research-{int(now * 1000)}-{uuid.uuid4().hex[:6]}"

    def upsert(self, context: ProductContext) -> None:
        """Record a research capture, updating the matching entry when one exists."""
        query = context.query.strip()
        if len(query) < MIN_QUERY_LENGTH:
            return

        requirements = list(dict.fromkeys(context.requirements))[:MAX_REQUIREMENTS] or derive_requirements(query)
        mentioned = " ".join(context.mentioned_products or [])
        categories = derive_categories(" ".join([query, *requirements, mentioned]))
        keywords = derive_keywords(f"{query} {mentioned}")
        if not categories and not keywords:
            return

        now = self.clock()
        entries = self._load()
        lowered = query.lower()
        index = next(
            (
                i
                for i, entry in enumerate(entries)
                if (context.conversation_id and entry.conversation_id == context.conversation_id)
                or entry.query.lower() == lowered
            ),
            None,
        )

        if index is not None:
            existing = entries.pop(index)
            entry = existing.model_copy(
                update={
                    "requirements": requirements,
                    "categories": categories,
                    "keywords": keywords,
                    "last_used": now,
                }
            )
            logger.debug(f"Updated research entry {entry.id}")
        else:
            entry = ResearchEntry(
                id=self._new_id(context, now),
                query=query,
                product_name=derive_product_name(query),
                requirements=requirements,
                categories=categories,
                keywords=keywords,
                timestamp=now,
                last_used=now,
                conversation_id=context.conversation_id,
            )
            logger.info(f"Added research entry {entry.id}: {entry.product_name}")

        entries.insert(0, entry)
        self._save(entries[: self.max_entries])

    def list(self) -> List[ResearchEntry]:
        return self._load()

    def recent(self, limit: int = 8) -> List[ResearchEntry]:
        return self._load()[:limit]

    def get(self, entry_id: str) -> Optional[ResearchEntry]:
        return next((e for e in self._load() if e.id == entry_id), None)

    def touch(self, entry_id: str) -> Optional[ResearchEntry]:
        """Advance ``last_used`` on a match or explicit reuse."""
        entries = self._load()
        for i, entry in enumerate(entries):
            if entry.id == entry_id:
                entries[i] = entry.model_copy(update={"last_used": self.clock()})
                self._save(entries)
                return entries[i]
        return None

    def delete(self, entry_id: str) -> None:
        entries = self._load()
        remaining = [e for e in entries if e.id != entry_id]
        if len(remaining) != len(entries):
            self._save(remaining)

    def cleanup(self) -> int:
        """Drop entries unused for longer than ``max_age_days``. Returns how many were removed."""
        entries = self._load()
        cutoff = self.clock() - self.max_age_days * DAY_SECONDS
        kept = [e for e in entries if e.last_used >= cutoff]
        removed = len(entries) - len(kept)
        if removed and self._save(kept):
            logger.info(f"Removed {removed} stale research entries")
        return removed
