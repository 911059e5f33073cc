"""
Cross-session memory: historical insights and brand guidance.

Planning reads from here for prompt enrichment and finished sessions archive
a short insight back.  Every read is best-effort: a failing backend yields
an empty insight list or the default brand guidance, never an exception.

Provides:
    - MemoryBank: abstract interface
    - SupabaseMemoryBank: ``memory_bank`` / ``brand_settings`` tables
    - InMemoryMemoryBank: process-local list, for local runs and tests
    - tags_for_intent(): relevance tags derived from a campaign intent
"""

import abc
import logging
import re
from typing import List, Optional

from src.database import SupabaseDB
from src.logging.models import LogSource
from src.logging.session_logger import SessionLogger
from src.models import MemoryEntry
from src.utils import truncate

logger = logging.getLogger(__name__)

DEFAULT_BRAND_GUIDANCE = (
    "Default Brand Guidelines: High-end, autonomous, professional, sci-fi aesthetic."
)
BRAND_GUIDANCE_KEY = "brand_dna"
QUERY_LIMIT = 10
INSIGHT_LIMIT = 5

_STOPWORDS = frozenset(
    "a an and the for of to in on with our my your new is are be".split()
)


def tags_for_intent(intent: str, limit: int = 5) -> List[str]:
    """Lower-cased keywords of *intent*, stopwords removed, order kept."""
    tags: List[str] = []
    for word in re.findall(r"[a-zA-Z][a-zA-Z0-9-]{2,}", intent.lower()):
        if word not in _STOPWORDS and word not in tags:
            tags.append(word)
        if len(tags) == limit:
            break
    return tags


class MemoryBank(abc.ABC):
    """Best-effort store of cross-session memory entries."""

    insight_limit: int = INSIGHT_LIMIT

    async def query_insights(self, tags: List[str]) -> List[MemoryEntry]:
        """Newest entries matching any of *tags*; ``[]`` on failure."""
        try:
            entries = await self._query(tags)
        except Exception as exc:
            logger.warning("Memory query failed: %s: %s", type(exc).__name__, exc)
            return []
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries[: self.insight_limit]

    async def get_brand_guidance(self) -> str:
        """Stored brand guidance, or the default text when absent."""
        try:
            guidance = await self._brand_guidance()
        except Exception as exc:
            logger.warning("Brand guidance lookup failed: %s: %s", type(exc).__name__, exc)
            return DEFAULT_BRAND_GUIDANCE
        return guidance or DEFAULT_BRAND_GUIDANCE

    async def save_insight(
        self, entry: MemoryEntry, log: Optional[SessionLogger] = None
    ) -> None:
        """Archive *entry*; announces it on the session log when given one."""
        await self._save(entry)
        if log is not None:
            await log.bind(LogSource.MEMORY).system(
                f"[MEMORY] New {entry.type.value} archived: "
                f"{truncate(entry.content, 50)}"
            )

    @abc.abstractmethod
    async def _query(self, tags: List[str]) -> List[MemoryEntry]: ...

    @abc.abstractmethod
    async def _brand_guidance(self) -> Optional[str]: ...

    @abc.abstractmethod
    async def _save(self, entry: MemoryEntry) -> None: ...


class SupabaseMemoryBank(MemoryBank):
    """Memory bank backed by :class:`SupabaseDB`."""

    def __init__(self, db: SupabaseDB) -> None:
        self.db = db

    async def _query(self, tags: List[str]) -> List[MemoryEntry]:
        return await self.db.query_memory_entries(tags, limit=QUERY_LIMIT)

    async def _brand_guidance(self) -> Optional[str]:
        return await self.db.get_brand_setting(BRAND_GUIDANCE_KEY)

    async def _save(self, entry: MemoryEntry) -> None:
        await self.db.save_memory_entry(entry)


class InMemoryMemoryBank(MemoryBank):
    def __init__(
        self,
        entries: Optional[List[MemoryEntry]] = None,
        brand_guidance: Optional[str] = None,
    ) -> None:
        self.entries: List[MemoryEntry] = list(entries or [])
        self.brand_guidance = brand_guidance

    async def _query(self, tags: List[str]) -> List[MemoryEntry]:
        wanted = set(tags)
        matches = [e for e in self.entries if wanted & set(e.relevance_tags)]
        return matches[:QUERY_LIMIT]

    async def _brand_guidance(self) -> Optional[str]:
        return self.brand_guidance

    async def _save(self, entry: MemoryEntry) -> None:
        self.entries.append(entry)


__all__ = [
    "DEFAULT_BRAND_GUIDANCE",
    "MemoryBank",
    "SupabaseMemoryBank",
    "InMemoryMemoryBank",
    "tags_for_intent",
]
