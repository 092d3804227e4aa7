"""
Persisted cache of related posts.

Entries are keyed by post id and carry the fingerprint of the query fields
they were computed from. An entry is only served while that fingerprint
still matches the post, so editing a query field invalidates it without any
explicit bookkeeping. Entries for posts that disappear are left in place.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..config import get_logger, RELATED_CACHE_FILENAME, STATE_SCHEMA_VERSION
from .error_tracker import StatePersistenceError
from .items import RelatedPost
from .state_manager import read_json_file, write_json_atomic


@dataclass
class RelatedCacheEntry:
    """Represents a cached related posts list."""
    fingerprint: str
    related: List[RelatedPost] = field(default_factory=list)
    fetched_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fingerprint": self.fingerprint,
            "related": [r.to_dict() for r in self.related],
            "fetched_at": self.fetched_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional['RelatedCacheEntry']:
        fingerprint = data.get("fingerprint")
        related = data.get("related")
        if not isinstance(fingerprint, str) or not isinstance(related, list):
            return None
        return cls(
            fingerprint=fingerprint,
            related=[RelatedPost.from_dict(r) for r in related if isinstance(r, dict)],
            fetched_at=str(data.get("fetched_at") or ""),
        )


class RelatedCache:
    """
    File-backed related posts cache.

    Provides:
    - Fingerprint-validated lookups
    - Whole-file atomic persistence
    - Hit/miss statistics for the current process
    """

    def __init__(self, state_dir: Union[str, Path] = ".", filename: str = RELATED_CACHE_FILENAME):
        self.state_dir = Path(state_dir)
        self.filepath = self.state_dir / filename
        self.version = STATE_SCHEMA_VERSION
        self.entries: Dict[str, RelatedCacheEntry] = {}
        self.hits = 0
        self.misses = 0

        # Setup logging
        self.logger = get_logger(__name__)

    def load(self) -> 'RelatedCache':
        """Load cache entries. A missing or corrupt file yields an empty cache."""
        self.entries = {}
        data = read_json_file(self.filepath)
        if data is None:
            return self
        raw_entries = data.get("entries")
        if not isinstance(raw_entries, dict):
            self.logger.warning(f"Ignoring related cache without entries mapping: {self.filepath}")
            return self
        for item_id, raw in raw_entries.items():
            entry = RelatedCacheEntry.from_dict(raw) if isinstance(raw, dict) else None
            if entry is not None:
                self.entries[item_id] = entry
        self.logger.debug(f"Loaded {len(self.entries)} related cache entries from {self.filepath}")
        return self

    def lookup(self, item_id: str, fingerprint: str) -> Optional[List[RelatedPost]]:
        """
        Get cached related posts for an item.

        Args:
            item_id: Post identifier
            fingerprint: Fingerprint of the post's current query fields

        Returns:
            The cached list if an entry exists for this fingerprint, None otherwise
        """
        entry = self.entries.get(item_id)
        if entry is None or entry.fingerprint != fingerprint:
            self.misses += 1
            return None
        self.hits += 1
        return list(entry.related)

    def put(self, item_id: str, fingerprint: str, related: List[RelatedPost]) -> None:
        self.entries[item_id] = RelatedCacheEntry(
            fingerprint=fingerprint,
            related=list(related),
            fetched_at=datetime.now(timezone.utc).isoformat(),
        )

    def save(self) -> None:
        data = {
            "version": self.version,
            "entries": {item_id: entry.to_dict() for item_id, entry in self.entries.items()},
        }
        write_json_atomic(self.filepath, data)

    def clear(self) -> None:
        """Drop every entry and delete the cache file."""
        self.entries = {}
        try:
            self.filepath.unlink(missing_ok=True)
        except OSError as e:
            raise StatePersistenceError(f"Failed to delete {self.filepath}: {e}")
        self.logger.info(f"Cleared related cache {self.filepath}")

    def get_cache_statistics(self) -> Dict[str, Any]:
        """Get cache statistics."""
        size = self.filepath.stat().st_size if self.filepath.exists() else 0
        lookups = self.hits + self.misses
        return {
            "entries": len(self.entries),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": (self.hits / lookups * 100) if lookups > 0 else 0,
            "cache_size_kb": size / 1024,
        }

    def __len__(self) -> int:
        return len(self.entries)
