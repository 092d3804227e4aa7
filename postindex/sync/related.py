"""
Related posts computation.

For each post a search query is built from its query fields and sent to the
remote store; the hits, minus the post itself and anything scoring below the
threshold, become its related posts. Results are cached twice: in memory for
the lifetime of the engine, and on disk keyed by the fingerprint of the
query fields, so an unchanged post costs no remote call on the next build.

Searches that miss both caches run in fixed-size batches. A batch is fully
awaited before the next one starts, with a fixed pause in between, so no
more than ``concurrency`` searches are ever in flight against the store.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from ..config import get_logger
from . import fingerprint
from .cache import RelatedCache
from .client import RemoteStore, SearchHit
from .config import RelatedSettings
from .error_tracker import RemoteStoreError, StatePersistenceError, TransientRemoteError
from .items import Item, RelatedPost, strip_html
from .resilience import RetryPolicy, with_retry_async

logger = get_logger(__name__)

EXCERPT_QUERY_LENGTH = 200


@dataclass
class RelatedSummary:
    """Result of a related posts injection."""
    total: int = 0
    memory_hits: int = 0
    cache_hits: int = 0
    fetched: int = 0
    failed: int = 0
    with_related: int = 0
    cache_saved: bool = True


@dataclass
class _PendingFetch:
    item: Item
    fingerprint: str
    query: str


class RelatedEngine:
    """
    Computes related posts with caching, bounded concurrency and retries.

    Args:
        settings: Related posts settings
        store: Remote store used for searches
        cache: Persisted related cache; loaded here, once
        sleep: Coroutine used for inter-batch pauses and retry backoff
    """

    def __init__(self, settings: RelatedSettings, store: RemoteStore, cache: RelatedCache,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.settings = settings
        self.store = store
        self.cache = cache.load()
        self.sleep = sleep
        self.memory: Dict[str, List[RelatedPost]] = {}
        self.retry_policy = RetryPolicy.from_retries(
            settings.retries, settings.retry_base_delay, (TransientRemoteError, asyncio.TimeoutError)
        )

    def build_query(self, item: Item) -> str:
        """Search query for an item, built from its query fields in order."""
        parts = []
        for name in self.settings.query_fields:
            if name == 'title' and item.title:
                parts.append(item.title)
            elif name == 'excerpt' and item.text('excerpt'):
                parts.append(strip_html(item.text('excerpt'))[:EXCERPT_QUERY_LENGTH])
            elif name == 'tags' and item.names('tags'):
                parts.append(' '.join(item.names('tags')))
        return ' '.join(parts).strip()

    def query_fingerprint(self, item: Item) -> str:
        return fingerprint.compute(item, self.settings.query_fields)

    def _filter_hits(self, item: Item, hits: List[SearchHit]) -> List[RelatedPost]:
        related = []
        for hit in hits:
            if hit.id == item.id:
                continue
            # A hit without a score is never dropped on score
            if hit.score is not None and hit.score < self.settings.min_score:
                continue
            related.append(RelatedPost(title=hit.title, url=hit.url, excerpt=hit.excerpt, score=hit.score))
        return related[:self.settings.limit]

    async def _search(self, query: str) -> List[SearchHit]:
        return await asyncio.wait_for(
            self.store.search(query, self.settings.limit + 1),
            timeout=self.settings.timeout
        )

    async def fetch_one(self, item: Item, query: str) -> List[RelatedPost]:
        """
        Fetch related posts for one item from the remote store.

        Transient failures are retried; a search that still fails yields an
        empty list.
        """
        related = await self._fetch(item, query)
        return related if related is not None else []

    async def _fetch(self, item: Item, query: str) -> Optional[List[RelatedPost]]:
        # None marks a failed search, which must not be cached
        try:
            hits = await with_retry_async(lambda: self._search(query), policy=self.retry_policy, sleep=self.sleep)
            return self._filter_hits(item, hits)
        except asyncio.TimeoutError:
            logger.warning(f"Related posts search timed out for \"{item.title or item.id}\"")
            return None
        except RemoteStoreError as e:
            logger.warning(f"Failed to get related posts for \"{item.title or item.id}\": {e.message}")
            return None
        except Exception as e:
            logger.warning(f"Unexpected error getting related posts for \"{item.title or item.id}\": {e}", exc_info=True)
            return None

    async def get_related(self, item: Item) -> List[RelatedPost]:
        """Related posts for a single item, through both cache layers."""
        if item.id in self.memory:
            return self.memory[item.id]

        query = self.build_query(item)
        if not query:
            return []

        item_fingerprint = self.query_fingerprint(item)
        cached = self.cache.lookup(item.id, item_fingerprint)
        if cached is not None:
            self.memory[item.id] = cached
            return cached

        related = await self._fetch(item, query)
        if related is None:
            return []
        self.memory[item.id] = related
        self.cache.put(item.id, item_fingerprint, related)
        return related

    async def _fetch_and_store(self, pending: _PendingFetch, summary: RelatedSummary) -> None:
        related = await self._fetch(pending.item, pending.query)
        if related is None:
            summary.failed += 1
            pending.item.related = []
            return
        summary.fetched += 1
        pending.item.related = related
        self.memory[pending.item.id] = related
        self.cache.put(pending.item.id, pending.fingerprint, related)

    async def inject_related(self, items: Optional[Iterable[Item]]) -> RelatedSummary:
        """
        Attach related posts to every item.

        Args:
            items: The current post collection

        Returns:
            RelatedSummary with cache and fetch counts
        """
        items = list(items or [])
        summary = RelatedSummary(total=len(items))
        if not items:
            logger.info("No posts to compute related posts for")
            return summary

        logger.info("Fetching related posts...")

        pending: List[_PendingFetch] = []
        for item in items:
            if item.id in self.memory:
                item.related = self.memory[item.id]
                summary.memory_hits += 1
                continue

            query = self.build_query(item)
            if not query:
                item.related = []
                continue

            item_fingerprint = self.query_fingerprint(item)
            cached = self.cache.lookup(item.id, item_fingerprint)
            if cached is not None:
                item.related = cached
                self.memory[item.id] = cached
                summary.cache_hits += 1
                continue

            pending.append(_PendingFetch(item, item_fingerprint, query))

        batch_size = self.settings.concurrency
        batches = [pending[i:i + batch_size] for i in range(0, len(pending), batch_size)]
        for index, batch in enumerate(batches):
            results = await asyncio.gather(*(self._fetch_and_store(p, summary) for p in batch), return_exceptions=True)
            for p, result in zip(batch, results):
                if isinstance(result, Exception):
                    logger.warning(f"Failed to store related posts for \"{p.item.title or p.item.id}\": {result}")
                    summary.failed += 1
                    p.item.related = []
            if index < len(batches) - 1 and self.settings.delay > 0:
                await self.sleep(self.settings.delay)

        if pending:
            summary.cache_saved = self.save_cache()

        summary.with_related = sum(1 for item in items if item.related)
        logger.info(
            f"Injected related posts for {summary.with_related} posts "
            f"({summary.cache_hits} cached, {summary.fetched} fetched, {summary.failed} failed)"
        )
        return summary

    def save_cache(self) -> bool:
        """Persist the related cache. A failure is logged, never raised."""
        try:
            self.cache.save()
        except StatePersistenceError as e:
            logger.warning(f"Failed to save related posts cache: {e.message}")
            return False
        return True

    def clear_cache(self) -> None:
        """Forget in-memory results; the persisted cache is kept."""
        self.memory.clear()

    def clear_all_caches(self) -> None:
        """Forget in-memory results and delete the persisted cache."""
        self.memory.clear()
        self.cache.clear()
