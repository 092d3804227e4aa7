"""
Incremental sync of posts into the remote document store.

A pass compares every current post's fingerprint against the persisted sync
state, upserts the new and changed posts, deletes the documents of posts
that are gone, and saves the state once at the end. Failures on a single
post are reported and leave that post's state untouched, so the next pass
retries it; they never abort the pass.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from ..config import get_logger
from . import fingerprint
from .config import SyncSettings
from .client import RemoteStore
from .error_tracker import (
    ErrorTracker, ErrorSeverity, RemoteStoreError, StatePersistenceError, SyncError, TransientRemoteError
)
from .items import Item, strip_html
from .resilience import RetryPolicy, with_retry
from .state_manager import StateStore, SyncRecord

logger = get_logger(__name__)


@dataclass
class SyncSummary:
    """Result of a sync pass."""
    added: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0
    failed: int = 0
    state_saved: bool = False
    added_ids: List[str] = field(default_factory=list)
    updated_ids: List[str] = field(default_factory=list)
    deleted_ids: List[str] = field(default_factory=list)
    error_tracker: ErrorTracker = field(default_factory=ErrorTracker)

    @property
    def errors(self) -> List[SyncError]:
        return self.error_tracker.errors

    def counts(self) -> Dict[str, int]:
        return {
            "added": self.added,
            "updated": self.updated,
            "deleted": self.deleted,
            "unchanged": self.unchanged,
        }


@dataclass
class _PendingUpsert:
    item: Item
    fingerprint: str
    document: Dict[str, Any]


class SyncEngine:
    """
    Reconciles the current posts with the remote store.

    Args:
        settings: Sync settings (fields, retries)
        store: Remote document store
        state: Persisted sync state; loaded here, once
        sleep: Used for retry backoff
    """

    def __init__(self, settings: SyncSettings, store: RemoteStore, state: StateStore,
                 sleep: Callable[[float], None] = time.sleep):
        self.settings = settings
        self.store = store
        self.state = state.load()
        self.sleep = sleep
        self.retry_policy = RetryPolicy.from_retries(
            settings.retries, settings.retry_base_delay, (TransientRemoteError,)
        )

    def build_document(self, item: Item) -> Dict[str, Any]:
        """Document sent to the remote store for an item."""
        fields = self.settings.fields
        doc: Dict[str, Any] = {
            'title': item.title,
            'url': item.permalink,
            'date': item.text('date') or None,
            'updated': item.text('updated') or None,
        }
        if 'content' in fields:
            doc['content'] = strip_html(item.text('content'))
        if 'excerpt' in fields:
            doc['excerpt'] = strip_html(item.text('excerpt'))
        if 'tags' in fields:
            doc['tags'] = list(item.names('tags'))
        if 'categories' in fields:
            doc['categories'] = list(item.names('categories'))
        return doc

    def _call(self, fn: Callable[[], Any]) -> Any:
        return with_retry(fn, policy=self.retry_policy, sleep=self.sleep)

    def sync(self, items: Optional[Iterable[Item]]) -> SyncSummary:
        """
        Run an incremental sync pass.

        Args:
            items: The full current post collection, in any order

        Returns:
            SyncSummary with added/updated/deleted/unchanged counts
        """
        items = list(items or [])
        summary = SyncSummary()
        if not items:
            logger.info("No posts to sync")
            return summary

        error_tracker = summary.error_tracker
        current_ids = set()
        to_upsert: List[_PendingUpsert] = []

        # Classify
        for item in items:
            current_ids.add(item.id)
            item_fingerprint = fingerprint.compute(item, self.settings.fields)
            if item_fingerprint == self.state.get_fingerprint(item.id):
                summary.unchanged += 1
            else:
                to_upsert.append(_PendingUpsert(item, item_fingerprint, self.build_document(item)))

        to_delete = sorted(self.state.tracked_ids() - current_ids)

        logger.info(
            f"Syncing {len(to_upsert)} changed posts and {len(to_delete)} deletions ({summary.unchanged} unchanged)"
        )

        # Upserts
        for pending in to_upsert:
            item = pending.item
            is_new = self.state.get_record(item.id) is None
            try:
                remote_ref = self._call(lambda: self.store.upsert(item.id, pending.document))
            except RemoteStoreError as e:
                summary.failed += 1
                error_tracker.report(
                    f"Failed to sync \"{item.title or item.id}\": {e.message}",
                    source_id=item.id,
                    severity=ErrorSeverity.WARNING,
                    details={"operation": "upsert", "status": e.status},
                    recovery_suggestion="The post will be retried on the next sync",
                )
                logger.warning(f"Failed to sync \"{item.title or item.id}\": {e.message}")
                continue

            self.state.upsert(item.id, pending.fingerprint, remote_ref or item.id)
            if is_new:
                summary.added += 1
                summary.added_ids.append(item.id)
                logger.debug(f"Added: {item.title or item.id}")
            else:
                summary.updated += 1
                summary.updated_ids.append(item.id)
                logger.debug(f"Updated: {item.title or item.id}")

        # Deletes
        for item_id in to_delete:
            try:
                self._call(lambda: self.store.delete(item_id))
            except RemoteStoreError as e:
                summary.failed += 1
                error_tracker.report(
                    f"Failed to delete \"{item_id}\": {e.message}",
                    source_id=item_id,
                    severity=ErrorSeverity.WARNING,
                    details={"operation": "delete", "status": e.status},
                    recovery_suggestion="The deletion will be retried on the next sync",
                )
                logger.warning(f"Failed to delete \"{item_id}\": {e.message}")
                continue

            self.state.remove(item_id)
            summary.deleted += 1
            summary.deleted_ids.append(item_id)
            logger.debug(f"Deleted: {item_id}")

        # Save once, after every remote call has been attempted
        try:
            self.state.save()
            summary.state_saved = True
        except StatePersistenceError as e:
            error_tracker.report_exception(e, severity=ErrorSeverity.CRITICAL)
            logger.error(
                f"Failed to save sync state, remote changes from this pass will be re-sent: {e.message}",
                extra={'details': {'state_file': str(self.state.filepath)}}
            )

        logger.info(
            f"Sync complete: {summary.added} added, {summary.updated} updated, "
            f"{summary.deleted} deleted, {summary.unchanged} unchanged",
            extra={'details': error_tracker.generate_report()}
        )
        return summary

    def full_sync(self, items: Optional[Iterable[Item]]) -> SyncSummary:
        """Forget all sync state and upsert every post again."""
        logger.info("Clearing sync state for full sync")
        self.state.clear()
        return self.sync(items)

    def status(self) -> List[Tuple[str, SyncRecord]]:
        """Tracked post ids with their sync records, sorted by id."""
        records = self.state.records()
        return [(item_id, records[item_id]) for item_id in sorted(records)]
