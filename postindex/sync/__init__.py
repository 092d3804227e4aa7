"""
Sync module for keeping a remote document index and a related posts cache
consistent with a changing collection of posts.

This module provides incremental, fingerprint-based sync into the remote
store, and related posts computation with persisted caching, bounded
concurrency and retries.
"""

from .config import (
    PluginConfig, SyncSettings, RelatedSettings
)

from .items import (
    Item, RelatedPost, FieldValue, load_items, strip_html
)

from .state_manager import (
    StateStore, SyncRecord
)

from .cache import (
    RelatedCache, RelatedCacheEntry
)

from .client import (
    RemoteStore, SearchHit, SemanticSearchClient
)

from .sync_engine import (
    SyncEngine, SyncSummary
)

from .related import (
    RelatedEngine, RelatedSummary
)

from .factory import (
    create_client, create_sync_engine, create_related_engine
)

__all__ = [
    # Configuration
    'PluginConfig',
    'SyncSettings',
    'RelatedSettings',

    # Items
    'Item',
    'RelatedPost',
    'FieldValue',
    'load_items',
    'strip_html',

    # Persistence
    'StateStore',
    'SyncRecord',
    'RelatedCache',
    'RelatedCacheEntry',

    # Remote store
    'RemoteStore',
    'SearchHit',
    'SemanticSearchClient',

    # Engines
    'SyncEngine',
    'SyncSummary',
    'RelatedEngine',
    'RelatedSummary',
    'create_client',
    'create_sync_engine',
    'create_related_engine',
]
