"""
Engine construction from the plugin configuration.

An engine that cannot work with the given configuration (no endpoint, no
key, or switched off) is not built; the caller gets None and the reason is
logged at INFO. A misconfigured plugin is a no-op, not a failed build.
"""

from typing import Optional

from ..config import get_logger
from .cache import RelatedCache
from .client import RemoteStore, SemanticSearchClient
from .config import PluginConfig
from .related import RelatedEngine
from .state_manager import StateStore
from .sync_engine import SyncEngine

logger = get_logger(__name__)


def create_client(config: PluginConfig) -> Optional[SemanticSearchClient]:
    if not config.enable:
        logger.info("Plugin disabled by config")
        return None
    if not config.endpoint:
        logger.info("No endpoint configured, plugin disabled")
        return None
    return SemanticSearchClient(
        endpoint=config.endpoint,
        writer_key=config.writer_key,
        reader_key=config.reader_key,
        timeout=config.timeout
    )


def create_sync_engine(config: PluginConfig, store: Optional[RemoteStore] = None) -> Optional[SyncEngine]:
    """Build the sync engine, or None if the configuration does not allow writes."""
    if not config.can_write:
        logger.info("Sync disabled: endpoint or writer key not configured")
        return None
    store = store or create_client(config)
    if store is None:
        return None
    return SyncEngine(config.sync, store, StateStore(config.state_dir))


def create_related_engine(config: PluginConfig, store: Optional[RemoteStore] = None) -> Optional[RelatedEngine]:
    """Build the related posts engine, or None if it is disabled or cannot search."""
    if not config.related.enable:
        logger.info("Related posts disabled by config")
        return None
    if not config.can_read:
        logger.info("Related posts disabled: endpoint or reader key not configured")
        return None
    store = store or create_client(config)
    if store is None:
        return None
    return RelatedEngine(config.related, store, RelatedCache(config.state_dir))
