from pathlib import Path
import dotenv
import logging
import os
import re
from typing import Optional


ROOT = Path(__file__).parent.parent

dotenv.load_dotenv(ROOT / '.env')

# Logging configuration
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given name"""
    return logging.getLogger(name)


# Plugin config section name, as it appears in a site's _config.yml
CONFIG_SECTION = 'semantic_search'

# State files
STATE_FILENAME = '.postindex-state.json'
RELATED_CACHE_FILENAME = '.postindex-related-cache.json'
STATE_SCHEMA_VERSION = 1

# Sync defaults
DEFAULT_SYNC_FIELDS = ['title', 'content', 'excerpt', 'tags', 'categories']
DEFAULT_TIMEOUT = 30.0

# Related posts defaults
DEFAULT_RELATED_LIMIT = 5
DEFAULT_MIN_SCORE = 0.3
DEFAULT_QUERY_FIELDS = ['title', 'excerpt']
DEFAULT_CONCURRENCY = 3
DEFAULT_BATCH_DELAY = 0.2
DEFAULT_RETRIES = 2
DEFAULT_RETRY_BASE_DELAY = 1.0

_ENV_REFERENCE = re.compile(r'^\$\{?([A-Z_][A-Z0-9_]*)\}?$')


def resolve_env_var(value: Optional[str]) -> Optional[str]:
    """
    Resolve an environment variable reference.

    Supports ``${VAR_NAME}`` and ``$VAR_NAME``. Anything else, or a reference
    to an unset variable, is returned unchanged.
    """
    if not value or not isinstance(value, str):
        return value
    match = _ENV_REFERENCE.match(value)
    if match:
        return os.environ.get(match.group(1)) or value
    return value
