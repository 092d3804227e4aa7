"""
Content fingerprints used as version keys by both engines.
"""

import hashlib
from typing import Sequence

from .items import Item

FIELD_SEPARATOR = '|'
LIST_SEPARATOR = ','


def compute(item: Item, fields: Sequence[str]) -> str:
    """
    Compute a stable fingerprint of an item over the given fields.

    Missing fields contribute an empty string; list fields contribute their
    comma-joined names. Field order matters.
    """
    parts = []
    for name in fields:
        value = item.get(name)
        if isinstance(value, tuple):
            value = LIST_SEPARATOR.join(value)
        parts.append(value)
    content = FIELD_SEPARATOR.join(parts)
    return hashlib.sha256(content.encode('utf-8')).hexdigest()
