"""
Post items as seen by the sync and related-posts engines.

Post records exported by a static site generator are loosely typed: tags may
be plain strings or objects with a ``name``, dates may be datetime objects or
strings. They are resolved once, here, into ``Item`` values whose fields are
either a string or an ordered tuple of strings.
"""

import json
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import yaml
from bs4 import BeautifulSoup

from ..config import get_logger
from .error_tracker import ItemError

logger = get_logger(__name__)

FieldValue = Union[str, Tuple[str, ...]]

LIST_FIELDS = ('tags', 'categories')
TIMESTAMP_FIELDS = ('date', 'updated')
TEXT_FIELDS = ('title', 'content', 'excerpt', 'permalink')

_WHITESPACE = re.compile(r'\s+')


def strip_html(text: Optional[str]) -> str:
    """Strip markup and collapse whitespace."""
    if not text:
        return ''
    if '<' in text:
        text = BeautifulSoup(text, 'html.parser').get_text(' ')
    return _WHITESPACE.sub(' ', text).strip()


@dataclass
class RelatedPost:
    """A single related post attached to an item."""
    title: Optional[str]
    url: Optional[str]
    excerpt: Optional[str] = None
    score: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "url": self.url,
            "excerpt": self.excerpt,
            "score": self.score,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RelatedPost':
        return cls(
            title=data.get('title'),
            url=data.get('url'),
            excerpt=data.get('excerpt'),
            score=data.get('score'),
        )


def _names(value: Any) -> Tuple[str, ...]:
    """Reduce a tag/category collection to its ordered names."""
    if value is None:
        return ()
    if isinstance(value, (str, dict)):
        value = [value]
    elif not isinstance(value, (list, tuple)):
        raise ItemError(f"Expected a list of names, got {type(value).__name__}")
    names = []
    for entry in value:
        if isinstance(entry, dict):
            entry = entry.get('name')
        elif not isinstance(entry, str):
            entry = getattr(entry, 'name', None)
        if isinstance(entry, str) and entry:
            names.append(entry)
    return tuple(names)


def _timestamp(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


@dataclass
class Item:
    """A post, resolved at the boundary into typed field values."""
    id: str
    fields: Dict[str, FieldValue] = field(default_factory=dict)
    related: Optional[List[RelatedPost]] = None

    def get(self, name: str) -> FieldValue:
        """Field value, or an empty string when the field is missing."""
        return self.fields.get(name, '')

    def text(self, name: str) -> str:
        value = self.get(name)
        if isinstance(value, tuple):
            return ','.join(value)
        return value

    def names(self, name: str) -> Tuple[str, ...]:
        value = self.get(name)
        if isinstance(value, tuple):
            return value
        return (value,) if value else ()

    @property
    def title(self) -> str:
        return self.text('title')

    @property
    def permalink(self) -> str:
        return self.text('permalink')

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Item':
        """
        Resolve a raw post record.

        Args:
            data: Post record as exported by the site generator

        Returns:
            Item with string and tuple field values

        Raises:
            ItemError: If the record has no usable identifier
        """
        if not isinstance(data, dict):
            raise ItemError(f"Post record must be a mapping, got {type(data).__name__}")

        item_id = data.get('slug') or data.get('path') or data.get('id')
        if not item_id:
            raise ItemError(f"Post record has no slug, path or id: {data.get('title')!r}")

        fields: Dict[str, FieldValue] = {}
        for name, value in data.items():
            if name in ('slug', 'path', 'id', 'related'):
                continue
            if name in LIST_FIELDS:
                try:
                    fields[name] = _names(value)
                except ItemError as e:
                    raise ItemError(f"Post {item_id!r} has invalid {name}: {e.message}", source_id=str(item_id))
            elif name in TIMESTAMP_FIELDS:
                fields[name] = _timestamp(value)
            elif isinstance(value, (list, tuple)):
                fields[name] = _names(value)
            elif value is None:
                fields[name] = ''
            elif isinstance(value, (str, int, float)):
                fields[name] = str(value)

        if not fields.get('content') and data.get('body'):
            fields['content'] = str(data['body'])
        if not fields.get('permalink') and data.get('url'):
            fields['permalink'] = str(data['url'])

        return cls(id=str(item_id), fields=fields)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id}
        for name, value in self.fields.items():
            data[name] = list(value) if isinstance(value, tuple) else value
        if self.related is not None:
            data["related"] = [r.to_dict() for r in self.related]
        return data


def items_from_records(records: Iterable[Dict[str, Any]]) -> List[Item]:
    """Resolve records into items, skipping the ones that cannot be resolved."""
    items = []
    for record in records:
        try:
            items.append(Item.from_dict(record))
        except ItemError as e:
            logger.warning(f"Skipping post: {e.message}")
    return items


def load_items(path: Union[str, Path]) -> List[Item]:
    """
    Load posts from a JSON or YAML export.

    The file holds either a list of post records or a mapping with a
    ``posts`` list.
    """
    path = Path(path)
    if not path.exists():
        raise ItemError(f"Posts file not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            if path.suffix.lower() == '.json':
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ItemError(f"Failed to parse posts file {path}: {e}")

    if isinstance(data, dict):
        data = data.get('posts')
    if data is None:
        return []
    if not isinstance(data, list):
        raise ItemError(f"Posts file {path} must contain a list of posts")

    items = items_from_records(data)
    logger.info(f"Loaded {len(items)} posts from {path}")
    return items
