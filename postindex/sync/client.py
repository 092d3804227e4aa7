"""
Remote document store.

The engines only rely on three capabilities of the store: upsert a document,
delete a document and search. ``RemoteStore`` names them; the HTTP client
below implements them against a SemanticSearch style API.

Writes are issued one at a time from the sync pass and are plain blocking
calls. Searches are coroutines so that the related-posts engine can keep
several of them in flight.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import aiohttp
import requests

from ..config import get_logger, DEFAULT_TIMEOUT
from .error_tracker import RemoteStoreError, TransientRemoteError

logger = get_logger(__name__)

# Overload and rate limiting; worth retrying
TRANSIENT_STATUS_CODES = frozenset({429, 502, 503, 504})


@dataclass
class SearchHit:
    """One ranked search result."""
    id: Optional[str]
    score: Optional[float] = None
    title: Optional[str] = None
    url: Optional[str] = None
    excerpt: Optional[str] = None

    @classmethod
    def from_response(cls, raw: Dict[str, Any]) -> 'SearchHit':
        """Build from a result whose fields may be top-level or under ``metadata``."""
        metadata = raw.get('metadata') or {}
        score = raw.get('score')
        return cls(
            id=raw.get('id') or metadata.get('id'),
            score=float(score) if score is not None else None,
            title=metadata.get('title') or raw.get('title'),
            url=metadata.get('url') or raw.get('url'),
            excerpt=metadata.get('excerpt') or raw.get('excerpt'),
        )


class RemoteStore(ABC):

    @abstractmethod
    def upsert(self, item_id: str, document: Dict[str, Any]) -> str:
        """Create or replace a document. Returns the store's reference for it."""

    @abstractmethod
    def delete(self, item_id: str) -> None:
        pass

    @abstractmethod
    async def search(self, query: str, limit: int) -> List[SearchHit]:
        """Ranked hits for a query, best first."""

    async def close(self) -> None:
        pass


def _error_for_status(status: int, body: str, item_id: Optional[str] = None) -> RemoteStoreError:
    message = f"SemanticSearch API error: {status} - {body[:500]}"
    if status in TRANSIENT_STATUS_CODES:
        return TransientRemoteError(message, source_id=item_id, status=status,
                                    recovery_suggestion="The remote store is overloaded; it will be retried")
    return RemoteStoreError(message, source_id=item_id, status=status)


def parse_hits(payload: Any) -> List[SearchHit]:
    """Normalize a search response, either a list or ``{"results": [...]}``."""
    if isinstance(payload, dict):
        payload = payload.get('results')
    if not isinstance(payload, list):
        return []
    return [SearchHit.from_response(raw) for raw in payload if isinstance(raw, dict)]


class SemanticSearchClient(RemoteStore):
    """HTTP client for the SemanticSearch document API."""

    def __init__(self, endpoint: str, writer_key: Optional[str] = None, reader_key: Optional[str] = None,
                 timeout: float = DEFAULT_TIMEOUT):
        self.endpoint = endpoint.rstrip('/')
        self.writer_key = writer_key
        self.reader_key = reader_key
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({'Content-Type': 'application/json'})
        self._aio_session: Optional[aiohttp.ClientSession] = None

    def _headers(self, use_writer_key: bool) -> Dict[str, str]:
        key = self.writer_key if use_writer_key else self.reader_key
        return {'Authorization': f'Bearer {key}'} if key else {}

    def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None,
                 item_id: Optional[str] = None) -> Any:
        url = f"{self.endpoint}{path}"
        try:
            response = self.session.request(
                method,
                url,
                json=body,
                headers=self._headers(use_writer_key=True),
                timeout=self.timeout
            )
        except requests.exceptions.Timeout:
            raise TransientRemoteError(f"SemanticSearch API timeout after {self.timeout}s", source_id=item_id)
        except requests.exceptions.RequestException as e:
            raise RemoteStoreError(f"SemanticSearch API request failed: {e}", source_id=item_id)

        if not response.ok:
            raise _error_for_status(response.status_code, response.text, item_id)

        if 'application/json' in response.headers.get('content-type', ''):
            try:
                return response.json()
            except ValueError as e:
                raise RemoteStoreError(f"SemanticSearch API returned invalid JSON: {e}", source_id=item_id)
        return response.text

    def upsert(self, item_id: str, document: Dict[str, Any]) -> str:
        """
        Create or update a document.

        SemanticSearch API format: POST /v1/documents with { id, text, metadata }
        """
        payload = {
            'id': item_id,
            'text': document.get('content') or document.get('text') or '',
            'metadata': {
                'title': document.get('title'),
                'url': document.get('url'),
                'date': document.get('date'),
                'updated': document.get('updated'),
                'excerpt': document.get('excerpt'),
                'tags': document.get('tags'),
                'categories': document.get('categories'),
            }
        }
        result = self._request('POST', '/v1/documents', payload, item_id=item_id)
        if isinstance(result, dict) and result.get('id'):
            return str(result['id'])
        return item_id

    def delete(self, item_id: str) -> None:
        self._request('DELETE', f"/v1/documents/{quote(item_id, safe='')}", item_id=item_id)

    async def _get_aio_session(self) -> aiohttp.ClientSession:
        if self._aio_session is None or self._aio_session.closed:
            self._aio_session = aiohttp.ClientSession(
                headers={'Content-Type': 'application/json', **self._headers(use_writer_key=False)},
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._aio_session

    async def search(self, query: str, limit: int) -> List[SearchHit]:
        session = await self._get_aio_session()
        url = f"{self.endpoint}/v1/search"
        try:
            async with session.post(url, json={'query': query, 'limit': limit}) as response:
                if response.status >= 400:
                    raise _error_for_status(response.status, await response.text())
                payload = await response.json(content_type=None)
        except asyncio.TimeoutError:
            raise TransientRemoteError(f"SemanticSearch API timeout after {self.timeout}s")
        except aiohttp.ClientError as e:
            raise RemoteStoreError(f"SemanticSearch API request failed: {e}")
        except ValueError as e:
            raise RemoteStoreError(f"SemanticSearch API returned invalid JSON: {e}")

        try:
            return parse_hits(payload)
        except (TypeError, ValueError) as e:
            raise RemoteStoreError(f"SemanticSearch API returned malformed results: {e}")

    async def close(self) -> None:
        if self._aio_session is not None and not self._aio_session.closed:
            await self._aio_session.close()
        self._aio_session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
