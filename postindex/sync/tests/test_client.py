"""
Tests for the SemanticSearch HTTP client.
"""

import asyncio
import pytest
import requests
from unittest.mock import Mock, patch

import aiohttp

from ..client import SearchHit, SemanticSearchClient, parse_hits
from ..error_tracker import RemoteStoreError, TransientRemoteError


def make_response(status=200, payload=None, text=''):
    response = Mock()
    response.ok = status < 400
    response.status_code = status
    response.text = text
    response.headers = {'content-type': 'application/json'} if payload is not None else {}
    response.json.return_value = payload
    return response


class FakeAioResponse:

    def __init__(self, status, payload=None, text=''):
        self.status = status
        self.payload = payload
        self._text = text

    async def text(self):
        return self._text

    async def json(self, content_type=None):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


class FakeAioSession:

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []
        self.closed = False

    def post(self, url, json=None):
        self.requests.append((url, json))
        if self.error:
            raise self.error
        return self.response

    async def close(self):
        self.closed = True


class TestWrites:
    """Test upserts and deletes."""

    @pytest.fixture
    def client(self):
        return SemanticSearchClient('https://search.example.com/', writer_key='w-key', reader_key='r-key', timeout=5)

    def test_endpoint_trailing_slash_stripped(self, client):
        assert client.endpoint == 'https://search.example.com'

    def test_upsert_posts_document(self, client):
        with patch.object(client.session, 'request', return_value=make_response(payload={'id': 'remote-1'})) as request:
            ref = client.upsert('hello', {'title': 'Hello', 'content': 'Body', 'url': '/hello/', 'tags': ['a']})

        assert ref == 'remote-1'
        args, kwargs = request.call_args
        assert args == ('POST', 'https://search.example.com/v1/documents')
        assert kwargs['json']['id'] == 'hello'
        assert kwargs['json']['text'] == 'Body'
        assert kwargs['json']['metadata']['title'] == 'Hello'
        assert kwargs['json']['metadata']['tags'] == ['a']
        assert kwargs['headers'] == {'Authorization': 'Bearer w-key'}
        assert kwargs['timeout'] == 5

    def test_upsert_without_returned_id_uses_item_id(self, client):
        with patch.object(client.session, 'request', return_value=make_response(text='ok')):
            assert client.upsert('hello', {'title': 'Hello'}) == 'hello'

    def test_delete_quotes_id(self, client):
        with patch.object(client.session, 'request', return_value=make_response(status=204)) as request:
            client.delete('2024/01/post.html')

        args, _ = request.call_args
        assert args == ('DELETE', 'https://search.example.com/v1/documents/2024%2F01%2Fpost.html')

    @pytest.mark.parametrize('status', [429, 502, 503, 504])
    def test_overload_statuses_are_transient(self, client, status):
        with patch.object(client.session, 'request', return_value=make_response(status=status, text='busy')):
            with pytest.raises(TransientRemoteError) as exc_info:
                client.upsert('hello', {})

        assert exc_info.value.status == status
        assert exc_info.value.source_id == 'hello'

    def test_client_error_is_permanent(self, client):
        with patch.object(client.session, 'request', return_value=make_response(status=404, text='missing')):
            with pytest.raises(RemoteStoreError) as exc_info:
                client.delete('gone')

        assert not isinstance(exc_info.value, TransientRemoteError)
        assert exc_info.value.status == 404
        assert 'missing' in exc_info.value.message

    def test_timeout_is_transient(self, client):
        with patch.object(client.session, 'request', side_effect=requests.exceptions.Timeout()):
            with pytest.raises(TransientRemoteError):
                client.upsert('hello', {})

    def test_connection_error_is_permanent(self, client):
        with patch.object(client.session, 'request', side_effect=requests.exceptions.ConnectionError("refused")):
            with pytest.raises(RemoteStoreError) as exc_info:
                client.upsert('hello', {})

        assert not isinstance(exc_info.value, TransientRemoteError)

    def test_invalid_json(self, client):
        response = make_response(payload={})
        response.json.side_effect = ValueError("bad json")
        with patch.object(client.session, 'request', return_value=response):
            with pytest.raises(RemoteStoreError):
                client.upsert('hello', {})


class TestParseHits:

    def test_results_wrapper_and_metadata(self):
        hits = parse_hits({'results': [
            {'id': 'a', 'score': '0.8', 'metadata': {'title': 'A', 'url': '/a/', 'excerpt': 'About a'}},
            {'id': 'b', 'title': 'B', 'url': '/b/'},
            'junk',
        ]})

        assert hits == [
            SearchHit(id='a', score=0.8, title='A', url='/a/', excerpt='About a'),
            SearchHit(id='b', score=None, title='B', url='/b/', excerpt=None),
        ]

    def test_bare_list(self):
        assert [h.id for h in parse_hits([{'id': 'x'}])] == ['x']

    def test_unexpected_payload(self):
        assert parse_hits(None) == []
        assert parse_hits({'results': 'nope'}) == []


class TestSearch:
    """Test async searches."""

    @pytest.fixture
    def client(self):
        return SemanticSearchClient('https://search.example.com', reader_key='r-key')

    @pytest.mark.asyncio
    async def test_search_returns_hits(self, client):
        session = FakeAioSession(FakeAioResponse(200, {'results': [{'id': 'a', 'score': 0.9}]}))
        client._aio_session = session

        hits = await client.search('hello world', 6)

        assert [h.id for h in hits] == ['a']
        assert session.requests == [('https://search.example.com/v1/search', {'query': 'hello world', 'limit': 6})]

    @pytest.mark.asyncio
    async def test_search_overload_is_transient(self, client):
        client._aio_session = FakeAioSession(FakeAioResponse(503, text='unavailable'))

        with pytest.raises(TransientRemoteError) as exc_info:
            await client.search('q', 5)
        assert exc_info.value.status == 503

    @pytest.mark.asyncio
    async def test_search_client_error_is_permanent(self, client):
        client._aio_session = FakeAioSession(FakeAioResponse(401, text='unauthorized'))

        with pytest.raises(RemoteStoreError) as exc_info:
            await client.search('q', 5)
        assert not isinstance(exc_info.value, TransientRemoteError)

    @pytest.mark.asyncio
    async def test_search_timeout_is_transient(self, client):
        client._aio_session = FakeAioSession(error=asyncio.TimeoutError())

        with pytest.raises(TransientRemoteError):
            await client.search('q', 5)

    @pytest.mark.asyncio
    async def test_search_connection_error(self, client):
        client._aio_session = FakeAioSession(error=aiohttp.ClientConnectionError("refused"))

        with pytest.raises(RemoteStoreError):
            await client.search('q', 5)

    @pytest.mark.asyncio
    async def test_search_invalid_json(self, client):
        client._aio_session = FakeAioSession(FakeAioResponse(200, ValueError("bad json")))

        with pytest.raises(RemoteStoreError):
            await client.search('q', 5)

    @pytest.mark.asyncio
    async def test_search_malformed_score(self, client):
        client._aio_session = FakeAioSession(FakeAioResponse(200, {'results': [{'id': 'a', 'score': 'n/a'}]}))

        with pytest.raises(RemoteStoreError) as exc_info:
            await client.search('q', 5)
        assert not isinstance(exc_info.value, TransientRemoteError)
        assert 'malformed' in exc_info.value.message

    @pytest.mark.asyncio
    async def test_close(self, client):
        session = FakeAioSession()
        client._aio_session = session

        async with client:
            pass

        assert session.closed
        assert client._aio_session is None
