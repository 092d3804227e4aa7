"""
Tests for retry with linear backoff.
"""

import pytest

from ..error_tracker import RemoteStoreError, TransientRemoteError
from ..resilience import RetryPolicy, with_retry, with_retry_async
from .fakes import RecordingSleep, transient


class TestRetryPolicy:

    def test_from_retries(self):
        policy = RetryPolicy.from_retries(2, 0.5, (TransientRemoteError,))
        assert policy.max_attempts == 3
        assert [policy.compute_backoff(i) for i in range(3)] == [0.5, 1.0, 1.5]


class TestWithRetry:
    """Test the blocking retry helper."""

    @pytest.fixture
    def policy(self):
        return RetryPolicy.from_retries(2, 1.0, (TransientRemoteError,))

    def test_succeeds_after_transient_failures(self, policy):
        outcomes = [transient(), transient(), 'ok']
        delays = []

        def call():
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        assert with_retry(call, policy=policy, sleep=delays.append) == 'ok'
        assert delays == [1.0, 2.0]

    def test_reraises_last_error_when_exhausted(self, policy):
        errors = [transient('one'), transient('two'), transient('three')]
        delays = []

        def call():
            raise errors.pop(0)

        with pytest.raises(TransientRemoteError, match='three'):
            with_retry(call, policy=policy, sleep=delays.append)
        assert delays == [1.0, 2.0]

    def test_other_errors_propagate_immediately(self, policy):
        calls = []

        def call():
            calls.append(1)
            raise RemoteStoreError("bad request", status=400)

        with pytest.raises(RemoteStoreError):
            with_retry(call, policy=policy, sleep=lambda d: pytest.fail("no sleep expected"))
        assert len(calls) == 1


class TestWithRetryAsync:
    """Test the coroutine retry helper."""

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self):
        policy = RetryPolicy.from_retries(2, 1.0, (TransientRemoteError,))
        sleep = RecordingSleep()
        attempts = []

        async def call():
            attempts.append(1)
            if len(attempts) < 3:
                raise transient()
            return 'ok'

        assert await with_retry_async(call, policy=policy, sleep=sleep) == 'ok'
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_zero_retries_single_attempt(self):
        policy = RetryPolicy.from_retries(0, 1.0, (TransientRemoteError,))
        sleep = RecordingSleep()
        attempts = []

        async def call():
            attempts.append(1)
            raise transient()

        with pytest.raises(TransientRemoteError):
            await with_retry_async(call, policy=policy, sleep=sleep)
        assert len(attempts) == 1
        assert sleep.delays == []
