"""Property-based tests for the RetryExecutor.

Covers:
- 5xx responses are retried until a 2xx arrives, one call per attempt
- 4xx responses are returned after exactly one call
- persistent network errors propagate after max_attempts calls, having
  waited at least (max_attempts - 1) * retry_delay in total
"""

import asyncio
import time
from typing import List

import httpx
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from src.review_bot.invocation.errors import AttemptTimeoutError
from src.review_bot.invocation.executor import RetryExecutor
from src.review_bot.invocation.policy import RetryPolicy


def run_async(coro):
    return asyncio.run(coro)


class SleepRecorder:
    """Stands in for asyncio.sleep and records requested pauses."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class ScriptedAttempts:
    """Attempt function returning statuses or raising errors from a script."""

    def __init__(self, script) -> None:
        self.script = list(script)
        self.calls = 0

    async def __call__(self):
        step = self.script[min(self.calls, len(self.script) - 1)]
        self.calls += 1
        if isinstance(step, BaseException):
            raise step
        return httpx.Response(step)


@st.composite
def policies(draw, min_attempts: int = 1):
    return RetryPolicy(
        timeout_ms=draw(st.integers(min_value=1_000, max_value=600_000)),
        max_attempts=draw(st.integers(min_value=min_attempts, max_value=8)),
        retry_delay_ms=draw(st.integers(min_value=0, max_value=10_000)),
    )


server_errors = st.sampled_from([500, 502, 503, 504])
client_errors = st.sampled_from([400, 401, 403, 404, 409, 422, 429])


class TestServerErrorRetries:
    @settings(max_examples=100)
    @given(data=st.data(), policy=policies(min_attempts=2))
    def test_retries_server_errors_until_success(self, data, policy):
        failures = data.draw(st.integers(min_value=0, max_value=policy.max_attempts - 1))
        codes = data.draw(st.lists(server_errors, min_size=failures, max_size=failures))
        attempts = ScriptedAttempts(codes + [200])
        sleeper = SleepRecorder()
        executor = RetryExecutor(policy, sleep=sleeper)

        response = run_async(executor.execute(attempts))

        assert response.status_code == 200
        assert attempts.calls == failures + 1
        assert len(sleeper.delays) == failures

    @settings(max_examples=100)
    @given(policy=policies(), code=server_errors)
    def test_persistent_server_error_returns_last_response(self, policy, code):
        attempts = ScriptedAttempts([code])
        executor = RetryExecutor(policy, sleep=SleepRecorder())

        response = run_async(executor.execute(attempts))

        assert response.status_code == code
        assert attempts.calls == policy.max_attempts


class TestClientErrorsAreFinal:
    @settings(max_examples=100)
    @given(policy=policies(), code=client_errors)
    def test_client_error_makes_exactly_one_call(self, policy, code):
        attempts = ScriptedAttempts([code, 200])
        sleeper = SleepRecorder()
        executor = RetryExecutor(policy, sleep=sleeper)

        response = run_async(executor.execute(attempts))

        assert response.status_code == code
        assert attempts.calls == 1
        assert sleeper.delays == []


class TestNetworkErrorPropagation:
    @settings(max_examples=100)
    @given(policy=policies())
    def test_network_error_propagates_after_all_attempts(self, policy):
        attempts = ScriptedAttempts([httpx.ConnectError("connection refused")])
        sleeper = SleepRecorder()
        executor = RetryExecutor(policy, sleep=sleeper)

        with pytest.raises(httpx.ConnectError):
            run_async(executor.execute(attempts))

        assert attempts.calls == policy.max_attempts
        expected_wait = (policy.max_attempts - 1) * policy.retry_delay_seconds
        assert sum(sleeper.delays) >= expected_wait - 1e-9

    def test_elapsed_wall_time_covers_retry_delays(self):
        policy = RetryPolicy(timeout_ms=1_000, max_attempts=3, retry_delay_ms=30)
        attempts = ScriptedAttempts([httpx.ReadError("reset")])
        executor = RetryExecutor(policy)

        started = time.monotonic()
        with pytest.raises(httpx.ReadError):
            run_async(executor.execute(attempts))
        elapsed = time.monotonic() - started

        assert attempts.calls == 3
        # asyncio may wake up to one clock tick early
        assert elapsed >= 2 * 0.030 - 0.005

    def test_hanging_attempts_stay_within_wall_clock_bound(self):
        policy = RetryPolicy(timeout_ms=40, max_attempts=3, retry_delay_ms=20)
        calls = []

        async def hang():
            calls.append(1)
            await asyncio.sleep(10)

        async def timed():
            started = time.monotonic()
            with pytest.raises(AttemptTimeoutError):
                await RetryExecutor(policy).execute(hang)
            return time.monotonic() - started

        elapsed = run_async(timed())

        assert len(calls) == 3
        assert elapsed <= policy.max_elapsed_seconds + 0.1
