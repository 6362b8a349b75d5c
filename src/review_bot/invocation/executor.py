"""Bounded retry executor for remote workflow calls.

Wraps a single HTTP attempt with a per-attempt deadline and a fixed
retry-with-delay policy:

- 2xx responses return immediately.
- 5xx responses are retried while attempts remain; the last one is returned.
- Any other status (4xx in practice) is returned without retrying.
- Network errors and timeouts are retried while attempts remain and
  propagated from the last attempt.

The executor has no side effects beyond the attempts themselves. It never
inspects response bodies; interpreting a non-2xx status is the caller's job.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional, Protocol

import httpx

from src.review_bot.invocation.delays import retry_delay
from src.review_bot.invocation.errors import AttemptTimeoutError, TransientRemoteError
from src.review_bot.invocation.policy import RetryPolicy


logger = logging.getLogger(__name__)


class StatusResponse(Protocol):
    """Anything carrying an HTTP status code (``httpx.Response`` in practice)."""

    status_code: int


AttemptFn = Callable[[], Awaitable[Any]]
SleepFn = Callable[[float], Awaitable[Any]]

# Exceptions that count as a failed attempt rather than a programming error
RETRYABLE_EXCEPTIONS = (
    httpx.TransportError,
    TransientRemoteError,
    OSError,
)


def is_success_status(status_code: int) -> bool:
    return 200 <= status_code < 300


def is_server_error_status(status_code: int) -> bool:
    return 500 <= status_code < 600


class RetryExecutor:
    """Runs an attempt function under a RetryPolicy.

    Attributes:
        policy: Timeout and retry settings applied to every call.

    Example:
        >>> executor = RetryExecutor(RetryPolicy(timeout_ms=5000))
        >>> response = await executor.execute(
        ...     lambda: client.post("/run/flow", json=body)
        ... )
    """

    def __init__(
        self,
        policy: RetryPolicy,
        sleep: Optional[SleepFn] = None,
        on_attempt: Optional[Callable[[str], None]] = None,
    ):
        """Initialize the executor.

        Args:
            policy: Timeout and retry settings.
            sleep: Coroutine used for inter-retry pauses (asyncio.sleep by
                   default; tests inject a recorder).
            on_attempt: Optional callback receiving the outcome label of each
                        attempt ("success", "client_error", "server_error",
                        "timeout", "network_error").
        """
        self.policy = policy
        self._sleep = sleep or asyncio.sleep
        self._on_attempt = on_attempt

    async def execute(self, attempt_fn: AttemptFn) -> Any:
        """Run ``attempt_fn`` until it succeeds or the policy is exhausted.

        Args:
            attempt_fn: Zero-argument coroutine factory performing one attempt.

        Returns:
            The response of the deciding attempt: the first 2xx, the first
            non-retryable status, or the 5xx from the final attempt.

        Raises:
            AttemptTimeoutError: If the final attempt exceeded the deadline.
            httpx.TransportError: If the final attempt failed at the network
                level.
        """
        max_attempts = self.policy.max_attempts
        started = time.monotonic()

        for attempt in range(1, max_attempts + 1):
            logger.debug(
                "Workflow attempt %d/%d",
                attempt,
                max_attempts,
                extra={"attempt": attempt, "max_attempts": max_attempts},
            )

            try:
                response = await self._run_attempt(attempt_fn, attempt)
            except RETRYABLE_EXCEPTIONS as exc:
                self._record(
                    "timeout" if isinstance(exc, AttemptTimeoutError) else "network_error"
                )
                if attempt >= max_attempts:
                    logger.error(
                        "Workflow request failed after all attempts",
                        extra={
                            "attempts": attempt,
                            "elapsed_seconds": round(time.monotonic() - started, 3),
                            "budget_seconds": self.policy.max_elapsed_seconds,
                            "error": str(exc),
                        },
                    )
                    raise

                delay = retry_delay(self.policy, attempt)
                logger.warning(
                    "Workflow attempt failed, retrying",
                    extra={
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                        "delay": delay,
                        "error": str(exc),
                    },
                )
                await self._sleep(delay)
                continue

            status_code = response.status_code

            if is_success_status(status_code):
                self._record("success")
                logger.info(
                    "Workflow request succeeded",
                    extra={"attempt": attempt, "status_code": status_code},
                )
                return response

            if is_server_error_status(status_code):
                self._record("server_error")
                if attempt < max_attempts:
                    delay = retry_delay(self.policy, attempt)
                    logger.warning(
                        "Server error from workflow service, retrying",
                        extra={
                            "status_code": status_code,
                            "attempt": attempt,
                            "max_attempts": max_attempts,
                            "delay": delay,
                        },
                    )
                    await self._sleep(delay)
                    continue
                return response

            # 4xx: the request itself is wrong, retrying cannot help
            self._record("client_error")
            return response

        # Unreachable: the loop always returns or raises on the last attempt
        raise RuntimeError("retry loop exited without a result")

    async def _run_attempt(self, attempt_fn: AttemptFn, attempt: int) -> StatusResponse:
        """Run one attempt under the policy deadline.

        Exceeding the deadline cancels the in-flight coroutine.
        """
        try:
            return await asyncio.wait_for(
                attempt_fn(),
                timeout=self.policy.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise AttemptTimeoutError(self.policy.timeout_seconds, attempt) from exc

    def _record(self, outcome: str) -> None:
        if self._on_attempt is not None:
            self._on_attempt(outcome)
