"""Pause-duration primitives used around workflow invocations.

Both functions are pure: they compute a duration in seconds and leave the
actual sleeping to the caller.
"""

import random
from typing import Optional

from src.review_bot.invocation.policy import RetryPolicy


def retry_delay(policy: RetryPolicy, attempt: int) -> float:
    """Seconds to wait after a failed ``attempt`` (1-indexed).

    The delay is constant across attempts and zero once the policy has no
    attempts left, so callers never sleep after the final attempt.
    """
    if attempt >= policy.max_attempts:
        return 0.0
    return policy.retry_delay_seconds


def dispatch_jitter(
    min_ms: int,
    max_ms: int,
    rng: Optional[random.Random] = None,
) -> float:
    """Randomized pre-dispatch pause in seconds, drawn from [min_ms, max_ms].

    Spreads out bursts of invocations (several PRs clicked at once) so they
    do not hit the workflow service at the same instant.
    """
    if max_ms <= 0:
        return 0.0
    low = max(0, min_ms)
    high = max(low, max_ms)
    source = rng or random
    return source.uniform(low, high) / 1000.0
