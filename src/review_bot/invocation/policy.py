"""Retry policy for remote workflow invocations.

A RetryPolicy is an immutable value handed to the RetryExecutor and the
WorkflowClient at construction time. There is no process-wide retry state;
every component that needs the policy receives it explicitly.
"""

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_TIMEOUT_MS = 120_000
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_MS = 5_000


class RetryPolicy(BaseModel):
    """Timeout and retry settings for a single logical remote call.

    Attributes:
        timeout_ms: Deadline for each individual attempt, in milliseconds.
        max_attempts: Upper bound on attempts per logical call.
        retry_delay_ms: Pause between attempts, in milliseconds.
    """

    model_config = ConfigDict(frozen=True)

    timeout_ms: int = Field(
        default=DEFAULT_TIMEOUT_MS,
        gt=0,
        description="Per-attempt deadline in milliseconds",
    )

    max_attempts: int = Field(
        default=DEFAULT_MAX_ATTEMPTS,
        ge=1,
        description="Maximum number of attempts per logical call",
    )

    retry_delay_ms: int = Field(
        default=DEFAULT_RETRY_DELAY_MS,
        ge=0,
        description="Delay between attempts in milliseconds",
    )

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def retry_delay_seconds(self) -> float:
        return self.retry_delay_ms / 1000.0

    @property
    def max_elapsed_seconds(self) -> float:
        """Upper bound on wall-clock time spent by one logical call."""
        return self.max_attempts * (self.timeout_seconds + self.retry_delay_seconds)
