"""Review event models for observability.

This module defines the data models for review run events, including:
- EventType: Enum of all event types emitted by review runs
- ReviewEvent: Structured event with all required metadata

Events are emitted for monitoring, alerting, and debugging. They provide
visibility into how review runs progress and why they fail.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events emitted by review runs.

    Attributes:
        STATE_TRANSITION: A run moved from one stage to another.
        ERROR: A run ended in failure or unavailability.
        COMPLETION: A run reached a terminal stage.
        TIMEOUT: The workflow call exceeded its deadline.
    """

    STATE_TRANSITION = "state_transition"
    ERROR = "error"
    COMPLETION = "completion"
    TIMEOUT = "timeout"


class ReviewEvent(BaseModel):
    """Structured event emitted by a review run.

    Attributes:
        event_type: The category of event.
        run_id: Run identifier in format "{owner}/{repo}@{check_run_id}".
        repository: Full repository path in format "{owner}/{repo}".
        kind: Which flow the run invokes ("review" or "merge_check").
        timestamp: When the event occurred (UTC timezone).
        details: Additional context specific to the event type.

    Example:
        >>> event = ReviewEvent(
        ...     event_type=EventType.STATE_TRANSITION,
        ...     run_id="org/repo@991",
        ...     repository="org/repo",
        ...     kind="review",
        ...     details={"from_stage": "dispatched", "to_stage": "in_progress"},
        ... )

    Details Field Conventions:
        For STATE_TRANSITION events:
            - from_stage, to_stage: Run stages
        For ERROR events:
            - stage: Stage where the run gave up
            - outcome: failure or unavailable
            - error_message: User-facing message
        For COMPLETION events:
            - outcome: success, failure or unavailable
            - duration_seconds: Total run time
        For TIMEOUT events:
            - stage: Stage where the timeout occurred
            - timeout_seconds: Configured per-attempt timeout
    """

    event_type: EventType = Field(
        ...,
        description="The category of event being emitted",
    )

    run_id: str = Field(
        ...,
        min_length=1,
        description='Run identifier in format "{owner}/{repo}@{check_run_id}"',
    )

    repository: str = Field(
        ...,
        min_length=1,
        description='Full repository path in format "{owner}/{repo}"',
    )

    kind: str = Field(
        ...,
        min_length=1,
        description="Which flow the run invokes",
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional context specific to the event type",
    )

    def to_log_dict(self) -> Dict[str, Any]:
        """Flatten the event for structured logging.

        Example:
            >>> event.to_log_dict()["event_type"]
            'error'
        """
        return {
            "event_type": self.event_type.value,
            "run_id": self.run_id,
            "repository": self.repository,
            "kind": self.kind,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }
