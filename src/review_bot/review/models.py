"""Review run state machine models.

This module defines the data models for a single review or merge-readiness
run:
- ReviewStage: Enum of run stages
- ReviewOutcome: Terminal outcome of a completed run
- StageTransition: Record of a stage transition with timestamp and details
- ReviewRun: In-memory state of one run (never persisted)
- VALID_TRANSITIONS: Map defining allowed stage transitions
- StatusUpdateResult: Outcome of a best-effort check-run or comment write

Stage flow:
    idle → dispatched → in_progress → completed{success|failure|unavailable}

dispatched may also jump straight to completed when the run fails before
context gathering starts.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ReviewKind(str, Enum):
    """Which Langflow flow a run invokes.

    Attributes:
        REVIEW: Code review of the pull request diff.
        MERGE_CHECK: Merge readiness assessment using the prior review.
    """

    REVIEW = "review"
    MERGE_CHECK = "merge_check"


class ReviewStage(str, Enum):
    """Stages a review run progresses through.

    Attributes:
        IDLE: Run created, nothing done yet.
        DISPATCHED: Action accepted; in-progress status requested.
        IN_PROGRESS: Gathering context and invoking the workflow.
        COMPLETED: Terminal; see ReviewOutcome.
    """

    IDLE = "idle"
    DISPATCHED = "dispatched"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ReviewOutcome(str, Enum):
    """Terminal outcome of a completed run.

    Attributes:
        SUCCESS: The workflow produced a result.
        FAILURE: The workflow failed for a non-transient reason.
        UNAVAILABLE: The workflow or GitHub was temporarily unreachable.
    """

    SUCCESS = "success"
    FAILURE = "failure"
    UNAVAILABLE = "unavailable"


VALID_TRANSITIONS: Dict[ReviewStage, List[ReviewStage]] = {
    ReviewStage.IDLE: [ReviewStage.DISPATCHED],
    ReviewStage.DISPATCHED: [ReviewStage.IN_PROGRESS, ReviewStage.COMPLETED],
    ReviewStage.IN_PROGRESS: [ReviewStage.COMPLETED],
    # Terminal
    ReviewStage.COMPLETED: [],
}


def is_valid_transition(from_stage: ReviewStage, to_stage: ReviewStage) -> bool:
    """Check if a stage transition is allowed.

    Example:
        >>> is_valid_transition(ReviewStage.IDLE, ReviewStage.DISPATCHED)
        True
        >>> is_valid_transition(ReviewStage.COMPLETED, ReviewStage.IDLE)
        False
    """
    return to_stage in VALID_TRANSITIONS.get(from_stage, [])


def is_terminal_stage(stage: ReviewStage) -> bool:
    """Check if a stage has no outgoing transitions."""
    return len(VALID_TRANSITIONS.get(stage, [])) == 0


class InvalidTransitionError(Exception):
    """Raised when a run is moved along a transition the map forbids.

    Attributes:
        from_stage: The current stage.
        to_stage: The attempted target stage.
        message: Human-readable error message.
    """

    def __init__(
        self,
        from_stage: ReviewStage,
        to_stage: ReviewStage,
        message: Optional[str] = None,
    ):
        self.from_stage = from_stage
        self.to_stage = to_stage
        self.message = message or (
            f"Invalid transition from {from_stage.value} to {to_stage.value}"
        )
        super().__init__(self.message)


class StageTransition(BaseModel):
    """Record of a stage transition.

    Attributes:
        from_stage: The stage before the transition.
        to_stage: The stage after the transition.
        timestamp: When the transition occurred (UTC).
        details: Optional metadata (outcome, error, PR number).
    """

    from_stage: ReviewStage = Field(
        ...,
        description="The run stage before this transition",
    )

    to_stage: ReviewStage = Field(
        ...,
        description="The run stage after this transition",
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the transition occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Optional metadata about the transition",
    )


class ReviewRun(BaseModel):
    """In-memory state of one review or merge-readiness run.

    Attributes:
        kind: Which flow the run invokes.
        repository: Full repository path in format "{owner}/{repo}".
        check_run_id: The check run the run reports to.
        pull_number: Pull request number, once resolved.
        stage: The current stage.
        outcome: Terminal outcome, set on completion.
        message: Result or user-facing error message, set on completion.
        history: Ordered list of stage transitions.
        started_at: When the run was created (UTC).
    """

    kind: ReviewKind

    repository: str = Field(..., min_length=1)

    check_run_id: int = Field(..., gt=0)

    pull_number: Optional[int] = Field(default=None, gt=0)

    stage: ReviewStage = ReviewStage.IDLE

    outcome: Optional[ReviewOutcome] = None

    message: Optional[str] = None

    history: List[StageTransition] = Field(default_factory=list)

    started_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    @property
    def is_terminal(self) -> bool:
        return is_terminal_stage(self.stage)

    @property
    def elapsed_seconds(self) -> float:
        return (datetime.now(timezone.utc) - self.started_at).total_seconds()

    def advance(self, to_stage: ReviewStage, **details: Any) -> StageTransition:
        """Move to ``to_stage`` and record the transition.

        Raises:
            InvalidTransitionError: If the transition is not allowed.
        """
        if not is_valid_transition(self.stage, to_stage):
            raise InvalidTransitionError(self.stage, to_stage)
        transition = StageTransition(
            from_stage=self.stage,
            to_stage=to_stage,
            details=details,
        )
        self.history.append(transition)
        self.stage = to_stage
        return transition

    def complete(self, outcome: ReviewOutcome, message: str) -> StageTransition:
        """Move to COMPLETED with ``outcome``."""
        transition = self.advance(ReviewStage.COMPLETED, outcome=outcome.value)
        self.outcome = outcome
        self.message = message
        return transition


@dataclass
class StatusUpdateResult:
    """Outcome of a best-effort write to the status-tracking surface.

    Attributes:
        operation: What was attempted (e.g. "in_progress", "comment").
        ok: True if GitHub accepted the write.
        error: Error description when it did not.
    """

    operation: str
    ok: bool
    error: Optional[str] = None
