"""Review runs: context gathering, orchestration and dispatch."""

from src.review_bot.review.context import (
    FileSummary,
    MergeReadinessContext,
    ReviewContext,
    build_merge_context,
    build_review_context,
    find_previous_review,
)
from src.review_bot.review.dispatcher import InFlightGuard, ReviewDispatcher
from src.review_bot.review.models import (
    InvalidTransitionError,
    ReviewKind,
    ReviewOutcome,
    ReviewRun,
    ReviewStage,
    StageTransition,
    StatusUpdateResult,
)
from src.review_bot.review.orchestrator import (
    PullRequestNotFoundError,
    ReviewOrchestrator,
)

__all__ = [
    # Context
    "FileSummary",
    "ReviewContext",
    "MergeReadinessContext",
    "build_review_context",
    "build_merge_context",
    "find_previous_review",
    # Run state
    "ReviewKind",
    "ReviewStage",
    "ReviewOutcome",
    "ReviewRun",
    "StageTransition",
    "StatusUpdateResult",
    "InvalidTransitionError",
    # Orchestration
    "ReviewOrchestrator",
    "PullRequestNotFoundError",
    "ReviewDispatcher",
    "InFlightGuard",
]
