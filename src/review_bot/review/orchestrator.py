"""Review workflow orchestrator.

Drives one check-run action through the review state machine:

    idle → dispatched → in_progress → completed{success|failure|unavailable}

1. dispatched: the check run is moved to "in progress" (best effort).
2. in_progress: the pull request is resolved and a ReviewContext is built
   from GitHub data, then the Langflow flow is invoked.
3. completed: the check run gets its terminal conclusion and, on success, a
   result comment is posted to the pull request.

Failures before the workflow call (credentials, GitHub unreachable, no open
PR) end the run as unavailable. Workflow failures end as unavailable when
they look transient and as failure otherwise. Check-run and comment writes
are attempted once; their outcome is returned as a StatusUpdateResult and
never changes the run's outcome.

The merge-readiness variant follows the same machine with a different
context (mergeability plus the prior review comment) and a different
success rule (readiness keyword → success, otherwise neutral).
"""

import logging
import time
from typing import Optional, Union

from src.review_bot.events.emitter import EventEmitter
from src.review_bot.events.models import EventType, ReviewEvent
from src.review_bot.github.client import GitHubClient
from src.review_bot.github.models import CheckRunUpdate
from src.review_bot.invocation.classification import (
    friendly_failure_message,
    is_merge_ready,
    is_transient_failure,
)
from src.review_bot.invocation.client import WorkflowClient
from src.review_bot.invocation.models import (
    FailureCategory,
    InvocationFailure,
    InvocationSuccess,
)
from src.review_bot.review import formatting
from src.review_bot.review.context import (
    MergeReadinessContext,
    ReviewContext,
    build_merge_context,
    build_review_context,
    find_previous_review,
)
from src.review_bot.review.models import (
    ReviewKind,
    ReviewOutcome,
    ReviewRun,
    ReviewStage,
    StatusUpdateResult,
)
from src.review_bot.webhook.models import CheckRunActionEvent, PullRequestEvent


logger = logging.getLogger(__name__)


DEFAULT_CHECK_RUN_NAME = "AI Code Review"
DEFAULT_REVIEW_TWEAK_COMPONENT = "GitHubBranchPRsFetcher-2MPWZ"
DEFAULT_MERGE_TWEAK_COMPONENT = "GitHubOpenPRsFetcher-yZc4z"


class PullRequestNotFoundError(Exception):
    """Raised when no open pull request matches the check run's commit."""


class ReviewOrchestrator:
    """Runs code reviews and merge-readiness checks for check-run actions.

    Attributes:
        github_client: Check runs, pull request data and comments.
        workflow_client: Langflow invocation client.
        event_emitter: Emits review events for observability.
        review_flow_id: Langflow flow for code review.
        merge_flow_id: Langflow flow for merge readiness.
    """

    def __init__(
        self,
        github_client: GitHubClient,
        workflow_client: WorkflowClient,
        event_emitter: EventEmitter,
        review_flow_id: Optional[str],
        merge_flow_id: Optional[str],
        review_tweak_component: str = DEFAULT_REVIEW_TWEAK_COMPONENT,
        merge_tweak_component: str = DEFAULT_MERGE_TWEAK_COMPONENT,
        tweak_github_token: Optional[str] = None,
        check_run_name: str = DEFAULT_CHECK_RUN_NAME,
    ):
        self.github_client = github_client
        self.workflow_client = workflow_client
        self.event_emitter = event_emitter
        self.review_flow_id = review_flow_id
        self.merge_flow_id = merge_flow_id
        self.review_tweak_component = review_tweak_component
        self.merge_tweak_component = merge_tweak_component
        self.tweak_github_token = tweak_github_token
        self.check_run_name = check_run_name

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run_review(self, event: CheckRunActionEvent) -> ReviewRun:
        """Run the code review flow for a "Review PR" click."""
        return await self._run(event, ReviewKind.REVIEW)

    async def run_merge_check(self, event: CheckRunActionEvent) -> ReviewRun:
        """Run the merge readiness flow for a "Check Merge Readiness" click."""
        return await self._run(event, ReviewKind.MERGE_CHECK)

    async def add_review_button(self, event: PullRequestEvent) -> StatusUpdateResult:
        """Attach the "Review PR" check run to a new or updated pull request."""
        logger.info(
            "Adding review button",
            extra={"pull_request": event.pull_request_id, "head_sha": event.head_sha},
        )
        try:
            await self.github_client.create_check_run(
                event.owner,
                event.repository,
                self.check_run_name,
                event.head_sha,
                formatting.review_button(event),
            )
        except Exception as exc:
            logger.error(
                "Failed to add review button",
                extra={"pull_request": event.pull_request_id, "error": str(exc)},
            )
            return StatusUpdateResult(operation="review_button", ok=False, error=str(exc))
        return StatusUpdateResult(operation="review_button", ok=True)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def _run(self, event: CheckRunActionEvent, kind: ReviewKind) -> ReviewRun:
        run = ReviewRun(
            kind=kind,
            repository=event.full_repository,
            check_run_id=event.check_run_id,
            pull_number=event.pull_number,
        )
        started = time.monotonic()
        logger.info(
            "Starting review run",
            extra={"run_id": self._run_id(run), "kind": kind.value},
        )

        await self._advance(run, ReviewStage.DISPATCHED)
        # Progress display only; the run continues whether or not it lands
        _ = await self._best_effort_update(
            event,
            formatting.in_progress(kind, self.workflow_client.policy.timeout_seconds),
            "in_progress",
        )

        await self._advance(run, ReviewStage.IN_PROGRESS)
        try:
            context = await self._gather_context(event, kind, run)
        except Exception as exc:
            logger.exception(
                "Failed to gather review context",
                extra={"run_id": self._run_id(run)},
            )
            await self._finish_unavailable(run, event, exc)
            return await self._finalize(run, started)

        flow_id = self.review_flow_id if kind is ReviewKind.REVIEW else self.merge_flow_id
        result = await self.workflow_client.invoke(context, flow_id)

        if isinstance(result, InvocationSuccess):
            await self._finish_success(run, event, result)
        else:
            await self._finish_failure(run, event, result)

        return await self._finalize(run, started)

    async def _gather_context(
        self,
        event: CheckRunActionEvent,
        kind: ReviewKind,
        run: ReviewRun,
    ) -> Union[ReviewContext, MergeReadinessContext]:
        owner, repo = event.owner, event.repository
        pull_number = await self._resolve_pull_number(event)
        run.pull_number = pull_number

        pr = await self.github_client.get_pull_request(owner, repo, pull_number)

        if kind is ReviewKind.REVIEW:
            files = await self.github_client.list_pull_request_files(owner, repo, pull_number)
            return build_review_context(
                owner,
                repo,
                pr,
                files,
                tweak_component=self.review_tweak_component,
                github_token=self.tweak_github_token,
            )

        comments = await self.github_client.list_issue_comments(owner, repo, pull_number)
        return build_merge_context(
            owner,
            repo,
            pr,
            find_previous_review(comments),
            tweak_component=self.merge_tweak_component,
            github_token=self.tweak_github_token,
        )

    async def _resolve_pull_number(self, event: CheckRunActionEvent) -> int:
        """PR number from the event, else the open PR containing the head commit.

        Raises:
            PullRequestNotFoundError: If no open pull request matches.
        """
        if event.pull_number is not None:
            return event.pull_number

        logger.info(
            "No pull request on check run, searching by commit",
            extra={"repository": event.full_repository, "head_sha": event.head_sha},
        )
        number = await self.github_client.find_open_pull_request_for_commit(
            event.owner, event.repository, event.head_sha
        )
        if number is None:
            raise PullRequestNotFoundError("No open pull request found for this check run")
        return number

    async def _finish_success(
        self,
        run: ReviewRun,
        event: CheckRunActionEvent,
        result: InvocationSuccess,
    ) -> None:
        message = result.message
        if run.kind is ReviewKind.REVIEW:
            update = formatting.review_complete(message)
            comment = formatting.review_comment(message)
        else:
            ready = is_merge_ready(message)
            logger.info(
                "Merge readiness decided",
                extra={"run_id": self._run_id(run), "ready": ready},
            )
            update = formatting.merge_complete(message, ready)
            comment = formatting.merge_comment(message)

        run.complete(ReviewOutcome.SUCCESS, message)

        # Result reporting is best effort; the run already succeeded
        _ = await self._best_effort_update(event, update, "completed")
        if run.pull_number is not None:
            _ = await self._best_effort_comment(event, run.pull_number, comment)

    async def _finish_failure(
        self,
        run: ReviewRun,
        event: CheckRunActionEvent,
        result: InvocationFailure,
    ) -> None:
        message = friendly_failure_message(result.user_message, result.status_code)
        transient = is_transient_failure(message, result.category, result.status_code)
        outcome = ReviewOutcome.UNAVAILABLE if transient else ReviewOutcome.FAILURE

        if result.category is FailureCategory.TIMEOUT:
            await self._emit(
                run,
                EventType.TIMEOUT,
                {
                    "stage": "workflow",
                    "timeout_seconds": self.workflow_client.policy.timeout_seconds,
                },
            )

        await self._emit(
            run,
            EventType.ERROR,
            {
                "stage": "workflow",
                "outcome": outcome.value,
                "error_message": message,
                "raw_error": result.raw_error[:500],
            },
        )
        run.complete(outcome, message)

        if run.kind is ReviewKind.REVIEW:
            update = formatting.review_failed(message, transient)
        else:
            update = formatting.merge_failed(message)
        # Nothing further to do if reporting the failure fails too
        _ = await self._best_effort_update(event, update, "completed")

    async def _finish_unavailable(
        self,
        run: ReviewRun,
        event: CheckRunActionEvent,
        exc: Exception,
    ) -> None:
        message = str(exc) or type(exc).__name__
        await self._emit(
            run,
            EventType.ERROR,
            {
                "stage": "context",
                "outcome": ReviewOutcome.UNAVAILABLE.value,
                "error_message": message,
                "error_type": type(exc).__name__,
            },
        )
        run.complete(ReviewOutcome.UNAVAILABLE, message)

        if run.kind is ReviewKind.REVIEW:
            update = formatting.review_failed(message, transient=True)
        else:
            update = formatting.merge_failed(message)
        # Nothing further to do if reporting the failure fails too
        _ = await self._best_effort_update(event, update, "completed")

    async def _finalize(self, run: ReviewRun, started: float) -> ReviewRun:
        duration = time.monotonic() - started
        await self._emit(
            run,
            EventType.COMPLETION,
            {
                "outcome": run.outcome.value if run.outcome else "unknown",
                "duration_seconds": round(duration, 3),
                "pull_number": run.pull_number,
            },
        )
        logger.info(
            "Review run finished",
            extra={
                "run_id": self._run_id(run),
                "kind": run.kind.value,
                "outcome": run.outcome.value if run.outcome else None,
                "duration_seconds": round(duration, 3),
            },
        )
        return run

    # ------------------------------------------------------------------
    # Best-effort status reporting
    # ------------------------------------------------------------------

    async def _best_effort_update(
        self,
        event: CheckRunActionEvent,
        update: CheckRunUpdate,
        operation: str,
    ) -> StatusUpdateResult:
        """Send one check-run update; report instead of raising."""
        try:
            await self.github_client.update_check_run(
                event.owner,
                event.repository,
                event.check_run_id,
                update,
            )
        except Exception as exc:
            logger.warning(
                "Check run update failed",
                extra={
                    "operation": operation,
                    "check_run_id": event.check_run_id,
                    "error": str(exc),
                },
            )
            return StatusUpdateResult(operation=operation, ok=False, error=str(exc))
        return StatusUpdateResult(operation=operation, ok=True)

    async def _best_effort_comment(
        self,
        event: CheckRunActionEvent,
        pull_number: int,
        body: str,
    ) -> StatusUpdateResult:
        try:
            await self.github_client.create_comment(
                event.owner,
                event.repository,
                pull_number,
                body,
            )
        except Exception as exc:
            logger.warning(
                "Result comment failed",
                extra={"pull_number": pull_number, "error": str(exc)},
            )
            return StatusUpdateResult(operation="comment", ok=False, error=str(exc))
        return StatusUpdateResult(operation="comment", ok=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _advance(self, run: ReviewRun, to_stage: ReviewStage) -> None:
        """Advance the run and emit a state-transition event."""
        transition = run.advance(to_stage)
        await self._emit(
            run,
            EventType.STATE_TRANSITION,
            {
                "from_stage": transition.from_stage.value,
                "to_stage": transition.to_stage.value,
            },
        )

    def _run_id(self, run: ReviewRun) -> str:
        return f"{run.repository}@{run.check_run_id}"

    async def _emit(self, run: ReviewRun, event_type: EventType, details: dict) -> None:
        """Emit an event, swallowing exceptions to avoid disrupting the run."""
        event = ReviewEvent(
            event_type=event_type,
            run_id=self._run_id(run),
            repository=run.repository,
            kind=run.kind.value,
            details=details,
        )
        try:
            await self.event_emitter.emit(event)
        except Exception:
            logger.exception(
                "Failed to emit review event",
                extra={"event_type": event_type.value, "run_id": event.run_id},
            )
