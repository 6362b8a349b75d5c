"""Background dispatch of review runs from webhook events.

The webhook route must acknowledge within GitHub's delivery timeout, so each
accepted event becomes an asyncio task. Duplicate deliveries for a run that
is still in flight are dropped.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set, Tuple

from src.review_bot.review.orchestrator import ReviewOrchestrator
from src.review_bot.webhook.models import (
    CheckRunActionEvent,
    PullRequestEvent,
    RequestedAction,
)


logger = logging.getLogger(__name__)


GuardKey = Tuple[str, str, str]


class InFlightGuard:
    """Tracks keys of runs that are currently executing."""

    def __init__(self) -> None:
        self._active: Set[GuardKey] = set()

    def __contains__(self, key: GuardKey) -> bool:
        return key in self._active

    def __len__(self) -> int:
        return len(self._active)

    def try_acquire(self, key: GuardKey) -> bool:
        if key in self._active:
            return False
        self._active.add(key)
        return True

    def release(self, key: GuardKey) -> None:
        self._active.discard(key)


def check_run_key(event: CheckRunActionEvent) -> GuardKey:
    """Key a check-run action by PR when known, else by check run."""
    target = (
        f"pr:{event.pull_number}"
        if event.pull_number is not None
        else f"check:{event.check_run_id}"
    )
    return (event.full_repository, target, event.requested_action.value)


def pull_request_key(event: PullRequestEvent) -> GuardKey:
    return (
        f"{event.owner}/{event.repository}",
        f"pr:{event.pull_number}",
        f"button:{event.head_sha}",
    )


class ReviewDispatcher:
    """Schedules orchestrator work off the request path.

    Example:
        >>> dispatcher = ReviewDispatcher(orchestrator)
        >>> dispatcher.dispatch_check_run_action(event)
        True
        >>> await dispatcher.shutdown()
    """

    def __init__(
        self,
        orchestrator: ReviewOrchestrator,
        guard: Optional[InFlightGuard] = None,
    ):
        self.orchestrator = orchestrator
        self.guard = guard or InFlightGuard()
        self._tasks: Set["asyncio.Task[object]"] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch_check_run_action(self, event: CheckRunActionEvent) -> bool:
        """Start the flow matching the clicked button.

        Returns:
            False if an identical run is already in flight.
        """
        if event.requested_action is RequestedAction.CHECK_MERGE:
            run = self.orchestrator.run_merge_check
        else:
            run = self.orchestrator.run_review
        return self._schedule(check_run_key(event), lambda: run(event))

    def dispatch_pull_request(self, event: PullRequestEvent) -> bool:
        return self._schedule(
            pull_request_key(event),
            lambda: self.orchestrator.add_review_button(event),
        )

    def _schedule(self, key: GuardKey, start: Callable[[], Awaitable[object]]) -> bool:
        if not self.guard.try_acquire(key):
            logger.info("Duplicate delivery ignored", extra={"guard_key": "|".join(key)})
            return False

        task = asyncio.create_task(self._run(key, start()))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _run(self, key: GuardKey, work: Awaitable[object]) -> None:
        try:
            await work
        except Exception:
            logger.exception(
                "Review task crashed",
                extra={"guard_key": "|".join(key)},
            )
        finally:
            self.guard.release(key)

    async def wait_idle(self) -> None:
        """Wait for every scheduled task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self, timeout: float = 30.0) -> None:
        """Give running tasks ``timeout`` seconds, then cancel the rest."""
        if not self._tasks:
            return
        logger.info("Waiting for review tasks", extra={"pending": len(self._tasks)})
        _, still_running = await asyncio.wait(list(self._tasks), timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
