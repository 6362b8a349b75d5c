"""Unit tests for the ReviewOrchestrator.

GitHub is an AsyncMock; the Langflow side is a real WorkflowClient talking
to ``httpx.MockTransport`` with jitter and retry delays disabled, so each
test runs the full invocation path end to end.
"""

import asyncio
import json
from typing import List, Optional
from unittest.mock import AsyncMock

import httpx

from src.review_bot.events.emitter import EventEmitter
from src.review_bot.events.models import EventType, ReviewEvent
from src.review_bot.github.auth import CredentialError
from src.review_bot.github.client import GitHubAPIError
from src.review_bot.github.models import (
    ChangedFile,
    CheckConclusion,
    CheckStatus,
    PullRequestDetails,
)
from src.review_bot.invocation.classification import HIGH_LOAD_MESSAGE
from src.review_bot.invocation.client import WorkflowClient
from src.review_bot.invocation.policy import RetryPolicy
from src.review_bot.review.models import ReviewKind, ReviewOutcome, ReviewStage
from src.review_bot.review.orchestrator import ReviewOrchestrator
from src.review_bot.webhook.models import (
    CheckRunActionEvent,
    PullRequestAction,
    PullRequestEvent,
    RequestedAction,
)


def run_async(coro):
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


class RecordingEmitter(EventEmitter):
    def __init__(self) -> None:
        self.events: List[ReviewEvent] = []

    async def emit(self, event: ReviewEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> List[ReviewEvent]:
        return [e for e in self.events if e.event_type == event_type]


def _make_event(
    action: RequestedAction = RequestedAction.REVIEW_PR,
    pull_numbers: Optional[List[int]] = None,
) -> CheckRunActionEvent:
    return CheckRunActionEvent(
        requested_action=action,
        check_run_id=991,
        head_sha="abc123",
        owner="acme",
        repository="widgets",
        pull_numbers=[12] if pull_numbers is None else pull_numbers,
        installation_id=5,
    )


def _make_pr() -> PullRequestDetails:
    return PullRequestDetails(
        number=12,
        title="Add caching",
        body="Adds a cache layer",
        author="octo",
        head_ref="feature/cache",
        head_sha="abc123",
        base_ref="main",
        html_url="https://github.com/acme/widgets/pull/12",
        additions=40,
        deletions=3,
        changed_files=1,
        mergeable=True,
        mergeable_state="clean",
    )


def _make_github() -> AsyncMock:
    github = AsyncMock()
    github.get_pull_request.return_value = _make_pr()
    github.list_pull_request_files.return_value = [
        ChangedFile(filename="cache.py", additions=40, deletions=3, patch="@@ +1 @@")
    ]
    github.list_issue_comments.return_value = [
        {"body": "## 🤖 AI Code Review Results\n\nNo blocking issues."}
    ]
    github.find_open_pull_request_for_commit.return_value = 12
    return github


def _make_workflow(handler, requests: Optional[list] = None) -> WorkflowClient:
    def recording(request):
        if requests is not None:
            requests.append(request)
        return handler(request)

    return WorkflowClient(
        endpoint="https://langflow.test/api/v1",
        api_key="lf-key",
        policy=RetryPolicy(timeout_ms=5_000, max_attempts=3, retry_delay_ms=0),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(recording)),
        jitter_max_ms=0,
    )


def _make_orchestrator(github, workflow, emitter=None) -> ReviewOrchestrator:
    return ReviewOrchestrator(
        github_client=github,
        workflow_client=workflow,
        event_emitter=emitter or RecordingEmitter(),
        review_flow_id="review-flow",
        merge_flow_id="merge-flow",
        tweak_github_token="ghs_tweak",
    )


def _updates(github: AsyncMock):
    """CheckRunUpdate objects sent to update_check_run, in order."""
    return [c.args[3] for c in github.update_check_run.await_args_list]


# ---------------------------------------------------------------------------
# Review flow
# ---------------------------------------------------------------------------


class TestReviewSuccess:
    def test_successful_review_reports_message(self):
        github = _make_github()
        emitter = RecordingEmitter()
        orchestrator = _make_orchestrator(
            github,
            _make_workflow(lambda r: httpx.Response(200, json={"result": "All good"})),
            emitter,
        )

        run = run_async(orchestrator.run_review(_make_event()))

        assert run.stage is ReviewStage.COMPLETED
        assert run.outcome is ReviewOutcome.SUCCESS
        assert run.message == "All good"

        first, last = _updates(github)
        assert first.status is CheckStatus.IN_PROGRESS
        assert last.status is CheckStatus.COMPLETED
        assert last.conclusion is CheckConclusion.NEUTRAL
        assert last.output.summary == "All good"
        assert [a.identifier for a in last.actions] == ["check_merge"]

        github.create_comment.assert_awaited_once()
        owner, repo, number, body = github.create_comment.await_args.args
        assert (owner, repo, number) == ("acme", "widgets", 12)
        assert "All good" in body

        completion = emitter.of_type(EventType.COMPLETION)
        assert completion[0].details["outcome"] == "success"

    def test_sends_review_context_to_review_flow(self):
        requests: list = []
        github = _make_github()
        orchestrator = _make_orchestrator(
            github,
            _make_workflow(lambda r: httpx.Response(200, json={"result": "ok"}), requests),
        )

        run_async(orchestrator.run_review(_make_event()))

        assert requests[0].url.path == "/api/v1/run/review-flow"
        body = json.loads(requests[0].content)
        context = json.loads(body["body"])
        assert context["pr_number"] == 12
        assert context["files"][0]["filename"] == "cache.py"
        assert body["tweaks"]["GitHubBranchPRsFetcher-2MPWZ"]["github_token"] == "ghs_tweak"

    def test_status_write_failures_do_not_change_outcome(self):
        github = _make_github()
        github.update_check_run.side_effect = GitHubAPIError("boom", status_code=500)
        github.create_comment.side_effect = GitHubAPIError("boom", status_code=500)
        orchestrator = _make_orchestrator(
            github,
            _make_workflow(lambda r: httpx.Response(200, json={"result": "All good"})),
        )

        run = run_async(orchestrator.run_review(_make_event()))

        assert run.outcome is ReviewOutcome.SUCCESS
        # Attempted once each, never retried
        assert github.update_check_run.await_count == 2
        assert github.create_comment.await_count == 1

    def test_pull_request_is_resolved_from_commit(self):
        github = _make_github()
        orchestrator = _make_orchestrator(
            github,
            _make_workflow(lambda r: httpx.Response(200, json={"result": "ok"})),
        )

        run = run_async(orchestrator.run_review(_make_event(pull_numbers=[])))

        github.find_open_pull_request_for_commit.assert_awaited_once_with(
            "acme", "widgets", "abc123"
        )
        assert run.pull_number == 12
        assert run.outcome is ReviewOutcome.SUCCESS


class TestReviewFailure:
    def test_gateway_timeout_is_unavailable_and_neutral(self):
        requests: list = []
        github = _make_github()
        emitter = RecordingEmitter()
        orchestrator = _make_orchestrator(
            github,
            _make_workflow(lambda r: httpx.Response(504), requests),
            emitter,
        )

        run = run_async(orchestrator.run_review(_make_event()))

        assert len(requests) == 3
        assert run.outcome is ReviewOutcome.UNAVAILABLE
        assert run.message == HIGH_LOAD_MESSAGE

        last = _updates(github)[-1]
        assert last.conclusion is CheckConclusion.NEUTRAL
        assert last.output.title == "⚠️ AI Review Unavailable"
        assert [a.identifier for a in last.actions] == ["review_pr"]
        github.create_comment.assert_not_awaited()

        assert emitter.of_type(EventType.TIMEOUT)
        assert emitter.of_type(EventType.ERROR)[0].details["outcome"] == "unavailable"

    def test_auth_rejection_is_a_failure(self):
        github = _make_github()
        orchestrator = _make_orchestrator(
            github,
            _make_workflow(lambda r: httpx.Response(401, text="bad key")),
        )

        run = run_async(orchestrator.run_review(_make_event()))

        assert run.outcome is ReviewOutcome.FAILURE
        last = _updates(github)[-1]
        assert last.conclusion is CheckConclusion.FAILURE
        assert "Unauthorized" in last.output.text

    def test_missing_flow_id_is_a_failure(self):
        github = _make_github()
        orchestrator = _make_orchestrator(
            github,
            _make_workflow(lambda r: httpx.Response(200, json={"result": "ok"})),
        )
        orchestrator.review_flow_id = None

        run = run_async(orchestrator.run_review(_make_event()))

        assert run.outcome is ReviewOutcome.FAILURE
        assert run.message == "Flow ID is required but not provided"

    def test_unknown_flow_is_a_failure_even_with_gateway_digits(self):
        requests: list = []
        github = _make_github()
        orchestrator = _make_orchestrator(
            github,
            _make_workflow(lambda r: httpx.Response(404, text="Flow 504 gone"), requests),
        )
        orchestrator.review_flow_id = "3f2a5041-77c1-4504-9b22-504a1c3e5021"

        run = run_async(orchestrator.run_review(_make_event()))

        assert len(requests) == 1
        assert run.outcome is ReviewOutcome.FAILURE
        assert run.message.startswith("Flow not found.")
        last = _updates(github)[-1]
        assert last.conclusion is CheckConclusion.FAILURE
        assert last.output.title == "❌ AI Review Failed"
        assert "Flow not found" in last.output.text

    def test_github_context_failure_is_unavailable(self):
        requests: list = []
        github = _make_github()
        github.get_pull_request.side_effect = CredentialError("token exchange failed")
        orchestrator = _make_orchestrator(
            github,
            _make_workflow(lambda r: httpx.Response(200, json={}), requests),
        )

        run = run_async(orchestrator.run_review(_make_event()))

        assert run.outcome is ReviewOutcome.UNAVAILABLE
        assert requests == []
        assert _updates(github)[-1].conclusion is CheckConclusion.NEUTRAL

    def test_no_open_pull_request_is_unavailable(self):
        github = _make_github()
        github.find_open_pull_request_for_commit.return_value = None
        orchestrator = _make_orchestrator(
            github,
            _make_workflow(lambda r: httpx.Response(200, json={})),
        )

        run = run_async(orchestrator.run_review(_make_event(pull_numbers=[])))

        assert run.outcome is ReviewOutcome.UNAVAILABLE
        assert run.message == "No open pull request found for this check run"

    def test_emitter_failures_are_swallowed(self):
        emitter = AsyncMock(spec=EventEmitter)
        emitter.emit.side_effect = RuntimeError("sink down")
        orchestrator = _make_orchestrator(
            _make_github(),
            _make_workflow(lambda r: httpx.Response(200, json={"result": "ok"})),
            emitter,
        )

        run = run_async(orchestrator.run_review(_make_event()))

        assert run.outcome is ReviewOutcome.SUCCESS


# ---------------------------------------------------------------------------
# Merge readiness flow
# ---------------------------------------------------------------------------


class TestMergeCheck:
    def _run(self, handler, requests=None):
        github = _make_github()
        orchestrator = _make_orchestrator(github, _make_workflow(handler, requests))
        run = run_async(orchestrator.run_merge_check(_make_event(RequestedAction.CHECK_MERGE)))
        return github, run

    def test_ready_concludes_success(self):
        requests: list = []
        github, run = self._run(
            lambda r: httpx.Response(200, json={"result": "This PR is ready to merge."}),
            requests,
        )

        assert run.kind is ReviewKind.MERGE_CHECK
        assert run.outcome is ReviewOutcome.SUCCESS
        last = _updates(github)[-1]
        assert last.conclusion is CheckConclusion.SUCCESS
        assert last.output.title == "🚀 Ready to Merge!"

        assert requests[0].url.path == "/api/v1/run/merge-flow"
        context = json.loads(json.loads(requests[0].content)["body"])
        assert "No blocking issues." in context["previous_review"]
        assert context["mergeable"] is True
        github.list_pull_request_files.assert_not_awaited()

    def test_not_ready_concludes_neutral(self):
        github, run = self._run(
            lambda r: httpx.Response(200, json={"result": "Not ready: tests missing."})
        )

        assert run.outcome is ReviewOutcome.SUCCESS
        last = _updates(github)[-1]
        assert last.conclusion is CheckConclusion.NEUTRAL
        assert last.output.title == "⚠️ Not Ready to Merge"

    def test_failures_always_conclude_neutral(self):
        github, run = self._run(lambda r: httpx.Response(400, text="bad"))

        assert run.outcome is ReviewOutcome.FAILURE
        last = _updates(github)[-1]
        assert last.conclusion is CheckConclusion.NEUTRAL
        assert last.output.title == "⚠️ Merge Check Unavailable"

    def test_in_progress_output(self):
        github, _ = self._run(lambda r: httpx.Response(200, json={"result": "ready"}))

        first = _updates(github)[0]
        assert first.output.title == "🔄 Checking Merge Readiness"


# ---------------------------------------------------------------------------
# Review button
# ---------------------------------------------------------------------------


class TestReviewButton:
    def _event(self) -> PullRequestEvent:
        return PullRequestEvent(
            action=PullRequestAction.OPENED,
            pull_number=12,
            title="Add caching",
            author="octo",
            head_sha="abc123",
            changed_files=1,
            additions=40,
            deletions=3,
            owner="acme",
            repository="widgets",
        )

    def test_creates_neutral_check_run_with_review_action(self):
        github = _make_github()
        orchestrator = _make_orchestrator(github, _make_workflow(lambda r: httpx.Response(200)))

        result = run_async(orchestrator.add_review_button(self._event()))

        assert result.ok
        owner, repo, name, sha, update = github.create_check_run.await_args.args
        assert (owner, repo, name, sha) == ("acme", "widgets", "AI Code Review", "abc123")
        assert update.conclusion is CheckConclusion.NEUTRAL
        assert [a.identifier for a in update.actions] == ["review_pr"]
        assert "Additions: +40" in update.output.text

    def test_failure_is_reported_not_raised(self):
        github = _make_github()
        github.create_check_run.side_effect = GitHubAPIError("nope", status_code=403)
        orchestrator = _make_orchestrator(github, _make_workflow(lambda r: httpx.Response(200)))

        result = run_async(orchestrator.add_review_button(self._event()))

        assert not result.ok
        assert result.error == "nope"
