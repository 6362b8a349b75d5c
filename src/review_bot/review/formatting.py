"""Check-run outputs and PR comment bodies for review runs."""

from src.review_bot.github.models import (
    CheckAction,
    CheckConclusion,
    CheckRunOutput,
    CheckRunUpdate,
    CheckStatus,
)
from src.review_bot.review.models import ReviewKind
from src.review_bot.webhook.models import PullRequestEvent, RequestedAction


REVIEW_ACTION = CheckAction(
    label="🔍 Review PR",
    description="Trigger AI code review with Langflow",
    identifier=RequestedAction.REVIEW_PR.value,
)

RETRY_ACTION = CheckAction(
    label="🔄 Retry Review",
    description="Try the AI review again",
    identifier=RequestedAction.REVIEW_PR.value,
)

MERGE_CHECK_ACTION = CheckAction(
    label="🚀 Check Merge Readiness",
    description="Analyze if PR is ready to merge",
    identifier=RequestedAction.CHECK_MERGE.value,
)

UNAVAILABLE_SUMMARY = "The AI service is currently unavailable"
RETRY_HINT = '*You can try running the review again by clicking the "Review PR" button.*'


def review_button(event: PullRequestEvent) -> CheckRunUpdate:
    """Completed/neutral check run offering the "Review PR" button."""
    return CheckRunUpdate(
        status=CheckStatus.COMPLETED,
        conclusion=CheckConclusion.NEUTRAL,
        output=CheckRunOutput(
            title="🤖 AI Review Available",
            summary="Click the button below to start AI-powered code review",
            text=(
                "**PR Details:**\n"
                f"- Title: {event.title}\n"
                f"- Author: {event.author}\n"
                f"- Files changed: {event.changed_files}\n"
                f"- Additions: +{event.additions}\n"
                f"- Deletions: -{event.deletions}"
            ),
        ),
        actions=[REVIEW_ACTION],
    )


def in_progress(kind: ReviewKind, timeout_seconds: float) -> CheckRunUpdate:
    if kind is ReviewKind.MERGE_CHECK:
        output = CheckRunOutput(
            title="🔄 Checking Merge Readiness",
            summary="Analyzing PR for merge readiness...",
        )
    else:
        output = CheckRunOutput(
            title="🔄 AI Review in Progress",
            summary="Analyzing your code with Langflow agents...",
            text=f"⏱️ This may take up to {timeout_seconds:g} seconds. Please wait...",
        )
    return CheckRunUpdate(status=CheckStatus.IN_PROGRESS, output=output)


def review_complete(message: str) -> CheckRunUpdate:
    """Successful review; the summary carries the workflow's answer."""
    return CheckRunUpdate(
        status=CheckStatus.COMPLETED,
        conclusion=CheckConclusion.NEUTRAL,
        output=CheckRunOutput(title="✅ AI Review Complete", summary=message),
        actions=[MERGE_CHECK_ACTION],
    )


def review_failed(message: str, transient: bool) -> CheckRunUpdate:
    """Failed review. Transient problems conclude neutral, not failure."""
    if transient:
        conclusion = CheckConclusion.NEUTRAL
        title = "⚠️ AI Review Unavailable"
        summary = UNAVAILABLE_SUMMARY
    else:
        conclusion = CheckConclusion.FAILURE
        title = "❌ AI Review Failed"
        summary = "There was an error during the review process"
    return CheckRunUpdate(
        status=CheckStatus.COMPLETED,
        conclusion=conclusion,
        output=CheckRunOutput(
            title=title,
            summary=summary,
            text=f"{message}\n\n{RETRY_HINT}",
        ),
        actions=[RETRY_ACTION],
    )


def merge_complete(message: str, ready: bool) -> CheckRunUpdate:
    return CheckRunUpdate(
        status=CheckStatus.COMPLETED,
        conclusion=CheckConclusion.SUCCESS if ready else CheckConclusion.NEUTRAL,
        output=CheckRunOutput(
            title="🚀 Ready to Merge!" if ready else "⚠️ Not Ready to Merge",
            summary=message or "Merge readiness analysis completed",
        ),
    )


def merge_failed(message: str) -> CheckRunUpdate:
    """Merge check failures always conclude neutral."""
    return CheckRunUpdate(
        status=CheckStatus.COMPLETED,
        conclusion=CheckConclusion.NEUTRAL,
        output=CheckRunOutput(
            title="⚠️ Merge Check Unavailable",
            summary="Unable to complete merge readiness analysis",
            text=f"Error: {message}",
        ),
    )


def review_comment(message: str) -> str:
    return (
        "## 🤖 AI Code Review Results\n\n"
        f"{message or 'Review completed successfully'}\n\n"
        "---\n"
        '*Analysis powered by Langflow AI • Click "Check Merge Readiness" '
        "above for final assessment*"
    )


def merge_comment(message: str) -> str:
    return (
        "## 🚀 Merge Readiness Analysis\n\n"
        f"{message or 'Analysis completed'}\n\n"
        "---\n"
        "*Final assessment by Langflow AI*"
    )
