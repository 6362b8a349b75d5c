"""Unit tests for review and merge-readiness context building."""

import pytest
from pydantic import ValidationError

from src.review_bot.github.models import ChangedFile, PullRequestDetails
from src.review_bot.review.context import (
    MAX_FILES,
    NO_DESCRIPTION,
    NO_PREVIOUS_REVIEW,
    build_merge_context,
    build_review_context,
    find_previous_review,
)


def _pr(**overrides) -> PullRequestDetails:
    data = {
        "number": 12,
        "title": "Add caching",
        "body": "Adds a cache layer",
        "user": {"login": "octo"},
        "head": {"ref": "feature/cache", "sha": "abc123"},
        "base": {"ref": "main"},
        "html_url": "https://github.com/acme/widgets/pull/12",
        "additions": 40,
        "deletions": 3,
        "changed_files": 2,
        "mergeable": True,
        "mergeable_state": "clean",
    }
    data.update(overrides)
    return PullRequestDetails.from_github_response(data)


def _files(count: int, patch: str = "@@ -1 +1 @@") -> list:
    return [
        ChangedFile(filename=f"src/file_{i}.py", additions=1, deletions=0, patch=patch)
        for i in range(count)
    ]


class TestReviewContext:
    def test_limits_files_and_truncates_patches(self):
        context = build_review_context(
            "acme", "widgets", _pr(), _files(15, patch="x" * 5000), tweak_component="Fetcher-1"
        )

        assert len(context.files) == MAX_FILES
        assert all(len(f.patch) == 1000 for f in context.files)
        assert context.stats == {"total_files": 15, "additions": 40, "deletions": 3}

    def test_truncates_description(self):
        context = build_review_context(
            "acme", "widgets", _pr(body="d" * 900), [], tweak_component="Fetcher-1"
        )

        assert context.description == "d" * 500

    def test_missing_description(self):
        context = build_review_context(
            "acme", "widgets", _pr(body=None), [], tweak_component="Fetcher-1"
        )

        assert context.description == NO_DESCRIPTION

    def test_tweaks_target_fetcher_component(self):
        context = build_review_context(
            "acme", "widgets", _pr(), [], tweak_component="Fetcher-1", github_token="ghs_x"
        )

        assert context.tweaks == {
            "Fetcher-1": {
                "repo_url": "https://github.com/acme/widgets",
                "branch_name": "feature/cache",
                "github_token": "ghs_x",
                "per_page": 30,
                "max_pages": 5,
                "pr_number": 12,
            }
        }

    def test_payload_is_json_ready_and_context_is_frozen(self):
        context = build_review_context("acme", "widgets", _pr(), _files(1), "Fetcher-1")

        payload = context.to_payload()
        assert payload["repository"] == "acme/widgets"
        assert payload["files"][0]["filename"] == "src/file_0.py"
        with pytest.raises(ValidationError):
            context.title = "changed"


class TestPreviousReview:
    def test_latest_matching_comment_wins(self):
        comments = [
            {"body": "## 🤖 AI Code Review Results\n\nfirst"},
            {"body": "thanks!"},
            {"body": "## 🤖 AI Code Review Results\n\nsecond"},
        ]

        assert find_previous_review(comments).endswith("second")

    def test_none_when_no_review(self):
        assert find_previous_review([{"body": "lgtm"}, {"body": None}]) is None


class TestMergeContext:
    def test_carries_mergeability_and_truncated_review(self):
        context = build_merge_context(
            "acme", "widgets", _pr(), "r" * 3000, tweak_component="Open-1"
        )

        assert context.mergeable is True
        assert context.mergeable_state == "clean"
        assert context.previous_review == "r" * 1000
        assert "Open-1" in context.tweaks

    def test_missing_review_placeholder(self):
        context = build_merge_context("acme", "widgets", _pr(), None, tweak_component="Open-1")

        assert context.previous_review == NO_PREVIOUS_REVIEW
