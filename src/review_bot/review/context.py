"""Review context snapshots sent to Langflow.

A context is built fresh for each run from GitHub data, truncated to keep
the workflow payload small, and discarded after the invocation. Contexts
are immutable.

Limits applied before forwarding:
- at most 10 changed files
- diff fragments cut to 1000 characters
- descriptions cut to 500 characters
- the prior review (merge check) cut to 1000 characters
"""

from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.review_bot.github.models import ChangedFile, PullRequestDetails


MAX_FILES = 10
MAX_PATCH_CHARS = 1000
MAX_DESCRIPTION_CHARS = 500
MAX_PREVIOUS_REVIEW_CHARS = 1000

TWEAK_PER_PAGE = 30
TWEAK_MAX_PAGES = 5

NO_DESCRIPTION = "No description provided"
NO_PREVIOUS_REVIEW = "No previous review found"
REVIEW_COMMENT_MARKER = "AI Code Review Results"


class FileSummary(BaseModel):
    """A changed file as forwarded to the workflow."""

    model_config = ConfigDict(frozen=True)

    filename: str
    status: str
    additions: int
    deletions: int
    patch: Optional[str] = None

    @classmethod
    def from_changed_file(cls, changed: ChangedFile) -> "FileSummary":
        return cls(
            filename=changed.filename,
            status=changed.status,
            additions=changed.additions,
            deletions=changed.deletions,
            patch=changed.patch[:MAX_PATCH_CHARS] if changed.patch else None,
        )


class ReviewContext(BaseModel):
    """Snapshot of a pull request for the code review flow.

    Attributes:
        pr_number: Pull request number.
        repository: "{owner}/{repo}".
        repo_url: Web URL of the repository.
        title: Pull request title.
        description: Description, truncated.
        author: Pull request author login.
        branch: Head branch.
        base_branch: Target branch.
        files: First changed files, with truncated diff fragments.
        stats: total_files, additions, deletions.
        url: Web URL of the pull request.
        created_at: Creation timestamp.
        updated_at: Last update timestamp.
        tweaks: Langflow component overrides.
    """

    model_config = ConfigDict(frozen=True)

    pr_number: int = Field(..., gt=0)
    repository: str
    repo_url: str
    title: str
    description: str
    author: str
    branch: str
    base_branch: str
    files: List[FileSummary] = Field(default_factory=list)
    stats: Dict[str, int] = Field(default_factory=dict)
    url: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    tweaks: Dict[str, Any] = Field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class MergeReadinessContext(BaseModel):
    """Snapshot of a pull request for the merge readiness flow.

    Carries GitHub's mergeability flags and the start of the most recent
    AI review comment in addition to the basic PR identity.
    """

    model_config = ConfigDict(frozen=True)

    pr_number: int = Field(..., gt=0)
    repository: str
    repo_url: str
    title: str
    description: str
    author: str
    branch: str
    mergeable: Optional[bool] = None
    mergeable_state: Optional[str] = None
    previous_review: str = NO_PREVIOUS_REVIEW
    checks_status: str = "pending"
    tweaks: Dict[str, Any] = Field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


def repository_url(owner: str, repo: str) -> str:
    return f"https://github.com/{owner}/{repo}"


def truncate_description(body: Optional[str]) -> str:
    return (body or NO_DESCRIPTION)[:MAX_DESCRIPTION_CHARS]


def build_tweaks(
    component_id: str,
    repo_url: str,
    branch: str,
    pr_number: int,
    github_token: Optional[str],
) -> Dict[str, Any]:
    """Overrides for the flow's GitHub fetcher component."""
    return {
        component_id: {
            "repo_url": repo_url,
            "branch_name": branch,
            "github_token": github_token,
            "per_page": TWEAK_PER_PAGE,
            "max_pages": TWEAK_MAX_PAGES,
            "pr_number": pr_number,
        }
    }


def build_review_context(
    owner: str,
    repo: str,
    pr: PullRequestDetails,
    files: List[ChangedFile],
    tweak_component: str,
    github_token: Optional[str] = None,
) -> ReviewContext:
    """Build the code review context from GitHub data."""
    repo_url = repository_url(owner, repo)
    return ReviewContext(
        pr_number=pr.number,
        repository=f"{owner}/{repo}",
        repo_url=repo_url,
        title=pr.title,
        description=truncate_description(pr.body),
        author=pr.author,
        branch=pr.head_ref,
        base_branch=pr.base_ref,
        files=[FileSummary.from_changed_file(f) for f in files[:MAX_FILES]],
        stats={
            "total_files": len(files),
            "additions": pr.additions,
            "deletions": pr.deletions,
        },
        url=pr.html_url,
        created_at=pr.created_at,
        updated_at=pr.updated_at,
        tweaks=build_tweaks(tweak_component, repo_url, pr.head_ref, pr.number, github_token),
    )


def find_previous_review(comments: Iterable[Dict[str, Any]]) -> Optional[str]:
    """Return the body of the latest comment holding AI review results."""
    latest = None
    for comment in comments:
        body = comment.get("body") if isinstance(comment, dict) else None
        if isinstance(body, str) and REVIEW_COMMENT_MARKER in body:
            latest = body
    return latest


def build_merge_context(
    owner: str,
    repo: str,
    pr: PullRequestDetails,
    previous_review: Optional[str],
    tweak_component: str,
    github_token: Optional[str] = None,
) -> MergeReadinessContext:
    """Build the merge readiness context from GitHub data."""
    repo_url = repository_url(owner, repo)
    return MergeReadinessContext(
        pr_number=pr.number,
        repository=f"{owner}/{repo}",
        repo_url=repo_url,
        title=pr.title,
        description=truncate_description(pr.body),
        author=pr.author,
        branch=pr.head_ref,
        mergeable=pr.mergeable,
        mergeable_state=pr.mergeable_state,
        previous_review=(
            previous_review[:MAX_PREVIOUS_REVIEW_CHARS]
            if previous_review
            else NO_PREVIOUS_REVIEW
        ),
        tweaks=build_tweaks(tweak_component, repo_url, pr.head_ref, pr.number, github_token),
    )
