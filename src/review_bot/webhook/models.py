"""GitHub webhook event models for the review bot.

Only the fields the review workflows consume are kept:

- ``check_run.requested_action``: a user clicked a check-run button
  ("Review PR", "Check Merge Readiness", "Retry Review").
- ``pull_request.opened`` / ``pull_request.synchronize``: a PR appeared or
  received new commits, so the review button is (re)attached.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class RequestedAction(str, Enum):
    """Identifiers carried by check-run buttons.

    Attributes:
        REVIEW_PR: Run the code review flow.
        CHECK_MERGE: Run the merge readiness flow.
    """

    REVIEW_PR = "review_pr"
    CHECK_MERGE = "check_merge"


class PullRequestAction(str, Enum):
    """Pull request actions that attach the review button."""

    OPENED = "opened"
    SYNCHRONIZE = "synchronize"


class CheckRunActionEvent(BaseModel):
    """Parsed ``check_run.requested_action`` webhook event.

    Attributes:
        requested_action: Which button was clicked.
        check_run_id: The check run that carries the button.
        head_sha: Commit the check run is attached to.
        owner: Repository owner (user or organization).
        repository: Repository name without owner prefix.
        pull_numbers: Pull requests GitHub associated with the check run;
                      empty for PRs from forks.
        installation_id: GitHub App installation that sent the event.
    """

    requested_action: RequestedAction = Field(
        ...,
        description="Identifier of the button the user clicked",
    )

    check_run_id: int = Field(..., gt=0)

    head_sha: str = Field(..., min_length=1)

    owner: str = Field(..., min_length=1)

    repository: str = Field(..., min_length=1)

    pull_numbers: List[int] = Field(default_factory=list)

    installation_id: Optional[int] = None

    @property
    def full_repository(self) -> str:
        return f"{self.owner}/{self.repository}"

    @property
    def pull_number(self) -> Optional[int]:
        """First associated pull request, if GitHub sent one."""
        return self.pull_numbers[0] if self.pull_numbers else None


class PullRequestEvent(BaseModel):
    """Parsed ``pull_request`` webhook event.

    Attributes:
        action: opened or synchronize.
        pull_number: Pull request number.
        title: Pull request title.
        author: Login of the pull request author.
        head_sha: Head commit the review button is attached to.
        changed_files: Number of changed files.
        additions: Added line count.
        deletions: Deleted line count.
        owner: Repository owner.
        repository: Repository name without owner prefix.
    """

    action: PullRequestAction

    pull_number: int = Field(..., gt=0)

    title: str = ""

    author: str = ""

    head_sha: str = Field(..., min_length=1)

    changed_files: int = 0

    additions: int = 0

    deletions: int = 0

    owner: str = Field(..., min_length=1)

    repository: str = Field(..., min_length=1)

    @property
    def pull_request_id(self) -> str:
        """Canonical identifier, ``{owner}/{repository}#{pull_number}``."""
        return f"{self.owner}/{self.repository}#{self.pull_number}"
