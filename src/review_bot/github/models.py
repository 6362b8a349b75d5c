"""GitHub data models for check runs and pull requests.

Check-run models mirror the Checks API request body; pull request models
keep only the fields the review workflows forward to Langflow.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class CheckStatus(str, Enum):
    """Lifecycle status of a check run."""

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class CheckConclusion(str, Enum):
    """Conclusion of a completed check run.

    Attributes:
        SUCCESS: Positive result (merge-ready PRs).
        NEUTRAL: Informational result; used for completed reviews and for
                 transient service problems so they do not read as defects.
        FAILURE: The review could not be produced for a non-transient reason.
    """

    SUCCESS = "success"
    NEUTRAL = "neutral"
    FAILURE = "failure"


class CheckAction(BaseModel):
    """A button shown on a check run; clicking it sends a
    ``check_run.requested_action`` webhook carrying ``identifier``."""

    label: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    identifier: str = Field(..., min_length=1)


class CheckRunOutput(BaseModel):
    """Title, summary and optional details text of a check run."""

    title: str
    summary: str
    text: Optional[str] = None


class CheckRunUpdate(BaseModel):
    """Body of a check-run create or update request.

    Attributes:
        status: New lifecycle status.
        conclusion: Required by GitHub when status is completed.
        output: Title/summary/text shown on the check run.
        actions: Buttons offered to the user.
    """

    status: CheckStatus
    conclusion: Optional[CheckConclusion] = None
    output: CheckRunOutput
    actions: List[CheckAction] = Field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        """Render the JSON body expected by the Checks API."""
        payload: Dict[str, Any] = {
            "status": self.status.value,
            "output": self.output.model_dump(exclude_none=True),
        }
        if self.conclusion is not None:
            payload["conclusion"] = self.conclusion.value
        if self.actions:
            payload["actions"] = [action.model_dump() for action in self.actions]
        return payload


class ChangedFile(BaseModel):
    """One entry of a pull request's changed-files list."""

    filename: str
    status: str = "modified"
    additions: int = 0
    deletions: int = 0
    patch: Optional[str] = None

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "ChangedFile":
        return cls(
            filename=data.get("filename", ""),
            status=data.get("status") or "modified",
            additions=data.get("additions") or 0,
            deletions=data.get("deletions") or 0,
            patch=data.get("patch"),
        )


class PullRequestDetails(BaseModel):
    """Pull request metadata as returned by ``GET /repos/{o}/{r}/pulls/{n}``.

    Attributes:
        number: Pull request number.
        title: Pull request title.
        body: Description; None when the author left it empty.
        author: Login of the pull request author.
        head_ref: Source branch name.
        head_sha: Head commit SHA.
        base_ref: Target branch name.
        html_url: Web URL of the pull request.
        additions: Total added lines.
        deletions: Total deleted lines.
        changed_files: Number of changed files.
        mergeable: GitHub's mergeability flag; None while it is computed.
        mergeable_state: GitHub's mergeable state (clean, dirty, blocked...).
        created_at: Creation timestamp (ISO 8601).
        updated_at: Last update timestamp (ISO 8601).
    """

    number: int = Field(..., gt=0)
    title: str = ""
    body: Optional[str] = None
    author: str = ""
    head_ref: str = ""
    head_sha: str = ""
    base_ref: str = ""
    html_url: str = ""
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0
    mergeable: Optional[bool] = None
    mergeable_state: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "PullRequestDetails":
        """Build from a raw GitHub API pull request object."""
        head = data.get("head") or {}
        base = data.get("base") or {}
        user = data.get("user") or {}
        return cls(
            number=data["number"],
            title=data.get("title") or "",
            body=data.get("body"),
            author=user.get("login") or "",
            head_ref=head.get("ref") or "",
            head_sha=head.get("sha") or "",
            base_ref=base.get("ref") or "",
            html_url=data.get("html_url") or "",
            additions=data.get("additions") or 0,
            deletions=data.get("deletions") or 0,
            changed_files=data.get("changed_files") or 0,
            mergeable=data.get("mergeable"),
            mergeable_state=data.get("mergeable_state"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )
