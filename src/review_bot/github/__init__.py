"""GitHub API access for the review bot.

- GitHubClient: check runs, pull request data and comments over httpx
- Credential providers: GitHub App installation tokens (PyJWT) or a
  static token
- Models for check-run bodies and pull request data
"""

from src.review_bot.github.auth import (
    CredentialError,
    InstallationTokenProvider,
    MissingCredentialProvider,
    StaticTokenProvider,
    TokenProvider,
    create_app_jwt,
    load_private_key,
)
from src.review_bot.github.client import GitHubAPIError, GitHubClient, RateLimitError
from src.review_bot.github.models import (
    ChangedFile,
    CheckAction,
    CheckConclusion,
    CheckRunOutput,
    CheckRunUpdate,
    CheckStatus,
    PullRequestDetails,
)

__all__ = [
    "ChangedFile",
    "CheckAction",
    "CheckConclusion",
    "CheckRunOutput",
    "CheckRunUpdate",
    "CheckStatus",
    "CredentialError",
    "GitHubAPIError",
    "GitHubClient",
    "InstallationTokenProvider",
    "MissingCredentialProvider",
    "PullRequestDetails",
    "RateLimitError",
    "StaticTokenProvider",
    "TokenProvider",
    "create_app_jwt",
    "load_private_key",
]
