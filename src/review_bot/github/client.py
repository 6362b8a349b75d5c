"""GitHub API client for check runs, pull requests and comments.

This module provides an async wrapper around the GitHub REST API for:
- Creating and updating check runs
- Reading pull request metadata and changed files
- Resolving the open pull request for a commit
- Listing and creating pull request comments

Reads are retried with exponential backoff for transient failures. Writes
(check-run updates and comments) are sent once: status reporting is
best-effort and never retried.
"""

import asyncio
import logging
import random
import time
from typing import Any, Dict, List, Optional

import httpx

from src.review_bot.github.auth import TokenProvider
from src.review_bot.github.models import ChangedFile, CheckRunUpdate, PullRequestDetails


logger = logging.getLogger(__name__)


class GitHubAPIError(Exception):
    """Raised when a GitHub API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response.
        response_body: Response body from GitHub API.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)


class RateLimitError(GitHubAPIError):
    """Raised when GitHub API rate limit is exceeded.

    Attributes:
        reset_at: Unix timestamp when the rate limit resets.
        retry_after: Seconds to wait before retrying.
    """

    def __init__(
        self,
        message: str,
        reset_at: Optional[int] = None,
        retry_after: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.reset_at = reset_at
        self.retry_after = retry_after


class GitHubClient:
    """Async GitHub API client with rate limiting and retry logic.

    Attributes:
        token_provider: Supplies the bearer token for each request.
        base_url: Base URL for GitHub API (default: https://api.github.com).
        max_retries: Maximum number of retry attempts for transient failures.
        base_delay: Base delay in seconds for exponential backoff.
        max_delay: Maximum delay in seconds between retries.
        timeout: Request timeout in seconds.

    Example:
        >>> client = GitHubClient(StaticTokenProvider("ghp_xxx"))
        >>> async with client:
        ...     pr = await client.get_pull_request("owner", "repo", 42)
    """

    # HTTP status codes that should trigger a retry
    RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

    def __init__(
        self,
        token_provider: TokenProvider,
        base_url: str = "https://api.github.com",
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the GitHub client.

        Args:
            token_provider: Source of bearer tokens (app installation or
                            static token).
            base_url: Base URL for GitHub API. Use this to support
                      GitHub Enterprise Server endpoints.
            max_retries: Maximum number of retry attempts for reads.
            base_delay: Base delay in seconds for exponential backoff.
            max_delay: Maximum delay in seconds between retries.
            timeout: Request timeout in seconds.
            http_client: Optional pre-built httpx client (tests).
        """
        self.token_provider = token_provider
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self._client = http_client

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    async def _headers(self) -> Dict[str, str]:
        token = await self.token_provider.get_token()
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "langflow-review-bot/1.0",
        }

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _calculate_backoff(self, attempt: int) -> float:
        """Exponential backoff with full jitter (attempt is 0-indexed)."""
        exponential_delay = self.base_delay * (2 ** attempt)
        capped_delay = min(exponential_delay, self.max_delay)
        return random.uniform(0, capped_delay)

    def _parse_int_header(self, headers: httpx.Headers, name: str) -> Optional[int]:
        value = headers.get(name)
        if value is not None:
            try:
                return int(value)
            except ValueError:
                pass
        return None

    def _rate_limit_error(self, response: httpx.Response) -> RateLimitError:
        reset_at = self._parse_int_header(response.headers, "x-ratelimit-reset")

        retry_after = None
        if reset_at is not None:
            retry_after = max(0, reset_at - int(time.time()))
        retry_after_header = self._parse_int_header(response.headers, "retry-after")
        if retry_after_header is not None:
            retry_after = retry_after_header

        logger.warning(
            "GitHub API rate limit exceeded",
            extra={"reset_at": reset_at, "retry_after": retry_after},
        )
        return RateLimitError(
            message="GitHub API rate limit exceeded",
            status_code=response.status_code,
            reset_at=reset_at,
            retry_after=retry_after,
            request_url=str(response.url),
        )

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        retry: bool = True,
    ) -> httpx.Response:
        """Make an HTTP request, retrying transient failures when allowed.

        Args:
            method: HTTP method (GET, POST, PATCH).
            path: API path (e.g., /repos/owner/repo/check-runs).
            json_data: Optional JSON body for the request.
            params: Optional query parameters.
            retry: Whether transient failures are retried.

        Returns:
            The HTTP response from GitHub.

        Raises:
            GitHubAPIError: If the request fails after all retries.
            RateLimitError: If rate limit is exceeded.
            CredentialError: If no token could be obtained.
        """
        max_retries = self.max_retries if retry else 0
        last_exception: Optional[Exception] = None

        for attempt in range(max_retries + 1):
            headers = await self._headers()
            try:
                response = await self.client.request(
                    method=method,
                    url=path,
                    json=json_data,
                    params=params,
                    headers=headers,
                )
            except httpx.RequestError as e:
                last_exception = e
                if attempt < max_retries:
                    delay = self._calculate_backoff(attempt)
                    logger.warning(
                        "Request error, retrying",
                        extra={
                            "error": str(e),
                            "attempt": attempt + 1,
                            "max_retries": max_retries,
                            "delay": delay,
                            "path": path,
                        },
                    )
                    await asyncio.sleep(delay)
                    continue
                break

            if response.status_code == 403:
                remaining = self._parse_int_header(response.headers, "x-ratelimit-remaining")
                if remaining == 0:
                    raise self._rate_limit_error(response)
            if response.status_code == 429:
                raise self._rate_limit_error(response)

            if response.status_code in self.RETRYABLE_STATUS_CODES and attempt < max_retries:
                delay = self._calculate_backoff(attempt)
                logger.warning(
                    "Retryable error from GitHub API",
                    extra={
                        "status_code": response.status_code,
                        "attempt": attempt + 1,
                        "max_retries": max_retries,
                        "delay": delay,
                        "path": path,
                    },
                )
                await asyncio.sleep(delay)
                continue

            if response.status_code >= 400:
                error_body = response.text
                logger.error(
                    "GitHub API error",
                    extra={
                        "status_code": response.status_code,
                        "path": path,
                        "method": method,
                        "response_body": error_body[:500],
                    },
                )
                raise GitHubAPIError(
                    message=f"GitHub API error: {response.status_code}",
                    status_code=response.status_code,
                    response_body=error_body,
                    request_url=str(response.url),
                )

            return response

        logger.error(
            "GitHub API request failed",
            extra={
                "path": path,
                "method": method,
                "attempts": max_retries + 1,
                "last_error": str(last_exception),
            },
        )
        raise GitHubAPIError(
            message=f"Request failed after {max_retries + 1} attempt(s): {last_exception}",
            request_url=f"{self.base_url}{path}",
        )

    # -------------------------------------------------------------------------
    # Check runs
    # -------------------------------------------------------------------------

    async def create_check_run(
        self,
        owner: str,
        repo: str,
        name: str,
        head_sha: str,
        update: CheckRunUpdate,
    ) -> Dict[str, Any]:
        """Create a check run on ``head_sha``.

        Returns:
            The created check run data from GitHub API.

        Raises:
            GitHubAPIError: If the request fails.
        """
        body = {"name": name, "head_sha": head_sha, **update.to_payload()}
        logger.info(
            "Creating check run",
            extra={"owner": owner, "repo": repo, "name": name, "head_sha": head_sha},
        )
        response = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/check-runs",
            json_data=body,
            retry=False,
        )
        return response.json()

    async def update_check_run(
        self,
        owner: str,
        repo: str,
        check_run_id: int,
        update: CheckRunUpdate,
    ) -> Dict[str, Any]:
        """Update an existing check run. Sent once, never retried.

        Raises:
            GitHubAPIError: If the request fails.
        """
        logger.info(
            "Updating check run",
            extra={
                "owner": owner,
                "repo": repo,
                "check_run_id": check_run_id,
                "status": update.status.value,
                "conclusion": update.conclusion.value if update.conclusion else None,
            },
        )
        response = await self._request(
            "PATCH",
            f"/repos/{owner}/{repo}/check-runs/{check_run_id}",
            json_data=update.to_payload(),
            retry=False,
        )
        return response.json()

    # -------------------------------------------------------------------------
    # Pull requests
    # -------------------------------------------------------------------------

    async def get_pull_request(
        self,
        owner: str,
        repo: str,
        pull_number: int,
    ) -> PullRequestDetails:
        """Fetch pull request metadata.

        Raises:
            GitHubAPIError: If the request fails.
        """
        response = await self._request("GET", f"/repos/{owner}/{repo}/pulls/{pull_number}")
        return PullRequestDetails.from_github_response(response.json())

    async def list_pull_request_files(
        self,
        owner: str,
        repo: str,
        pull_number: int,
        per_page: int = 100,
    ) -> List[ChangedFile]:
        """Fetch the first page of a pull request's changed files.

        Raises:
            GitHubAPIError: If the request fails.
        """
        response = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/pulls/{pull_number}/files",
            params={"per_page": per_page},
        )
        files = [ChangedFile.from_github_response(item) for item in response.json()]
        logger.debug(
            "Retrieved pull request files",
            extra={"owner": owner, "repo": repo, "pull_number": pull_number, "count": len(files)},
        )
        return files

    async def find_open_pull_request_for_commit(
        self,
        owner: str,
        repo: str,
        sha: str,
    ) -> Optional[int]:
        """Return the number of an open pull request containing ``sha``.

        Returns:
            The first open pull request number, or None when there is none.

        Raises:
            GitHubAPIError: If the request fails.
        """
        response = await self._request("GET", f"/repos/{owner}/{repo}/commits/{sha}/pulls")
        for pull in response.json():
            if pull.get("state") == "open" and isinstance(pull.get("number"), int):
                return pull["number"]
        return None

    # -------------------------------------------------------------------------
    # Comments
    # -------------------------------------------------------------------------

    async def list_issue_comments(
        self,
        owner: str,
        repo: str,
        issue_number: int,
        per_page: int = 100,
    ) -> List[Dict[str, Any]]:
        """List comments on a pull request (first page).

        Raises:
            GitHubAPIError: If the request fails.
        """
        response = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/issues/{issue_number}/comments",
            params={"per_page": per_page},
        )
        return response.json()

    async def create_comment(
        self,
        owner: str,
        repo: str,
        issue_number: int,
        body: str,
    ) -> Dict[str, Any]:
        """Create a comment on a pull request. Sent once, never retried.

        Raises:
            GitHubAPIError: If the request fails.
        """
        logger.info(
            "Creating comment on pull request",
            extra={
                "owner": owner,
                "repo": repo,
                "issue_number": issue_number,
                "body_length": len(body),
            },
        )
        response = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/issues/{issue_number}/comments",
            json_data={"body": body},
            retry=False,
        )
        result = response.json()
        logger.info(
            "Comment created successfully",
            extra={"issue_number": issue_number, "comment_id": result.get("id")},
        )
        return result
