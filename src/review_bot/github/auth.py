"""Credential providers for the GitHub API.

A credential provider supplies the bearer token the GitHub client sends with
each request. Two providers exist:

- InstallationTokenProvider: signs a short-lived RS256 app JWT with PyJWT
  and exchanges it for an installation access token, cached until shortly
  before it expires.
- StaticTokenProvider: returns a fixed personal access or installation token.

Token minting failures raise CredentialError; the review that needed the
token fails, the process does not.
"""

import asyncio
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Protocol

import httpx
import jwt


logger = logging.getLogger(__name__)


DEFAULT_PRIVATE_KEY_FILE = "private-key.pem"

# GitHub rejects app JWTs that live longer than 10 minutes
APP_JWT_LIFETIME_SECONDS = 9 * 60
APP_JWT_CLOCK_SKEW_SECONDS = 60
TOKEN_REFRESH_MARGIN_SECONDS = 60


class CredentialError(Exception):
    """Raised when a GitHub credential cannot be loaded or minted.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status of the token exchange, when one was made.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class TokenProvider(Protocol):
    """Supplies bearer tokens for GitHub API requests."""

    async def get_token(self) -> str:
        ...


def load_private_key(
    inline_key: Optional[str] = None,
    key_path: Optional[str] = None,
    default_path: str = DEFAULT_PRIVATE_KEY_FILE,
) -> str:
    """Load the GitHub App private key.

    The inline value wins over the path; escaped ``\\n`` sequences in the
    inline value (common in environment variables) are unescaped. When
    neither is set, ``default_path`` is tried.

    Raises:
        CredentialError: If no key is found or it is not a PEM private key.
    """
    if inline_key:
        key = inline_key.replace("\\n", "\n").strip()
    else:
        path = Path(key_path or default_path)
        try:
            key = path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise CredentialError(
                f"GitHub App private key not found at {path}"
            ) from exc

    if not key.startswith("-----BEGIN") or "PRIVATE KEY" not in key:
        raise CredentialError("GitHub App private key is not a valid PEM private key")
    return key


def create_app_jwt(app_id: str, private_key: str, now: Optional[float] = None) -> str:
    """Sign an app JWT for ``app_id``.

    ``iat`` is backdated to tolerate clock drift between us and GitHub.
    """
    issued = int(now if now is not None else time.time())
    payload = {
        "iat": issued - APP_JWT_CLOCK_SKEW_SECONDS,
        "exp": issued + APP_JWT_LIFETIME_SECONDS,
        "iss": str(app_id),
    }
    token = jwt.encode(payload, private_key, algorithm="RS256")
    return token.decode() if isinstance(token, (bytes, bytearray)) else token


def _parse_expiry(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


class InstallationTokenProvider:
    """Mints and caches GitHub App installation tokens.

    Attributes:
        app_id: GitHub App id (the JWT issuer).
        installation_id: Installation whose token is minted.
        base_url: GitHub API base URL.

    Example:
        >>> provider = InstallationTokenProvider(
        ...     app_id="12345",
        ...     private_key=load_private_key(key_path="app.pem"),
        ...     installation_id=67890,
        ... )
        >>> token = await provider.get_token()
    """

    def __init__(
        self,
        app_id: str,
        private_key: str,
        installation_id: int,
        base_url: str = "https://api.github.com",
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
        timeout: float = 30.0,
    ):
        self.app_id = app_id
        self.installation_id = installation_id
        self.base_url = base_url.rstrip("/")
        self._private_key = private_key
        self._http_client = http_client
        self._owns_http_client = http_client is None
        self._clock = clock
        self._timeout = timeout

        self._token: Optional[str] = None
        self._expires_at: float = 0.0
        self._lock = asyncio.Lock()

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_http_client = True
        return self._http_client

    async def close(self) -> None:
        if (
            self._owns_http_client
            and self._http_client is not None
            and not self._http_client.is_closed
        ):
            await self._http_client.aclose()
        self._http_client = None

    def _cached_token(self) -> Optional[str]:
        if self._token and self._clock() < self._expires_at - TOKEN_REFRESH_MARGIN_SECONDS:
            return self._token
        return None

    async def get_token(self) -> str:
        """Return a valid installation token, minting one if needed.

        Raises:
            CredentialError: If signing or the token exchange fails.
        """
        token = self._cached_token()
        if token:
            return token

        async with self._lock:
            token = self._cached_token()
            if token:
                return token
            return await self._mint()

    async def _mint(self) -> str:
        url = f"{self.base_url}/app/installations/{self.installation_id}/access_tokens"
        try:
            app_jwt = create_app_jwt(self.app_id, self._private_key, now=self._clock())
        except (jwt.PyJWTError, ValueError, TypeError) as exc:
            raise CredentialError(f"Failed to sign GitHub App JWT: {exc}") from exc

        try:
            response = await self.http_client.post(
                url,
                headers={
                    "Authorization": f"Bearer {app_jwt}",
                    "Accept": "application/vnd.github+json",
                    "X-GitHub-Api-Version": "2022-11-28",
                },
            )
        except httpx.HTTPError as exc:
            raise CredentialError(f"Installation token request failed: {exc}") from exc

        if response.status_code >= 400:
            logger.error(
                "Installation token exchange rejected",
                extra={
                    "status_code": response.status_code,
                    "installation_id": self.installation_id,
                    "response_body": response.text[:500],
                },
            )
            raise CredentialError(
                f"Installation token request failed: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise CredentialError(
                "Installation token response was not valid JSON",
                status_code=response.status_code,
            ) from exc
        if not isinstance(data, dict):
            raise CredentialError("Installation token response did not include a token")

        token = data.get("token")
        if not token:
            raise CredentialError("Installation token response did not include a token")

        expires_at = _parse_expiry(data.get("expires_at"))
        self._token = token
        self._expires_at = expires_at if expires_at is not None else self._clock() + 3600

        logger.info(
            "Minted installation token",
            extra={
                "installation_id": self.installation_id,
                "expires_at": data.get("expires_at"),
            },
        )
        return token


class StaticTokenProvider:
    """Returns a fixed token (personal access token or pre-minted token)."""

    def __init__(self, token: str):
        if not token:
            raise CredentialError("GitHub token is empty")
        self._token = token

    async def get_token(self) -> str:
        return self._token

    async def close(self) -> None:
        return None


class MissingCredentialProvider:
    """Stands in when no GitHub credential is configured.

    Startup succeeds; every run that needs GitHub fails with CredentialError.
    """

    def __init__(self, reason: str):
        self.reason = reason

    async def get_token(self) -> str:
        raise CredentialError(self.reason)

    async def close(self) -> None:
        return None
