"""Review bot configuration using pydantic-settings.

BotSettings reads configuration from environment variables (and an optional
``.env`` file). Variable names carry no prefix: ``LANGFLOW_ENDPOINT``,
``GITHUB_APP_ID`` and so on.

Only the webhook secret is required at startup. Missing Langflow settings
surface per invocation as configuration failures, and missing GitHub
credentials surface per run as credential failures.
"""

from typing import Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.review_bot.invocation.policy import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_RETRY_DELAY_MS,
    DEFAULT_TIMEOUT_MS,
    RetryPolicy,
)
from src.review_bot.review.orchestrator import (
    DEFAULT_CHECK_RUN_NAME,
    DEFAULT_MERGE_TWEAK_COMPONENT,
    DEFAULT_REVIEW_TWEAK_COMPONENT,
)


class BotSettings(BaseSettings):
    """Review bot configuration from environment variables.

    Required fields (must be set via environment variables):
    - github_webhook_secret: Secret for validating GitHub webhook signatures
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # GitHub Configuration
    # -------------------------------------------------------------------------
    # GitHub App credentials for installation tokens
    github_app_id: Optional[str] = None
    github_installation_id: Optional[int] = None

    # PEM key inline (escaped newlines allowed) or as a file path
    github_private_key: Optional[str] = None
    github_private_key_path: Optional[str] = None

    # Secret for validating GitHub webhook signatures
    github_webhook_secret: str

    # Static token; used instead of App credentials and forwarded to flows
    github_token: Optional[str] = None

    # Base URL for GitHub API (supports GitHub Enterprise)
    github_base_url: str = "https://api.github.com"

    # Name of the check run carrying the review buttons
    check_run_name: str = DEFAULT_CHECK_RUN_NAME

    # -------------------------------------------------------------------------
    # Langflow Configuration
    # -------------------------------------------------------------------------
    langflow_endpoint: Optional[str] = None
    langflow_api_key: Optional[str] = None
    langflow_review_flow_id: Optional[str] = None
    langflow_merge_check_flow_id: Optional[str] = None

    # Per-attempt deadline in milliseconds
    langflow_timeout: int = DEFAULT_TIMEOUT_MS

    # Maximum attempts per invocation
    langflow_retries: int = DEFAULT_MAX_ATTEMPTS

    # Pause between attempts in milliseconds
    langflow_retry_delay: int = DEFAULT_RETRY_DELAY_MS

    # Deadline for the health probe in milliseconds
    langflow_health_timeout: int = 10000

    # Tweak targets: the GitHub fetcher component inside each flow
    langflow_review_tweak_component: str = DEFAULT_REVIEW_TWEAK_COMPONENT
    langflow_merge_tweak_component: str = DEFAULT_MERGE_TWEAK_COMPONENT

    # Random pause before each invocation, in milliseconds
    dispatch_jitter_min_ms: int = 2000
    dispatch_jitter_max_ms: int = 5000

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "0.0.0.0"
    port: int = 3000

    # -------------------------------------------------------------------------
    # Logging Configuration
    # -------------------------------------------------------------------------
    log_level: str = "INFO"

    # JSON lines when true, console rendering otherwise
    log_json: bool = True

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("github_webhook_secret")
    @classmethod
    def validate_webhook_secret(cls, v: str) -> str:
        """Validate that webhook secret is not empty."""
        if not v or not v.strip():
            raise ValueError("github_webhook_secret cannot be empty")
        return v

    @field_validator("langflow_endpoint")
    @classmethod
    def validate_langflow_endpoint(cls, v: Optional[str]) -> Optional[str]:
        """Empty means unset; anything else must be an http(s) URL."""
        if v is None or not v.strip():
            return None
        if not v.startswith(("http://", "https://")):
            raise ValueError("langflow_endpoint must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("langflow_timeout", "langflow_health_timeout")
    @classmethod
    def validate_timeouts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("timeouts must be positive milliseconds")
        return v

    @field_validator("langflow_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 1:
            raise ValueError("langflow_retries must be at least 1")
        return v

    @field_validator("langflow_retry_delay", "dispatch_jitter_min_ms", "dispatch_jitter_max_ms")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("delays cannot be negative")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log_level: {v}")
        return level

    @model_validator(mode="after")
    def validate_jitter_bounds(self) -> "BotSettings":
        if self.dispatch_jitter_max_ms and self.dispatch_jitter_min_ms > self.dispatch_jitter_max_ms:
            raise ValueError("dispatch_jitter_min_ms cannot exceed dispatch_jitter_max_ms")
        return self

    @property
    def uses_app_credentials(self) -> bool:
        return bool(self.github_app_id and self.github_installation_id)

    def retry_policy(self) -> RetryPolicy:
        """Build the invocation RetryPolicy from the Langflow settings."""
        return RetryPolicy(
            timeout_ms=self.langflow_timeout,
            max_attempts=self.langflow_retries,
            retry_delay_ms=self.langflow_retry_delay,
        )


def get_settings() -> BotSettings:
    """Create and return a BotSettings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return BotSettings()
