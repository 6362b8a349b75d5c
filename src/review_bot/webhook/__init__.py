"""GitHub webhook intake: signature verification and event parsing."""

from .handler import (
    InvalidSignatureError,
    WebhookHandler,
    compute_signature,
    create_webhook_handler,
)
from .models import (
    CheckRunActionEvent,
    PullRequestAction,
    PullRequestEvent,
    RequestedAction,
)

__all__ = [
    "CheckRunActionEvent",
    "InvalidSignatureError",
    "PullRequestAction",
    "PullRequestEvent",
    "RequestedAction",
    "WebhookHandler",
    "compute_signature",
    "create_webhook_handler",
]
