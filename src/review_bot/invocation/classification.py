"""Message and error classification tables.

Every string heuristic the bot relies on lives here: the HTTP status message
table, the exception categories shown to users, the transient-failure
patterns that turn a failed review into "unavailable", and the merge
readiness keyword.

These are best-effort heuristics over free text produced by third parties.
They are not a parser and will misclassify unusual messages; keep them in
one place so they can be tuned together.
"""

import asyncio
import re
from typing import Dict, Optional, Tuple

import httpx

from src.review_bot.invocation.errors import AttemptTimeoutError
from src.review_bot.invocation.models import FailureCategory


# -----------------------------------------------------------------------------
# HTTP status → user message
# -----------------------------------------------------------------------------

STATUS_MESSAGES: Dict[int, str] = {
    400: "Bad request to Langflow API. Please check the data format.",
    401: "Unauthorized. Please check your Langflow API key.",
    403: "Forbidden. Your API key may not have access to this flow.",
    404: "Flow not found. Please check if flow ID '{workflow_id}' exists.",
    429: "Too many requests. Langflow API rate limit exceeded.",
    500: "Internal server error in Langflow. Please try again later.",
    502: "Bad gateway. Langflow service may be temporarily unavailable.",
    503: "Service unavailable. Langflow is temporarily down.",
    504: "Gateway timeout. Langflow is taking too long to respond.",
}

MAX_ERROR_BODY_CHARS = 200


def status_message(
    status_code: int,
    workflow_id: str,
    response_body: str = "",
    reason_phrase: str = "",
) -> str:
    """Build the user-facing message for a non-2xx workflow response.

    Args:
        status_code: HTTP status of the final attempt.
        workflow_id: Flow id, interpolated into the 404 message.
        response_body: Raw response text; at most 200 characters are kept.
        reason_phrase: HTTP reason phrase for statuses outside the table.

    Returns:
        Table message (or a generic one) followed by a "Details:" excerpt
        of the body when one is available.
    """
    template = STATUS_MESSAGES.get(status_code)
    if template is None:
        message = f"Langflow API error: {status_code} {reason_phrase}".rstrip()
    else:
        message = template.format(workflow_id=workflow_id)

    excerpt = (response_body or "")[:MAX_ERROR_BODY_CHARS]
    if excerpt:
        message += f" Details: {excerpt}"
    return message


# -----------------------------------------------------------------------------
# Exception → category
# -----------------------------------------------------------------------------

CATEGORY_MESSAGES: Dict[FailureCategory, str] = {
    FailureCategory.TIMEOUT: (
        "The AI analysis timed out. This usually happens when the service is "
        "overloaded. Please try again in a few minutes."
    ),
    FailureCategory.CONNECTION: (
        "Cannot connect to the AI service. Please check if the Langflow "
        "endpoint is correct and accessible."
    ),
    FailureCategory.CONNECTION_RESET: (
        "Connection to the AI service was interrupted. Please try again."
    ),
    FailureCategory.AUTH: (
        "Authentication failed. Please check the API key configuration."
    ),
    FailureCategory.NOT_FOUND: (
        "The specified AI flow was not found. Please check the flow configuration."
    ),
}

_CONNECTION_PATTERNS = (
    "enotfound",
    "econnrefused",
    "name or service not known",
    "nodename nor servname",
    "connection refused",
    "temporary failure in name resolution",
)

_RESET_PATTERNS = (
    "econnreset",
    "socket hang up",
    "connection reset",
    "server disconnected",
)


def classify_exception(exc: BaseException) -> FailureCategory:
    """Map an exception raised during invocation to a user-facing category.

    Exception types are checked first, then the message text.
    """
    if isinstance(exc, (AttemptTimeoutError, httpx.TimeoutException, asyncio.TimeoutError)):
        return FailureCategory.TIMEOUT
    if isinstance(exc, httpx.ConnectError):
        return FailureCategory.CONNECTION
    if isinstance(exc, (httpx.RemoteProtocolError, httpx.ReadError)):
        return FailureCategory.CONNECTION_RESET

    text = str(exc).lower()
    if "timeout" in text or "timed out" in text:
        return FailureCategory.TIMEOUT
    if any(pattern in text for pattern in _CONNECTION_PATTERNS):
        return FailureCategory.CONNECTION
    if any(pattern in text for pattern in _RESET_PATTERNS):
        return FailureCategory.CONNECTION_RESET
    if "401" in text:
        return FailureCategory.AUTH
    if "404" in text:
        return FailureCategory.NOT_FOUND
    return FailureCategory.OTHER


def describe_exception(exc: BaseException) -> Tuple[FailureCategory, str]:
    """Return the category and user message for an exception.

    Uncategorized errors keep their own message.
    """
    category = classify_exception(exc)
    message = CATEGORY_MESSAGES.get(category) or str(exc) or type(exc).__name__
    return category, message


def category_for_status(status_code: int) -> FailureCategory:
    if status_code in (401, 403):
        return FailureCategory.AUTH
    if status_code == 404:
        return FailureCategory.NOT_FOUND
    if status_code == 504:
        return FailureCategory.TIMEOUT
    if status_code >= 500:
        return FailureCategory.TRANSIENT
    return FailureCategory.CLIENT


# -----------------------------------------------------------------------------
# Failure message → transient / friendly wording
# -----------------------------------------------------------------------------

HIGH_LOAD_MESSAGE = (
    "The AI service is currently experiencing high load. "
    "Please try again in a few minutes."
)
SLOW_SERVICE_MESSAGE = (
    "The AI analysis is taking longer than expected. The service may be busy."
)
UNAVAILABLE_MESSAGE = (
    "The AI service is temporarily unavailable. Please try again later."
)

# Ordered: first matching rule wins
FRIENDLY_FAILURE_RULES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("504", "gateway_timeout", "gateway timeout"), HIGH_LOAD_MESSAGE),
    (("timeout", "timed out", "etimedout"), SLOW_SERVICE_MESSAGE),
    (("500", "502", "503", "temporarily", "unavailable", "bad gateway"), UNAVAILABLE_MESSAGE),
)

TRANSIENT_PATTERNS: Tuple[str, ...] = (
    "timeout",
    "timed out",
    "504",
    "gateway",
    "high load",
    "temporarily unavailable",
    "unavailable",
    "taking longer than expected",
    "interrupted",
)


def friendly_failure_message(message: str, status_code: Optional[int] = None) -> str:
    """Rewrite infrastructure-flavoured failures into a short user message.

    A known status decides directly: 5xx is rewritten, anything else is
    reported as is. Only status-less failures have their text matched.
    Messages that match no rule are returned unchanged.
    """
    if status_code == 504:
        return HIGH_LOAD_MESSAGE
    if status_code is not None and status_code >= 500:
        return UNAVAILABLE_MESSAGE
    if status_code is not None:
        return message

    lowered = (message or "").lower()
    for patterns, replacement in FRIENDLY_FAILURE_RULES:
        if any(pattern in lowered for pattern in patterns):
            return replacement
    return message


TRANSIENT_CATEGORIES = frozenset({
    FailureCategory.TRANSIENT,
    FailureCategory.TIMEOUT,
    FailureCategory.CONNECTION_RESET,
})


def is_transient_failure(
    message: str,
    category: Optional[FailureCategory] = None,
    status_code: Optional[int] = None,
) -> bool:
    """True when a failure looks like a temporary service problem.

    Transient failures are reported as "unavailable" (neutral) instead of
    "failed" so infrastructure trouble is not mistaken for a code defect.
    A response status below 500 is never transient, whatever its text says.
    """
    if status_code is not None:
        return status_code >= 500
    if category in TRANSIENT_CATEGORIES:
        return True
    lowered = (message or "").lower()
    return any(pattern in lowered for pattern in TRANSIENT_PATTERNS)


# -----------------------------------------------------------------------------
# Merge readiness
# -----------------------------------------------------------------------------

READINESS_KEYWORD = "ready"
READINESS_PATTERN = re.compile(r"\b%s\b" % READINESS_KEYWORD)
NEGATED_READINESS = ("not ready", "isn't ready", "is not ready", "not yet ready")


def is_merge_ready(message: Optional[str]) -> bool:
    """True when a merge-check answer says the PR is ready to merge."""
    lowered = (message or "").lower()
    if not READINESS_PATTERN.search(lowered):
        return False
    return not any(phrase in lowered for phrase in NEGATED_READINESS)
