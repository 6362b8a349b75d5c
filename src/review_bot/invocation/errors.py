"""Error taxonomy for the workflow invocation layer.

None of these exceptions escape ``WorkflowClient.invoke``; they exist so the
client can raise internally and convert everything into an
``InvocationFailure`` at a single boundary.
"""

from typing import Optional


class InvocationError(Exception):
    """Base class for workflow invocation errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigurationError(InvocationError):
    """Raised when the endpoint, API key, or workflow id is missing."""


class TransientRemoteError(InvocationError):
    """Raised for 5xx responses, timeouts, and dropped connections.

    Attributes:
        status_code: HTTP status when the error came from a response.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AttemptTimeoutError(TransientRemoteError):
    """Raised when a single attempt exceeds the policy deadline.

    Attributes:
        timeout_seconds: The deadline that was exceeded.
        attempt: The 1-indexed attempt that timed out.
    """

    def __init__(self, timeout_seconds: float, attempt: int):
        super().__init__(
            f"Workflow request timeout after {timeout_seconds:g}s "
            f"(attempt {attempt})"
        )
        self.timeout_seconds = timeout_seconds
        self.attempt = attempt


class ClientRemoteError(InvocationError):
    """Raised for 4xx responses, which are never retried.

    Attributes:
        status_code: HTTP status code of the response.
        response_body: Raw response body, possibly truncated.
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        response_body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class ResponseFormatError(InvocationError):
    """Raised when a 2xx response body is not valid JSON."""


class UpstreamDataError(InvocationError):
    """The workflow reported missing data inside an otherwise successful run.

    Raised by the safety clamps and handled there: the message is replaced
    with a generic summary rather than surfaced as a failure.
    """
