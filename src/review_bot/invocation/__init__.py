"""Resilient invocation of remote Langflow workflows.

Leaves first:
- delays: pure pause-duration functions (retry delay, dispatch jitter)
- executor: RetryExecutor, per-attempt deadline plus retry-with-delay
- client: WorkflowClient, builds requests and normalizes responses
- extraction / classification: response-shape strategies and the
  message heuristics used to interpret results
"""

from src.review_bot.invocation.classification import (
    friendly_failure_message,
    is_merge_ready,
    is_transient_failure,
    status_message,
)
from src.review_bot.invocation.client import WorkflowClient, new_session_id
from src.review_bot.invocation.delays import dispatch_jitter, retry_delay
from src.review_bot.invocation.errors import (
    AttemptTimeoutError,
    ClientRemoteError,
    ConfigurationError,
    InvocationError,
    ResponseFormatError,
    TransientRemoteError,
    UpstreamDataError,
)
from src.review_bot.invocation.executor import RetryExecutor
from src.review_bot.invocation.extraction import (
    EXTRACTION_STRATEGIES,
    GENERIC_ANALYSIS_SUMMARY,
    MAX_MESSAGE_LENGTH,
    TRUNCATION_MARKER,
    apply_safety_clamps,
    extract_message,
)
from src.review_bot.invocation.models import (
    FailureCategory,
    InvocationFailure,
    InvocationRequest,
    InvocationResult,
    InvocationSuccess,
)
from src.review_bot.invocation.policy import RetryPolicy

__all__ = [
    # Policy and delays
    "RetryPolicy",
    "retry_delay",
    "dispatch_jitter",
    # Execution
    "RetryExecutor",
    "WorkflowClient",
    "new_session_id",
    # Results
    "FailureCategory",
    "InvocationFailure",
    "InvocationRequest",
    "InvocationResult",
    "InvocationSuccess",
    # Errors
    "AttemptTimeoutError",
    "ClientRemoteError",
    "ConfigurationError",
    "InvocationError",
    "ResponseFormatError",
    "TransientRemoteError",
    "UpstreamDataError",
    # Extraction and heuristics
    "EXTRACTION_STRATEGIES",
    "GENERIC_ANALYSIS_SUMMARY",
    "MAX_MESSAGE_LENGTH",
    "TRUNCATION_MARKER",
    "apply_safety_clamps",
    "extract_message",
    "friendly_failure_message",
    "is_merge_ready",
    "is_transient_failure",
    "status_message",
]
