"""Workflow invocation client.

Sends a review context to a Langflow flow and normalizes the answer into an
InvocationResult. ``invoke`` never raises: configuration problems, HTTP
errors, unparseable bodies, timeouts and network failures all come back as
an InvocationFailure with a user-facing message.

Wire format::

    POST {endpoint}/run/{workflow_id}
    Authorization: Bearer {api_key}

    {"body": "<JSON string of the payload>",
     "session_id": "github_<epoch ms>_<random>",
     "tweaks": {...}}
"""

import asyncio
import json
import logging
import random
import string
import time
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Protocol, Union

import httpx

from src.review_bot.invocation.classification import (
    category_for_status,
    describe_exception,
    status_message,
)
from src.review_bot.invocation.delays import dispatch_jitter
from src.review_bot.invocation.errors import (
    ClientRemoteError,
    ConfigurationError,
    InvocationError,
    ResponseFormatError,
    TransientRemoteError,
)
from src.review_bot.invocation.executor import (
    RetryExecutor,
    is_server_error_status,
    is_success_status,
)
from src.review_bot.invocation.extraction import apply_safety_clamps, extract_message
from src.review_bot.invocation.models import (
    FailureCategory,
    InvocationFailure,
    InvocationRequest,
    InvocationResult,
    InvocationSuccess,
)
from src.review_bot.invocation.policy import RetryPolicy


logger = logging.getLogger(__name__)


INVALID_JSON_MESSAGE = "Invalid JSON response from Langflow API"
DEFAULT_HEALTH_TIMEOUT_MS = 10000
DEFAULT_JITTER_MIN_MS = 2000
DEFAULT_JITTER_MAX_MS = 5000

_SESSION_ALPHABET = string.digits + string.ascii_lowercase


class SupportsPayload(Protocol):
    """A context object that can render itself as a workflow payload."""

    def to_payload(self) -> Dict[str, Any]:
        ...


WorkflowContext = Union[SupportsPayload, Mapping[str, Any]]


def new_session_id(now_ms: Optional[int] = None) -> str:
    """Build a per-invocation correlation token, ``github_<ms>_<9 chars>``."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(random.choices(_SESSION_ALPHABET, k=9))
    return f"github_{now_ms}_{suffix}"


class WorkflowClient:
    """Invokes Langflow flows with bounded retries.

    Attributes:
        endpoint: Base URL of the Langflow API (``.../api/v1`` style).
        policy: Timeout and retry settings for every invocation.

    Example:
        >>> client = WorkflowClient(
        ...     endpoint="https://langflow.example.com/api/v1",
        ...     api_key="lf-xxx",
        ...     policy=RetryPolicy(),
        ... )
        >>> result = await client.invoke(context, "review-flow-id")
        >>> if result.success:
        ...     print(result.message)
    """

    def __init__(
        self,
        endpoint: Optional[str],
        api_key: Optional[str],
        policy: RetryPolicy,
        http_client: Optional[httpx.AsyncClient] = None,
        executor: Optional[RetryExecutor] = None,
        jitter_min_ms: int = DEFAULT_JITTER_MIN_MS,
        jitter_max_ms: int = DEFAULT_JITTER_MAX_MS,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        on_attempt: Optional[Callable[[str], None]] = None,
        health_timeout_ms: int = DEFAULT_HEALTH_TIMEOUT_MS,
    ):
        """Initialize the client.

        Args:
            endpoint: Langflow API base URL; may be empty, in which case
                      every invocation fails with a configuration error.
            api_key: Bearer credential for the Langflow API.
            policy: Timeout and retry settings.
            http_client: Optional shared httpx client (tests inject one
                         backed by ``httpx.MockTransport``).
            executor: Optional pre-built executor; built from ``policy``
                      otherwise.
            jitter_min_ms: Lower bound of the pre-dispatch pause.
            jitter_max_ms: Upper bound of the pre-dispatch pause; 0 disables it.
            sleep: Coroutine used for pauses (asyncio.sleep by default).
            on_attempt: Callback receiving each attempt's outcome label.
            health_timeout_ms: Deadline for the connectivity probe.
        """
        self.endpoint = (endpoint or "").rstrip("/")
        self.api_key = api_key or ""
        self.policy = policy
        self.jitter_min_ms = jitter_min_ms
        self.jitter_max_ms = jitter_max_ms
        self.health_timeout_ms = health_timeout_ms

        self._sleep = sleep or asyncio.sleep
        self._owns_http_client = http_client is None
        self._http_client = http_client
        self.executor = executor or RetryExecutor(
            policy,
            sleep=sleep,
            on_attempt=on_attempt,
        )

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.policy.timeout_seconds),
            )
            self._owns_http_client = True
        return self._http_client

    @property
    def is_configured(self) -> bool:
        return bool(self.endpoint and self.api_key)

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if (
            self._owns_http_client
            and self._http_client is not None
            and not self._http_client.is_closed
        ):
            await self._http_client.aclose()
        self._http_client = None

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json, text/plain, */*",
            "User-Agent": "langflow-review-bot/1.0",
            "Cache-Control": "no-cache",
        }

    def _validate(self, workflow_id: Optional[str]) -> None:
        if not self.endpoint:
            raise ConfigurationError(
                "LANGFLOW_ENDPOINT environment variable is not set"
            )
        if not self.api_key:
            raise ConfigurationError(
                "LANGFLOW_API_KEY environment variable is not set"
            )
        if not workflow_id:
            raise ConfigurationError("Flow ID is required but not provided")

    def build_request(
        self,
        context: WorkflowContext,
        workflow_id: str,
        session_id: Optional[str] = None,
    ) -> InvocationRequest:
        """Snapshot the context into an immutable request.

        Tweaks are taken from the payload's ``tweaks`` key and also sent
        separately, as the workflow engine expects both.
        """
        if hasattr(context, "to_payload"):
            payload = context.to_payload()
        else:
            payload = dict(context)
        return InvocationRequest(
            workflow_id=workflow_id,
            payload=payload,
            tweaks=payload.get("tweaks") or {},
            session_id=session_id or new_session_id(),
        )

    def request_body(self, request: InvocationRequest) -> Dict[str, Any]:
        return {
            "body": json.dumps(request.payload),
            "session_id": request.session_id,
            "tweaks": request.tweaks,
        }

    def run_url(self, workflow_id: str) -> str:
        return f"{self.endpoint}/run/{workflow_id}"

    async def invoke(
        self,
        context: WorkflowContext,
        workflow_id: Optional[str],
    ) -> InvocationResult:
        """Run a workflow for ``context`` and normalize its answer.

        Args:
            context: Review context or plain payload mapping.
            workflow_id: Langflow flow identifier.

        Returns:
            InvocationSuccess with the extracted, clamped message, or
            InvocationFailure describing what went wrong. Never raises.
        """
        try:
            self._validate(workflow_id)
            request = self.build_request(context, workflow_id)
            body = self.request_body(request)
            url = self.run_url(request.workflow_id)

            logger.info(
                "Invoking workflow",
                extra={
                    "workflow_id": request.workflow_id,
                    "session_id": request.session_id,
                    "body_size": len(body["body"]),
                },
            )

            await self._pause(dispatch_jitter(self.jitter_min_ms, self.jitter_max_ms))

            response = await self.executor.execute(
                lambda: self.http_client.post(url, json=body, headers=self._headers())
            )
            return self._interpret(response, request)

        except Exception as exc:  # invoke boundary: every failure becomes a result
            failure = self._to_failure(exc)
            logger.error(
                "Workflow invocation failed",
                extra={
                    "workflow_id": workflow_id,
                    "category": failure.category.value,
                    "status_code": failure.status_code,
                    "error": failure.raw_error,
                },
            )
            return failure

    def _interpret(
        self,
        response: httpx.Response,
        request: InvocationRequest,
    ) -> InvocationSuccess:
        """Turn the deciding response into a success or raise a typed error.

        Raises:
            TransientRemoteError: For a 5xx status.
            ClientRemoteError: For any other non-2xx status.
            ResponseFormatError: If a 2xx body is not JSON.
        """
        status_code = response.status_code
        if not is_success_status(status_code):
            body_text = response.text
            message = status_message(
                status_code,
                request.workflow_id,
                response_body=body_text,
                reason_phrase=response.reason_phrase,
            )
            if is_server_error_status(status_code):
                raise TransientRemoteError(message, status_code=status_code)
            raise ClientRemoteError(message, status_code, response_body=body_text[:200])

        try:
            payload = response.json()
        except ValueError as exc:
            logger.error(
                "Workflow returned a non-JSON body",
                extra={"raw_response": response.text[:500]},
            )
            raise ResponseFormatError(INVALID_JSON_MESSAGE) from exc

        message = apply_safety_clamps(extract_message(payload))
        logger.info(
            "Workflow response processed",
            extra={"workflow_id": request.workflow_id, "message_length": len(message)},
        )
        return InvocationSuccess(message=message, raw_payload=payload)

    def _to_failure(self, exc: Exception) -> InvocationFailure:
        raw_error = str(exc) or type(exc).__name__

        if isinstance(exc, ConfigurationError):
            return InvocationFailure(
                user_message=exc.message,
                raw_error=raw_error,
                category=FailureCategory.CONFIGURATION,
            )
        if isinstance(exc, ResponseFormatError):
            return InvocationFailure(
                user_message=exc.message,
                raw_error=raw_error,
                category=FailureCategory.RESPONSE_FORMAT,
            )
        if isinstance(exc, (ClientRemoteError, TransientRemoteError)) and exc.status_code:
            return InvocationFailure(
                user_message=exc.message,
                raw_error=raw_error,
                category=category_for_status(exc.status_code),
                status_code=exc.status_code,
            )
        if isinstance(exc, InvocationError) and not isinstance(exc, TransientRemoteError):
            return InvocationFailure(user_message=exc.message, raw_error=raw_error)

        category, user_message = describe_exception(exc)
        return InvocationFailure(
            user_message=user_message,
            raw_error=raw_error,
            category=category,
        )

    async def _pause(self, seconds: float) -> None:
        if seconds <= 0:
            return
        await self._sleep(seconds)

    async def health_check(self) -> str:
        """Probe ``{endpoint}/health``.

        Returns:
            "not configured", "healthy", or "error: <status or message>".
        """
        if not self.endpoint:
            return "not configured"
        try:
            response = await self.http_client.get(
                f"{self.endpoint}/health",
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.health_timeout_ms / 1000.0,
            )
        except httpx.HTTPError as exc:
            logger.warning("Workflow health probe failed", extra={"error": str(exc)})
            return f"error: {exc}"
        if response.is_success:
            return "healthy"
        return f"error: {response.status_code}"
