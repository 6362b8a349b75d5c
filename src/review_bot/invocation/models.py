"""Request and result models for workflow invocations.

InvocationResult is a tagged union of InvocationSuccess and
InvocationFailure, discriminated by the ``kind`` field. A result is one or
the other; the success variant has no error fields and the failure variant
has no payload.
"""

from enum import Enum
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class FailureCategory(str, Enum):
    """Coarse classification attached to every InvocationFailure.

    Attributes:
        CONFIGURATION: Endpoint, API key, or workflow id missing.
        CLIENT: The workflow service rejected the request (4xx).
        TRANSIENT: The workflow service failed or was overloaded (5xx).
        RESPONSE_FORMAT: A 2xx response could not be parsed.
        TIMEOUT: An attempt exceeded its deadline.
        CONNECTION: DNS failure or connection refused.
        CONNECTION_RESET: The connection dropped mid-request.
        AUTH: Credential rejected.
        NOT_FOUND: Workflow not found.
        OTHER: Anything else.
    """

    CONFIGURATION = "configuration"
    CLIENT = "client"
    TRANSIENT = "transient"
    RESPONSE_FORMAT = "response_format"
    TIMEOUT = "timeout"
    CONNECTION = "connection"
    CONNECTION_RESET = "connection_reset"
    AUTH = "auth"
    NOT_FOUND = "not_found"
    OTHER = "other"


class InvocationRequest(BaseModel):
    """Immutable request sent to the workflow engine.

    Attributes:
        workflow_id: Identifier of the remote flow to run.
        payload: JSON-serializable context, sent as a JSON string.
        tweaks: Per-component overrides understood by the workflow engine.
        session_id: Per-invocation correlation token.
    """

    model_config = ConfigDict(frozen=True)

    workflow_id: str = Field(..., min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict)
    tweaks: Dict[str, Any] = Field(default_factory=dict)
    session_id: str = Field(..., min_length=1)


class InvocationSuccess(BaseModel):
    """The workflow ran and produced a displayable message."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["success"] = "success"
    message: str
    raw_payload: Any = None

    @property
    def success(self) -> bool:
        return True


class InvocationFailure(BaseModel):
    """The workflow could not be run or its answer could not be used."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["failure"] = "failure"
    user_message: str
    raw_error: str
    category: FailureCategory = FailureCategory.OTHER
    status_code: Optional[int] = None

    @property
    def success(self) -> bool:
        return False


InvocationResult = Union[InvocationSuccess, InvocationFailure]
