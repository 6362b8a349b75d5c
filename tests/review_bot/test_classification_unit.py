"""Unit tests for the status, exception and message classification tables."""

import asyncio

import httpx
import pytest

from src.review_bot.invocation.classification import (
    CATEGORY_MESSAGES,
    HIGH_LOAD_MESSAGE,
    SLOW_SERVICE_MESSAGE,
    UNAVAILABLE_MESSAGE,
    category_for_status,
    classify_exception,
    describe_exception,
    friendly_failure_message,
    is_merge_ready,
    is_transient_failure,
    status_message,
)
from src.review_bot.invocation.errors import AttemptTimeoutError
from src.review_bot.invocation.models import FailureCategory


class TestStatusMessage:
    def test_table_message_with_body_excerpt(self):
        message = status_message(503, "flow-1", response_body="x" * 500)

        assert message.startswith("Service unavailable. Langflow is temporarily down.")
        assert message.endswith(" Details: " + "x" * 200)

    def test_not_found_names_the_flow(self):
        message = status_message(404, "flow-abc")

        assert message == "Flow not found. Please check if flow ID 'flow-abc' exists."

    def test_unknown_status_uses_generic_message(self):
        assert status_message(418, "f", reason_phrase="I'm a teapot") == (
            "Langflow API error: 418 I'm a teapot"
        )


class TestClassifyException:
    @pytest.mark.parametrize(
        "exc, category",
        [
            (AttemptTimeoutError(120.0, 3), FailureCategory.TIMEOUT),
            (httpx.ReadTimeout("read timed out"), FailureCategory.TIMEOUT),
            (asyncio.TimeoutError(), FailureCategory.TIMEOUT),
            (httpx.ConnectError("refused"), FailureCategory.CONNECTION),
            (httpx.RemoteProtocolError("Server disconnected"), FailureCategory.CONNECTION_RESET),
            (OSError("getaddrinfo ENOTFOUND langflow"), FailureCategory.CONNECTION),
            (OSError("read ECONNRESET"), FailureCategory.CONNECTION_RESET),
            (RuntimeError("status 401 returned"), FailureCategory.AUTH),
            (RuntimeError("status 404 returned"), FailureCategory.NOT_FOUND),
            (RuntimeError("something odd"), FailureCategory.OTHER),
        ],
    )
    def test_categories(self, exc, category):
        assert classify_exception(exc) == category

    def test_describe_uses_category_message(self):
        category, message = describe_exception(httpx.ConnectError("refused"))

        assert category is FailureCategory.CONNECTION
        assert message == CATEGORY_MESSAGES[FailureCategory.CONNECTION]

    def test_describe_keeps_uncategorized_message(self):
        assert describe_exception(RuntimeError("weird")) == (FailureCategory.OTHER, "weird")


class TestCategoryForStatus:
    @pytest.mark.parametrize(
        "status, category",
        [
            (400, FailureCategory.CLIENT),
            (401, FailureCategory.AUTH),
            (403, FailureCategory.AUTH),
            (404, FailureCategory.NOT_FOUND),
            (429, FailureCategory.CLIENT),
            (500, FailureCategory.TRANSIENT),
            (503, FailureCategory.TRANSIENT),
            (504, FailureCategory.TIMEOUT),
        ],
    )
    def test_mapping(self, status, category):
        assert category_for_status(status) is category


class TestFriendlyFailureMessage:
    def test_gateway_timeout_status_means_high_load(self):
        assert friendly_failure_message("anything", status_code=504) == HIGH_LOAD_MESSAGE

    def test_other_server_errors_mean_unavailable(self):
        assert friendly_failure_message("anything", status_code=502) == UNAVAILABLE_MESSAGE

    def test_timeout_text_means_slow_service(self):
        assert friendly_failure_message("The request timed out") == SLOW_SERVICE_MESSAGE

    def test_unmatched_message_is_unchanged(self):
        message = "Unauthorized. Please check your Langflow API key."

        assert friendly_failure_message(message, status_code=401) == message

    def test_client_error_text_is_never_rewritten(self):
        message = "Flow not found. Please check if flow ID 'a504-timeout' exists."

        assert friendly_failure_message(message, status_code=404) == message


class TestTransientFailure:
    def test_transient_category_wins(self):
        assert is_transient_failure("opaque", FailureCategory.TIMEOUT)
        assert is_transient_failure("opaque", FailureCategory.TRANSIENT)

    def test_text_patterns(self):
        assert is_transient_failure(HIGH_LOAD_MESSAGE)
        assert is_transient_failure(UNAVAILABLE_MESSAGE)
        assert is_transient_failure(CATEGORY_MESSAGES[FailureCategory.CONNECTION_RESET])

    def test_auth_failure_is_not_transient(self):
        assert not is_transient_failure(
            "Unauthorized. Please check your Langflow API key.",
            FailureCategory.AUTH,
        )

    def test_client_status_ignores_transient_text(self):
        assert not is_transient_failure(
            "Flow not found. Details: 504 gateway timeout",
            FailureCategory.NOT_FOUND,
            status_code=404,
        )

    def test_server_status_is_transient(self):
        assert is_transient_failure("opaque", FailureCategory.CLIENT, status_code=503)


class TestMergeReadiness:
    @pytest.mark.parametrize(
        "message, ready",
        [
            ("This PR is READY to merge.", True),
            ("Ready for merge after CI passes", True),
            ("This PR is not ready to merge.", False),
            ("It isn't ready yet", False),
            ("Needs more work", False),
            ("This PR was already reviewed; blocking issues remain.", False),
            ("", False),
            (None, False),
        ],
    )
    def test_keyword(self, message, ready):
        assert is_merge_ready(message) is ready
