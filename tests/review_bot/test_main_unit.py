"""Unit tests for the FastAPI application endpoints."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from src.review_bot import main
from src.review_bot.config import BotSettings
from src.review_bot.github.auth import (
    MissingCredentialProvider,
    StaticTokenProvider,
)
from src.review_bot.webhook.handler import compute_signature
from src.review_bot.webhook.models import RequestedAction


SECRET = "s3cret"


def _settings(**overrides) -> BotSettings:
    values = {
        "github_webhook_secret": SECRET,
        "github_token": None,
        "github_app_id": None,
        "langflow_endpoint": None,
    }
    values.update(overrides)
    return BotSettings(_env_file=None, **values)


@pytest.fixture
def dispatcher():
    stub = MagicMock()
    stub.pending = 0
    stub.shutdown = AsyncMock()
    stub.dispatch_check_run_action.return_value = True
    stub.dispatch_pull_request.return_value = True
    return stub


@pytest.fixture
def client(monkeypatch, dispatcher):
    monkeypatch.setattr(main, "get_settings", lambda: _settings())
    monkeypatch.setattr(main, "configure_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr(main, "_build_dispatcher", lambda *args: dispatcher)
    with TestClient(main.app) as test_client:
        yield test_client


def _post(client, event_name, payload, secret=SECRET):
    body = json.dumps(payload).encode()
    return client.post(
        "/webhooks",
        content=body,
        headers={
            "X-GitHub-Event": event_name,
            "X-GitHub-Delivery": "d-1",
            "X-Hub-Signature-256": compute_signature(secret, body),
            "Content-Type": "application/json",
        },
    )


CHECK_RUN_PAYLOAD = {
    "action": "requested_action",
    "requested_action": {"identifier": "check_merge"},
    "check_run": {"id": 991, "head_sha": "abc123", "pull_requests": [{"number": 12}]},
    "repository": {"name": "widgets", "owner": {"login": "acme"}},
}


class TestHealth:
    @pytest.mark.parametrize("path", ["/", "/health"])
    def test_reports_langflow_state(self, client, path):
        response = client.get(path)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["langflow"] == {
            "endpoint_configured": False,
            "connectivity": "not configured",
        }
        assert "timestamp" in data

    def test_metrics_endpoint(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "review_runs_by_stage" in response.text


class TestWebhook:
    def test_rejects_bad_signature(self, client, dispatcher):
        response = _post(client, "check_run", CHECK_RUN_PAYLOAD, secret="wrong")

        assert response.status_code == 401
        dispatcher.dispatch_check_run_action.assert_not_called()

    def test_ping(self, client):
        response = _post(client, "ping", {"zen": "hi"})

        assert response.json() == {"status": "pong"}

    def test_check_run_action_is_dispatched(self, client, dispatcher):
        response = _post(client, "check_run", CHECK_RUN_PAYLOAD)

        assert response.status_code == 200
        assert response.json()["status"] == "accepted"
        event = dispatcher.dispatch_check_run_action.call_args.args[0]
        assert event.requested_action is RequestedAction.CHECK_MERGE
        assert event.pull_number == 12

    def test_duplicate_is_acknowledged(self, client, dispatcher):
        dispatcher.dispatch_check_run_action.return_value = False

        response = _post(client, "check_run", CHECK_RUN_PAYLOAD)

        assert response.json()["status"] == "duplicate"

    def test_pull_request_is_dispatched(self, client, dispatcher):
        payload = {
            "action": "opened",
            "pull_request": {"number": 12, "head": {"sha": "abc123"}, "user": {"login": "octo"}},
            "repository": {"name": "widgets", "owner": {"login": "acme"}},
        }

        response = _post(client, "pull_request", payload)

        assert response.json() == {"status": "accepted", "pull_request": "acme/widgets#12"}
        dispatcher.dispatch_pull_request.assert_called_once()

    def test_unsupported_event_is_ignored(self, client, dispatcher):
        response = _post(client, "issues", {"action": "opened"})

        assert response.json()["status"] == "ignored"

    def test_invalid_json(self, client):
        body = b"not json"
        response = client.post(
            "/webhooks",
            content=body,
            headers={
                "X-GitHub-Event": "check_run",
                "X-Hub-Signature-256": compute_signature(SECRET, body),
            },
        )

        assert response.status_code == 400


class TestHelpers:
    def test_redact_secret(self):
        assert main._redact_secret("ghp_abcdef") == "ghp_******"
        assert main._redact_secret("abc") == "***"
        assert main._redact_secret(None) == "<not set>"

    def test_static_token_provider_when_no_app(self):
        provider = main._create_token_provider(_settings(github_token="ghp_x"))

        assert isinstance(provider, StaticTokenProvider)

    def test_placeholder_without_credentials(self):
        provider = main._create_token_provider(_settings())

        assert isinstance(provider, MissingCredentialProvider)

    def test_unreadable_app_key_gives_placeholder(self, tmp_path):
        provider = main._create_token_provider(
            _settings(
                github_app_id="1",
                github_installation_id=2,
                github_private_key_path=str(tmp_path / "missing.pem"),
            )
        )

        assert isinstance(provider, MissingCredentialProvider)
