"""GitHub webhook handler for the review bot.

Verifies the ``X-Hub-Signature-256`` header and parses the two event kinds
the bot reacts to into structured models. Parsing never raises: payloads
that are malformed or irrelevant yield None and are acknowledged without
action.

GitHub Webhook Payload Structure (check_run.requested_action):
{
  "action": "requested_action",
  "requested_action": {"identifier": "review_pr"},
  "check_run": {
    "id": 4,
    "head_sha": "ce587453ced02b1526dfb4cb910479d431683101",
    "pull_requests": [{"number": 42}]
  },
  "repository": {"name": "repo-name", "owner": {"login": "owner-name"}},
  "installation": {"id": 12345}
}
"""

import hashlib
import hmac
import logging
from typing import Any, Dict, List, Optional, Tuple

from .models import (
    CheckRunActionEvent,
    PullRequestAction,
    PullRequestEvent,
    RequestedAction,
)

logger = logging.getLogger(__name__)


SIGNATURE_PREFIX = "sha256="


class InvalidSignatureError(Exception):
    """Raised when a webhook delivery fails signature verification."""


def compute_signature(secret: str, body: bytes) -> str:
    """Return the ``sha256=<hex>`` signature GitHub sends for ``body``."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


class WebhookHandler:
    """Verifies and parses GitHub webhook deliveries.

    Attributes:
        secret: The webhook secret shared with GitHub.
    """

    def __init__(self, secret: str) -> None:
        self.secret = secret

    def verify_signature(self, body: bytes, signature: Optional[str]) -> None:
        """Check ``signature`` against the HMAC-SHA256 of ``body``.

        Raises:
            InvalidSignatureError: If the header is missing or does not match.
        """
        if not self.secret:
            raise InvalidSignatureError("Webhook secret is not configured")
        if not signature or not signature.startswith(SIGNATURE_PREFIX):
            raise InvalidSignatureError("Missing or malformed X-Hub-Signature-256 header")
        expected = compute_signature(self.secret, body)
        if not hmac.compare_digest(expected, signature):
            raise InvalidSignatureError("Webhook signature mismatch")

    def parse_check_run_action(
        self, payload: Dict[str, Any]
    ) -> Optional[CheckRunActionEvent]:
        """Parse a ``check_run`` event carrying a requested action.

        Returns:
            CheckRunActionEvent, or None for other check_run actions, unknown
            button identifiers, or malformed payloads.
        """
        if not isinstance(payload, dict):
            logger.warning("Invalid payload: expected dict, got %s", type(payload))
            return None

        if payload.get("action") != "requested_action":
            logger.debug("Ignoring check_run action: %s", payload.get("action"))
            return None

        requested = payload.get("requested_action")
        if not isinstance(requested, dict):
            requested = {}
        action = self._parse_requested_action(requested.get("identifier"))
        if action is None:
            logger.info(
                "Ignoring unknown requested action: %s",
                requested.get("identifier"),
            )
            return None

        check_run = payload.get("check_run")
        if not isinstance(check_run, dict):
            logger.warning("Missing or invalid 'check_run' field in payload")
            return None

        check_run_id = check_run.get("id")
        head_sha = check_run.get("head_sha")
        if not isinstance(check_run_id, int) or check_run_id <= 0:
            logger.warning("Invalid check run id: %s", check_run_id)
            return None
        if not isinstance(head_sha, str) or not head_sha:
            logger.warning("Invalid check run head_sha: %s", head_sha)
            return None

        repo = self._extract_repository(payload.get("repository"))
        if repo is None:
            return None
        owner, name = repo

        event = CheckRunActionEvent(
            requested_action=action,
            check_run_id=check_run_id,
            head_sha=head_sha,
            owner=owner,
            repository=name,
            pull_numbers=self._extract_pull_numbers(check_run.get("pull_requests")),
            installation_id=self._extract_installation_id(payload),
        )
        logger.info(
            "Parsed check run action: action=%s, repository=%s, check_run=%s",
            action.value,
            event.full_repository,
            check_run_id,
        )
        return event

    def parse_pull_request_event(
        self, payload: Dict[str, Any]
    ) -> Optional[PullRequestEvent]:
        """Parse an opened or synchronize ``pull_request`` event.

        Returns:
            PullRequestEvent, or None for other actions or malformed payloads.
        """
        if not isinstance(payload, dict):
            logger.warning("Invalid payload: expected dict, got %s", type(payload))
            return None

        try:
            action = PullRequestAction(payload.get("action"))
        except ValueError:
            logger.debug("Ignoring pull_request action: %s", payload.get("action"))
            return None

        pull = payload.get("pull_request")
        if not isinstance(pull, dict):
            logger.warning("Missing or invalid 'pull_request' field in payload")
            return None

        number = pull.get("number")
        head = pull.get("head") or {}
        head_sha = head.get("sha") if isinstance(head, dict) else None
        if not isinstance(number, int) or number <= 0:
            logger.warning("Invalid pull request number: %s", number)
            return None
        if not isinstance(head_sha, str) or not head_sha:
            logger.warning("Invalid pull request head sha: %s", head_sha)
            return None

        repo = self._extract_repository(payload.get("repository"))
        if repo is None:
            return None
        owner, name = repo

        user = pull.get("user") or {}
        return PullRequestEvent(
            action=action,
            pull_number=number,
            title=pull.get("title") or "",
            author=(user.get("login") or "") if isinstance(user, dict) else "",
            head_sha=head_sha,
            changed_files=pull.get("changed_files") or 0,
            additions=pull.get("additions") or 0,
            deletions=pull.get("deletions") or 0,
            owner=owner,
            repository=name,
        )

    def _parse_requested_action(self, identifier: Any) -> Optional[RequestedAction]:
        if not isinstance(identifier, str):
            return None
        try:
            return RequestedAction(identifier)
        except ValueError:
            return None

    def _extract_repository(self, repo_data: Any) -> Optional[Tuple[str, str]]:
        """Return ``(owner, name)`` from a repository object."""
        if not isinstance(repo_data, dict):
            logger.warning("Missing or invalid 'repository' field: %s", type(repo_data))
            return None

        name = repo_data.get("name")
        owner_data = repo_data.get("owner")
        owner = owner_data.get("login") if isinstance(owner_data, dict) else None
        if not isinstance(name, str) or not name.strip():
            logger.warning("Invalid or empty repository name: %s", name)
            return None
        if not isinstance(owner, str) or not owner.strip():
            logger.warning("Invalid or empty repository owner: %s", owner)
            return None
        return owner.strip(), name.strip()

    def _extract_pull_numbers(self, pulls: Any) -> List[int]:
        if not isinstance(pulls, list):
            return []
        numbers = []
        for pull in pulls:
            if isinstance(pull, dict) and isinstance(pull.get("number"), int):
                numbers.append(pull["number"])
        return numbers

    def _extract_installation_id(self, payload: Dict[str, Any]) -> Optional[int]:
        installation = payload.get("installation")
        if isinstance(installation, dict) and isinstance(installation.get("id"), int):
            return installation["id"]
        return None


def create_webhook_handler(secret: str) -> WebhookHandler:
    """Factory function to create a WebhookHandler instance."""
    return WebhookHandler(secret=secret)
