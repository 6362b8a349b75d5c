"""FastAPI application entry point for the Langflow review bot.

Receives GitHub webhooks, verifies their signatures, and hands supported
events to the ReviewDispatcher, which runs them in the background:

- pull_request opened/synchronize: attach the "Review PR" check run
- check_run requested_action review_pr: run the code review flow
- check_run requested_action check_merge: run the merge readiness flow

Also serves health and Prometheus metrics endpoints.
"""

import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST

from src.review_bot.config import BotSettings, get_settings
from src.review_bot.events.emitter import EventSinkType, create_event_emitter
from src.review_bot.events.metrics import generate_metrics_output, get_metrics
from src.review_bot.github.auth import (
    CredentialError,
    InstallationTokenProvider,
    MissingCredentialProvider,
    StaticTokenProvider,
    load_private_key,
)
from src.review_bot.github.client import GitHubClient
from src.review_bot.invocation.client import WorkflowClient
from src.review_bot.log_config import configure_logging
from src.review_bot.review.dispatcher import ReviewDispatcher
from src.review_bot.review.orchestrator import ReviewOrchestrator
from src.review_bot.webhook.handler import (
    InvalidSignatureError,
    WebhookHandler,
    create_webhook_handler,
)


logger = structlog.get_logger()

# Global instances, initialized during lifespan startup
settings: Optional[BotSettings] = None
webhook_handler: Optional[WebhookHandler] = None
github_client: Optional[GitHubClient] = None
workflow_client: Optional[WorkflowClient] = None
dispatcher: Optional[ReviewDispatcher] = None
token_provider: Any = None


def _redact_secret(value: Optional[str], visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters."""
    if not value:
        return "<not set>"
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(cfg: BotSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info(
        "Review bot configuration",
        github_base_url=cfg.github_base_url,
        github_app_id=cfg.github_app_id,
        github_installation_id=cfg.github_installation_id,
        github_private_key=_redact_secret(cfg.github_private_key),
        github_private_key_path=cfg.github_private_key_path,
        github_token=_redact_secret(cfg.github_token),
        github_webhook_secret=_redact_secret(cfg.github_webhook_secret),
        check_run_name=cfg.check_run_name,
        langflow_endpoint=cfg.langflow_endpoint or "<not set>",
        langflow_api_key=_redact_secret(cfg.langflow_api_key),
        langflow_review_flow_id=cfg.langflow_review_flow_id or "<not set>",
        langflow_merge_check_flow_id=cfg.langflow_merge_check_flow_id or "<not set>",
        langflow_timeout_ms=cfg.langflow_timeout,
        langflow_retries=cfg.langflow_retries,
        langflow_retry_delay_ms=cfg.langflow_retry_delay,
        dispatch_jitter_ms=[cfg.dispatch_jitter_min_ms, cfg.dispatch_jitter_max_ms],
        host=cfg.host,
        port=cfg.port,
    )


def _create_token_provider(cfg: BotSettings):
    """App credentials win over a static token; neither gives a placeholder."""
    if cfg.uses_app_credentials:
        try:
            private_key = load_private_key(
                inline_key=cfg.github_private_key,
                key_path=cfg.github_private_key_path,
            )
        except CredentialError as e:
            logger.error("GitHub App private key unavailable", error=e.message)
            return MissingCredentialProvider(e.message)
        return InstallationTokenProvider(
            app_id=cfg.github_app_id,
            private_key=private_key,
            installation_id=cfg.github_installation_id,
            base_url=cfg.github_base_url,
        )
    if cfg.github_token:
        return StaticTokenProvider(cfg.github_token)

    logger.warning("No GitHub credentials configured; reviews will be unavailable")
    return MissingCredentialProvider(
        "GitHub credentials are not configured "
        "(set GITHUB_APP_ID and GITHUB_INSTALLATION_ID, or GITHUB_TOKEN)"
    )


def _build_dispatcher(
    cfg: BotSettings,
    gh_client: GitHubClient,
    wf_client: WorkflowClient,
) -> ReviewDispatcher:
    """Wire the orchestrator and wrap it in a dispatcher."""
    event_emitter = create_event_emitter(
        [EventSinkType.LOGGING, EventSinkType.METRICS],
        metrics=get_metrics(),
    )
    orchestrator = ReviewOrchestrator(
        github_client=gh_client,
        workflow_client=wf_client,
        event_emitter=event_emitter,
        review_flow_id=cfg.langflow_review_flow_id,
        merge_flow_id=cfg.langflow_merge_check_flow_id,
        review_tweak_component=cfg.langflow_review_tweak_component,
        merge_tweak_component=cfg.langflow_merge_tweak_component,
        tweak_github_token=cfg.github_token,
        check_run_name=cfg.check_run_name,
    )
    return ReviewDispatcher(orchestrator)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown."""
    global settings, webhook_handler, github_client, workflow_client
    global dispatcher, token_provider

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)

    logger.info("Review bot starting up")
    _log_configuration(settings)

    webhook_handler = create_webhook_handler(settings.github_webhook_secret)
    token_provider = _create_token_provider(settings)
    github_client = GitHubClient(
        token_provider=token_provider,
        base_url=settings.github_base_url,
    )
    workflow_client = WorkflowClient(
        endpoint=settings.langflow_endpoint,
        api_key=settings.langflow_api_key,
        policy=settings.retry_policy(),
        jitter_min_ms=settings.dispatch_jitter_min_ms,
        jitter_max_ms=settings.dispatch_jitter_max_ms,
        on_attempt=get_metrics().record_workflow_attempt,
        health_timeout_ms=settings.langflow_health_timeout,
    )
    dispatcher = _build_dispatcher(settings, github_client, workflow_client)

    logger.info("Review bot started", port=settings.port)

    yield

    logger.info("Review bot shutting down", pending_reviews=dispatcher.pending)

    await dispatcher.shutdown()
    await workflow_client.close()
    await github_client.close()
    await token_provider.close()

    logger.info("Review bot shutdown complete")


app = FastAPI(
    title="Langflow Review Bot",
    description="AI pull request review and merge readiness checks for GitHub",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/")
@app.get("/health")
async def health() -> Dict[str, Any]:
    """Report liveness plus Langflow configuration and connectivity."""
    connectivity = "not configured"
    configured = False
    if workflow_client is not None:
        configured = workflow_client.is_configured
        connectivity = await workflow_client.health_check()

    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "langflow": {
            "endpoint_configured": configured,
            "connectivity": connectivity,
        },
        "pending_reviews": dispatcher.pending if dispatcher is not None else 0,
    }


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_metrics_output(), media_type=CONTENT_TYPE_LATEST)


@app.post("/webhooks")
async def github_webhook(request: Request) -> Dict[str, Any]:
    """GitHub webhook receiver.

    Verifies ``X-Hub-Signature-256``, then schedules supported events and
    acknowledges without waiting for the review.
    """
    if webhook_handler is None or dispatcher is None:
        logger.error("Review bot not initialized")
        raise HTTPException(status_code=503, detail="Review bot not initialized")

    body = await request.body()
    try:
        webhook_handler.verify_signature(body, request.headers.get("X-Hub-Signature-256"))
    except InvalidSignatureError as e:
        logger.warning("Rejected webhook delivery", reason=str(e))
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    event_name = request.headers.get("X-GitHub-Event", "")
    delivery = request.headers.get("X-GitHub-Delivery")
    log = logger.bind(github_event=event_name, delivery=delivery)

    if event_name == "ping":
        log.info("Webhook ping received")
        return {"status": "pong"}

    if event_name == "check_run":
        event = webhook_handler.parse_check_run_action(payload)
        if event is None:
            return {"status": "ignored", "message": "Unsupported check_run action"}
        accepted = dispatcher.dispatch_check_run_action(event)
        log.info(
            "Check run action received",
            requested_action=event.requested_action.value,
            repository=event.full_repository,
            check_run_id=event.check_run_id,
            accepted=accepted,
        )
        return {
            "status": "accepted" if accepted else "duplicate",
            "action": event.requested_action.value,
            "check_run_id": event.check_run_id,
        }

    if event_name == "pull_request":
        pr_event = webhook_handler.parse_pull_request_event(payload)
        if pr_event is None:
            return {"status": "ignored", "message": "Unsupported pull_request action"}
        accepted = dispatcher.dispatch_pull_request(pr_event)
        log.info(
            "Pull request event received",
            pull_request=pr_event.pull_request_id,
            accepted=accepted,
        )
        return {
            "status": "accepted" if accepted else "duplicate",
            "pull_request": pr_event.pull_request_id,
        }

    return {"status": "ignored", "message": f"Unsupported event: {event_name}"}


if __name__ == "__main__":
    import uvicorn

    dev_settings = get_settings()
    uvicorn.run(
        "src.review_bot.main:app",
        host=dev_settings.host,
        port=dev_settings.port,
        log_config=None,
    )
