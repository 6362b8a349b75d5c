"""Prometheus metrics for review observability.

Metrics are exposed at the `/metrics` endpoint in Prometheus format.

Metrics Defined:
- review_runs_total: Counter of finished runs by kind and outcome
- review_runs_failed_total: Counter of runs that did not succeed, by stage
- review_duration_seconds: Histogram of run duration
- review_runs_by_stage: Gauge of runs currently in each stage
- workflow_attempts_total: Counter of individual Langflow HTTP attempts

The MetricsEventEmitter updates the run metrics from review events; the
attempt counter is fed directly by the RetryExecutor's attempt callback.
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from src.review_bot.events.emitter import EventEmitter
from src.review_bot.events.models import EventType, ReviewEvent


logger = logging.getLogger(__name__)


# Runs are dominated by the Langflow call: seconds to several minutes
DEFAULT_DURATION_BUCKETS = (
    1.0,
    5.0,
    10.0,
    30.0,
    60.0,
    120.0,
    300.0,
    600.0,
)

# Match ReviewStage values from review/models.py
REVIEW_STAGES = (
    "idle",
    "dispatched",
    "in_progress",
    "completed",
)


class ReviewMetrics:
    """Container for all review Prometheus metrics.

    Metrics:
        review_runs_total: Labels kind, outcome (success/failure/unavailable).
        review_runs_failed_total: Labels kind, stage (where the run gave up).
        review_duration_seconds: Labels kind.
        review_runs_by_stage: Labels stage.
        workflow_attempts_total: Labels result (success, client_error,
            server_error, timeout, network_error).

    Example:
        >>> metrics = ReviewMetrics(registry=CollectorRegistry())
        >>> metrics.record_run_completed("review", "success", 42.0)
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize review metrics.

        Args:
            registry: Optional Prometheus registry. If None, uses the
                      default REGISTRY. Pass a custom registry for testing.
        """
        self.registry = registry or REGISTRY

        self.review_runs_total = Counter(
            "review_runs_total",
            "Total number of review runs that reached a terminal stage",
            labelnames=["kind", "outcome"],
            registry=self.registry,
        )

        self.review_runs_failed_total = Counter(
            "review_runs_failed_total",
            "Total number of review runs that did not succeed",
            labelnames=["kind", "stage"],
            registry=self.registry,
        )

        self.review_duration_seconds = Histogram(
            "review_duration_seconds",
            "Time from dispatch to completion of a review run in seconds",
            labelnames=["kind"],
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

        self.review_runs_by_stage = Gauge(
            "review_runs_by_stage",
            "Current number of review runs in each stage",
            labelnames=["stage"],
            registry=self.registry,
        )

        self.workflow_attempts_total = Counter(
            "workflow_attempts_total",
            "Total number of HTTP attempts made against the workflow service",
            labelnames=["result"],
            registry=self.registry,
        )

        for stage in REVIEW_STAGES:
            self.review_runs_by_stage.labels(stage=stage).set(0)

    def record_run_completed(
        self,
        kind: str,
        outcome: str,
        duration_seconds: Optional[float] = None,
    ) -> None:
        self.review_runs_total.labels(kind=kind, outcome=outcome).inc()
        if duration_seconds is not None:
            self.review_duration_seconds.labels(kind=kind).observe(duration_seconds)

    def record_run_failed(self, kind: str, stage: str) -> None:
        self.review_runs_failed_total.labels(kind=kind, stage=stage).inc()

    def record_stage_change(
        self,
        from_stage: Optional[str],
        to_stage: Optional[str],
    ) -> None:
        """Move one run between stage gauges.

        ``completed`` is not tracked as a live stage; runs leave the gauge
        when they finish.
        """
        if from_stage in REVIEW_STAGES and from_stage != "completed":
            self.review_runs_by_stage.labels(stage=from_stage).dec()
        if to_stage in REVIEW_STAGES and to_stage != "completed":
            self.review_runs_by_stage.labels(stage=to_stage).inc()

    def record_workflow_attempt(self, result: str) -> None:
        self.workflow_attempts_total.labels(result=result).inc()


_default_metrics: Optional[ReviewMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> ReviewMetrics:
    """Get the global metrics instance, or a new one for ``registry``."""
    global _default_metrics

    if registry is not None:
        return ReviewMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = ReviewMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Generate Prometheus text output for the /metrics endpoint."""
    target_registry = registry or REGISTRY
    return generate_latest(target_registry)


class MetricsEventEmitter(EventEmitter):
    """Event emitter that updates Prometheus metrics.

    - STATE_TRANSITION: moves the run between stage gauges
    - ERROR: increments review_runs_failed_total
    - COMPLETION: increments review_runs_total, records duration
    - TIMEOUT: increments review_runs_failed_total at the timeout stage
    """

    def __init__(
        self,
        metrics: Optional[ReviewMetrics] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        if metrics is not None:
            self._metrics = metrics
        else:
            self._metrics = get_metrics(registry)

    @property
    def metrics(self) -> ReviewMetrics:
        return self._metrics

    async def emit(self, event: ReviewEvent) -> None:
        try:
            details = event.details
            if event.event_type == EventType.STATE_TRANSITION:
                self._metrics.record_stage_change(
                    details.get("from_stage"),
                    details.get("to_stage"),
                )
            elif event.event_type in (EventType.ERROR, EventType.TIMEOUT):
                self._metrics.record_run_failed(
                    kind=event.kind,
                    stage=details.get("stage", "unknown"),
                )
            elif event.event_type == EventType.COMPLETION:
                duration = details.get("duration_seconds")
                self._metrics.record_run_completed(
                    kind=event.kind,
                    outcome=details.get("outcome", "unknown"),
                    duration_seconds=float(duration) if duration is not None else None,
                )
        except Exception as e:
            logger.error(
                "Failed to update metrics for event %s: %s",
                event.event_type.value,
                str(e),
                extra={"event_type": event.event_type.value, "run_id": event.run_id},
            )
