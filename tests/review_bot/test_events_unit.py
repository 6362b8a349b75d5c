"""Unit tests for review event emitters and Prometheus metrics."""

import asyncio
import logging

import pytest
from prometheus_client import CollectorRegistry

from src.review_bot.events.emitter import (
    CompositeEventEmitter,
    EventEmitter,
    EventSinkType,
    LoggingEventEmitter,
    create_event_emitter,
)
from src.review_bot.events.metrics import MetricsEventEmitter, ReviewMetrics
from src.review_bot.events.models import EventType, ReviewEvent


def run_async(coro):
    return asyncio.run(coro)


def _event(event_type: EventType, **details) -> ReviewEvent:
    return ReviewEvent(
        event_type=event_type,
        run_id="acme/widgets@991",
        repository="acme/widgets",
        kind="review",
        details=details,
    )


@pytest.fixture
def registry():
    return CollectorRegistry()


@pytest.fixture
def metrics(registry):
    return ReviewMetrics(registry=registry)


class TestMetricsEventEmitter:
    def test_completion_counts_outcome_and_duration(self, metrics, registry):
        emitter = MetricsEventEmitter(metrics=metrics)

        run_async(emitter.emit(_event(EventType.COMPLETION, outcome="unavailable", duration_seconds=12.5)))

        assert registry.get_sample_value(
            "review_runs_total", {"kind": "review", "outcome": "unavailable"}
        ) == 1.0
        assert registry.get_sample_value(
            "review_duration_seconds_sum", {"kind": "review"}
        ) == 12.5

    def test_stage_gauges_follow_transitions(self, metrics, registry):
        emitter = MetricsEventEmitter(metrics=metrics)

        async def scenario():
            await emitter.emit(_event(EventType.STATE_TRANSITION, from_stage="idle", to_stage="dispatched"))
            await emitter.emit(_event(EventType.STATE_TRANSITION, from_stage="dispatched", to_stage="in_progress"))

        run_async(scenario())

        assert registry.get_sample_value("review_runs_by_stage", {"stage": "dispatched"}) == 0.0
        assert registry.get_sample_value("review_runs_by_stage", {"stage": "in_progress"}) == 1.0

    def test_errors_count_by_stage(self, metrics, registry):
        emitter = MetricsEventEmitter(metrics=metrics)

        run_async(emitter.emit(_event(EventType.ERROR, stage="workflow")))

        assert registry.get_sample_value(
            "review_runs_failed_total", {"kind": "review", "stage": "workflow"}
        ) == 1.0

    def test_workflow_attempts(self, metrics, registry):
        metrics.record_workflow_attempt("server_error")
        metrics.record_workflow_attempt("server_error")

        assert registry.get_sample_value(
            "workflow_attempts_total", {"result": "server_error"}
        ) == 2.0


class TestEmitters:
    def test_logging_emitter_levels(self, caplog):
        emitter = LoggingEventEmitter(logger_name="review.events.test")

        with caplog.at_level(logging.INFO, logger="review.events.test"):
            run_async(emitter.emit(_event(EventType.ERROR, stage="workflow")))

        record = caplog.records[0]
        assert record.levelno == logging.ERROR
        assert record.run_id == "acme/widgets@991"
        assert record.stage == "workflow"

    def test_composite_isolates_failures(self):
        received = []

        class Broken(EventEmitter):
            async def emit(self, event):
                raise RuntimeError("down")

        class Recording(EventEmitter):
            async def emit(self, event):
                received.append(event)

        composite = CompositeEventEmitter([Broken(), Recording()])
        run_async(composite.emit(_event(EventType.COMPLETION)))

        assert len(received) == 1

    def test_factory(self, metrics):
        assert isinstance(create_event_emitter(), LoggingEventEmitter)

        emitter = create_event_emitter(
            [EventSinkType.LOGGING, EventSinkType.METRICS],
            metrics=metrics,
        )

        assert isinstance(emitter, CompositeEventEmitter)
        assert isinstance(emitter.emitters[1], MetricsEventEmitter)
