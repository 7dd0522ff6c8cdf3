"""
OTel span helpers for SLI retrieval.

Event helpers check the recording state of the current span, so they
are no-ops when no tracer provider is configured.

Usage::

    from dynatrace_sli.otel import retrieval_span, emit_indicator_evaluated

    with retrieval_span(request):
        ...
        emit_indicator_evaluated(outcome, index=0)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator

from opentelemetry import trace as otel_trace

if TYPE_CHECKING:
    from dynatrace_sli.models import IndicatorOutcome, RetrievalRequest, RetrievalResult

logger = logging.getLogger(__name__)

TRACER_NAME = "dynatrace_sli"


def _add_span_event(name: str, attributes: dict[str, str | int | float | bool]) -> None:
    """Add an event to the current OTel span if it is recording."""
    span = otel_trace.get_current_span()
    if span and span.is_recording():
        span.add_event(name=name, attributes=attributes)


@contextmanager
def retrieval_span(request: "RetrievalRequest") -> Iterator[object]:
    """Run a retrieval inside a ``sli.retrieve`` span."""
    tracer = otel_trace.get_tracer(TRACER_NAME)
    with tracer.start_as_current_span("sli.retrieve") as span:
        span.set_attribute("keptn.project", request.project)
        span.set_attribute("keptn.stage", request.stage)
        span.set_attribute("keptn.service", request.service)
        span.set_attribute("keptn.context", request.keptn_context)
        span.set_attribute("sli.indicator_count", len(request.indicators))
        yield span


def emit_credentials_resolved(project: str, tier: str, failed_tiers: int) -> None:
    """Event name: ``sli.credentials.resolved``"""
    _add_span_event(
        "sli.credentials.resolved",
        {
            "keptn.project": project,
            "sli.credentials.tier": tier,
            "sli.credentials.failed_tiers": failed_tiers,
        },
    )


def emit_indicator_evaluated(outcome: "IndicatorOutcome", index: int) -> None:
    """Event name: ``sli.indicator.evaluated``"""
    attrs: dict[str, str | int | float | bool] = {
        "sli.metric": outcome.metric,
        "sli.index": index,
        "sli.success": outcome.success,
        "sli.value": outcome.value,
    }
    if outcome.message:
        attrs["sli.message"] = outcome.message
    _add_span_event("sli.indicator.evaluated", attrs)


def emit_retrieval_summary(result: "RetrievalResult") -> None:
    """Event name: ``sli.retrieval.summary``"""
    total = len(result.indicator_values)
    failed = len(result.failed_metrics)
    _add_span_event(
        "sli.retrieval.summary",
        {
            "sli.total": total,
            "sli.succeeded": total - failed,
            "sli.failed": failed,
        },
    )
