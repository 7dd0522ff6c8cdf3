"""
Result aggregation and completion event delivery.

The completion event is the only channel through which indicator-level
failures are reported. Delivery is attempted exactly once; a failed
delivery fails the request and is not retried here.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import httpx

from dynatrace_sli.config import ServiceConfig
from dynatrace_sli.errors import DispatchError
from dynatrace_sli.events import (
    GET_SLI_DONE_EVENT_TYPE,
    STRUCTURED_CONTENT_TYPE,
    CloudEvent,
)
from dynatrace_sli.models import IndicatorOutcome, RetrievalRequest, RetrievalResult
from dynatrace_sli.otel import emit_retrieval_summary

logger = logging.getLogger(__name__)


def aggregate(outcomes: Sequence[IndicatorOutcome], request: RetrievalRequest) -> RetrievalResult:
    """Combine ordered outcomes with the request's pass-through fields."""
    if len(outcomes) != len(request.indicators):
        raise ValueError(
            f"expected {len(request.indicators)} outcomes, got {len(outcomes)}"
        )
    result = RetrievalResult.from_request(request, outcomes)
    emit_retrieval_summary(result)
    return result


class ResultNotifier:
    """Sends get-sli.done events to the Keptn event broker."""

    def __init__(
        self,
        config: ServiceConfig,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.config = config
        self._transport = transport

    def build_event(self, result: RetrievalResult, keptn_context: str) -> CloudEvent:
        return CloudEvent(
            type=GET_SLI_DONE_EVENT_TYPE,
            source=self.config.service_name,
            shkeptncontext=keptn_context,
            data=result.to_event_data(),
        )

    def emit(self, result: RetrievalResult, keptn_context: str) -> CloudEvent:
        """
        Deliver the completion event.

        Returns:
            The event that was sent

        Raises:
            ConfigurationError: if the event broker endpoint is not configured
            DispatchError: if the broker is unreachable or rejects the event
        """
        target = self.config.eventbroker_endpoint()
        event = self.build_event(result, keptn_context)

        try:
            with httpx.Client(
                timeout=self.config.eventbroker_timeout_seconds,
                transport=self._transport,
            ) as http:
                response = http.post(
                    target,
                    json=event.to_structured(),
                    headers={"Content-Type": STRUCTURED_CONTENT_TYPE},
                )
        except httpx.TimeoutException as e:
            raise DispatchError(target, f"timeout: {e}") from e
        except httpx.RequestError as e:
            raise DispatchError(target, str(e)) from e

        if not response.is_success:
            raise DispatchError(
                target,
                f"event broker returned {response.status_code}",
                status_code=response.status_code,
            )

        logger.info(f"Sent {event.type} event {event.id} for context {keptn_context}")
        return event
