"""
SLI retrieval orchestration.

Handles one get-sli request end to end:

1. resolve Dynatrace credentials (project tier, then global tier)
2. load custom SLI queries for the project/stage/service
3. evaluate every requested indicator, isolating failures
4. aggregate the outcomes and send the get-sli.done event

Steps 1, 2 and 4 are fatal on failure and no completion event is sent.
Indicator failures in step 3 are reported inside the completion event.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from pydantic import ValidationError

from dynatrace_sli.config import ServiceConfig
from dynatrace_sli.credentials import CredentialResolver
from dynatrace_sli.dynatrace import DynatraceProvider, MetricsProvider
from dynatrace_sli.errors import SLIServiceError, UnknownEventTypeError
from dynatrace_sli.evaluator import IndicatorEvaluator
from dynatrace_sli.events import GET_SLI_EVENT_TYPE, CloudEvent, InvalidEventError
from dynatrace_sli.logger import EventLogger
from dynatrace_sli.models import Credentials, RetrievalRequest, RetrievalResult
from dynatrace_sli.notifier import ResultNotifier, aggregate
from dynatrace_sli.otel import retrieval_span
from dynatrace_sli.queries import QueryConfigLoader
from dynatrace_sli.secretstore.base import SecretStore

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[Credentials, RetrievalRequest], MetricsProvider]


class SLIRetrievalService:
    """
    Orchestrates SLI retrieval for inbound Keptn events.

    Collaborators can be injected; by default they are built from the
    service configuration.
    """

    def __init__(
        self,
        config: ServiceConfig,
        secret_store: SecretStore,
        loader: Optional[QueryConfigLoader] = None,
        notifier: Optional[ResultNotifier] = None,
        provider_factory: Optional[ProviderFactory] = None,
    ) -> None:
        self.config = config
        self.resolver = CredentialResolver(secret_store)
        self.loader = loader or QueryConfigLoader(config)
        self.notifier = notifier or ResultNotifier(config)
        self.provider_factory = provider_factory or self._dynatrace_provider

    def _dynatrace_provider(
        self,
        credentials: Credentials,
        request: RetrievalRequest,
    ) -> MetricsProvider:
        return DynatraceProvider(
            credentials,
            project=request.project,
            stage=request.stage,
            service=request.service,
            deployment=request.deployment,
            timeout_seconds=self.config.dynatrace_timeout_seconds,
            ingest_delay_seconds=self.config.dt_ingest_delay_seconds,
        )

    def handle_event(self, event: CloudEvent) -> Optional[RetrievalResult]:
        """
        Dispatch an inbound event.

        Returns:
            The emitted result, or None if the event selects another SLI provider

        Raises:
            UnknownEventTypeError: for event types this service does not handle
            InvalidEventError: if the event data is not a valid get-sli payload
            SLIServiceError: for any fatal retrieval failure
        """
        if event.type != GET_SLI_EVENT_TYPE:
            raise UnknownEventTypeError(event.type)

        if not isinstance(event.data, dict):
            raise InvalidEventError("get-sli event carries no data object")

        # Payloads for other providers are not ours to validate
        sli_provider = event.data.get("sliProvider")
        if sli_provider != self.config.sli_provider:
            logger.debug(f"Ignoring get-sli event {event.id} for SLI provider '{sli_provider}'")
            return None

        try:
            request = RetrievalRequest.model_validate(
                {**event.data, "shkeptncontext": event.keptn_context}
            )
        except ValidationError as e:
            raise InvalidEventError(f"invalid get-sli data: {e}") from e

        return self.retrieve(request, event_id=event.id)

    def retrieve(self, request: RetrievalRequest, event_id: str = "") -> RetrievalResult:
        """Run a full retrieval for one request and emit the completion event."""
        log = EventLogger(request.keptn_context, event_id, self.config.service_name)
        log.info("Retrieving Dynatrace timeseries metrics", project=request.project)

        with retrieval_span(request):
            try:
                credentials = self.resolver.resolve(request.project)
                log.info("Dynatrace credentials (Tenant, Token) received. Getting custom queries ...")

                lookup = self.loader.load(request.project, request.stage, request.service)

                provider = self.provider_factory(credentials, request)
                evaluator = IndicatorEvaluator(
                    provider,
                    custom_queries=lookup.queries,
                    parallelism=self.config.sli_parallelism,
                )
                outcomes = evaluator.evaluate_all(
                    request.indicators, request.window, request.custom_filters
                )
                result = aggregate(outcomes, request)

                log.info(
                    "Finished fetching metrics; Sending event now ...",
                    failed=result.failed_metrics,
                )
                self.notifier.emit(result, request.keptn_context)
            except SLIServiceError as e:
                log.error(str(e), error_kind=e.kind.value)
                raise

        return result
