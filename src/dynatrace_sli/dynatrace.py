"""
Dynatrace Metrics API v2 provider.

Evaluates one SLI query over a time window and returns a single number.
Queries have the form ``<metricSelector>?<param>=<value>``; everything
after ``?`` is passed to the API as extra query parameters (usually the
entity ``scope``).

Placeholders substituted into every query:

- ``$PROJECT``, ``$STAGE``, ``$SERVICE``, ``$DEPLOYMENT``
- ``$<key>`` and ``$<KEY>`` for every custom filter
"""

from __future__ import annotations

import logging
import re
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Mapping, Optional, Protocol, Tuple

import httpx

from dynatrace_sli.errors import IndicatorEvaluationFailure
from dynatrace_sli.models import Credentials, TimeWindow
from dynatrace_sli.timeouts import DT_INGEST_DELAY_S, DYNATRACE_QUERY_TIMEOUT_S

logger = logging.getLogger(__name__)

THROUGHPUT = "throughput"
ERROR_RATE = "error_rate"
RESPONSE_TIME_P50 = "response_time_p50"
RESPONSE_TIME_P90 = "response_time_p90"
RESPONSE_TIME_P95 = "response_time_p95"

_KEPTN_SCOPE = (
    "scope=tag(keptn_project:$PROJECT),tag(keptn_stage:$STAGE),"
    "tag(keptn_service:$SERVICE),tag(keptn_deployment:$DEPLOYMENT)"
)

DEFAULT_QUERIES: Dict[str, str] = {
    THROUGHPUT: f"builtin:service.requestCount.total:merge(0):count?{_KEPTN_SCOPE}",
    ERROR_RATE: f"builtin:service.errors.total.count:merge(0):avg?{_KEPTN_SCOPE}",
    RESPONSE_TIME_P50: f"builtin:service.response.time:merge(0):percentile(50)?{_KEPTN_SCOPE}",
    RESPONSE_TIME_P90: f"builtin:service.response.time:merge(0):percentile(90)?{_KEPTN_SCOPE}",
    RESPONSE_TIME_P95: f"builtin:service.response.time:merge(0):percentile(95)?{_KEPTN_SCOPE}",
}

# Reported in microseconds, SLIs are expressed in milliseconds
MICROSECOND_METRICS = ("builtin:service.response.time",)

METRICS_QUERY_PATH = "/api/v2/metrics/query"

_FRACTION = re.compile(r"\.(\d+)(?=[+-]\d\d:\d\d$|$)")


class MetricsProvider(Protocol):
    """Indicator evaluation capability used by the evaluator."""

    def default_query(self, indicator: str) -> str:
        """Return the built-in query for an indicator."""
        ...

    def query_value(
        self,
        indicator: str,
        query: str,
        window: TimeWindow,
        filters: Mapping[str, str],
    ) -> float:
        """Evaluate a query; raise IndicatorEvaluationFailure on any failure."""
        ...


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp; naive values are taken as UTC."""
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    # fromisoformat before 3.11 only takes 3 or 6 fractional digits
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_epoch_millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def split_query(query: str) -> Tuple[str, Dict[str, str]]:
    """Split ``selector?a=b&c=d`` into the selector and its parameters."""
    selector, _, raw_params = query.partition("?")
    params: Dict[str, str] = {}
    if raw_params:
        for part in raw_params.split("&"):
            if not part:
                continue
            key, sep, value = part.partition("=")
            if not sep:
                raise ValueError(f"invalid query parameter '{part}'")
            params[key] = value
    return selector.strip(), params


class DynatraceProvider:
    """
    Metrics provider backed by the Dynatrace Metrics API v2.

    One instance serves one retrieval request: it is bound to the
    request's credentials and Keptn coordinates.
    """

    def __init__(
        self,
        credentials: Credentials,
        project: str,
        stage: str,
        service: str,
        deployment: str = "",
        timeout_seconds: float = DYNATRACE_QUERY_TIMEOUT_S,
        ingest_delay_seconds: int = DT_INGEST_DELAY_S,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.credentials = credentials
        self.project = project
        self.stage = stage
        self.service = service
        self.deployment = deployment
        self.timeout = timeout_seconds
        self.ingest_delay_seconds = ingest_delay_seconds
        self._transport = transport
        self._sleep = sleep
        self._clock = clock

    def default_query(self, indicator: str) -> str:
        try:
            return DEFAULT_QUERIES[indicator]
        except KeyError:
            raise IndicatorEvaluationFailure(
                indicator, f"unsupported SLI metric {indicator}"
            ) from None

    def substitute(self, query: str, filters: Mapping[str, str]) -> str:
        """Replace filter and Keptn placeholders in a query."""
        # Filters first so they can override the Keptn coordinates
        for key, value in filters.items():
            value = value.replace("'", "").replace('"', "")
            query = query.replace("$" + key, value)
            query = query.replace("$" + key.upper(), value)

        query = query.replace("$PROJECT", self.project)
        query = query.replace("$STAGE", self.stage)
        query = query.replace("$SERVICE", self.service)
        query = query.replace("$DEPLOYMENT", self.deployment)
        return query

    def query_value(
        self,
        indicator: str,
        query: str,
        window: TimeWindow,
        filters: Mapping[str, str],
    ) -> float:
        resolved = self.substitute(query, filters)
        try:
            selector, params = split_query(resolved)
        except ValueError as e:
            raise IndicatorEvaluationFailure(indicator, str(e), resolved) from e
        if not selector:
            raise IndicatorEvaluationFailure(indicator, "metric selector must not be empty", resolved)

        start, end = self._parse_window(indicator, window)
        self._wait_for_ingestion(indicator, end)

        params.update({
            "metricSelector": selector,
            "from": str(to_epoch_millis(start)),
            "to": str(to_epoch_millis(end)),
            "resolution": "Inf",
        })

        url = self.credentials.endpoint_url.rstrip("/") + METRICS_QUERY_PATH
        logger.debug(f"Querying Dynatrace for {indicator}: {selector}")

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as http:
                response = http.get(url, params=params, headers=self.credentials.auth_headers)
        except httpx.TimeoutException as e:
            raise IndicatorEvaluationFailure(indicator, "timeout", resolved) from e
        except httpx.RequestError as e:
            raise IndicatorEvaluationFailure(
                indicator, f"Dynatrace API request failed: {e}", resolved
            ) from e

        if response.status_code != 200:
            raise IndicatorEvaluationFailure(
                indicator,
                f"Dynatrace API returned status code {response.status_code}: {_api_error(response)}",
                resolved,
            )

        value = _first_value(indicator, resolved, response)
        if selector.startswith(MICROSECOND_METRICS):
            value = value / 1000.0
        return value

    def _parse_window(self, indicator: str, window: TimeWindow) -> Tuple[datetime, datetime]:
        try:
            start = parse_timestamp(window.start)
            end = parse_timestamp(window.end)
        except ValueError as e:
            raise IndicatorEvaluationFailure(
                indicator, f"invalid time window [{window.start}, {window.end}]: {e}"
            ) from e
        if start >= end:
            raise IndicatorEvaluationFailure(indicator, "start time needs to be before end time")
        return start, end

    def _wait_for_ingestion(self, indicator: str, end: datetime) -> None:
        """Give Dynatrace time to ingest data points close to the window end."""
        now = self._clock()
        if end > now:
            raise IndicatorEvaluationFailure(indicator, "end time must not be in the future")
        age = (now - end).total_seconds()
        remaining = self.ingest_delay_seconds - age
        if remaining > 0:
            logger.info(f"Window end is {age:.0f}s old, waiting {remaining:.0f}s for Dynatrace ingestion")
            self._sleep(remaining)


def _first_value(indicator: str, query: str, response: httpx.Response) -> float:
    try:
        body = response.json()
    except ValueError as e:
        raise IndicatorEvaluationFailure(
            indicator, "Dynatrace Metrics API returned invalid JSON", query
        ) from e

    if not isinstance(body, dict):
        raise IndicatorEvaluationFailure(
            indicator, "Dynatrace Metrics API returned an unexpected payload", query
        )

    for result in body.get("result") or []:
        for series in result.get("data") or []:
            for value in series.get("values") or []:
                if value is None:
                    continue
                try:
                    return float(value)
                except (TypeError, ValueError) as e:
                    raise IndicatorEvaluationFailure(
                        indicator, f"Dynatrace Metrics API returned non-numeric value {value!r}", query
                    ) from e

    raise IndicatorEvaluationFailure(
        indicator, "Dynatrace Metrics API returned no DataPoints", query
    )


def _api_error(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return response.text[:200]
