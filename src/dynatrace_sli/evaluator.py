"""
Indicator evaluation with per-indicator failure isolation.

Each requested indicator produces exactly one ``IndicatorOutcome``, in
request order. An indicator that fails is recorded as a failed outcome;
it never stops the remaining indicators from being evaluated.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Mapping, Optional, Sequence

from dynatrace_sli.dynatrace import MetricsProvider
from dynatrace_sli.errors import IndicatorEvaluationFailure
from dynatrace_sli.models import IndicatorOutcome, TimeWindow
from dynatrace_sli.otel import emit_indicator_evaluated

logger = logging.getLogger(__name__)


class IndicatorEvaluator:
    """
    Evaluates indicators against a metrics provider.

    Args:
        provider: Provider bound to the request's credentials
        custom_queries: Indicator name to query overrides
        parallelism: Number of indicators evaluated concurrently (1 = sequential)
    """

    def __init__(
        self,
        provider: MetricsProvider,
        custom_queries: Optional[Mapping[str, str]] = None,
        parallelism: int = 1,
    ) -> None:
        self.provider = provider
        self.custom_queries = dict(custom_queries or {})
        self.parallelism = max(1, parallelism)

    def query_for(self, indicator: str) -> str:
        """Custom query if one is configured, otherwise the provider default."""
        if indicator in self.custom_queries:
            return self.custom_queries[indicator]
        return self.provider.default_query(indicator)

    def evaluate(
        self,
        indicator: str,
        window: TimeWindow,
        filters: Mapping[str, str],
    ) -> IndicatorOutcome:
        """Evaluate one indicator. Never raises."""
        logger.info(f"Fetching indicator: {indicator}")
        try:
            query = self.query_for(indicator)
            value = self.provider.query_value(indicator, query, window, filters)
        except IndicatorEvaluationFailure as e:
            logger.error(f"Failed to fetch indicator {indicator}: {e.reason}")
            return IndicatorOutcome.failed(indicator, e.reason)
        except Exception as e:
            logger.exception(f"Unexpected error fetching indicator {indicator}")
            return IndicatorOutcome.failed(indicator, f"{type(e).__name__}: {e}")

        return IndicatorOutcome.succeeded(indicator, value)

    def evaluate_all(
        self,
        indicators: Sequence[str],
        window: TimeWindow,
        filters: Mapping[str, str],
    ) -> List[IndicatorOutcome]:
        """Evaluate every indicator; the result is ordered like ``indicators``."""
        if self.parallelism == 1 or len(indicators) <= 1:
            outcomes = [self.evaluate(name, window, filters) for name in indicators]
        else:
            workers = min(self.parallelism, len(indicators))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sli") as pool:
                # map yields in submission order regardless of completion order
                outcomes = list(pool.map(lambda name: self.evaluate(name, window, filters), indicators))

        for index, outcome in enumerate(outcomes):
            emit_indicator_evaluated(outcome, index)
        return outcomes
