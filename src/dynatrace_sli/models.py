"""
Pydantic models for SLI retrieval.

Field aliases follow the Keptn event payloads
(``sh.keptn.internal.event.get-sli`` and ``...get-sli.done``), so
models can be validated from and dumped to the wire format directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class RetrievalRequest(BaseModel):
    """Data of an inbound get-sli event."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    sli_provider: str = Field("", alias="sliProvider", description="Selected SLI provider")
    project: str = Field(..., description="Keptn project")
    stage: str = Field("", description="Keptn stage")
    service: str = Field("", description="Keptn service")
    indicators: List[str] = Field(default_factory=list, description="Ordered SLI names")
    start: str = Field("", description="Window start (RFC 3339)")
    end: str = Field("", description="Window end (RFC 3339)")
    custom_filters: Dict[str, str] = Field(
        default_factory=dict,
        alias="customFilters",
        description="Filter key to value, substituted into queries",
    )
    deployment: str = Field("", description="Deployment (direct, canary, primary)")
    test_strategy: str = Field("", alias="teststrategy")
    deployment_strategy: str = Field("", alias="deploymentstrategy")
    keptn_context: str = Field(
        "",
        alias="shkeptncontext",
        exclude=True,
        description="Correlation context copied from the triggering event",
    )

    @field_validator("custom_filters", mode="before")
    @classmethod
    def filters_from_list(cls, v: Any) -> Any:
        """Keptn sends filters as a list of {key, value} objects."""
        if v is None:
            return {}
        if isinstance(v, list):
            filters: Dict[str, str] = {}
            for item in v:
                if not isinstance(item, Mapping) or "key" not in item:
                    raise ValueError(f"invalid custom filter: {item!r}")
                filters[str(item["key"])] = str(item.get("value", ""))
            return filters
        return v

    @field_validator("indicators", mode="before")
    @classmethod
    def indicators_default(cls, v: Any) -> Any:
        return [] if v is None else v

    @property
    def window(self) -> "TimeWindow":
        return TimeWindow(start=self.start, end=self.end)


@dataclass(frozen=True)
class TimeWindow:
    """Evaluation window; bounds are passed through as received."""
    start: str
    end: str


@dataclass(frozen=True)
class Credentials:
    """Dynatrace API endpoint and token for one request."""
    endpoint_url: str
    api_token: str = field(repr=False)

    def __post_init__(self):
        if not self.endpoint_url:
            raise ValueError("endpoint_url must not be empty")
        if not self.api_token:
            raise ValueError("api_token must not be empty")

    @property
    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Api-Token {self.api_token}"}


class LookupStatus(str, Enum):
    """Outcome of a custom query lookup."""
    FOUND = "found"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class QueryLookup:
    """
    Tagged result of loading custom SLI queries.

    ``NOT_FOUND`` is a normal outcome meaning every indicator uses its
    default query. Failures other than not-found are raised as
    ``QueryConfigurationError`` instead of being represented here.
    """
    status: LookupStatus
    queries: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def found(cls, queries: Mapping[str, str]) -> "QueryLookup":
        return cls(status=LookupStatus.FOUND, queries=dict(queries))

    @classmethod
    def not_found(cls) -> "QueryLookup":
        return cls(status=LookupStatus.NOT_FOUND)

    @property
    def is_found(self) -> bool:
        return self.status is LookupStatus.FOUND


class IndicatorOutcome(BaseModel):
    """Result of evaluating one indicator."""

    model_config = ConfigDict(frozen=True)

    metric: str
    value: float = 0.0
    success: bool
    message: Optional[str] = None

    @model_validator(mode="after")
    def message_iff_failed(self) -> "IndicatorOutcome":
        if self.success and self.message:
            raise ValueError("successful outcome must not carry a message")
        if not self.success and not self.message:
            raise ValueError("failed outcome requires a message")
        return self

    @classmethod
    def succeeded(cls, metric: str, value: float) -> "IndicatorOutcome":
        return cls(metric=metric, value=value, success=True)

    @classmethod
    def failed(cls, metric: str, message: str) -> "IndicatorOutcome":
        return cls(metric=metric, value=0.0, success=False, message=message or "unknown error")


class RetrievalResult(BaseModel):
    """Data of an outbound get-sli.done event."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    project: str
    stage: str
    service: str
    indicator_values: Tuple[IndicatorOutcome, ...] = Field(alias="indicatorValues")
    start: str
    end: str
    test_strategy: str = Field("", alias="teststrategy")
    deployment_strategy: str = Field("", alias="deploymentstrategy")
    deployment: str = ""

    @classmethod
    def from_request(
        cls,
        request: RetrievalRequest,
        outcomes: Sequence[IndicatorOutcome],
    ) -> "RetrievalResult":
        """Build a result from ordered outcomes plus the request's pass-through fields."""
        return cls(
            project=request.project,
            stage=request.stage,
            service=request.service,
            indicator_values=tuple(outcomes),
            start=request.start,
            end=request.end,
            test_strategy=request.test_strategy,
            deployment_strategy=request.deployment_strategy,
            deployment=request.deployment,
        )

    def to_event_data(self) -> Dict[str, Any]:
        """Serialize to the Keptn wire format."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @property
    def failed_metrics(self) -> List[str]:
        return [o.metric for o in self.indicator_values if not o.success]
