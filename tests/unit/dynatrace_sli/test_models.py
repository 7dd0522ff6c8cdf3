"""Tests for the request, outcome and result models."""

import json

import pytest
from pydantic import ValidationError

from dynatrace_sli.models import (
    Credentials,
    IndicatorOutcome,
    LookupStatus,
    QueryLookup,
    RetrievalRequest,
    RetrievalResult,
)


class TestRetrievalRequest:

    def test_from_event_data(self, get_sli_data):
        request = RetrievalRequest.model_validate(get_sli_data)

        assert request.sli_provider == "dynatrace"
        assert request.indicators == ["throughput", "error_rate"]
        assert request.custom_filters == {"dtEntityName": "'carts-primary'"}
        assert request.test_strategy == "performance"
        assert request.window.start == "2019-11-21T11:00:00.000Z"

    def test_optional_fields(self):
        request = RetrievalRequest.model_validate(
            {"project": "p1", "indicators": None, "customFilters": None}
        )
        assert request.indicators == []
        assert request.custom_filters == {}
        assert request.deployment == ""

    def test_filters_as_mapping(self):
        request = RetrievalRequest(project="p1", custom_filters={"a": "b"})
        assert request.custom_filters == {"a": "b"}

    def test_filter_without_key_rejected(self):
        with pytest.raises(ValidationError, match="invalid custom filter"):
            RetrievalRequest.model_validate({"project": "p1", "customFilters": [{"value": "x"}]})

    def test_project_required(self):
        with pytest.raises(ValidationError):
            RetrievalRequest.model_validate({"stage": "dev"})


class TestIndicatorOutcome:

    def test_succeeded(self):
        outcome = IndicatorOutcome.succeeded("throughput", 12.0)
        assert outcome.success
        assert outcome.message is None

    def test_failed_defaults_message(self):
        outcome = IndicatorOutcome.failed("throughput", "")
        assert outcome.message == "unknown error"
        assert outcome.value == 0.0

    @pytest.mark.parametrize("kwargs", [
        {"success": True, "message": "oops"},
        {"success": False},
    ])
    def test_message_only_on_failure(self, kwargs):
        with pytest.raises(ValidationError):
            IndicatorOutcome(metric="m", **kwargs)


class TestRetrievalResult:

    def test_event_data(self, get_sli_data):
        request = RetrievalRequest.model_validate(get_sli_data)
        result = RetrievalResult.from_request(request, [
            IndicatorOutcome.succeeded("throughput", 1.5),
            IndicatorOutcome.failed("error_rate", "timeout"),
        ])

        assert result.failed_metrics == ["error_rate"]
        data = result.to_event_data()
        assert isinstance(data["indicatorValues"], list)
        assert json.loads(json.dumps(data)) == data
        assert result.to_event_data() == {
            "project": "p1",
            "stage": "staging",
            "service": "carts",
            "indicatorValues": [
                {"metric": "throughput", "value": 1.5, "success": True},
                {"metric": "error_rate", "value": 0.0, "success": False, "message": "timeout"},
            ],
            "start": "2019-11-21T11:00:00.000Z",
            "end": "2019-11-21T11:05:00.000Z",
            "teststrategy": "performance",
            "deploymentstrategy": "blue_green_service",
            "deployment": "canary",
        }


class TestCredentials:

    @pytest.mark.parametrize("endpoint,token", [("", "t"), ("https://x", "")])
    def test_rejects_empty(self, endpoint, token):
        with pytest.raises(ValueError):
            Credentials(endpoint_url=endpoint, api_token=token)


class TestQueryLookup:

    def test_found_copies_queries(self):
        queries = {"throughput": "q"}
        lookup = QueryLookup.found(queries)
        queries["error_rate"] = "q2"

        assert lookup.status is LookupStatus.FOUND
        assert dict(lookup.queries) == {"throughput": "q"}

    def test_not_found(self):
        lookup = QueryLookup.not_found()
        assert not lookup.is_found
        assert lookup.queries == {}
