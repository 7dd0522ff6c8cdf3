"""
Pytest configuration and fixtures for the Dynatrace SLI service tests.
"""

from __future__ import annotations

import base64
import os
from typing import Callable, Dict, Generator, List, Mapping, Optional

import pytest
import yaml

from dynatrace_sli.config import ServiceConfig, reset_config
from dynatrace_sli.dynatrace import DEFAULT_QUERIES
from dynatrace_sli.errors import IndicatorEvaluationFailure
from dynatrace_sli.models import TimeWindow
from dynatrace_sli.secretstore import InMemorySecretStore


# ============================================================================
# Environment Fixtures
# ============================================================================


SERVICE_ENV_VARS = (
    "CONFIGURATION_SERVICE",
    "EVENTBROKER",
    "RCV_PORT",
    "RCV_PATH",
    "KEPTN_NAMESPACE",
    "SLI_PARALLELISM",
    "DT_INGEST_DELAY_SECONDS",
    "LOG_LEVEL",
    "LOG_FORMAT",
)


@pytest.fixture(autouse=True)
def clean_env() -> Generator[None, None, None]:
    """Keep service variables of the host environment out of the tests."""
    original = {key: os.environ.pop(key, None) for key in SERVICE_ENV_VARS}
    reset_config()

    yield

    reset_config()
    for key in SERVICE_ENV_VARS:
        os.environ.pop(key, None)
        if original[key] is not None:
            os.environ[key] = original[key]


@pytest.fixture
def config() -> ServiceConfig:
    """Config with both collaborator endpoints set and no ingestion wait."""
    return ServiceConfig(
        _env_file=None,
        configuration_service="http://configuration-service:8080",
        eventbroker="http://event-broker/keptn",
        dt_ingest_delay_seconds=0,
    )


# ============================================================================
# Secret Fixtures
# ============================================================================


def project_secret(tenant: str, token: str) -> Dict[str, str]:
    return {
        "dynatrace-credentials": yaml.safe_dump({"DT_TENANT": tenant, "DT_API_TOKEN": token}),
    }


def global_secret(tenant: str, token: str) -> Dict[str, str]:
    return {"DT_TENANT": tenant, "DT_API_TOKEN": token}


@pytest.fixture
def make_project_secret() -> Callable[[str, str], Dict[str, str]]:
    return project_secret


@pytest.fixture
def make_global_secret() -> Callable[[str, str], Dict[str, str]]:
    return global_secret


@pytest.fixture
def secret_store() -> InMemorySecretStore:
    """Store with project credentials for p1 and global credentials."""
    return InMemorySecretStore(
        secrets={
            "dynatrace-credentials-p1": project_secret("p1.live.dynatrace.com", "p1-token"),
            "dynatrace": global_secret("global.live.dynatrace.com", "global-token"),
        }
    )


# ============================================================================
# Provider / Event Fixtures
# ============================================================================


class FakeProvider:
    """Metrics provider returning canned values or failures per indicator."""

    def __init__(
        self,
        values: Optional[Mapping[str, float]] = None,
        failures: Optional[Mapping[str, str]] = None,
    ):
        self.values = dict(values or {})
        self.failures = dict(failures or {})
        self.calls: List[tuple] = []

    def default_query(self, indicator: str) -> str:
        try:
            return DEFAULT_QUERIES[indicator]
        except KeyError:
            raise IndicatorEvaluationFailure(indicator, f"unsupported SLI metric {indicator}") from None

    def query_value(
        self,
        indicator: str,
        query: str,
        window: TimeWindow,
        filters: Mapping[str, str],
    ) -> float:
        self.calls.append((indicator, query, window, dict(filters)))
        if indicator in self.failures:
            raise IndicatorEvaluationFailure(indicator, self.failures[indicator], query)
        return self.values.get(indicator, 1.0)


@pytest.fixture
def fake_provider_cls():
    return FakeProvider


@pytest.fixture
def get_sli_data() -> dict:
    """Data of a get-sli event as Keptn sends it."""
    return {
        "sliProvider": "dynatrace",
        "project": "p1",
        "stage": "staging",
        "service": "carts",
        "start": "2019-11-21T11:00:00.000Z",
        "end": "2019-11-21T11:05:00.000Z",
        "indicators": ["throughput", "error_rate"],
        "customFilters": [{"key": "dtEntityName", "value": "'carts-primary'"}],
        "deployment": "canary",
        "teststrategy": "performance",
        "deploymentstrategy": "blue_green_service",
    }


@pytest.fixture
def get_sli_event(get_sli_data) -> dict:
    """Structured-mode get-sli CloudEvent."""
    return {
        "specversion": "0.2",
        "id": "2f3ed6ee-4bcb-4bd4-9b65-9a3e0f1a5c7e",
        "type": "sh.keptn.internal.event.get-sli",
        "source": "lighthouse-service",
        "time": "2019-11-21T11:05:10.000Z",
        "contenttype": "application/json",
        "shkeptncontext": "ctx-1234",
        "data": get_sli_data,
    }


def encode_resource(content: str) -> dict:
    """Configuration service resource body for the given content."""
    return {
        "resourceURI": "dynatrace/sli.yaml",
        "resourceContent": base64.b64encode(content.encode("utf-8")).decode("ascii"),
    }


@pytest.fixture
def make_resource():
    return encode_resource
