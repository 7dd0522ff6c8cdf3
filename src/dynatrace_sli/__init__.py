"""
Dynatrace SLI service - SLI retrieval from Dynatrace for Keptn.

Receives ``sh.keptn.internal.event.get-sli`` CloudEvents, resolves
Dynatrace credentials for the project, evaluates each requested
indicator against the Dynatrace Metrics API and answers with a
``sh.keptn.internal.event.get-sli.done`` event.

Usage:
    from dynatrace_sli import SLIRetrievalService, get_config
    from dynatrace_sli.secretstore import get_secret_store

    config = get_config()
    service = SLIRetrievalService(config, get_secret_store(namespace=config.keptn_namespace))
    result = service.retrieve(request)
"""

from dynatrace_sli.config import ServiceConfig, get_config
from dynatrace_sli.credentials import CredentialResolver, normalize_tenant_url
from dynatrace_sli.errors import (
    ConfigurationError,
    CredentialResolutionError,
    DispatchError,
    ErrorKind,
    IndicatorEvaluationFailure,
    QueryConfigurationError,
    SLIServiceError,
)
from dynatrace_sli.evaluator import IndicatorEvaluator
from dynatrace_sli.models import (
    Credentials,
    IndicatorOutcome,
    QueryLookup,
    RetrievalRequest,
    RetrievalResult,
)
from dynatrace_sli.service import SLIRetrievalService

__version__ = "0.1.0"
__all__ = [
    "ServiceConfig",
    "get_config",
    "CredentialResolver",
    "normalize_tenant_url",
    "IndicatorEvaluator",
    "SLIRetrievalService",
    # Models
    "Credentials",
    "IndicatorOutcome",
    "QueryLookup",
    "RetrievalRequest",
    "RetrievalResult",
    # Errors
    "ErrorKind",
    "SLIServiceError",
    "ConfigurationError",
    "CredentialResolutionError",
    "QueryConfigurationError",
    "IndicatorEvaluationFailure",
    "DispatchError",
]
