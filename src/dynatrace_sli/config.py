"""
Centralized configuration for the Dynatrace SLI service.

Uses Pydantic BaseSettings for environment variable integration
and validation. The settings are read once at startup into an immutable
``ServiceConfig`` that is passed explicitly to the components that need
it; core logic never reads the environment itself.

Configuration sources (in order of precedence):
1. Explicit constructor arguments
2. Environment variables (no prefix, e.g. CONFIGURATION_SERVICE, EVENTBROKER)
3. .env file
4. Default values

Example:
    from dynatrace_sli.config import get_config

    config = get_config()
    print(config.eventbroker_endpoint())  # From EVENTBROKER

    # Override at runtime
    config = get_config(eventbroker="http://localhost:8081")
"""

from __future__ import annotations

from typing import Literal, Optional
from urllib.parse import urlparse

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from dynatrace_sli.errors import ConfigurationError
from dynatrace_sli.timeouts import (
    CONFIG_SERVICE_TIMEOUT_S,
    DT_INGEST_DELAY_S,
    DYNATRACE_QUERY_TIMEOUT_S,
    EVENTBROKER_TIMEOUT_S,
)

CONFIGURATION_SERVICE = "CONFIGURATION_SERVICE"
EVENTBROKER = "EVENTBROKER"


class ServiceConfig(BaseSettings):
    """
    Central configuration for the Dynatrace SLI service.

    Field names match the environment variables used by the Keptn
    deployment manifests, e.g.:

        export CONFIGURATION_SERVICE=http://configuration-service.keptn.svc.cluster.local:8080
        export EVENTBROKER=http://event-broker.keptn.svc.cluster.local/keptn
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Service identification
    service_name: str = Field(
        default="dynatrace-sli-service",
        description="Source of emitted events and log attribution",
    )
    sli_provider: str = Field(
        default="dynatrace",
        description="Value of sliProvider this service responds to",
    )

    # Inbound event receiver
    rcv_port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Port on which to listen for cloudevents",
    )
    rcv_path: str = Field(
        default="/",
        description="Path on which to listen for cloudevents",
    )

    # Collaborator endpoints (validated lazily, see resolve_endpoint)
    configuration_service: Optional[str] = Field(
        default=None,
        description="Base URL of the Keptn configuration service",
    )
    eventbroker: Optional[str] = Field(
        default=None,
        description="URL of the Keptn event broker",
    )

    # Kubernetes
    keptn_namespace: str = Field(
        default="keptn",
        description="Namespace holding the Dynatrace credential secrets",
    )
    kubeconfig: Optional[str] = Field(
        default=None,
        description="Path to kubeconfig file (in-cluster config if not set)",
    )

    # Evaluation
    sli_parallelism: int = Field(
        default=1,
        ge=1,
        le=32,
        description="Number of indicators evaluated concurrently",
    )
    dt_ingest_delay_seconds: int = Field(
        default=DT_INGEST_DELAY_S,
        ge=0,
        description="Minimum age of the window end before Dynatrace is queried",
    )

    # Timeouts
    dynatrace_timeout_seconds: float = Field(
        default=DYNATRACE_QUERY_TIMEOUT_S,
        gt=0,
        description="Timeout for a single Dynatrace Metrics API query",
    )
    configuration_service_timeout_seconds: float = Field(
        default=CONFIG_SERVICE_TIMEOUT_S,
        gt=0,
        description="Timeout for configuration service requests",
    )
    eventbroker_timeout_seconds: float = Field(
        default=EVENTBROKER_TIMEOUT_S,
        gt=0,
        description="Timeout for event broker delivery",
    )

    # Logging
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format (json for log shippers, text for console)",
    )

    @field_validator("log_level", "log_format", mode="before")
    @classmethod
    def lowercase(cls, v):
        """Accept LOG_LEVEL=INFO as well as LOG_LEVEL=info."""
        return v.lower() if isinstance(v, str) else v

    @field_validator("rcv_path")
    @classmethod
    def ensure_leading_slash(cls, v: str) -> str:
        return v if v.startswith("/") else "/" + v

    def configuration_service_endpoint(self) -> str:
        """Resolved configuration service base URL."""
        return resolve_endpoint(CONFIGURATION_SERVICE, self.configuration_service)

    def eventbroker_endpoint(self) -> str:
        """Resolved event broker URL."""
        return resolve_endpoint(EVENTBROKER, self.eventbroker)


def resolve_endpoint(name: str, raw: Optional[str]) -> str:
    """
    Normalize an endpoint value, defaulting the scheme to http.

    Raises:
        ConfigurationError: if the value is unset, unparseable or has no host
    """
    if raw is None or not raw.strip():
        raise ConfigurationError(name, "value is not set")

    value = raw.strip()
    if "://" not in value:
        value = "http://" + value

    try:
        parsed = urlparse(value)
        # Accessing .port validates it
        parsed.port
    except ValueError as e:
        raise ConfigurationError(name, f"could not parse URL: {e}", raw) from e

    if parsed.scheme not in ("http", "https"):
        raise ConfigurationError(name, f"unsupported scheme '{parsed.scheme}'", raw)
    if not parsed.hostname:
        raise ConfigurationError(name, "host is not set", raw)

    return value.rstrip("/")


# Global singleton
_config: Optional[ServiceConfig] = None


def get_config(**overrides) -> ServiceConfig:
    """
    Get the global configuration instance.

    Creates a singleton on first call. Subsequent calls return
    the same instance unless overrides are provided.
    """
    global _config

    if overrides or _config is None:
        _config = ServiceConfig(**overrides)

    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
