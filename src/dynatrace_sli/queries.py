"""
Custom SLI query loading from the Keptn configuration service.

Projects can override the built-in Dynatrace query of any indicator by
storing ``dynatrace/sli.yaml`` as a service resource::

    spec_version: '1.0'
    indicators:
      throughput: "builtin:service.requestCount.total:merge(0):count?scope=tag(keptn_project:$PROJECT)"
      error_rate: "builtin:service.errors.total.count:merge(0):avg?scope=tag(keptn_service:$SERVICE)"

A missing resource is not an error, it means "use the defaults".
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
import yaml

from dynatrace_sli.config import ServiceConfig
from dynatrace_sli.errors import QueryConfigurationError
from dynatrace_sli.models import QueryLookup

logger = logging.getLogger(__name__)

SLI_RESOURCE_URI = "dynatrace/sli.yaml"


class ConfigurationServiceClient:
    """Minimal client for the resource API of the Keptn configuration service."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout_seconds
        self._transport = transport

    def resource_url(self, project: str, stage: str, service: str, resource_uri: str) -> str:
        return (
            f"{self.base_url}/v1/project/{quote(project, safe='')}"
            f"/stage/{quote(stage, safe='')}"
            f"/service/{quote(service, safe='')}"
            f"/resource/{quote(resource_uri, safe='')}"
        )

    def get_resource(
        self,
        project: str,
        stage: str,
        service: str,
        resource_uri: str,
    ) -> Optional[str]:
        """
        Fetch a service resource and return its decoded content.

        Returns:
            Resource content, or None if the resource does not exist

        Raises:
            QueryConfigurationError: on transport errors, unexpected status
                codes or undecodable content
        """
        url = self.resource_url(project, stage, service, resource_uri)

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as http:
                response = http.get(url, headers={"Accept": "application/json"})
        except httpx.TimeoutException as e:
            raise QueryConfigurationError(project, stage, service, f"timeout: {e}") from e
        except httpx.RequestError as e:
            raise QueryConfigurationError(project, stage, service, f"request failed: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise QueryConfigurationError(
                project,
                stage,
                service,
                f"configuration service returned {response.status_code}: {_error_message(response)}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
            encoded = body["resourceContent"]
            return base64.b64decode(encoded).decode("utf-8")
        except (ValueError, KeyError, TypeError, binascii.Error, UnicodeDecodeError) as e:
            raise QueryConfigurationError(
                project, stage, service, f"invalid resource content: {e}"
            ) from e


def parse_sli_config(content: str) -> Dict[str, str]:
    """
    Parse an SLI configuration document into indicator name -> query.

    Raises:
        ValueError: if the document is not a mapping with a valid ``indicators`` section
    """
    try:
        document = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ValueError(f"invalid YAML: {e}") from e

    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ValueError("SLI configuration must be a mapping")

    indicators: Any = document.get("indicators") or {}
    if not isinstance(indicators, dict):
        raise ValueError("'indicators' must be a mapping of name to query")

    queries: Dict[str, str] = {}
    for name, query in indicators.items():
        if not isinstance(query, str) or not query.strip():
            raise ValueError(f"query for indicator '{name}' must be a non-empty string")
        queries[str(name)] = query.strip()
    return queries


class QueryConfigLoader:
    """Loads the optional custom query map for a project/stage/service."""

    def __init__(
        self,
        config: ServiceConfig,
        transport: Optional[httpx.BaseTransport] = None,
        resource_uri: str = SLI_RESOURCE_URI,
    ) -> None:
        self.config = config
        self.resource_uri = resource_uri
        self._transport = transport

    def load(self, project: str, stage: str, service: str) -> QueryLookup:
        """
        Load custom queries.

        Raises:
            ConfigurationError: if the configuration service endpoint is not configured
            QueryConfigurationError: if the resource could not be fetched or parsed
        """
        logger.info(f"Checking for custom SLI queries of {project}/{stage}/{service}")

        client = ConfigurationServiceClient(
            self.config.configuration_service_endpoint(),
            timeout_seconds=self.config.configuration_service_timeout_seconds,
            transport=self._transport,
        )
        content = client.get_resource(project, stage, service, self.resource_uri)
        if content is None:
            logger.info(f"No {self.resource_uri} found, using default queries")
            return QueryLookup.not_found()

        try:
            queries = parse_sli_config(content)
        except ValueError as e:
            raise QueryConfigurationError(
                project, stage, service, f"malformed {self.resource_uri}: {e}"
            ) from e

        logger.info(f"Found {len(queries)} custom SLI queries")
        return QueryLookup.found(queries)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.text[:200]
