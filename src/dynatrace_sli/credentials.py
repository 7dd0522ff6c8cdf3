"""
Dynatrace credential resolution.

Credentials are looked up through an ordered list of tiers. The first
tier that yields a valid tenant and API token wins; later tiers are not
consulted. A tier failure is never fatal by itself, only exhausting every
tier is.

Default tiers:

- **project**: secret ``dynatrace-credentials-<project>`` whose field
  ``dynatrace-credentials`` holds a YAML document::

      DT_TENANT: abc12345.live.dynatrace.com
      DT_API_TOKEN: dt0c01.XXXX

- **global**: secret ``dynatrace`` with the flat fields ``DT_TENANT``
  and ``DT_API_TOKEN``.

Usage::

    resolver = CredentialResolver(get_secret_store())
    creds = resolver.resolve("sockshop")
    creds.endpoint_url  # "https://abc12345.live.dynatrace.com"
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml

from dynatrace_sli.errors import CredentialResolutionError, CredentialTierError
from dynatrace_sli.models import Credentials
from dynatrace_sli.otel import emit_credentials_resolved
from dynatrace_sli.secretstore.base import SecretStore, SecretStoreError

logger = logging.getLogger(__name__)

TENANT_FIELD = "DT_TENANT"
API_TOKEN_FIELD = "DT_API_TOKEN"

PROJECT_SECRET_PREFIX = "dynatrace-credentials-"
PROJECT_SECRET_FIELD = "dynatrace-credentials"
GLOBAL_SECRET_NAME = "dynatrace"


def normalize_tenant_url(tenant: str) -> str:
    """Ensure the tenant always carries an explicit http:// or https:// scheme."""
    if tenant.startswith("https://") or tenant.startswith("http://"):
        return tenant
    return "https://" + tenant


class CredentialTier(ABC):
    """One lookup strategy in the credential fallback chain."""

    name: str = "base"

    @abstractmethod
    def record_name(self, project: str) -> str:
        """Name of the secret this tier reads."""

    @abstractmethod
    def _extract(self, record: str, data: Dict[str, str]) -> Tuple[Any, Any]:
        """Pull raw tenant and token values out of the secret data."""

    def lookup(self, store: SecretStore, project: str) -> Credentials:
        """
        Resolve credentials via this tier.

        Raises:
            CredentialTierError: on any failure of this tier
        """
        record = self.record_name(project)
        try:
            data = store.get_secret(record)
        except SecretStoreError as e:
            raise CredentialTierError(self.name, record, e.reason) from e

        if data is None:
            raise CredentialTierError(
                self.name,
                record,
                f"Could not find secret '{record}' in namespace {store.namespace}.",
            )

        tenant, api_token = self._extract(record, data)
        tenant = self._require(record, TENANT_FIELD, "Tenant", tenant)
        api_token = self._require(record, API_TOKEN_FIELD, "APIToken", api_token)

        return Credentials(endpoint_url=normalize_tenant_url(tenant), api_token=api_token)

    def _require(self, record: str, field: str, label: str, value: Any) -> str:
        if value is None:
            raise CredentialTierError(
                self.name,
                record,
                f"Credentials {record} does not contain a field '{field}'",
                field=field,
            )
        if not isinstance(value, (str, int, float)):
            raise CredentialTierError(
                self.name,
                record,
                f"invalid credentials format found in secret '{record}'",
                field=field,
            )
        text = str(value).strip()
        if not text:
            raise CredentialTierError(
                self.name, record, f"{label} must not be empty", field=field
            )
        return text


class ProjectCredentialTier(CredentialTier):
    """Per-project credentials stored as a YAML document in a single field."""

    name = "project"

    def record_name(self, project: str) -> str:
        return f"{PROJECT_SECRET_PREFIX}{project}"

    def _extract(self, record: str, data: Dict[str, str]) -> Tuple[Any, Any]:
        raw = data.get(PROJECT_SECRET_FIELD)
        if raw is None:
            raise CredentialTierError(
                self.name,
                record,
                f"Credentials {record} does not contain a field '{PROJECT_SECRET_FIELD}'",
                field=PROJECT_SECRET_FIELD,
            )

        try:
            document = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise CredentialTierError(
                self.name,
                record,
                f"invalid credentials format found in secret '{record}'",
                field=PROJECT_SECRET_FIELD,
            ) from e

        if document is None:
            document = {}
        if not isinstance(document, dict):
            raise CredentialTierError(
                self.name,
                record,
                f"invalid credentials format found in secret '{record}'",
                field=PROJECT_SECRET_FIELD,
            )

        # An absent key in the document behaves like an empty value
        return document.get(TENANT_FIELD, ""), document.get(API_TOKEN_FIELD, "")


class GlobalCredentialTier(CredentialTier):
    """Installation-wide credentials with flat tenant and token fields."""

    name = "global"

    def record_name(self, project: str) -> str:
        return GLOBAL_SECRET_NAME

    def _extract(self, record: str, data: Dict[str, str]) -> Tuple[Any, Any]:
        return data.get(TENANT_FIELD), data.get(API_TOKEN_FIELD)


DEFAULT_TIERS: Tuple[CredentialTier, ...] = (ProjectCredentialTier(), GlobalCredentialTier())


class CredentialResolver:
    """
    Resolves Dynatrace credentials for a project.

    Credentials are read fresh on every call; nothing is cached, so two
    calls against unchanged secrets return equal results.
    """

    def __init__(
        self,
        store: SecretStore,
        tiers: Optional[Sequence[CredentialTier]] = None,
    ):
        self.store = store
        self.tiers: Tuple[CredentialTier, ...] = tuple(tiers) if tiers else DEFAULT_TIERS

    def resolve(self, project: str) -> Credentials:
        """
        Resolve credentials, trying each tier in order.

        Raises:
            CredentialResolutionError: if every tier failed
        """
        attempts: List[CredentialTierError] = []

        for tier in self.tiers:
            try:
                credentials = tier.lookup(self.store, project)
            except CredentialTierError as e:
                attempts.append(e)
                logger.debug(
                    f"Failed to fetch Dynatrace credentials from {tier.name} tier: {e.reason}"
                )
                continue

            if attempts:
                logger.info(
                    f"Using {tier.name} Dynatrace credentials for project {project} "
                    f"after {len(attempts)} failed tier(s)"
                )
            emit_credentials_resolved(project, tier.name, len(attempts))
            return credentials

        raise CredentialResolutionError(project, attempts)
