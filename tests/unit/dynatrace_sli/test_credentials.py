"""Tests for CredentialResolver and its tiers."""

import pytest

from dynatrace_sli.credentials import (
    CredentialResolver,
    GlobalCredentialTier,
    ProjectCredentialTier,
    normalize_tenant_url,
)
from dynatrace_sli.errors import CredentialResolutionError, ErrorKind
from dynatrace_sli.secretstore import InMemorySecretStore, SecretStoreError


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class BrokenStore:
    """Store whose lookups fail with a store error."""

    namespace = "keptn"

    def __init__(self):
        self.lookups = []

    def get_secret(self, name):
        self.lookups.append(name)
        raise SecretStoreError(name, "K8s API error 403 Forbidden")


# ---------------------------------------------------------------------------
# normalize_tenant_url
# ---------------------------------------------------------------------------


class TestNormalizeTenantUrl:

    @pytest.mark.parametrize("tenant", [
        "abc123.live.dynatrace.com",
        "dynatrace.example.com/e/env-id",
        "10.0.0.1:9999",
    ])
    def test_prefixes_https_without_scheme(self, tenant):
        assert normalize_tenant_url(tenant) == "https://" + tenant

    @pytest.mark.parametrize("tenant", [
        "https://abc123.live.dynatrace.com",
        "http://dynatrace.internal:8080",
    ])
    def test_keeps_explicit_scheme(self, tenant):
        assert normalize_tenant_url(tenant) == tenant


# ---------------------------------------------------------------------------
# Project tier
# ---------------------------------------------------------------------------


class TestProjectTier:

    def test_project_credentials_skip_global_lookup(self, secret_store):
        creds = CredentialResolver(secret_store).resolve("p1")

        assert creds.endpoint_url == "https://p1.live.dynatrace.com"
        assert creds.api_token == "p1-token"
        assert secret_store.lookups == ["dynatrace-credentials-p1"]

    def test_project_tenant_with_scheme_preserved(self, make_project_secret):
        store = InMemorySecretStore(secrets={
            "dynatrace-credentials-p1": make_project_secret("http://dt.local", "t"),
        })
        creds = CredentialResolver(store).resolve("p1")
        assert creds.endpoint_url == "http://dt.local"

    def test_missing_field_reported_with_field_name(self):
        store = InMemorySecretStore(secrets={"dynatrace-credentials-p1": {"other": "x"}})
        with pytest.raises(CredentialResolutionError) as exc_info:
            CredentialResolver(store, tiers=[ProjectCredentialTier()]).resolve("p1")

        attempt = exc_info.value.last
        assert attempt.tier == "project"
        assert attempt.record == "dynatrace-credentials-p1"
        assert attempt.field == "dynatrace-credentials"


# ---------------------------------------------------------------------------
# Fallback
# ---------------------------------------------------------------------------


class TestFallback:

    @pytest.mark.parametrize("project_secret", [
        None,  # not found
        {"dynatrace-credentials": "DT_TENANT: [unclosed"},  # malformed YAML
        {"dynatrace-credentials": "- just\n- a list\n"},  # wrong document shape
        {"dynatrace-credentials": "DT_TENANT: ''\nDT_API_TOKEN: tok\n"},  # empty tenant
        {"dynatrace-credentials": "DT_TENANT: t.example.com\nDT_API_TOKEN: ''\n"},  # empty token
        {"dynatrace-credentials": "DT_TENANT: t.example.com\n"},  # token key absent
        {"unrelated": "value"},  # credentials field missing
    ])
    def test_project_failure_falls_back_to_global(self, project_secret, make_global_secret):
        secrets = {"dynatrace": make_global_secret("global.example.com", "g")}
        if project_secret is not None:
            secrets["dynatrace-credentials-p1"] = project_secret
        store = InMemorySecretStore(secrets=secrets)

        creds = CredentialResolver(store).resolve("p1")

        assert creds.endpoint_url == "https://global.example.com"
        assert creds.api_token == "g"
        assert store.lookups == ["dynatrace-credentials-p1", "dynatrace"]

    def test_global_tenant_without_scheme_gets_https(self, make_global_secret):
        store = InMemorySecretStore(secrets={
            "dynatrace": make_global_secret("dynatrace.example.com", "X"),
        })
        creds = CredentialResolver(store).resolve("p1")

        assert creds.endpoint_url == "https://dynatrace.example.com"
        assert creds.api_token == "X"

    def test_store_errors_fall_back_and_are_reported(self):
        store = BrokenStore()
        with pytest.raises(CredentialResolutionError) as exc_info:
            CredentialResolver(store).resolve("p1")

        assert store.lookups == ["dynatrace-credentials-p1", "dynatrace"]
        assert [a.tier for a in exc_info.value.attempts] == ["project", "global"]
        assert "403" in exc_info.value.last.reason


# ---------------------------------------------------------------------------
# Exhaustion
# ---------------------------------------------------------------------------


class TestExhaustion:

    def test_both_tiers_absent(self):
        with pytest.raises(CredentialResolutionError) as exc_info:
            CredentialResolver(InMemorySecretStore()).resolve("p1")

        err = exc_info.value
        assert err.kind is ErrorKind.CREDENTIAL_RESOLUTION
        assert err.fatal
        assert err.project == "p1"
        assert [a.record for a in err.attempts] == ["dynatrace-credentials-p1", "dynatrace"]

    @pytest.mark.parametrize("tenant,token,message,field", [
        ("", "tok", "Tenant must not be empty", "DT_TENANT"),
        ("t.example.com", "", "APIToken must not be empty", "DT_API_TOKEN"),
    ])
    def test_empty_global_field_is_hard_error(self, tenant, token, message, field, make_global_secret):
        store = InMemorySecretStore(secrets={"dynatrace": make_global_secret(tenant, token)})

        with pytest.raises(CredentialResolutionError) as exc_info:
            CredentialResolver(store).resolve("p1")

        last = exc_info.value.last
        assert last.tier == "global"
        assert last.reason == message
        assert last.field == field

    def test_global_missing_field(self):
        store = InMemorySecretStore(secrets={"dynatrace": {"DT_TENANT": "t.example.com"}})
        with pytest.raises(CredentialResolutionError) as exc_info:
            CredentialResolver(store).resolve("p1")
        assert exc_info.value.last.field == "DT_API_TOKEN"


# ---------------------------------------------------------------------------
# Idempotence
# ---------------------------------------------------------------------------


def test_repeated_resolution_is_identical(secret_store):
    resolver = CredentialResolver(secret_store)
    first = resolver.resolve("p1")
    second = resolver.resolve("p1")

    assert first == second
    # Nothing cached: each call reads the store again
    assert secret_store.lookups == ["dynatrace-credentials-p1"] * 2


def test_secret_changes_are_picked_up(secret_store, make_project_secret):
    resolver = CredentialResolver(secret_store)
    resolver.resolve("p1")
    secret_store.put_secret(
        "dynatrace-credentials-p1", make_project_secret("rotated.example.com", "new")
    )

    assert resolver.resolve("p1").endpoint_url == "https://rotated.example.com"


def test_token_not_in_repr(secret_store):
    creds = CredentialResolver(secret_store).resolve("p1")
    assert "p1-token" not in repr(creds)
    assert creds.auth_headers == {"Authorization": "Api-Token p1-token"}


def test_global_tier_ignores_project():
    assert GlobalCredentialTier().record_name("anything") == "dynatrace"
