"""Tests for ServiceConfig and endpoint resolution."""

import pytest
from pydantic import ValidationError

from dynatrace_sli.config import ServiceConfig, get_config, reset_config, resolve_endpoint
from dynatrace_sli.errors import ConfigurationError, ErrorKind


class TestDefaults:

    def test_defaults(self):
        config = ServiceConfig(_env_file=None)
        assert config.rcv_port == 8080
        assert config.rcv_path == "/"
        assert config.keptn_namespace == "keptn"
        assert config.sli_provider == "dynatrace"
        assert config.sli_parallelism == 1
        assert config.dt_ingest_delay_seconds == 60
        assert config.configuration_service is None
        assert config.eventbroker is None

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("CONFIGURATION_SERVICE", "configuration-service:8080")
        monkeypatch.setenv("EVENTBROKER", "https://event-broker.keptn/keptn/")
        monkeypatch.setenv("RCV_PORT", "9090")
        monkeypatch.setenv("RCV_PATH", "events")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        config = ServiceConfig(_env_file=None)

        assert config.rcv_port == 9090
        assert config.rcv_path == "/events"
        assert config.log_level == "debug"
        assert config.configuration_service_endpoint() == "http://configuration-service:8080"
        assert config.eventbroker_endpoint() == "https://event-broker.keptn/keptn"

    @pytest.mark.parametrize("field,value", [
        ("rcv_port", 0),
        ("rcv_port", 70000),
        ("sli_parallelism", 0),
        ("log_format", "xml"),
        ("dt_ingest_delay_seconds", -1),
    ])
    def test_rejects_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            ServiceConfig(_env_file=None, **{field: value})

    def test_frozen(self, config):
        with pytest.raises(ValidationError):
            config.rcv_port = 1


class TestResolveEndpoint:

    @pytest.mark.parametrize("raw,expected", [
        ("configuration-service:8080", "http://configuration-service:8080"),
        ("http://event-broker.keptn.svc.cluster.local/keptn", "http://event-broker.keptn.svc.cluster.local/keptn"),
        ("  https://cs/  ", "https://cs"),
    ])
    def test_valid(self, raw, expected):
        assert resolve_endpoint("EVENTBROKER", raw) == expected

    @pytest.mark.parametrize("raw,reason", [
        (None, "value is not set"),
        ("   ", "value is not set"),
        ("ftp://files", "unsupported scheme 'ftp'"),
        ("http://host:notaport", "could not parse URL"),
        ("http:///path-only", "host is not set"),
    ])
    def test_invalid(self, raw, reason):
        with pytest.raises(ConfigurationError) as exc_info:
            resolve_endpoint("CONFIGURATION_SERVICE", raw)

        err = exc_info.value
        assert err.kind is ErrorKind.CONFIGURATION
        assert err.name == "CONFIGURATION_SERVICE"
        assert reason in err.reason

    def test_lazy_validation(self):
        # An unset endpoint only fails when it is needed
        config = ServiceConfig(_env_file=None, configuration_service="cs:8080")
        assert config.configuration_service_endpoint() == "http://cs:8080"
        with pytest.raises(ConfigurationError):
            config.eventbroker_endpoint()


class TestSingleton:

    def test_get_config_caches(self):
        assert get_config() is get_config()

    def test_overrides_replace_instance(self):
        first = get_config()
        second = get_config(rcv_port=9999)
        assert second is not first
        assert get_config().rcv_port == 9999

    def test_reset(self):
        first = get_config()
        reset_config()
        assert get_config() is not first
