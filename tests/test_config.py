"""Tests for settings loading."""

from pathlib import Path

import pytest

from redisreconciler.config import load_settings
from redisreconciler.exceptions import ConfigurationError
from redisreconciler.topology import NodeAddress

pytestmark = pytest.mark.usefixtures("clean_env")


class TestLoadSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RECONCILER_PASSWORD", "secret")

        settings = load_settings(None)

        assert settings.password.get_secret_value() == "secret"
        assert settings.timeout == 5.0
        assert settings.failover_attempts == 10
        assert settings.verify_attempts == 5
        assert settings.log_format == "console"
        assert settings.tls_options() is None

    def test_deployment_password_name(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REDIS_PASSWORD", "from-scripts")
        assert load_settings(None).password.get_secret_value() == "from-scripts"

    def test_password_required(self) -> None:
        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            load_settings(None)

    def test_blank_password_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REDIS_PASSWORD", "   ")
        with pytest.raises(ConfigurationError, match="must not be empty"):
            load_settings(None)

    def test_password_not_echoed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REDIS_PASSWORD", "hunter2")
        assert "hunter2" not in repr(load_settings(None))

    def test_env_file(self, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(
            "REDIS_PASSWORD=file-secret\n"
            "RECONCILER_HOSTS=b1,b2,b3\n"
            "RECONCILER_TIMEOUT=2.5\n"
            "UNRELATED=ignored\n"
        )

        settings = load_settings(env_file)

        assert settings.password.get_secret_value() == "file-secret"
        assert settings.timeout == 2.5
        assert len(settings.desired_topology()) == 3

    def test_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REDIS_PASSWORD", "secret")
        settings = load_settings(None, log_level="DEBUG", log_format="json")
        assert settings.log_level == "DEBUG"
        assert settings.log_format == "json"

    def test_invalid_value(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REDIS_PASSWORD", "secret")
        monkeypatch.setenv("RECONCILER_TIMEOUT", "-1")
        with pytest.raises(ConfigurationError, match="timeout"):
            load_settings(None)


class TestDesiredTopology:
    def test_pairs_win_over_hosts(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REDIS_PASSWORD", "secret")
        monkeypatch.setenv("RECONCILER_PAIRS", "a:7001=b:7004")
        monkeypatch.setenv("RECONCILER_HOSTS", "b1,b2,b3")

        topology = load_settings(None).desired_topology()

        assert topology.masters == [NodeAddress("a", 7001)]

    def test_custom_ports(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REDIS_PASSWORD", "secret")
        monkeypatch.setenv("RECONCILER_HOSTS", "b1,b2")
        monkeypatch.setenv("RECONCILER_MASTER_PORT_START", "6379")
        monkeypatch.setenv("RECONCILER_REPLICA_PORT_START", "6380")

        topology = load_settings(None).desired_topology()

        assert topology.masters == [NodeAddress("b1", 6379), NodeAddress("b2", 6380)]
        assert topology.replicas == [NodeAddress("b2", 6381), NodeAddress("b1", 6380)]

    def test_missing_topology(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REDIS_PASSWORD", "secret")
        with pytest.raises(ConfigurationError, match="No desired topology"):
            load_settings(None).desired_topology()


class TestTLS:
    def test_tls_options(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REDIS_PASSWORD", "secret")
        monkeypatch.setenv("RECONCILER_TLS", "true")
        monkeypatch.setenv("RECONCILER_TLS_CA_CERT", "/certs/ca.crt")

        options = load_settings(None).tls_options()

        assert options is not None
        assert options.ca_cert == "/certs/ca.crt"
        assert options.cert is None
