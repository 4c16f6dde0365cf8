"""Tests for credential refresh configuration loading."""

from pathlib import Path

import pytest
import yaml

from delegation_refresh.config import (
    DEFAULT_BROADCAST_MAX_WORKERS,
    DEFAULT_REFRESH_INTERVAL_SECONDS,
    IdentityDescriptor,
    IssuerOptions,
    RefreshConfig,
)

ENV_VARS = [
    "AUTH_USER",
    "AUTH_PRINCIPAL",
    "AUTH_KEYTAB",
    "ISSUER_ENDPOINT_URL",
    "ISSUER_PRINCIPAL",
    "TOKEN_REFRESH_INTERVAL_SECONDS",
    "TOKEN_REFRESH_KEYTAB_DIR",
    "TOKEN_REFRESH_BROADCAST_WORKERS",
    "TOKEN_REFRESH_LOG_DIR",
    "AUDIT_LOGGING_ENABLED",
    "AUDIT_LOG_PATH",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestIssuerOptions:
    def test_make_complete(self):
        options = IssuerOptions.make(
            {"issuer-endpoint-url": "https://issuer", "issuer-principal": "issuer@EX"}
        )
        assert options == IssuerOptions("https://issuer", "issuer@EX")

    @pytest.mark.parametrize(
        "conf",
        [
            {},
            {"issuer-endpoint-url": "https://issuer"},
            {"issuer-principal": "issuer@EX"},
            {"issuer-endpoint-url": "  ", "issuer-principal": "issuer@EX"},
        ],
    )
    def test_make_incomplete_returns_none(self, conf):
        """Missing fields disable the feature rather than raising."""
        assert IssuerOptions.make(conf) is None

    def test_direct_construction_validates(self):
        with pytest.raises(ValueError):
            IssuerOptions(endpoint_url="", principal="issuer@EX")


class TestIdentityDescriptor:
    def test_impersonates(self):
        assert IdentityDescriptor("svcA", "/k", "alice").impersonates
        assert not IdentityDescriptor("svcA", "/k").impersonates


class TestFromMapping:
    def test_complete(self, complete_conf):
        config = RefreshConfig.from_mapping(complete_conf)

        assert config.is_complete
        assert config.missing_keys() == []
        assert config.auth_user == "alice"
        assert config.issuer_options.principal == "issuer/_HOST@EXAMPLE.COM"

    def test_auth_user_optional(self, complete_conf):
        del complete_conf["auth-user"]
        config = RefreshConfig.from_mapping(complete_conf)

        assert config.is_complete
        assert config.auth_user is None

    @pytest.mark.parametrize(
        "missing",
        ["auth-principal", "auth-keytab", "issuer-endpoint-url", "issuer-principal"],
    )
    def test_missing_required_key(self, complete_conf, missing):
        del complete_conf[missing]
        config = RefreshConfig.from_mapping(complete_conf)

        assert not config.is_complete
        assert config.missing_keys() == [missing]

    def test_blank_values_are_absent(self, complete_conf):
        complete_conf["auth-principal"] = "   "
        complete_conf["auth-user"] = ""
        config = RefreshConfig.from_mapping(complete_conf)

        assert config.auth_principal is None
        assert config.auth_user is None
        assert not config.is_complete

    def test_overrides(self, complete_conf, tmp_path):
        config = RefreshConfig.from_mapping(
            complete_conf, refresh_interval_seconds=5, keytab_dir=str(tmp_path)
        )
        assert config.refresh_interval_seconds == 5.0
        assert config.keytab_dir == tmp_path

    def test_keytab_not_in_repr(self, complete_conf):
        assert complete_conf["auth-keytab"] not in repr(
            RefreshConfig.from_mapping(complete_conf)
        )

    @pytest.mark.parametrize(
        "overrides",
        [{"refresh_interval_seconds": 0}, {"broadcast_max_workers": 0}],
    )
    def test_invalid_tuning(self, complete_conf, overrides):
        with pytest.raises(ValueError):
            RefreshConfig.from_mapping(complete_conf, **overrides)


class TestLoadConfig:
    def _write(self, tmp_path: Path, data) -> Path:
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump(data), encoding="utf-8")
        return path

    def test_missing_file_uses_defaults(self, clean_env, tmp_path):
        config = RefreshConfig.load_config(tmp_path / "absent.yaml")

        assert not config.is_complete
        assert config.refresh_interval_seconds == DEFAULT_REFRESH_INTERVAL_SECONDS
        assert config.broadcast_max_workers == DEFAULT_BROADCAST_MAX_WORKERS
        assert config.audit.audit_logging_enabled is False
        assert config.log_dir is None

    def test_yaml_section(self, clean_env, tmp_path):
        path = self._write(
            tmp_path,
            {
                "credential_refresh": {
                    "auth_principal": "svcA@EXAMPLE.COM",
                    "auth_keytab": "a2V5dGFi",
                    "issuer_endpoint_url": "https://issuer",
                    "issuer_principal": "issuer@EXAMPLE.COM",
                    "refresh_interval_seconds": 30,
                    "keytab_dir": str(tmp_path / "kt"),
                    "broadcast_max_workers": 2,
                    "log_dir": str(tmp_path / "logs"),
                    "audit": {"audit_logging_enabled": True},
                }
            },
        )
        config = RefreshConfig.load_config(path)

        assert config.is_complete
        assert config.refresh_interval_seconds == 30.0
        assert config.keytab_dir == tmp_path / "kt"
        assert config.broadcast_max_workers == 2
        assert config.log_dir == tmp_path / "logs"
        assert config.audit.audit_logging_enabled is True

    def test_env_overrides_yaml(self, clean_env, tmp_path):
        path = self._write(
            tmp_path,
            {"credential_refresh": {"auth_principal": "yaml@EX", "refresh_interval_seconds": 30}},
        )
        clean_env.setenv("AUTH_PRINCIPAL", "env@EX")
        clean_env.setenv("TOKEN_REFRESH_INTERVAL_SECONDS", "15")
        clean_env.setenv("AUDIT_LOGGING_ENABLED", "true")

        config = RefreshConfig.load_config(path)

        assert config.auth_principal == "env@EX"
        assert config.refresh_interval_seconds == 15.0
        assert config.audit.audit_logging_enabled is True

    def test_empty_yaml(self, clean_env, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("", encoding="utf-8")

        config = RefreshConfig.load_config(path)
        assert config.missing_keys() == [
            "auth-principal",
            "auth-keytab",
            "issuer-endpoint-url",
            "issuer-principal",
        ]

    def test_log_dir_from_env(self, clean_env, tmp_path):
        clean_env.setenv("TOKEN_REFRESH_LOG_DIR", str(tmp_path / "node-logs"))

        config = RefreshConfig.load_config(tmp_path / "absent.yaml")

        assert config.log_dir == tmp_path / "node-logs"
