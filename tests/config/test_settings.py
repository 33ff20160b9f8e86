"""Tests for configuration settings."""

import os as _os
import unittest.mock as _mock

import pydantic as _pydantic
import pytest as _pytest

import contemplate.config as config
import contemplate.errors as errors


class TestSettingsDefaults:
    """Test Settings default values when environment is clean."""

    def test_defaults(self) -> None:
        settings = config.Settings()
        assert settings.datasources == ""
        assert settings.k8s_namespace is None
        assert settings.log is None
        assert settings.debounce_ms == 500
        assert settings.debounce_seconds == 0.5
        assert settings.hook_terminate_timeout == 10.0

    def test_no_declared_sources(self) -> None:
        assert config.Settings().datasource_specs() == []


class TestSettingsFromEnvironment:
    """Settings read from CONTEMPLATE_* variables."""

    def test_values_from_environment(self) -> None:
        environ = {
            "CONTEMPLATE_DATASOURCES": "file:a.yml,env:APP",
            "CONTEMPLATE_K8S_NAMESPACE": "prod",
            "CONTEMPLATE_DEBOUNCE_MS": "250",
            "CONTEMPLATE_HOOK_TERMINATE_TIMEOUT": "2.5",
        }
        with _mock.patch.dict(_os.environ, environ):
            settings = config.Settings()
        assert settings.datasources == "file:a.yml,env:APP"
        assert settings.k8s_namespace == "prod"
        assert settings.debounce_seconds == 0.25
        assert settings.hook_terminate_timeout == 2.5

    def test_constructor_overrides_environment(self) -> None:
        with _mock.patch.dict(_os.environ, {"CONTEMPLATE_DEBOUNCE_MS": "250"}):
            assert config.Settings(debounce_ms=0).debounce_ms == 0

    def test_unrelated_variables_ignored(self) -> None:
        with _mock.patch.dict(_os.environ, {"CONTEMPLATE_UNKNOWN": "x"}):
            config.Settings()

    @_pytest.mark.parametrize(
        ("raw", "expected"),
        [("debug", "DEBUG"), ("Warn", "WARNING"), ("off", "OFF"), ("  ", None)],
    )
    def test_log_level_names(self, raw: str, expected: str | None) -> None:
        with _mock.patch.dict(_os.environ, {"CONTEMPLATE_LOG": raw}):
            assert config.Settings().log == expected

    def test_unknown_log_level(self) -> None:
        with (
            _mock.patch.dict(_os.environ, {"CONTEMPLATE_LOG": "chatty"}),
            _pytest.raises(_pydantic.ValidationError, match="must be one of"),
        ):
            config.Settings()

    @_pytest.mark.parametrize(
        ("key", "value"),
        [
            ("CONTEMPLATE_DEBOUNCE_MS", "-1"),
            ("CONTEMPLATE_DEBOUNCE_MS", "soon"),
            ("CONTEMPLATE_HOOK_TERMINATE_TIMEOUT", "0"),
        ],
    )
    def test_invalid_numbers(self, key: str, value: str) -> None:
        with _mock.patch.dict(_os.environ, {key: value}), _pytest.raises(_pydantic.ValidationError):
            config.Settings()


class TestDatasourceSpecs:
    """Tests for Settings.datasource_specs()."""

    def test_namespace_from_settings(self) -> None:
        settings = config.Settings(datasources="k8s-secret:db", k8s_namespace="prod")
        (source,) = settings.datasource_specs()
        assert source.namespace == "prod"

    def test_namespace_override(self) -> None:
        settings = config.Settings(datasources="k8s-secret:db", k8s_namespace="prod")
        (source,) = settings.datasource_specs(namespace="staging")
        assert source.namespace == "staging"

    def test_malformed_entry(self) -> None:
        settings = config.Settings(datasources="vault:secret")
        with _pytest.raises(errors.ConfigurationError, match="vault"):
            settings.datasource_specs()
