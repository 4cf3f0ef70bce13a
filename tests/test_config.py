"""Tests for configuration loading, validation and the providers."""

import json
from types import SimpleNamespace

import pytest

from crash_reporter.config import (
    ConfigError,
    Configuration,
    EmptyConfiguration,
    SettingsConfiguration,
    as_bool,
    load_config,
    split_addresses,
    validate_config,
)
from crash_reporter.constants import DEFAULT_REDACTED_FIELDS


def _settings(**overrides):
    section = {
        "backtrace_folder": "/var/bt/",
        "sender": "Crash Reporter <no-reply@example.com>",
        "receiver": "ops@example.com, dev@example.com",
    }
    section.update(overrides)
    return {"crash_reporter": section}


class TestLoadConfig:
    def test_resolves_env_placeholders(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CR_TEST_FOLDER", "/srv/bt")
        monkeypatch.delenv("CR_TEST_UNSET", raising=False)
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps(
                {
                    "crash_reporter": {
                        "backtrace_folder": "${CR_TEST_FOLDER}",
                        "receiver": ["${CR_TEST_UNSET:-ops@example.com}"],
                        "production": "${CR_TEST_UNSET:-true}",
                        "port": 25,
                    }
                }
            )
        )

        section = load_config(path)["crash_reporter"]

        assert section["backtrace_folder"] == "/srv/bt"
        assert section["receiver"] == ["ops@example.com"]
        assert section["production"] == "true"
        assert section["port"] == 25

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "absent.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError, match="Invalid JSON"):
            load_config(path)


class TestValidateConfig:
    def test_valid(self):
        assert validate_config(_settings()) == []

    def test_missing_section(self):
        errors = validate_config({})
        assert errors == ["Missing required config section: 'crash_reporter'"]

    def test_missing_keys(self):
        errors = validate_config({"crash_reporter": {}})
        assert len(errors) == 3
        assert any("'receiver'" in e for e in errors)

    def test_unknown_backend(self):
        errors = validate_config(_settings(mail_backend="fax"))
        assert any("Unknown mail_backend 'fax'" in e for e in errors)

    def test_unresolved_placeholder(self):
        errors = validate_config(_settings(backtrace_folder="${BT_DIR}"))
        assert any("unresolved placeholder" in e for e in errors)

    def test_unknown_redaction_source(self):
        errors = validate_config(_settings(redacted_fields={"body": ["x"]}))
        assert errors == ["Unknown redacted_fields source 'body'"]


class TestSettingsConfiguration:
    def test_invalid_settings_raise(self):
        with pytest.raises(ConfigError, match="receiver"):
            SettingsConfiguration({"crash_reporter": {"backtrace_folder": "/x", "sender": "a@b"}})

    def test_values(self):
        config = SettingsConfiguration(_settings(production="yes", system_version="2.0.1"))
        assert config.is_production_environment() is True
        assert config.get_backtrace_folder() == "/var/bt"
        assert config.get_receiver() == ["ops@example.com", "dev@example.com"]
        assert config.get_sender() == "Crash Reporter <no-reply@example.com>"
        assert config.get_system_version() == "2.0.1"

    def test_production_defaults_off(self):
        assert SettingsConfiguration(_settings()).is_production_environment() is False

    def test_from_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps(_settings(production=True)))
        assert SettingsConfiguration.from_file(path).is_production_environment() is True

    def test_default_redacted_fields(self):
        assert SettingsConfiguration(_settings()).get_redacted_fields() == DEFAULT_REDACTED_FIELDS

    def test_filter_cookie_names(self):
        fields = SettingsConfiguration(_settings(filter_cookie_names=["sid"])).get_redacted_fields()
        assert fields.cookies == frozenset({"sid"})
        assert fields.request == DEFAULT_REDACTED_FIELDS.request

    def test_redacted_field_overrides(self):
        config = SettingsConfiguration(
            _settings(redacted_fields={"request": ["password", "card_number"]})
        )
        fields = config.get_redacted_fields()
        assert fields.request == frozenset({"password", "card_number"})
        assert fields.headers == DEFAULT_REDACTED_FIELDS.headers


class TestDefaults:
    def test_empty_configuration_never_production(self):
        config = EmptyConfiguration()
        assert config.is_production_environment() is False
        assert config.get_receiver() == ["example@example.net"]
        assert config.get_redacted_fields() is DEFAULT_REDACTED_FIELDS

    @pytest.mark.parametrize(
        "identity,expected",
        [
            (None, "No user"),
            ({"username": "alice", "email": "a@example.com"}, "alice"),
            ({"email": "a@example.com"}, "a@example.com"),
            (SimpleNamespace(name="Bob"), "Bob"),
            ("carol", "carol"),
        ],
    )
    def test_user_information(self, identity, expected):
        assert Configuration().get_user_information(identity) == expected


class TestHelpers:
    def test_split_addresses(self):
        assert split_addresses("a@x.com; b@y.com,, ") == ["a@x.com", "b@y.com"]
        assert split_addresses(["a@x.com", ""]) == ["a@x.com"]
        assert split_addresses(None) == []

    @pytest.mark.parametrize("value,expected", [("true", True), (" On ", True), ("0", False), ("", False), (1, True), (False, False)])
    def test_as_bool(self, value, expected):
        assert as_bool(value) is expected
