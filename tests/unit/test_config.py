"""Tests for quotesync.core.config."""

import os

import pytest
from pydantic import ValidationError

from quotesync.core.config import (
    ConnectionsConfig,
    DownloadConfig,
    HttpConfig,
    ProvidersConfig,
    QuoteSyncConfig,
    _auto_cast,
    _merge_env_vars,
    load_config,
)
from quotesync.core.exceptions import ConfigError


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """No QUOTESYNC_* variables and no quotesync.yml in the working directory."""
    for key in list(os.environ):
        if key.startswith("QUOTESYNC_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


class TestConnectionsConfig:
    def test_defaults(self):
        c = ConnectionsConfig()
        assert c.history == "yahoo"
        assert c.current_price == "yahoo"
        assert c.history_enabled is True
        assert c.current_price_enabled is True

    @pytest.mark.parametrize("value", ["none", "None", "NULL", "off", "", "  "])
    def test_none_aliases(self, value):
        assert ConnectionsConfig(history=value).history is None

    def test_ids_lowercased(self):
        assert ConnectionsConfig(current_price=" Google ").current_price == "google"


class TestDownloadConfig:
    def test_history_days_positive(self):
        with pytest.raises(ValidationError, match="history_days"):
            DownloadConfig(history_days=0)

    def test_offset_range(self):
        with pytest.raises(ValidationError, match="local_utc_offset_hours"):
            DownloadConfig(local_utc_offset_hours=15)

    def test_offset_default_none(self):
        assert DownloadConfig().local_utc_offset_hours is None


class TestHttpConfig:
    def test_timeout_positive(self):
        with pytest.raises(ValidationError, match="timeout"):
            HttpConfig(timeout=0)

    def test_rate_limit_min(self):
        with pytest.raises(ValidationError, match="rate_limit"):
            HttpConfig(rate_limit=0)


class TestProvidersConfig:
    def test_rejects_non_http_url(self):
        with pytest.raises(ValidationError, match="http"):
            ProvidersConfig(yahoo_quotes_url="ftp://example.com/quotes.csv")


class TestLoadConfig:
    def test_defaults(self, clean_env):
        config = load_config()
        assert config == QuoteSyncConfig()
        assert config.download.history_days == 5

    def test_yaml_loading(self, clean_env, tmp_path):
        yaml_file = tmp_path / "custom.yml"
        yaml_file.write_text(
            "connections:\n  history: google\n  current_price_enabled: false\n"
            "download:\n  history_days: 10\n"
        )
        config = load_config(config_path=str(yaml_file))
        assert config.connections.history == "google"
        assert config.connections.current_price_enabled is False
        assert config.download.history_days == 10

    def test_default_file_in_cwd(self, clean_env, tmp_path):
        (tmp_path / "quotesync.yml").write_text("http:\n  timeout: 3\n")
        assert load_config().http.timeout == 3.0

    def test_env_overrides_yaml(self, clean_env, tmp_path, monkeypatch):
        yaml_file = tmp_path / "custom.yml"
        yaml_file.write_text("download:\n  history_days: 10\n")
        monkeypatch.setenv("QUOTESYNC_DOWNLOAD__HISTORY_DAYS", "3")
        config = load_config(config_path=str(yaml_file))
        assert config.download.history_days == 3

    def test_env_disables_connection(self, clean_env, monkeypatch):
        monkeypatch.setenv("QUOTESYNC_CONNECTIONS__HISTORY", "none")
        assert load_config().connections.history is None

    def test_config_env_var_names_file(self, clean_env, tmp_path, monkeypatch):
        yaml_file = tmp_path / "elsewhere.yml"
        yaml_file.write_text("storage:\n  sqlite_path: /tmp/q.db\n")
        monkeypatch.setenv("QUOTESYNC_CONFIG", str(yaml_file))
        assert load_config().storage.sqlite_path == "/tmp/q.db"

    def test_missing_config_file_raises(self, clean_env):
        with pytest.raises(ConfigError, match="not found"):
            load_config(config_path="/nonexistent/file.yml")

    def test_yaml_extension_found(self, clean_env, tmp_path):
        (tmp_path / "quotesync.yaml").write_text("download:\n  history_days: 7\n")
        assert load_config().download.history_days == 7

    def test_unknown_section_raises(self, clean_env, tmp_path):
        yaml_file = tmp_path / "typo.yml"
        yaml_file.write_text("conections:\n  history: google\n")
        with pytest.raises(ConfigError, match=r"Unknown config section\(s\) conections"):
            load_config(config_path=str(yaml_file))

    def test_non_mapping_yaml_raises(self, clean_env, tmp_path):
        yaml_file = tmp_path / "list.yml"
        yaml_file.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(config_path=str(yaml_file))

    def test_invalid_value_wrapped(self, clean_env, monkeypatch):
        monkeypatch.setenv("QUOTESYNC_HTTP__RATE_LIMIT", "0")
        with pytest.raises(ConfigError):
            load_config()

    def test_config_is_frozen(self, clean_env):
        config = load_config()
        with pytest.raises(ValidationError):
            config.http = None


class TestAutoCast:
    def test_true(self):
        assert _auto_cast("true") is True
        assert _auto_cast("TRUE") is True

    def test_false(self):
        assert _auto_cast("false") is False

    def test_int(self):
        assert _auto_cast("42") == 42

    def test_float(self):
        assert _auto_cast("-5.5") == -5.5

    def test_string(self):
        assert _auto_cast("yahoo") == "yahoo"

    def test_strips_whitespace(self):
        assert _auto_cast(" 3 ") == 3
        assert _auto_cast(" none ") == "none"


class TestMergeEnvVars:
    def test_simple_override(self, monkeypatch):
        monkeypatch.setenv("TEST_HTTP__RATE_LIMIT", "5")
        result = _merge_env_vars({"http": {"rate_limit": 10}}, "TEST_")
        assert result["http"]["rate_limit"] == 5

    def test_does_not_mutate_base(self, monkeypatch):
        monkeypatch.setenv("TEST_HTTP__RATE_LIMIT", "5")
        base = {"http": {"rate_limit": 10}}
        _merge_env_vars(base, "TEST_")
        assert base["http"]["rate_limit"] == 10

    def test_creates_nested_structure(self, monkeypatch):
        monkeypatch.setenv("TEST_CONNECTIONS__HISTORY_ENABLED", "false")
        result = _merge_env_vars({}, "TEST_")
        assert result["connections"]["history_enabled"] is False

    def test_skips_config_key(self, monkeypatch):
        monkeypatch.setenv("TEST_CONFIG", "/some/path")
        result = _merge_env_vars({}, "TEST_")
        assert "config" not in result

    def test_ignores_unknown_sections(self, monkeypatch):
        monkeypatch.setenv("QSTEST_INSTRUMENTS__PATH", "/tmp/i.yml")
        assert _merge_env_vars({}, "QSTEST_") == {}
