"""Tests for settings loading."""

import pytest

from escalator.config import Settings, load_settings


CONFIG_YAML = """
datadog:
  api_key: file-key
  app_key: file-app-key
  site: datadoghq.eu
pipeline:
  poll_interval_seconds: 60
  dedup_capacity: 500
"""


class TestLoadSettings:
    """Test cases for load_settings."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for name in ("DD_API_KEY", "DD_APP_KEY", "DD_SITE", "ALLHANDS_API_KEY", "REMEDIATION_REPOSITORY"):
            monkeypatch.delenv(name, raising=False)

    @pytest.fixture
    def config_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG_YAML)
        return str(path)

    def test_defaults(self, tmp_path):
        settings = load_settings(str(tmp_path / "missing.yaml"))

        assert settings.pipeline.poll_interval_seconds == 30
        assert settings.pipeline.initial_lookback_seconds == 4 * 60 * 60
        assert settings.pipeline.dedup_capacity == 10000
        assert settings.remediation.max_polls == 30
        assert not settings.datadog.enabled

    def test_file_values(self, config_file):
        settings = load_settings(config_file)

        assert settings.datadog.enabled
        assert settings.datadog.search_url == "https://api.datadoghq.eu/api/v2/logs/events/search"
        assert settings.pipeline.poll_interval_seconds == 60
        assert settings.pipeline.dedup_capacity == 500

    def test_credential_env_overrides_file(self, config_file, monkeypatch):
        monkeypatch.setenv("DD_API_KEY", "env-key")

        settings = load_settings(config_file)

        assert settings.datadog.api_key == "env-key"
        assert settings.datadog.app_key == "file-app-key"

    def test_remediation_enabled_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ALLHANDS_API_KEY", "key")
        monkeypatch.setenv("REMEDIATION_REPOSITORY", "acme/app")

        settings = load_settings(str(tmp_path / "missing.yaml"))

        assert settings.remediation.enabled
        assert settings.remediation.conversations_url == "https://app.all-hands.dev/api/conversations"

    def test_prefixed_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ESCALATOR_PIPELINE__DEDUP_CAPACITY", "42")

        settings = load_settings(str(tmp_path / "missing.yaml"))

        assert settings.pipeline.dedup_capacity == 42

    def test_sms_requires_all_fields(self):
        settings = Settings()
        settings.sms.account_sid = "AC1"
        settings.sms.auth_token = "t"
        assert not settings.sms.enabled

        settings.sms.from_number = "+15550001"
        settings.sms.to_number = "+15550002"
        assert settings.sms.enabled
