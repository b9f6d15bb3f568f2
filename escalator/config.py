"""Configuration management for the log escalator."""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


DEFAULT_ERROR_QUERY = (
    'NOT "webhook" AND (status:error OR @level:error OR @severity:error OR '
    '"Error:" OR "Exception:" OR "Failed:" OR "error" OR "ERROR" OR '
    '"Exception" OR "Failed")'
)


class DatadogConfig(BaseModel):
    """Log-search API configuration."""
    api_key: str = ""
    app_key: str = ""
    site: str = "datadoghq.com"
    # Overrides the site-derived API host, e.g. for a proxy
    api_url: str = ""
    query: str = DEFAULT_ERROR_QUERY
    sort: str = "timestamp"
    page_limit: int = 1000
    timeout: int = 30

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.app_key)

    @property
    def search_url(self) -> str:
        base = self.api_url.rstrip("/") or f"https://api.{self.site}"
        return f"{base}/api/v2/logs/events/search"


class WebhookConfig(BaseModel):
    """Outbound webhook that receives one payload per new event."""
    url: str = ""
    user_agent: str = "Escalator-Cron/1.0"
    timeout: int = 30

    @property
    def enabled(self) -> bool:
        return bool(self.url)


class SummarizerConfig(BaseModel):
    """Generative summarization pipeline configuration."""
    url: str = ""
    api_key: str = ""
    timeout: int = 30

    @property
    def enabled(self) -> bool:
        return bool(self.url and self.api_key)


class SMSConfig(BaseModel):
    """SMS provider configuration."""
    base_url: str = "https://api.twilio.com/2010-04-01"
    account_sid: str = ""
    auth_token: str = ""
    from_number: str = ""
    to_number: str = ""
    timeout: int = 30

    @property
    def enabled(self) -> bool:
        return bool(
            self.account_sid and self.auth_token and self.from_number and self.to_number
        )

    @property
    def messages_url(self) -> str:
        return f"{self.base_url}/Accounts/{self.account_sid}/Messages.json"


class RemediationConfig(BaseModel):
    """Pull-request automation service configuration."""
    base_url: str = "https://app.all-hands.dev"
    api_key: str = ""
    repository: str = ""
    timeout: int = 30
    initial_delay_seconds: float = 20
    poll_interval_seconds: float = 10
    max_polls: int = 30

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.repository)

    @property
    def conversations_url(self) -> str:
        return f"{self.base_url}/api/conversations"


class PipelineConfig(BaseModel):
    """Escalation cycle configuration."""
    poll_interval_seconds: float = 30
    initial_lookback_seconds: int = 4 * 60 * 60
    dedup_capacity: int = 10000
    dedup_eviction_batch: int = 1000
    call_timeout_seconds: float = 30
    report_history: int = 50


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    format: str = "json"


class ServerSettings(BaseModel):
    """HTTP server settings."""
    host: str = "0.0.0.0"
    port: int = 8080
    workers: int = 1


class Settings(BaseSettings):
    """Main application settings."""

    server: ServerSettings = Field(default_factory=ServerSettings)

    # Collaborators
    datadog: DatadogConfig = Field(default_factory=DatadogConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    summarizer: SummarizerConfig = Field(default_factory=SummarizerConfig)
    sms: SMSConfig = Field(default_factory=SMSConfig)
    remediation: RemediationConfig = Field(default_factory=RemediationConfig)

    # Processing
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)

    # Logging
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    class Config:
        env_prefix = "ESCALATOR_"
        env_nested_delimiter = "__"


def load_yaml_config(path: str) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    path = Path(path).expanduser()
    if not path.exists():
        return {}

    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


# Section name -> model
_SECTIONS = {
    "server": ServerSettings,
    "datadog": DatadogConfig,
    "webhook": WebhookConfig,
    "summarizer": SummarizerConfig,
    "sms": SMSConfig,
    "remediation": RemediationConfig,
    "pipeline": PipelineConfig,
    "logging": LoggingConfig,
}

# Environment variable -> (section, field)
_CREDENTIAL_ENV = {
    "DD_API_KEY": ("datadog", "api_key"),
    "DD_APP_KEY": ("datadog", "app_key"),
    "DD_SITE": ("datadog", "site"),
    "ESCALATION_WEBHOOK_URL": ("webhook", "url"),
    "AIRIA_API_KEY": ("summarizer", "api_key"),
    "AIRIA_PIPELINE_URL": ("summarizer", "url"),
    "TWILIO_ACCOUNT_SID": ("sms", "account_sid"),
    "TWILIO_AUTH_TOKEN": ("sms", "auth_token"),
    "TWILIO_FROM_NUMBER": ("sms", "from_number"),
    "ALERT_PHONE_NUMBER": ("sms", "to_number"),
    "ALLHANDS_API_KEY": ("remediation", "api_key"),
    "REMEDIATION_REPOSITORY": ("remediation", "repository"),
}


def load_settings(config_path: Optional[str] = None) -> Settings:
    """
    Load settings from configuration file and environment variables.

    Priority (highest to lowest):
    1. Credential environment variables (DD_API_KEY, TWILIO_*, ...)
    2. Config file sections
    3. ESCALATOR_* environment variables
    4. Default values
    """
    if config_path is None:
        config_path = os.environ.get(
            "ESCALATOR_CONFIG_PATH",
            "config/config.yaml"
        )

    yaml_config = load_yaml_config(config_path)

    settings_dict = {}
    for section, model in _SECTIONS.items():
        if section in yaml_config:
            settings_dict[section] = model(**(yaml_config[section] or {}))

    # File sections take precedence over ESCALATOR_* variables for the same section
    settings = Settings(**settings_dict)

    for env_name, (section, field_name) in _CREDENTIAL_ENV.items():
        value = os.environ.get(env_name, "")
        if value:
            setattr(getattr(settings, section), field_name, value)

    return settings


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings():
    """Reset the global settings instance (for testing)."""
    global _settings
    _settings = None
