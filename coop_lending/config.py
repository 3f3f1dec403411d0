"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class LendingConfig(BaseSettings):
    """Cooperative lending core configuration"""

    # Database configuration
    database_path: str = "coop_lending.db"
    use_sqlite: bool = True
    storage_retry_attempts: int = 3
    storage_retry_backoff_seconds: float = 0.05

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    api_workers: int = 1

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Penalty fallback (used only when stored settings are missing or unreadable)
    default_penalty_amount: str = "500"
    default_grace_period_days: int = 3

    # Remote risk narrative service
    risk_narrative_url: str = ""  # Empty = disabled
    risk_narrative_timeout: float = 10.0
    risk_narrative_api_key: str = ""

    # Feature flags
    enable_audit_logging: bool = True

    # User provisioned as admin on first start so roles can be assigned
    bootstrap_admin_id: str = "admin"

    class Config:
        env_prefix = "COOP_LENDING_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = LendingConfig()


def get_config() -> LendingConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LendingConfig:
    """Reload configuration from environment"""
    global config
    config = LendingConfig()
    return config
