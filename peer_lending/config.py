"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class PeerLendingConfig(BaseSettings):
    """Peer lending ledger configuration"""

    # Database configuration
    database_url: str = "sqlite:///peer_lending.db"  # or memory:// for a throwaway store

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    api_reload: bool = False

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Business rules configuration
    history_limit: int = 24  # Cycles and payments returned with a loan detail
    top_borrowers_limit: int = 5

    class Config:
        env_prefix = "PEER_LENDING_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = PeerLendingConfig()


def get_config() -> PeerLendingConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> PeerLendingConfig:
    """Reload configuration from environment"""
    global config
    config = PeerLendingConfig()
    return config
