"""
Configuration management for the Slack sync service.
"""

from .config import Config, load_config, get_config, set_config, DatabaseConfig, SlackConfig, StreamConfig, LoggingConfig, get_env_config, initialize_env_config, EnvironmentConfig

__all__ = ["Config", "load_config", "get_config", "set_config", "DatabaseConfig", "SlackConfig", "StreamConfig", "LoggingConfig", "get_env_config", "initialize_env_config", "EnvironmentConfig"]
