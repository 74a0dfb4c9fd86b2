"""
Configuration management for the Slack sync service.
"""

import os
import yaml
import re
from typing import Optional, Any, Literal
from pathlib import Path
from pydantic import BaseModel, Field
from dotenv import load_dotenv


class DatabaseConfig(BaseModel):
    """Database configuration."""
    url: str = Field(default="sqlite:///./slacksync.db")
    echo: bool = Field(default=False)


class SlackConfig(BaseModel):
    """Slack platform configuration."""
    api_base_url: str = Field(default="https://slack.com/api")
    request_timeout: float = Field(default=10.0, description="Timeout in seconds for Slack Web API calls")
    ingress_mode: Literal["tenant", "global"] = Field(
        default="tenant",
        description="Resolve the owning tenant by URL path ('tenant') or by the payload team id ('global')"
    )
    signature_tolerance_seconds: int = Field(default=300, description="Maximum age of a signed request")
    app_name: str = Field(default="Slack Sync", description="Name shown when posting on behalf of a user")
    fallback_on_any_error: bool = Field(
        default=True,
        description="Fall back to the bot token on any user-token failure, not only auth errors"
    )


class StreamConfig(BaseModel):
    """Live subscription stream configuration."""
    heartbeat_interval: float = Field(default=30.0, description="Seconds between heartbeat events")
    queue_size: int = Field(default=100, description="Pending events buffered per subscriber")


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")


class Config(BaseModel):
    """Main configuration model."""
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    slack: SlackConfig = Field(default_factory=SlackConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def substitute_variables(value: Any, env_config: Optional['EnvironmentConfig'] = None) -> Any:
    """
    Substitute variables in configuration values.

    Variable formats:
    - ${variable_name} - standard variable substitution
    - ${variable_name|default_value} - variable with default fallback

    Priority order:
    1. Environment variables (highest priority)
    2. .env file variables
    3. Built-in variables
    4. Default value (if specified with | syntax)
    5. Empty string if not found

    Args:
        value: Configuration value that may contain variables
        env_config: Environment configuration instance

    Returns:
        Value with variables substituted, or None when nothing is left
    """
    if not isinstance(value, str):
        return value

    variable_pattern = r'\$\{([^}]*)\}'

    def replace_variable(match):
        variable_content = match.group(1)

        if not variable_content.strip():
            return ""

        if '|' in variable_content:
            variable_name, default_value = variable_content.split('|', 1)
            variable_name = variable_name.strip()
            default_value = default_value.strip()
        else:
            variable_name = variable_content.strip()
            default_value = None

        env_value = os.getenv(variable_name)
        if env_value is not None:
            return env_value

        if env_config:
            env_value = env_config.get(variable_name)
            if env_value is not None:
                return env_value

        if default_value is not None:
            return default_value

        return ""

    result = re.sub(variable_pattern, replace_variable, value)

    # Empty results are dropped so pydantic defaults apply
    if result in ("", "None"):
        return None

    return result


def _substitute_config_values(config_data: Any, env_config: Optional['EnvironmentConfig'] = None) -> Any:
    """
    Recursively substitute variables in configuration data.

    Keys whose value substitutes to None are omitted.
    """
    if isinstance(config_data, dict):
        result = {}
        for key, value in config_data.items():
            substituted_value = _substitute_config_values(value, env_config)
            if substituted_value is not None:
                result[key] = substituted_value
        return result
    elif isinstance(config_data, list):
        return [_substitute_config_values(item, env_config) for item in config_data]
    elif isinstance(config_data, str):
        return substitute_variables(config_data, env_config)
    else:
        return config_data


def load_config(config_path: str, env_config: Optional['EnvironmentConfig'] = None) -> Config:
    """Load configuration from YAML file with variable substitution."""
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_file, 'r') as f:
        config_data = yaml.safe_load(f) or {}

    if env_config is None:
        env_config = get_env_config()

    config_data = _substitute_config_values(config_data, env_config)

    return Config(**config_data)


# Global config variable
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration."""
    global _config
    if _config is None:
        raise RuntimeError("Configuration not initialized. Call load_config first.")
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration."""
    global _config
    _config = config


class EnvironmentConfig:
    """Environment configuration manager backed by an optional .env file."""

    def __init__(self, env_file_path: Optional[str] = None):
        self.env_file_path = env_file_path or ".env"
        self._load_env_file()

    def _load_env_file(self) -> None:
        """Load environment variables from .env file if it exists."""
        env_path = Path(self.env_file_path)
        if env_path.exists():
            load_dotenv(env_path)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """
        Get environment variable with fallback support.

        The process environment wins; .env values are already merged into it
        by load_dotenv without overriding existing variables.
        """
        value = os.getenv(key)
        if value is not None:
            return value
        return default

    def get_config_path(self) -> str:
        """Get configuration file path, overridable via SLACKSYNC_CONFIG."""
        return self.get("SLACKSYNC_CONFIG", default="config.yaml")


# Global environment config instance
_env_config: Optional[EnvironmentConfig] = None


def get_env_config() -> EnvironmentConfig:
    """Get the global environment configuration."""
    global _env_config
    if _env_config is None:
        _env_config = EnvironmentConfig()
    return _env_config


def initialize_env_config(env_file_path: Optional[str] = None) -> EnvironmentConfig:
    """Initialize environment configuration with optional .env file path."""
    global _env_config
    _env_config = EnvironmentConfig(env_file_path)
    return _env_config
