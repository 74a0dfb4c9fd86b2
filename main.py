"""
Main entry point for the Slack sync service.
"""

import uvicorn
import logging
from pathlib import Path

from slacksync.config import load_config, get_env_config
from slacksync.api.main import create_app

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(log_level: str = "INFO"):
    """Configure logging with the specified level."""
    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL
    }

    numeric_level = level_map.get(log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=numeric_level,
        format=LOG_FORMAT,
        force=True  # Force reconfiguration even if logging was already configured
    )

    logging.getLogger().setLevel(numeric_level)

    # Every logger already created under the package namespace follows the same level
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        if logger_name == "slacksync" or logger_name.startswith("slacksync."):
            package_logger = logging.getLogger(logger_name)
            package_logger.setLevel(numeric_level)
            package_logger.propagate = True

    logging.getLogger("slacksync").setLevel(numeric_level)
    return numeric_level


def build_uvicorn_log_config(log_level: str) -> dict:
    """Uvicorn logging config that keeps our format and does not disable our loggers."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": LOG_FORMAT,
            },
        },
        "handlers": {
            "default": {
                "formatter": "default",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {
            "level": log_level.upper(),
            "handlers": ["default"],
        },
    }


logger = logging.getLogger(__name__)


def main():
    """Main application entry point."""
    try:
        env_config = get_env_config()
        config_path = Path(env_config.get_config_path())

        if not config_path.exists():
            logger.error(f"Configuration file not found: {config_path}")
            logger.info("Copy config.example.yaml to config.yaml, or set SLACKSYNC_CONFIG to another file")
            return

        logger.info(f"Loading configuration from {config_path}")
        config = load_config(str(config_path))

        configure_logging(config.logging.level)
        logger.info(f"Logging configured with level: {config.logging.level}")

        app = create_app(config)

        # Loggers created while building the app pick up the level too
        configure_logging(config.logging.level)

        logger.info("Starting Slack sync server...")
        uvicorn.run(
            app,
            host=env_config.get("HOST", "0.0.0.0"),
            port=int(env_config.get("PORT", "8000")),
            log_config=build_uvicorn_log_config(config.logging.level)
        )

    except Exception as e:
        logger.error(f"Failed to start application: {e}")
        raise


if __name__ == "__main__":
    main()
