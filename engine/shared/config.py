"""Environment configuration for the rules engine."""
import os
from dataclasses import dataclass

from .exceptions import ConfigurationError

DEFAULT_ENEMY_TURN_DELAY = 0.8


@dataclass
class Config:
    """Application configuration loaded from environment variables."""

    table_name: str
    environment: str
    log_level: str
    enemy_turn_delay: float
    world_seed: str | None

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables.

        Returns:
            Config instance with values from environment

        Raises:
            ConfigurationError: If required environment variables are missing
                or malformed
        """
        table_name = os.environ.get("TABLE_NAME")
        if not table_name:
            raise ConfigurationError(
                "TABLE_NAME environment variable is required",
                config_key="TABLE_NAME",
            )

        raw_delay = os.environ.get("ENEMY_TURN_DELAY_SECONDS")
        try:
            delay = float(raw_delay) if raw_delay else DEFAULT_ENEMY_TURN_DELAY
        except ValueError as e:
            raise ConfigurationError(
                f"ENEMY_TURN_DELAY_SECONDS must be a number, got {raw_delay!r}",
                config_key="ENEMY_TURN_DELAY_SECONDS",
            ) from e
        if delay < 0:
            raise ConfigurationError(
                "ENEMY_TURN_DELAY_SECONDS cannot be negative",
                config_key="ENEMY_TURN_DELAY_SECONDS",
            )

        return cls(
            table_name=table_name,
            environment=os.environ.get("ENVIRONMENT", "dev"),
            log_level=os.environ.get("POWERTOOLS_LOG_LEVEL", "INFO"),
            enemy_turn_delay=delay,
            world_seed=os.environ.get("WORLD_SEED") or None,
        )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "prod"


def get_config() -> Config:
    """Get cached configuration instance.

    Returns:
        Config instance (cached after first call)
    """
    if not hasattr(get_config, "_config"):
        get_config._config = Config.from_env()
    return get_config._config
