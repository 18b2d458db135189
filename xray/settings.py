"""
Configuration settings for X-Ray.

This module provides a settings class for X-Ray, with support for loading
configuration from TOML files and environment variables.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)


class DatabaseDriver(str, Enum):
    """Supported database drivers."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql+psycopg2"
    POSTGRESQL_ASYNC = "postgresql+asyncpg"


class Settings(BaseSettings):
    """Main settings class for X-Ray.

    Values are read from environment variables (``XRAY_`` prefix) first,
    then from ``settings.toml`` / ``settings.custom.toml``.
    """

    model_config = SettingsConfigDict(
        toml_file=["settings.toml", "settings.custom.toml"], env_prefix="XRAY_", extra="ignore"
    )

    # Server settings
    port: int = 3000
    host: str = "127.0.0.1"
    root_url: str = "/"
    debug: bool = False

    # Storage settings
    storage_path: str = str(Path.home() / "xray/data")

    # Database settings
    database_driver: DatabaseDriver = DatabaseDriver.SQLITE
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "xray"
    database_username: str = "postgres"
    database_password: str = "postgres"
    database_pool_size: int = 20

    # RabbitMQ settings
    rabbitmq_login: str = "guest"
    rabbitmq_password: str = "guest"
    rabbitmq_host: str = "localhost"
    rabbitmq_port: int = 5672
    rabbitmq_exchange: str = "xray"

    # Job queue settings
    queue_retry_count: int = 3
    queue_retry_delay: int = 2  # seconds, doubled on each attempt
    queue_retry_max_delay: int = 60
    queue_ack_type: str = "when_executed"
    queue_result_backend_url: str | None = None  # e.g. redis://localhost:6379
    # Completed results expire after this many seconds; there is no count limit
    queue_result_ttl: int = 24 * 3600
    dead_letter_ttl: int = 7 * 24 * 3600
    dead_letter_max_length: int = 100_000

    # Worker settings
    worker_concurrency: int = 10
    worker_rate_limit: int = 100  # jobs per second, 0 disables the limit

    # Logging settings
    log_level: str = "INFO"
    log_to_file: bool = False
    log_dir: str | None = None  # If None, will use {storage_path}/logs
    log_rotation: str = "20 MB"
    log_retention: str = "1 week"
    log_format: str | None = None  # Use default if None
    log_serialize: bool = False

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise the sources for settings.

        Priority order: explicit init arguments, environment variables,
        then TOML config files.
        """
        return init_settings, env_settings, TomlConfigSettingsSource(settings_cls)

    @property
    def database_url(self) -> str:
        """Get the database URL for SQLAlchemy."""
        if self.database_driver == DatabaseDriver.SQLITE:
            return f"sqlite:///{self.database_name}.db"
        return (
            f"{self.database_driver.value}://{self.database_username}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def async_database_url(self) -> str:
        """Get the async driver variant of the database URL."""
        if self.database_driver == DatabaseDriver.SQLITE:
            return f"sqlite+aiosqlite:///{self.database_name}.db"
        if self.database_driver == DatabaseDriver.POSTGRESQL:
            return self.database_url.replace("postgresql+psycopg2", "postgresql+asyncpg")
        return self.database_url

    @property
    def amqp_url(self) -> str:
        """AMQP connection URL for RabbitMQ."""
        return (
            f"amqp://{self.rabbitmq_login}:{self.rabbitmq_password}"
            f"@{self.rabbitmq_host}:{self.rabbitmq_port}/"
        )

    def get_log_dir(self) -> Path:
        """Get the log directory path.

        Returns:
            Path to the log directory. Uses log_dir if specified,
            otherwise creates logs directory in storage_path.
        """
        if self.log_dir:
            return Path(self.log_dir)
        return Path(self.storage_path) / "logs"


@lru_cache
def get_settings() -> Settings:
    """Get the settings instance, with caching.

    Returns:
        Cached Settings instance
    """
    return Settings()


settings = get_settings()
