"""
Core configuration module.
Organized into separate settings classes for better maintainability.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .logging_config import LogConfig


class APISettings(BaseSettings):
    """Application identity settings."""

    app_name: str = "Repository Layer"
    app_version: str = "1.0.0"
    debug: bool = False

    model_config = SettingsConfigDict(
        env_prefix="API_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class DatabaseSettings(BaseSettings):
    """Database configuration settings.

    Pool settings are ignored for SQLite, which runs on a single
    shared connection.
    """

    url: str = "sqlite+aiosqlite:///./app.db"
    pool_size: int = 10
    max_overflow: int = 5
    pool_timeout: int = 30
    pool_recycle: int = 1800  # 30 minutes
    echo: bool = False

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def is_sqlite(self) -> bool:
        """Whether the configured database is SQLite."""
        return self.url.startswith("sqlite")

    @property
    def database_url_sync(self) -> str:
        """Get synchronous database URL for the blocking engine."""
        return self.url.replace("+asyncpg", "+psycopg2").replace("+aiosqlite", "")


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    level: str = Field(default="INFO", description="Root log level")
    enable_file_logging: bool = False
    log_dir: str = "logs"
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5
    enable_console: bool = True

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def log_config(self) -> LogConfig:
        """Build the logging setup configuration."""
        return LogConfig(
            level=self.level,
            enable_file_logging=self.enable_file_logging,
            log_dir=self.log_dir,
            max_file_size=self.max_file_size,
            backup_count=self.backup_count,
            enable_console=self.enable_console,
        )


class Settings(BaseSettings):
    """Main application settings."""

    api: APISettings = APISettings()
    database: DatabaseSettings = DatabaseSettings()
    logging: LoggingSettings = LoggingSettings()

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the global settings instance."""
    return settings
