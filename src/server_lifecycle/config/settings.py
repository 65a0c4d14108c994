"""Application configuration settings."""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class LoggingConfig(BaseSettings):
    """Logging configuration settings."""

    level: str = Field(default="INFO", description="Log level")
    file_path: Optional[str] = Field(default=None, description="Log file path")
    json_format: bool = Field(default=True, description="Use JSON log format")

    class Config:
        env_prefix = "LOG_"


class LifecycleSettings(BaseSettings):
    """Timing policy for starting and stopping the server process.

    All values are in seconds.
    """

    poll_interval: float = Field(
        default=0.5, gt=0, description="Delay between management probes"
    )
    probe_timeout: float = Field(
        default=3.0, gt=0, description="Timeout for a single management call"
    )
    shutdown_grace_period: float = Field(
        default=30.0,
        gt=0,
        description="Time allowed for exit after a graceful shutdown request",
    )
    kill_timeout: float = Field(
        default=10.0, gt=0, description="Time allowed for exit after a forced kill"
    )
    drain_close_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Time allowed for output draining to finish after exit",
    )

    class Config:
        env_prefix = "SERVER_LIFECYCLE_"


class Settings(BaseSettings):
    """Main application settings."""

    # Sub-configurations
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    lifecycle: LifecycleSettings = Field(default_factory=LifecycleSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    def get_log_file_path(self) -> Optional[Path]:
        """Get the log file path if configured."""
        if self.logging.file_path:
            return Path(self.logging.file_path)
        return None


# Global settings instance
settings = Settings()
