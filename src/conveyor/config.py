"""Configuration management for Conveyor."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CONVEYOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

    # Execution
    max_workers: int = 4
    default_stage_timeout: float | None = None
    cancel_grace_seconds: float = 10.0
    kill_grace_seconds: float = 5.0
    working_dir: Path = Path(".")

    # Notifications
    webhook_url: str | None = None
    webhook_timeout: float = 10.0

    # External tools
    docker_binary: str = "docker"
    git_binary: str = "git"
    kubectl_binary: str = "kubectl"
    shell_binary: str = "sh"


# Global settings instance
settings = Settings()
