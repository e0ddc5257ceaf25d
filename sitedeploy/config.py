"""Configuration settings for sitedeploy.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_data_dir() -> Path:
    """Return the default data directory."""
    return Path.home() / ".local" / "share" / "sitedeploy"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the SITEDEPLOY_ prefix.
    Directory settings left unset are derived from ``data_dir``.
    """

    model_config = SettingsConfigDict(
        env_prefix="SITEDEPLOY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    data_dir: Path = Field(
        default_factory=_default_data_dir,
        description="Root directory for all persisted state",
    )
    staging_dir: Path | None = Field(
        default=None,
        description="Per-job working directories (default: <data_dir>/staging)",
    )
    artifacts_dir: Path | None = Field(
        default=None,
        description="Compiled deployments (default: <data_dir>/deployments)",
    )
    cache_dir: Path | None = Field(
        default=None,
        description="Dependency cache (default: <data_dir>/cache/dependencies)",
    )
    db_url: str | None = Field(
        default=None,
        description="Database connection URL (default: SQLite in data_dir)",
    )

    # HTTP
    host: str = Field(default="127.0.0.1", description="Bind address for serve")
    port: int = Field(default=1234, ge=1, le=65535, description="Bind port")
    public_base_url: str = Field(
        default="http://localhost:1234",
        description="Base URL used when reporting artifact URLs",
    )
    embedded_worker: bool = Field(
        default=True,
        description="Run the build scheduler inside the web process",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Build commands
    build_command: str = Field(
        default="pnpm run build",
        description="Primary compile command, run in the staged source tree",
    )
    fallback_build_command: str | None = Field(
        default="pnpm exec vite build",
        description="Command tried once when the primary command fails",
    )
    install_command: str = Field(
        default="pnpm install --prefer-offline --no-frozen-lockfile",
        description="Dependency install command, run inside a cache entry",
    )
    output_dirs: list[str] = Field(
        default_factory=lambda: ["dist", "build", "out"],
        description="Candidate compiler output directories, in priority order",
    )

    # Timeouts (in seconds)
    build_timeout: int = Field(
        default=300,
        ge=1,
        description="Wall-clock bound for each compile command",
    )
    install_timeout: int = Field(
        default=300,
        ge=1,
        description="Wall-clock bound for dependency installation",
    )
    download_timeout: int = Field(
        default=120,
        ge=1,
        description="Timeout for fetching URL sources",
    )
    webhook_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for the post-build webhook",
    )

    # Scheduler
    busy_interval: float = Field(
        default=1.0,
        gt=0,
        description="Re-arm delay while the queue has pending jobs",
    )
    idle_interval: float = Field(
        default=5.0,
        gt=0,
        description="Re-arm delay when the queue is empty",
    )

    # Dependency cache
    cache_keep: int = Field(
        default=3,
        ge=1,
        description="Number of most recently used dependency sets to keep",
    )

    # Filesystem retry
    fs_retry_attempts: int = Field(
        default=5,
        ge=1,
        description="Attempts for staging and placement steps on transient errors",
    )
    fs_retry_delay: float = Field(
        default=0.2,
        ge=0,
        description="Initial backoff delay for filesystem retries",
    )

    # Collaborators
    post_build_webhook_url: str | None = Field(
        default=None,
        description="URL notified after a deployment becomes ready",
    )

    @model_validator(mode="after")
    def _derive_paths(self) -> "Settings":
        if self.staging_dir is None:
            self.staging_dir = self.data_dir / "staging"
        if self.artifacts_dir is None:
            self.artifacts_dir = self.data_dir / "deployments"
        if self.cache_dir is None:
            self.cache_dir = self.data_dir / "cache" / "dependencies"
        if self.db_url is None:
            self.db_url = f"sqlite:///{self.data_dir / 'sitedeploy.sqlite'}"
        return self

    def artifact_url(self, job_id: str) -> str:
        """Return the public URL of a deployment."""
        return f"{self.public_base_url.rstrip('/')}/deployments/{job_id}/"


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
