"""Configuration settings for firebird_images.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_cache_dir() -> Path:
    """Return the default cache directory."""
    return Path.home() / ".cache" / "firebird-images"


def _default_variants() -> list[str]:
    """Return the default distribution variants, in tag order."""
    return ["bookworm", "bullseye", "jammy", "noble"]


def _default_variant_exclusions() -> dict[int, list[str]]:
    """Return the default variant exclusions per major version."""
    # Firebird 3 links against libncurses5, which noble no longer ships.
    return {3: ["noble"]}


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the FBIMG_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="FBIMG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    cache_dir: Path = Field(
        default_factory=_default_cache_dir,
        description="Directory for cached upstream lookups",
    )
    matrix_path: Path = Field(
        default=Path("assets.json"),
        description="Persisted release matrix document",
    )
    generated_dir: Path = Field(
        default=Path("generated"),
        description="Root of generated Dockerfile build contexts",
    )
    logs_dir: Path = Field(
        default=Path("logs"),
        description="Directory for per-job log files",
    )

    # Upstream
    image_name: str = Field(
        default="firebirdsql/firebird",
        description="Image repository name used for tags",
    )
    github_api_url: str = Field(
        default="https://api.github.com",
        description="GitHub API base URL",
    )
    github_repository: str = Field(
        default="FirebirdSQL/firebird",
        description="Upstream repository publishing Firebird releases",
    )
    github_token: str | None = Field(
        default=None,
        description="Optional GitHub token for API rate limits",
    )

    # Matrix
    variants: list[str] = Field(
        default_factory=_default_variants,
        min_length=1,
        description="Distribution variants, in tag order",
    )
    default_variant: str = Field(
        default="bookworm",
        description="Variant whose tags carry no suffix",
    )
    variant_exclusions: dict[int, list[str]] = Field(
        default_factory=_default_variant_exclusions,
        description="Variants not built for a given major version",
    )
    min_major_version: int = Field(
        default=3,
        ge=1,
        description="Oldest major version included in the matrix",
    )
    test_architecture: Literal["amd64", "arm64"] = Field(
        default="amd64",
        description="Architecture of the image variant exercised by tests",
    )

    # Operational modes
    offline: bool = Field(
        default=False,
        description="Offline mode - only use cached upstream lookups",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Concurrency
    max_parallel_jobs: int | None = Field(
        default=None,
        ge=1,
        description="Cap on concurrent jobs (unset = one worker per job)",
    )

    # Timeouts (in seconds)
    http_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for GitHub API requests",
    )
    download_timeout: float = Field(
        default=600.0,
        gt=0,
        description="Timeout for hashing a release tarball",
    )
    build_timeout: int = Field(
        default=3600,
        ge=60,
        description="Timeout for a single docker build",
    )
    readiness_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Maximum wait for a test container to accept connections",
    )
    readiness_poll_interval: float = Field(
        default=0.5,
        gt=0,
        description="Interval between readiness probes",
    )
    stop_timeout: int = Field(
        default=10,
        ge=0,
        description="Grace period when stopping test containers",
    )

    @model_validator(mode="after")
    def validate_default_variant(self) -> "Settings":
        """Ensure the default variant is one of the configured variants."""
        if self.default_variant not in self.variants:
            raise ValueError(
                f"default_variant '{self.default_variant}' must be one of "
                f"{self.variants}"
            )
        return self

    def exclusion_table(self) -> dict[int, frozenset[str]]:
        """Return the variant exclusion table as immutable sets."""
        return {
            major: frozenset(variants)
            for major, variants in self.variant_exclusions.items()
        }


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
    return settings.model_dump_json(indent=2, exclude={"github_token"})


__all__ = ["Settings", "get_settings", "print_settings_json"]
