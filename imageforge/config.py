"""Runtime configuration: env-driven.

Centralized config using pydantic-settings.  Reads from a .env file and
IMAGEFORGE_* environment variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class ForgeConfig(BaseSettings):
    """Configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export IMAGEFORGE_LOG_LEVEL=DEBUG
        export IMAGEFORGE_CACHE_DIR=/var/cache/imageforge
        export IMAGEFORGE_CONTAINER_TOOL=podman
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="IMAGEFORGE_",
        env_file_encoding="utf-8",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # Archive cache: one {uniqueID}.tar.gz per build context
    cache_dir: Path = Path.home() / ".cache" / "imageforge-tarballs"

    # External tools
    container_tool: str = "docker"
    tar_binary: str = "tar"

    # Identifier lengths
    version_hash_length: int = 9
    path_digest_length: int = 32

    # Local backend: skip build and push when the target already exists remotely
    pull_existing: bool = False

    # Remote backend
    remote_builder_image: str = "gcr.io/cloud-builders/docker"
    remote_timeout_seconds: int = 8 * 60 * 60
    remote_machine_type: str = "E2_HIGHCPU_8"
    remote_logging: str = "CLOUD_LOGGING_ONLY"
    remote_source_prefix: str = "imageforge-src"
    remote_verify_option: str = "VERIFIED"
    remote_source_provenance_hash: tuple[str, ...] = ("SHA256",)

    # Ephemeral secrets for remote builds
    secret_prefix: str = "imageforge-delete-me"
    secret_ttl_seconds: int = 24 * 60 * 60

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"


# Module-level singleton: import as `from imageforge.config import config`
config = ForgeConfig()
