"""Runtime configuration — env-driven via pydantic-settings.

Settings are read from ``DIDIFF_*`` environment variables or a ``.env`` file.
The CLI builds one ``DidiffSettings`` per invocation, applies its option
overrides, and passes the result down to the orchestrator explicitly.

Examples
--------
Override via environment::

    export DIDIFF_DOCKER_HOST=unix:///var/run/docker.sock
    export DIDIFF_TEMP_DIR=/var/tmp/didiff
    export DIDIFF_MIN_PREFIX_LENGTH=12
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_EXPORT_CHUNK_SIZE = 2 * 1024 * 1024

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class DidiffSettings(BaseSettings):
    """Settings for one diff/patch invocation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DIDIFF_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Docker daemon connection.  None means "use DOCKER_HOST and friends".
    docker_host: str | None = None
    docker_api_version: str = "auto"
    docker_timeout: int = Field(default=600, gt=0)  # seconds; saves can be large

    # Staging
    temp_dir: Path | None = None
    export_chunk_size: int = Field(default=DEFAULT_EXPORT_CHUNK_SIZE, gt=0)

    # Reference resolution
    min_prefix_length: int = Field(default=1, ge=1)

    # Failure behaviour
    remove_partial_output: bool = True

    # Logging
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level

    def with_overrides(self, **overrides: object) -> DidiffSettings:
        """Return a validated copy with every non-None override applied.

        Overrides take priority over values from the environment.
        """
        update = {key: value for key, value in overrides.items() if value is not None}
        if not update:
            return self
        return type(self).model_validate({**self.model_dump(), **update})
