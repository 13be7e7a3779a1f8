"""Runtime configuration, env-driven.

Reads from a ``.env`` file and ``LATTICE_*`` environment variables via
pydantic-settings.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LatticeSettings(BaseSettings):
    """Lattice runtime settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export LATTICE_PROJECT_DIR=/work/app
        export LATTICE_MAX_PARALLEL=4
        export LATTICE_ALLOW_INTERPRETED_PLUGINS=false

    Or via .env file::

        LATTICE_LOG_LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="LATTICE_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Project
    project_dir: Path = Path(".")
    log_level: str = "INFO"

    # Scheduling fallbacks; 0 means unlimited
    max_parallel: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=0, ge=0)

    # Plugins
    allow_interpreted_plugins: bool = True

    # Agent sessions
    agent_command: str = "opencode --prompt"
    tmux_binary: str = "tmux"

    # Workers
    poll_interval_seconds: float = Field(default=5.0, gt=0)
    wait_timeout_seconds: float = Field(default=0.0, ge=0)

    # Snapshot locking
    lock_timeout_seconds: float = Field(default=10.0, gt=0)

    @property
    def lattice_dir(self) -> Path:
        """Root of all Lattice state for the project."""
        return self.project_dir / ".lattice"


@lru_cache(maxsize=1)
def get_settings() -> LatticeSettings:
    """Return the process-wide settings instance."""
    return LatticeSettings()
