"""
Sweeper - environment defaults via Pydantic Settings.

Per-run choices live in RunConfig; this only holds the machine-level
defaults (where artifacts go, log format, pool size).
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


class SweeperSettings(BaseSettings):
    """Defaults loaded from SWEEPER_* environment variables."""

    # Artifacts
    log_dir: Path = Path("/var/log")
    restore_dir: Path = Path("/usr/local/bin")
    quarantine_base: Path = Path("/var/quarantine")

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"  # console | json

    # Hashing
    workers: int = 4
    chunk_size: int = 65536

    model_config = {"env_prefix": "SWEEPER_", "case_sensitive": False}


@lru_cache
def get_settings() -> SweeperSettings:
    """Factory for sweeper settings (cached singleton)."""
    return SweeperSettings()
