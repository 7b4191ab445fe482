"""Configuration management for the lenkzeit CLI."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import click
from dotenv import find_dotenv, load_dotenv

DEFAULT_DB_PATH = Path.home() / ".lenkzeit" / "lenkzeit.db"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class LenkzeitConfig:
    db_path: Path
    export_dir: Path
    log_level: str = "WARNING"

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level)

    def validate(self) -> None:
        if self.log_level not in LOG_LEVELS:
            raise click.ClickException(
                f"Invalid LENKZEIT_LOG_LEVEL '{self.log_level}'. "
                f"Valid options: {', '.join(LOG_LEVELS)}"
            )


def get_config() -> LenkzeitConfig:
    """Build the configuration from the environment (and .env, if present)."""
    load_dotenv(find_dotenv(usecwd=True))
    config = LenkzeitConfig(
        db_path=Path(os.environ.get("LENKZEIT_DB_PATH", str(DEFAULT_DB_PATH))).expanduser(),
        export_dir=Path(os.environ.get("LENKZEIT_EXPORT_DIR", ".")).expanduser(),
        log_level=os.environ.get("LENKZEIT_LOG_LEVEL", "WARNING").upper(),
    )
    config.validate()
    return config
