from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_DATABASE_URL = "sqlite+pysqlite:///./photo_places.db"
# GridFS default chunk size (255 KiB).
DEFAULT_CHUNK_SIZE = 255 * 1024
ONE_MILE_METERS = 1609.34


def load_dotenv_if_present(path: str | Path = ".env") -> None:
    """Load environment variables from a .env file if it exists."""
    dotenv_path = Path(path)
    if dotenv_path.exists():
        load_dotenv(dotenv_path=dotenv_path, override=False)


def configure_logging(default_level: str = "INFO") -> None:
    """Configure root logging level from LOG_LEVEL env (default INFO)."""
    level_name = os.getenv("LOG_LEVEL", default_level).upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=level)


@dataclass
class Settings:
    database_url: str
    chunk_size: int
    match_radius_meters: float

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            chunk_size=int(os.getenv("PHOTO_CHUNK_SIZE", str(DEFAULT_CHUNK_SIZE))),
            match_radius_meters=float(
                os.getenv("PLACE_MATCH_RADIUS_METERS", str(ONE_MILE_METERS))
            ),
        )
