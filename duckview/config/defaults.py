# duckview/config/defaults.py

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from typing import Optional

# Load environment variables from .env file (optional)
try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass


def _env_bool(name: str, fallback: str) -> bool:
    return (os.getenv(name, fallback) or fallback).strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, fallback: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if raw:
        try:
            return max(1, int(raw))
        except ValueError:
            pass
    return fallback


@dataclass
class Default:
    """Process settings, read from the environment once at import time."""

    LOG_LEVEL: str = field(default_factory=lambda: os.getenv("DUCKVIEW_LOG_LEVEL", "INFO").upper())
    DUCKDB_THREADS: int = field(
        default_factory=lambda: _env_int("DUCKVIEW_DUCKDB_THREADS", max(1, int(os.cpu_count() or 1)))
    )
    DUCKDB_MEMORY_LIMIT: str = field(default_factory=lambda: os.getenv("DUCKVIEW_DUCKDB_MEMORY_LIMIT", "2GB"))
    TEMP_DIR: str = field(
        default_factory=lambda: os.getenv("DUCKVIEW_TEMP_DIR")
        or os.path.join(tempfile.gettempdir(), "duckview")
    )
    WORKERS: int = field(default_factory=lambda: _env_int("DUCKVIEW_WORKERS", 4))
    HTTP_TIMEOUT: Optional[int] = field(
        default_factory=lambda: _env_int("DUCKVIEW_DUCKDB_HTTP_TIMEOUT", 0) or None
    )
    HTTP_METADATA_CACHE: bool = field(default_factory=lambda: _env_bool("DUCKVIEW_HTTP_METADATA_CACHE", "1"))
    DEFAULT_TABLE: str = field(default_factory=lambda: os.getenv("DUCKVIEW_DEFAULT_TABLE", "dataset"))
    EPISODES: str = field(default_factory=lambda: os.getenv("EPISODES", ""))
    HOST: str = field(default_factory=lambda: os.getenv("DUCKVIEW_HOST", "0.0.0.0"))
    PORT: int = field(default_factory=lambda: _env_int("DUCKVIEW_PORT", 8090))

    @classmethod
    def from_env(cls) -> "Default":
        return cls()


default = Default.from_env()


logger = logging.getLogger("duckview")
if not logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(_handler)
logger.setLevel(getattr(logging, default.LOG_LEVEL, logging.INFO))
