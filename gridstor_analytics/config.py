from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict

DEFAULT_SHARED_HEADER_URL = "https://gst-homepage.netlify.app/shared-header.js"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _load_dotenv(path: str = ".env") -> Dict[str, str]:
    """
    Basic .env loader to populate os.environ without overriding existing variables.
    Returns a mapping of parsed key/value pairs.
    """
    env_path = Path(path)
    if not env_path.exists():
        return {}

    parsed: Dict[str, str] = {}
    for line in env_path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        os.environ.setdefault(key, value)
        parsed[key] = value
    return parsed


_load_dotenv()


def get_database_url() -> str:
    """
    Determine the SQLAlchemy database URL, preferring PostgreSQL if configured.

    Returns:
        Database connection string compatible with SQLAlchemy.
    """
    dsn = os.getenv("POSTGRES_DSN")
    if dsn:
        return dsn

    db_path = Path(os.getenv("GRIDSTOR_DB_PATH", "gridstor.db")).expanduser()
    if not db_path.is_absolute():
        db_path = Path.cwd() / db_path
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite+pysqlite:///{db_path}"


def get_database_schema(database_url: str) -> str | None:
    """
    Schema namespace holding the forecast tables.

    SQLite has no schemas, so the namespace only applies to server databases.
    """
    if database_url.startswith("sqlite"):
        return None
    schema = os.getenv("GRIDSTOR_DB_SCHEMA", "Forecasts").strip()
    return schema or None


def get_shared_header_url() -> str:
    return os.getenv("GRIDSTOR_SHARED_HEADER_URL", DEFAULT_SHARED_HEADER_URL)


def get_default_curves_path() -> Path | None:
    raw = os.getenv("GRIDSTOR_DEFAULT_CURVES_PATH")
    if not raw:
        return None
    return Path(raw).expanduser()


def configure_logging(level: str | None = None) -> None:
    """
    Configure root logging once for the API process or a CLI invocation.

    Args:
        level: Level name overriding GRIDSTOR_LOG_LEVEL (default INFO).
    """
    level_name = (level or os.getenv("GRIDSTOR_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
    )
