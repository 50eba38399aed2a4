from __future__ import annotations

import logging
import platform
import sys
import time
from datetime import datetime
from typing import Any, Dict, Tuple

from .calendar_utils import format_iso_millis, utcnow

logger = logging.getLogger(__name__)

PROCESS_STARTED = time.monotonic()


def _database_check(repository) -> Dict[str, Any]:
    try:
        repository.ping()
    except Exception as exc:  # noqa: BLE001
        logger.error("Database ping failed: %s", exc)
        return {"healthy": False, "error": str(exc)}
    return {"healthy": True, "message": "Database connection successful"}


def _table_check(repository) -> Dict[str, Any]:
    try:
        counts = repository.count_rows()
    except Exception as exc:  # noqa: BLE001
        logger.error("Table access check failed: %s", exc)
        return {"healthy": False, "error": str(exc)}
    return {"healthy": True, "counts": counts, "message": "Table access successful"}


def check_health(repository, now: datetime | None = None) -> Tuple[bool, Dict[str, Any]]:
    """
    Check the database and report service health.

    Runs a ``SELECT 1`` ping and counts curve definitions and instances. The
    service is healthy only when both succeed.

    Args:
        repository: CurveRepository (or any object with ``ping`` and ``count_rows``).
        now: Timestamp to report, defaults to the current time.

    Returns:
        Tuple of (healthy, payload) where payload carries ``status``,
        ``timestamp`` and the ``database``/``tables``/``system`` checks.
    """
    database = _database_check(repository)
    tables = _table_check(repository)
    healthy = database["healthy"] and tables["healthy"]
    payload = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": format_iso_millis(now or utcnow()),
        "checks": {
            "database": database,
            "tables": tables,
            "system": {
                "healthy": True,
                "uptime": round(time.monotonic() - PROCESS_STARTED, 3),
                "pythonVersion": platform.python_version(),
                "platform": sys.platform,
            },
        },
    }
    return healthy, payload
