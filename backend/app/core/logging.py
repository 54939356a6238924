# backend/app/core/logging.py
from __future__ import annotations

import logging
import re

from app.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_DB_PASSWORD_RE = re.compile(r":([^:@/]+)@")


def redact_db_url(url: str) -> str:
    return _DB_PASSWORD_RE.sub(":***@", url)


def configure_logging(level: str | None = None) -> None:
    """
    Configure root logging once for the process.
    Uvicorn installs its own handlers; basicConfig is a no-op when handlers exist.
    """
    resolved = (level or settings.LOG_LEVEL or "INFO").upper()
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    logging.getLogger("app").setLevel(resolved)

    # httpx logs every request at INFO, which floods the status sync
    logging.getLogger("httpx").setLevel(logging.WARNING)
