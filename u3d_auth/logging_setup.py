"""Root logging configuration with one ``key=value`` line per record."""

from __future__ import annotations

import logging
import os


class KeyValueFormatter(logging.Formatter):
    """Renders ``time=... level=... logger=... message=...`` for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        base = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        ts = self.formatTime(record, self.datefmt)
        kv = [f"time={ts}"] + [f"{k}={v}" for k, v in base.items()]
        return " ".join(kv)


def configure_logging(level: str | None = None) -> None:
    """Install :class:`KeyValueFormatter` on the root handlers.

    ``level`` defaults to ``LOG_LEVEL`` (``INFO`` when unset).
    """
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=level, format="%(message)s")
    root = logging.getLogger()
    root.setLevel(level)
    for h in root.handlers:
        h.setFormatter(KeyValueFormatter())
    # urllib3 logs every pooled connection at DEBUG.
    logging.getLogger("urllib3").setLevel("INFO" if level == "DEBUG" else level)
