from __future__ import annotations

import json
import logging
import os
import sys
from typing import Any


class _PlainFormatter(logging.Formatter):
    """Human-friendly single-line formatter (to stderr)."""

    default_fmt = "%(levelname)s %(name)s - %(message)s"
    verbose_fmt = (
        "%(asctime)s %(levelname)s %(name)s [%(process)d:%(threadName)s] "
        "%(filename)s:%(lineno)d - %(message)s"
    )
    datefmt = "%Y-%m-%d %H:%M:%S"

    def __init__(self, debug: bool = False) -> None:
        fmt = self.verbose_fmt if debug else self.default_fmt
        super().__init__(fmt=fmt, datefmt=self.datefmt)


class _JsonFormatter(logging.Formatter):
    """JSON lines formatter (each record is one JSON object)."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "thread": record.threadName,
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _coerce_level(level: str | int | None) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        upper = level.upper()
        if upper in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"}:
            return getattr(logging, upper)
        if upper.isdigit():
            return int(upper)
    return logging.INFO


def setup_logging(level: str | int | None = None, json_logs: bool = False) -> None:
    """Configure root logging once for the process.

    Args:
        level: Logging level (e.g. ``"DEBUG"``). Falls back to ``LOG_LEVEL``,
            then INFO.
        json_logs: Emit JSON lines to stderr instead of plain text.
    """
    final_level = _coerce_level(level or os.getenv("LOG_LEVEL") or logging.INFO)

    root = logging.getLogger()
    root.setLevel(final_level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream=sys.stderr)
    if json_logs:
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(_PlainFormatter(debug=final_level <= logging.DEBUG))
    root.addHandler(handler)

    # chromadb and the OpenAI client are chatty at INFO
    for noisy in ("httpx", "httpcore", "openai", "chromadb", "urllib3"):
        logging.getLogger(noisy).setLevel(max(final_level, logging.WARNING))
