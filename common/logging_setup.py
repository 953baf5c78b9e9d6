from __future__ import annotations

import json
import logging
import os
import sys
import time
from typing import Any, Dict, Optional


_HANDLER_NAME = "overlay-json"


class JsonFormatter(logging.Formatter):
    """
    JSON lines for the overlay services, e.g.
      {"t": 1700000000000, "lvl": "INFO", "name": "orchestrator",
       "thread": "grid-worker", "msg": "Grid computed", "extra": {"rows": 65}}

    Structured fields ride on the record as `extra={"extra": {...}}`; values
    that are not JSON-native (numpy scalars, Paths) are stringified.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "t": int(time.time() * 1000),
            "lvl": record.levelname,
            "name": record.name,
            "thread": record.threadName,
            "msg": record.getMessage(),
        }
        fields = getattr(record, "extra", None)
        if isinstance(fields, dict):
            payload["extra"] = fields
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _resolve_level(level: Optional[str]) -> int:
    name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    value = logging.getLevelName(name)
    return value if isinstance(value, int) else logging.INFO


def setup_logging(level: Optional[str] = None, *, force: bool = False) -> None:
    """
    Route the root logger to stdout as JSON lines.

    Level: explicit `level`, else env LOG_LEVEL, else INFO. Our handler is
    installed once; later calls only matter with `force=True`, which re-applies
    the level (the API and CLI do this after reading config/params.yaml).
    """
    root = logging.getLogger()
    installed = any(h.get_name() == _HANDLER_NAME for h in root.handlers)
    if installed and not force:
        return

    if not installed:
        handler = logging.StreamHandler(sys.stdout)
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(JsonFormatter())
        root.handlers.clear()
        root.addHandler(handler)
    root.setLevel(_resolve_level(level))


def get_logger(name: str) -> logging.Logger:
    setup_logging()
    return logging.getLogger(name)
