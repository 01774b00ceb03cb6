"""Structured JSON logging and simulation run ID propagation."""

from __future__ import annotations

import json
import logging
import uuid
from contextvars import ContextVar
from typing import Any

from batterysim.config import settings

run_id_var: ContextVar[str] = ContextVar("run_id", default="")


def new_run_id() -> str:
    """Create a short run identifier and make it current for log records."""
    rid = str(uuid.uuid4())[:8]
    run_id_var.set(rid)
    return rid


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter with run ID injection."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        rid = run_id_var.get("")
        if rid:
            log_entry["run_id"] = rid

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Include extra fields
        for key in ("hour", "soc", "cycles", "capacity_percent", "duration_ms"):
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val

        return json.dumps(log_entry)


def setup_logging(json_format: bool | None = None, level: str | None = None) -> None:
    """Configure root logger.  Defaults come from :data:`batterysim.config.settings`."""
    if json_format is None:
        json_format = settings.log_json
    if level is None:
        level = settings.log_level

    root = logging.getLogger()
    root.setLevel(level.upper())

    handler = logging.StreamHandler()
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    # Remove existing handlers to avoid duplicates
    root.handlers.clear()
    root.addHandler(handler)

    # Per-step model chatter is only useful when explicitly requested
    if level.upper() != "DEBUG":
        logging.getLogger("batterysim.battery").setLevel(logging.INFO)
