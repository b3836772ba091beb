"""Structured logging configuration (JSON or text format)."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .config import LoggingConfig

# Structured fields the scheduler, reconciler and clients attach via ``extra``
_EXTRA_FIELDS = (
    "topology", "peer", "added", "removed", "known", "failed",
    "candidates", "elapsed_seconds", "status_code",
)


def _json_default(value: Any) -> Any:
    """Peer sets serialize as sorted lists of peer names."""
    if isinstance(value, (set, frozenset)):
        return sorted(str(v) for v in value)
    return str(value)


class JSONFormatter(logging.Formatter):
    """Emits log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        for key in _EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                payload[key] = val

        if record.exc_info and record.exc_info[1]:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


class TextFormatter(logging.Formatter):
    """Human-readable format for development; lines from a topology carry its name."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)-8s [%(name)s]%(topology_tag)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        topology = getattr(record, "topology", None)
        record.topology_tag = f" <{topology}>" if topology else ""
        return super().format(record)


def configure_logging(config: LoggingConfig) -> None:
    """Set up the root logger, then apply any per-logger level overrides."""
    root = logging.getLogger()
    root.setLevel(_level(config.level))

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    if config.format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root.addHandler(handler)

    # HTTP plumbing logs every request at DEBUG on each poll
    for noisy in ("urllib3", "requests"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    for name, level in config.levels.items():
        logging.getLogger(name).setLevel(_level(level))


def _level(name: str) -> int:
    return getattr(logging, str(name).upper(), logging.INFO)
