"""JSON logging for the gophermart service.

Every record is one JSON object on stdout. Ledger identifiers bound with
``logger.bind(order=..., user_id=...)`` or passed as keyword extras are
promoted to top-level fields so log queries can filter on them directly;
any other extras are nested under ``context``.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict, Mapping

from loguru import logger
from opentelemetry import trace


LEDGER_FIELDS = ("order", "user_id")

# Third-party loggers bridged into loguru, with the floor applied to each.
_BRIDGED_LOGGER_LEVELS = {
    "uvicorn": logging.INFO,
    "uvicorn.error": logging.INFO,
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "httpx": logging.WARNING,
}


class InterceptHandler(logging.Handler):
    """Forward stdlib records (uvicorn, SQLAlchemy, httpx) to loguru under their logger name."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            message = str(record.msg)

        logger.bind(source=record.name).opt(depth=6, exception=record.exc_info).log(level, message)


def build_payload(record: Mapping[str, Any], metadata: Mapping[str, str]) -> Dict[str, Any]:
    """Shape one loguru record into the JSON document written to stdout."""

    extra = dict(record["extra"])
    payload: Dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name.lower(),
        "message": record["message"],
        "logger": extra.pop("source", None) or record["name"],
        "service": metadata["service_name"],
        "environment": metadata["environment"],
        "version": metadata["version"],
    }

    for field in LEDGER_FIELDS:
        if extra.get(field) is not None:
            payload[field] = str(extra.pop(field))
        else:
            extra.pop(field, None)

    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        payload["trace_id"] = f"{span_context.trace_id:032x}"
        payload["span_id"] = f"{span_context.span_id:016x}"

    if extra:
        payload["context"] = extra

    if record["exception"] is not None:
        exc_type, exc_value, _ = record["exception"]
        payload["exception"] = {
            "type": exc_type.__name__ if exc_type else None,
            "value": str(exc_value) if exc_value else None,
        }
    return payload


def configure_logging(
    *,
    service_name: str,
    environment: str,
    version: str,
    level: str = "INFO",
) -> None:
    """Replace loguru's default sink with the JSON sink and bridge stdlib logging."""

    metadata = {"service_name": service_name, "environment": environment, "version": version}

    def _sink(message: "logger.Message") -> None:
        sys.stdout.write(json.dumps(build_payload(message.record, metadata), default=str) + "\n")

    logger.remove()
    logger.add(_sink, level=level.upper(), backtrace=False, diagnose=False)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name, floor in _BRIDGED_LOGGER_LEVELS.items():
        logging.getLogger(name).setLevel(floor)
