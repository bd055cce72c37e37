"""Structured JSON logging.

Every record gets the ambient correlation id stamped on it at creation time,
so records captured by handlers other than ours (pytest's caplog, for one)
carry it as well. Only whitelisted ``extra`` keys are rendered into the
``fields`` object; anything else passed as extra is dropped from the output.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from leadpool.context import get_correlation_id
from leadpool.core.config import get_settings


MAX_ERROR_LENGTH = 500

LOGGED_FIELDS = frozenset(
    {
        # http
        "method",
        "path",
        "status_code",
        "duration_ms",
        # jobs
        "job_id",
        "job_type",
        "status",
        "checked",
        "transferred",
        "skipped",
        "failed",
        "days",
        # customers
        "customer_id",
        "customer_name",
        "operation_type",
        "operator_id",
        "from_progress",
        "to_progress",
        "sales_id",
        "agent_id",
        "count",
        # bookkeeping
        "history_id",
        "sink",
        "hook",
        "config_id",
        "event_name",
        "error",
    }
)

_base_factory = logging.getLogRecordFactory()


def _stamp_correlation_id(*args: Any, **kwargs: Any) -> logging.LogRecord:
    record = _base_factory(*args, **kwargs)
    if not getattr(record, "correlation_id", None):
        record.correlation_id = get_correlation_id()
    return record


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        fields = {key: value for key, value in record.__dict__.items() if key in LOGGED_FIELDS}
        if isinstance(fields.get("error"), str):
            fields["error"] = fields["error"][:MAX_ERROR_LENGTH]
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
            "fields": fields,
        }
        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging(level: str | None = None) -> None:
    root = logging.getLogger()
    if getattr(root, "_leadpool_configured", False):
        return

    resolved = logging.getLevelName((level or get_settings().log_level).upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonLogFormatter())

    logging.setLogRecordFactory(_stamp_correlation_id)
    root.handlers.clear()
    root.setLevel(resolved)
    root.addHandler(handler)
    root._leadpool_configured = True  # type: ignore[attr-defined]
