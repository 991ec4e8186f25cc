"""
Structured Logging Module
JSON-formatted log lines for log aggregation tools
"""

import json
import logging
from typing import Any


class JSONFormatter(logging.Formatter):
    """
    Formatter that outputs each log record as one JSON object.

    SECURITY STORY: Structured logs make it easy to query for events such as
    every "critical" analysis across thousands of entries with jq or a log
    platform, without regex over free-form text.

    Extra context is attached with ``logger.info("msg", extra={"extra_fields":
    {"analysis_id": ..., "risk_score": ...}})``.
    """

    # Fields that might contain sensitive data; their values are never logged
    SENSITIVE_FIELDS = {
        'password', 'token', 'api_key', 'secret', 'credential', 'webhook_url'
    }

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            log_data.update(
                {k: self._sanitize_value(k, v) for k, v in extra_fields.items()}
            )

        return json.dumps(log_data, default=str)

    def _sanitize_value(self, key: str, value: Any) -> Any:
        """Replace the value of any field whose name looks sensitive"""
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in self.SENSITIVE_FIELDS):
            return "[REDACTED]"
        return value
