"""
Logging utilities for structured output and for keeping credentials out of logs.

Example:
    from identity_bff.utils.logging_utils import redact_sensitive_data
    safe = redact_sensitive_data({'password': 'abc', 'email': 'bob@example.com'})
    # safe == {'password': '***REDACTED***', 'email': 'bob@example.com'}
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

SENSITIVE_KEYS = {
    'password',
    'api_key',
    'token',
    'secret',
    'client_secret',
    'access_token',
    'refresh_token',
    'id_token',
    'code',
    'code_verifier',
    'key',
}

REDACTED = '***REDACTED***'

# Attributes every LogRecord carries; anything else came in through `extra=`
_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def redact_sensitive_data(obj):
    """
    Recursively redacts sensitive fields in dicts/lists.
    Keys are matched case-insensitively against SENSITIVE_KEYS.
    """
    if isinstance(obj, dict):
        return {
            k: (REDACTED if str(k).lower() in SENSITIVE_KEYS else redact_sensitive_data(v))
            for k, v in obj.items()
        }
    elif isinstance(obj, list):
        return [redact_sensitive_data(i) for i in obj]
    else:
        return obj


def mask_token(value: Optional[str], visible: int = 6) -> str:
    """Return a short, non-reversible hint of an opaque token for diagnostics."""
    if not value:
        return "<none>"
    if len(value) <= visible * 2:
        return "***"
    return f"{value[:visible]}***"


class JSONFormatter(logging.Formatter):
    """
    Formats log records as JSON with standard fields.
    """
    def format(self, record):
        log_record = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        extras = {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}
        if extras:
            log_record.update(redact_sensitive_data(extras))
        return json.dumps(log_record, default=str)


def setup_json_logging(level=logging.INFO, output='stdout', file_path=None):
    """
    Set up structured JSON logging for the app.

    Args:
        level: Logging level (default: INFO)
        output: 'stdout' or 'file'
        file_path: Path to log file if output is 'file'
    """
    logger = logging.getLogger()
    logger.setLevel(level)
    for h in list(logger.handlers):
        logger.removeHandler(h)
    if output == 'file' and file_path:
        handler = logging.FileHandler(file_path)
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)
    return logger
