"""
Structured records for the recruit_watch pipeline.

Every record carries a `component` (e.g. "recruit_watch.engine") and an
`op`. Records land in the service JSONL logs, which redact secrets deeply.
Without the service package, or when the log file cannot be written, they
go to the stdlib logger named after the component, with top-level secret
fields masked.
"""

from __future__ import annotations

import logging
from typing import Any

try:
    from service import logging_utils as _service_logs
except ImportError:
    _service_logs = None

DEFAULT_COMPONENT = "recruit_watch"

# Substrings of field names that hold credentials in this pipeline's records.
_SECRET_HINTS = ("secret", "token", "api_key", "apikey", "webhook", "authorization", "password")
_MASK = "***REDACTED***"


def activity(record: dict[str, Any]) -> None:
    _emit(record, logging.INFO)


def error(record: dict[str, Any]) -> None:
    _emit(record, logging.ERROR)


def _emit(record: dict[str, Any], level: int) -> None:
    record = {"component": DEFAULT_COMPONENT, **record}
    if _service_logs is not None:
        write = _service_logs.write_error_log if level >= logging.ERROR else _service_logs.write_activity_log
        try:
            write(record)
            return
        except OSError as e:
            logging.getLogger(__name__).warning("JSONL log unavailable (%r); using stdlib logging", e)
    logging.getLogger(str(record["component"])).log(level, "%s", _mask(record))


def _mask(record: dict[str, Any]) -> dict[str, Any]:
    return {k: (_MASK if any(h in str(k).lower() for h in _SECRET_HINTS) else v) for k, v in record.items()}
