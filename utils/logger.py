"""
Structured Logger - JSON log output for the reminder worker
"""
import json
import logging
import sys
from typing import Dict, Any, Optional

import config
from utils.timezone import get_local_time


class StructuredLogger:
    """Provides structured logging in JSON format for better parsing and analysis"""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.name = name

    def _base_entry(self, event_type: str) -> Dict[str, Any]:
        return {
            "timestamp": get_local_time().isoformat(),
            "timezone": config.LOCAL_TIMEZONE,
            "event_type": event_type,
            "service": "class-reminders",
            "logger": self.name,
        }

    def log_job_event(self, event_type: str, details: Dict[str, Any]):
        """Log a job-related event with structured data"""
        log_entry = {**self._base_entry(event_type), **details}

        # Choose log level based on event type
        if "error" in event_type.lower() or "failed" in event_type.lower():
            self.logger.error(json.dumps(log_entry, default=str))
        elif "warning" in event_type.lower() or "skipped" in event_type.lower():
            self.logger.warning(json.dumps(log_entry, default=str))
        else:
            self.logger.info(json.dumps(log_entry, default=str))

    def log_provider_call(self, provider: str, operation: str, success: bool,
                          duration_ms: Optional[float] = None, error: Optional[str] = None):
        """Log a push/SMS provider call"""
        log_entry = self._base_entry("provider_call")
        log_entry.update({
            "provider": provider,
            "operation": operation,
            "success": success,
        })

        if duration_ms is not None:
            log_entry["duration_ms"] = round(duration_ms, 1)
        if error:
            log_entry["error"] = error

        if success:
            self.logger.info(json.dumps(log_entry, default=str))
        else:
            self.logger.error(json.dumps(log_entry, default=str))


class JsonFormatter(logging.Formatter):
    """Custom formatter that outputs JSON"""

    def format(self, record):
        # If the message is already JSON, return it as-is
        try:
            json.loads(record.getMessage())
            return record.getMessage()
        except (json.JSONDecodeError, TypeError):
            log_entry = {
                "timestamp": get_local_time().isoformat(),
                "timezone": config.LOCAL_TIMEZONE,
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage()
            }

            if record.exc_info:
                log_entry["exception"] = self.formatException(record.exc_info)

            return json.dumps(log_entry)


def configure_logging(level: Optional[str] = None, structured: Optional[bool] = None):
    """Install a single stdout handler on the root logger"""
    level = level or config.LOG_LEVEL
    structured = config.STRUCTURED_LOGGING if structured is None else structured

    handler = logging.StreamHandler(sys.stdout)
    if structured:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s [%(name)s] %(message)s'))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
