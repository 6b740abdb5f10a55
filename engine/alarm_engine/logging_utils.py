"""
Structured logging for the alarm engine
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

TEXT_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'
TEXT_DATEFMT = '%Y-%m-%d %H:%M:%S'

# Third-party loggers that are too chatty below WARNING
_QUIET_LOGGERS = ('spotipy', 'requests', 'urllib3', 'apscheduler')

# Attributes every LogRecord carries; anything else came in via ``extra=``
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message', 'asctime'}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with ``extra=`` fields merged in"""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update({k: v for k, v in vars(record).items() if k not in _STANDARD_ATTRS})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class AlarmContextFilter(logging.Filter):
    """Group alarm identifiers under ``alarm_context`` for log search"""

    def filter(self, record: logging.LogRecord) -> bool:
        alarm_id = getattr(record, 'alarm_id', None)
        if alarm_id:
            record.alarm_context = {"alarm_id": alarm_id}
        return True


def _make_formatter(log_format: str) -> logging.Formatter:
    if log_format.lower() == "json":
        return JSONFormatter()
    return logging.Formatter(TEXT_FORMAT, datefmt=TEXT_DATEFMT)


def setup_logging(log_level: str = "INFO", log_format: str = "json",
                  log_file: Optional[str] = None) -> None:
    """
    Configure the root logger for the engine process.

    Args:
        log_level: Level name; unknown names fall back to INFO
        log_format: "json" or "text"
        log_file: Also write to this file when given
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.handlers.clear()

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    formatter = _make_formatter(log_format)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(AlarmContextFilter())
        root_logger.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_trigger(logger: logging.Logger, alarm_id: str, trigger_key: str,
                reason: str, **kwargs) -> None:
    """Record an alarm firing together with the dedup key that now guards it."""
    logger.info(
        f"Alarm {alarm_id} fired ({reason})",
        extra={"event_type": "trigger", "alarm_id": alarm_id,
               "trigger_key": trigger_key, "reason": reason, **kwargs}
    )


def log_state_change(logger: logging.Logger, component: str,
                     old_state: str, new_state: str, **kwargs) -> None:
    logger.info(
        f"{component}: {old_state} -> {new_state}",
        extra={"event_type": "state_change", "component": component,
               "old_state": old_state, "new_state": new_state, **kwargs}
    )


def log_playback_event(logger: logging.Logger, alarm_id: str, action: str,
                       **kwargs) -> None:
    """
    Record a playback milestone for an alarm.

    Args:
        logger: Logger to write to
        alarm_id: Alarm that is ringing
        action: What happened, e.g. "started"
        **kwargs: Strategy name, timings and similar context
    """
    logger.info(
        f"Alarm {alarm_id} playback {action}",
        extra={"event_type": "playback", "alarm_id": alarm_id,
               "playback_action": action, **kwargs}
    )


def log_error(logger: logging.Logger, alarm_id: Optional[str], error: Exception,
              context: Optional[Dict[str, Any]] = None) -> None:
    """Log an exception with its type, the alarm involved and a context dict."""
    logger.error(
        f"{type(error).__name__}: {error}",
        extra={"event_type": "error", "alarm_id": alarm_id,
               "error_type": type(error).__name__, "context": context or {}},
        exc_info=error
    )
