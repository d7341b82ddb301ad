"""
Structured logging for the backtest platform.
Supports JSON and text formats on stdout, plus an optional JSON lines file.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Diagnostics payloads carry enums and nested dataclass dicts
        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter for development."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        base = f"[{timestamp}] {record.levelname:8} {record.name}: {record.getMessage()}"

        if hasattr(record, "extra_fields") and record.extra_fields:
            extras = " | ".join(f"{k}={v}" for k, v in record.extra_fields.items())
            base = f"{base} | {extras}"

        if record.exc_info:
            base = f"{base}\n{self.formatException(record.exc_info)}"

        return base


class StructuredLogger:
    """
    Wrapper around standard logger with structured logging support.

    Messages are short event names; everything else goes in keyword fields:

        logger.info("backtest_summary", trades=12, final_equity=10250.0)
    """

    def __init__(self, name: str, logger: logging.Logger):
        self._name = name
        self._logger = logger

    def _log(self, level: int, msg: str, /, exc_info=None, **kwargs) -> None:
        if not self._logger.isEnabledFor(level):
            return
        record = self._logger.makeRecord(
            self._name, level, "", 0, msg, (), exc_info
        )
        if kwargs:
            record.extra_fields = kwargs
        self._logger.handle(record)

    def debug(self, msg: str, **kwargs) -> None:
        self._log(logging.DEBUG, msg, **kwargs)

    def info(self, msg: str, **kwargs) -> None:
        self._log(logging.INFO, msg, **kwargs)

    def warning(self, msg: str, **kwargs) -> None:
        self._log(logging.WARNING, msg, **kwargs)

    def error(self, msg: str, **kwargs) -> None:
        self._log(logging.ERROR, msg, **kwargs)

    def exception(self, msg: str, **kwargs) -> None:
        """Log an error with the active exception's traceback attached."""
        self._log(logging.ERROR, msg, exc_info=sys.exc_info(), **kwargs)

    def intent(self, symbol: str, intent: str, reason: str, **kwargs) -> None:
        """Log a strategy intent."""
        self.info(
            "strategy_intent",
            symbol=symbol,
            intent=intent,
            reason=reason,
            **kwargs
        )

    def execution(
        self,
        action: str,
        symbol: str,
        side: str,
        price: float,
        quantity: float,
        **kwargs
    ) -> None:
        """Log a filled paper execution."""
        self.info(
            "trade_executed",
            action=action,
            symbol=symbol,
            side=side,
            price=price,
            quantity=quantity,
            **kwargs
        )

    def risk_event(self, event_type: str, **kwargs: Any) -> None:
        """Log a risk block or guard exit."""
        self.warning("risk_event", event_type=event_type, **kwargs)


# Logger registry
_loggers: dict[str, StructuredLogger] = {}
_configured = False


def configure_logging(
    level: str = "INFO",
    format_type: str = "json",
    log_file: Optional[str] = None
) -> None:
    """
    Configure the logging system.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        format_type: "json" or "text" for the console.
        log_file: Optional path that also receives every record as JSON lines.
    """
    global _configured

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if format_type.lower() == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root_logger.addHandler(handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(getattr(logging, level.upper()))
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    _configured = True


def get_logger(name: str) -> StructuredLogger:
    """
    Get or create a structured logger.

    Args:
        name: Logger name (typically module name).

    Returns:
        StructuredLogger instance.
    """
    if not _configured:
        configure_logging()

    if name not in _loggers:
        _loggers[name] = StructuredLogger(name, logging.getLogger(name))

    return _loggers[name]
