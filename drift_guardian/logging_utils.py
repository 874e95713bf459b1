"""Structured logging utilities for drift-guardian.

This module provides a structured logger that outputs JSON-formatted logs
for production environments and human-readable logs for development.
"""
import os
import sys
import json
from datetime import datetime, timezone
from typing import Any, Optional, TextIO


class StructuredLogger:
    """Structured logger that outputs JSON in production, readable text in dev."""

    ALIASES = {'WARNING': 'WARN', 'FATAL': 'ERROR', 'CRITICAL': 'ERROR'}

    def __init__(self, level: str = 'INFO', stream: Optional[TextIO] = None, err_stream: Optional[TextIO] = None):
        """Initialize logger.

        Args:
            level: Minimum log level (DEBUG, INFO, WARN, ERROR)
            stream: Destination for DEBUG/INFO (default: stdout)
            err_stream: Destination for WARN/ERROR (default: stderr)
        """
        self.levels = {'DEBUG': 0, 'INFO': 1, 'WARN': 2, 'ERROR': 3}
        self.level = self._normalize(level)
        self._stream = stream
        self._err_stream = err_stream

    def _normalize(self, level: str) -> str:
        lvl = (level or 'INFO').upper()
        lvl = self.ALIASES.get(lvl, lvl)
        return lvl if lvl in self.levels else 'INFO'

    def set_level(self, level: str) -> None:
        self.level = self._normalize(level)

    def _should_log(self, level: str) -> bool:
        """Check if message at given level should be logged."""
        level_num = self.levels.get(level.upper(), 1)
        min_level_num = self.levels.get(self.level, 1)
        return level_num >= min_level_num

    def _log(self, level: str, message: str, **kwargs: Any) -> None:
        """Internal logging method.

        Args:
            level: Log level (DEBUG, INFO, WARN, ERROR)
            message: Log message (an event name such as ``drift_counter_incremented``)
            **kwargs: Additional structured fields
        """
        if not self._should_log(level):
            return

        entry = {
            'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': level.upper(),
            'msg': message,
            **kwargs
        }

        # Output to stderr for WARN/ERROR, stdout for DEBUG/INFO
        if level.upper() in ('WARN', 'ERROR'):
            output_stream = self._err_stream or sys.stderr
        else:
            output_stream = self._stream or sys.stdout

        # JSON format for non-TTY (production), readable format for TTY (dev)
        if output_stream.isatty():
            level_color = {
                'DEBUG': '\033[36m',  # Cyan
                'INFO': '\033[32m',   # Green
                'WARN': '\033[33m',   # Yellow
                'ERROR': '\033[31m',  # Red
            }.get(level.upper(), '')
            reset = '\033[0m'

            parts = [f"{level_color}[{level.upper()}]{reset} {message}"]
            if kwargs:
                kv_parts = []
                for k, v in kwargs.items():
                    if isinstance(v, (dict, list)):
                        v = json.dumps(v, default=str)[:100]  # Truncate long values
                    kv_parts.append(f"{k}={v}")
                if kv_parts:
                    parts.append(" | " + " ".join(kv_parts))

            print(" ".join(parts), file=output_stream)
        else:
            print(json.dumps(entry, default=str), file=output_stream)

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log debug message."""
        self._log('DEBUG', message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        """Log info message."""
        self._log('INFO', message, **kwargs)

    def warn(self, message: str, **kwargs: Any) -> None:
        """Log warning message."""
        self._log('WARN', message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        """Log error message."""
        self._log('ERROR', message, **kwargs)


def configure_logging(level: str) -> StructuredLogger:
    """Apply the configured level to the shared logger."""
    logger.set_level(level)
    return logger


# Global logger instance
# Log level defaults to LOG_LEVEL until settings are applied at startup
_log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
logger = StructuredLogger(level=_log_level)
