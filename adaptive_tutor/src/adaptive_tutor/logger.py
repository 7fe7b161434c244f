"""
Engine Logging Utility

Structured, color-coded logging for the tutoring engine:
- Color-coded log levels
- Component icons (session, interventions, difficulty, rewards)
- Key/value formatting for decision data
"""

import logging
import sys
from datetime import datetime
from typing import Any, Dict, Optional


class Colors:
    """ANSI color codes for terminal output."""
    RESET = '\033[0m'
    BOLD = '\033[1m'

    # Log levels
    DEBUG = '\033[36m'      # Cyan
    INFO = '\033[32m'       # Green
    WARNING = '\033[33m'    # Yellow
    ERROR = '\033[31m'      # Red
    CRITICAL = '\033[35m'   # Magenta

    # Data
    KEY = '\033[93m'        # Bright Yellow
    VALUE = '\033[92m'      # Bright Green
    TIMESTAMP = '\033[90m'  # Dark Gray


class ColoredFormatter(logging.Formatter):
    """Formatter with colors and per-component icons."""

    ICONS = {
        'DEBUG': '🔍',
        'INFO': 'ℹ️',
        'WARNING': '⚠️',
        'ERROR': '❌',
        'CRITICAL': '🚨',
    }

    # Keyed by the last segment of the logger name
    COMPONENT_ICONS = {
        'session_orchestrator': '🎓',
        'interventions': '🆘',
        'difficulty_adapter': '📊',
        'scaffolding': '🪜',
        'rewards': '🏆',
        'repository': '💾',
        'grading': '📝',
        'question_selector': '🎯',
    }

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors and icons."""
        icon = self.COMPONENT_ICONS.get(record.name.split('.')[-1], self.ICONS.get(record.levelname, '•'))
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S.%f')[:-3]

        if self.use_colors:
            level_color = getattr(Colors, record.levelname, Colors.RESET)
            reset = Colors.RESET
            timestamp_color = Colors.TIMESTAMP
            bold = Colors.BOLD
        else:
            level_color = reset = timestamp_color = bold = ''

        formatted = (
            f"{timestamp_color}[{timestamp}]{reset} "
            f"{icon} {level_color}{record.levelname:8s}{reset} "
            f"{bold}{record.name}{reset} "
            f"| {record.getMessage()}"
        )

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


class StructuredLogger:
    """Logger wrapper that appends key/value data blocks to messages."""

    def __init__(self, name: str, logger: Optional[logging.Logger] = None):
        self.name = name
        self.logger = logger or logging.getLogger(name)

    def _format_data(self, data: Any, indent: int = 2) -> str:
        """Format a data structure as an indented block."""
        if isinstance(data, dict):
            items = []
            for key, value in data.items():
                if isinstance(value, (dict, list)):
                    items.append(f"{' ' * indent}{key}: {self._format_data(value, indent + 2)}")
                else:
                    items.append(f"{' ' * indent}{key}: {value}")
            return "{\n" + "\n".join(items) + f"\n{' ' * (indent - 2)}}}"
        elif isinstance(data, list):
            shown = data[:3] if len(data) > 5 else data
            items = ", ".join(str(item) for item in shown)
            if len(data) > 5:
                return f"[{items}, ... ({len(data)} items total)]"
            return f"[{items}]"
        else:
            return str(data)

    def debug(self, message: str, data: Optional[Dict[str, Any]] = None):
        if data:
            self.logger.debug(f"{message}\n{self._format_data(data)}")
        else:
            self.logger.debug(message)

    def info(self, message: str, data: Optional[Dict[str, Any]] = None):
        if data:
            self.logger.info(f"{message}\n{self._format_data(data)}")
        else:
            self.logger.info(message)

    def warning(self, message: str, data: Optional[Dict[str, Any]] = None):
        if data:
            self.logger.warning(f"{message}\n{self._format_data(data)}")
        else:
            self.logger.warning(message)

    def error(self, message: str, error: Optional[Exception] = None, data: Optional[Dict[str, Any]] = None):
        """Log error message with exception and optional data."""
        error_info = f"Error: {type(error).__name__}: {str(error)}" if error else ""
        if data:
            self.logger.error(f"{message} {error_info}\n{self._format_data(data)}", exc_info=error)
        else:
            self.logger.error(f"{message} {error_info}", exc_info=error)

    def success(self, message: str, data: Optional[Dict[str, Any]] = None):
        if data:
            self.logger.info(f"✅ {message}\n{self._format_data(data)}")
        else:
            self.logger.info(f"✅ {message}")


def setup_logging(level: int = logging.INFO, use_colors: bool = True):
    """Setup engine logging on the root logger."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ColoredFormatter(use_colors=use_colors))

    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    # Suppress noisy loggers (supabase uses httpx underneath)
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('hpack').setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name, logging.getLogger(name))
