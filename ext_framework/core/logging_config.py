"""
Logging configuration with optional structured (JSON) output.

Plugin loads are logged with ``plugin_id`` and ``stage`` extras so a failed
startup can be traced back to the plugin and pipeline stage that broke it.
"""

import logging
import logging.handlers
import json
import sys
import traceback
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


# Attributes every LogRecord carries; anything else came in through ``extra``
_RESERVED_ATTRS = frozenset({
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'message', 'taskName'
})


@dataclass
class LogEntry:
    """Structured log entry"""
    timestamp: str
    level: str
    logger_name: str
    message: str
    plugin_id: Optional[str] = None
    stage: Optional[str] = None
    duration_ms: Optional[float] = None
    extra: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        result = asdict(self)
        return {k: v for k, v in result.items() if v is not None}


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def __init__(self, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON"""
        extra = {}
        if self.include_extra:
            extra = {
                key: value for key, value in record.__dict__.items()
                if key not in _RESERVED_ATTRS
                and key not in ('plugin_id', 'stage', 'duration_ms')
            }

        if record.exc_info:
            extra['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': traceback.format_exception(*record.exc_info)
            }

        log_entry = LogEntry(
            timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            level=record.levelname,
            logger_name=record.name,
            message=record.getMessage(),
            plugin_id=getattr(record, 'plugin_id', None),
            stage=getattr(record, 'stage', None),
            duration_ms=getattr(record, 'duration_ms', None),
            extra=extra or None
        )

        return json.dumps(log_entry.to_dict(), ensure_ascii=False, default=str)


class LoggingManager:
    """Centralized logging management"""

    def __init__(self):
        self.configured = False
        self.handlers: List[logging.Handler] = []

    def setup_logging(self,
                      log_level: str = "INFO",
                      enable_json: bool = False,
                      log_file: Optional[str] = None,
                      max_file_size: int = 10 * 1024 * 1024,  # 10MB
                      backup_count: int = 5) -> None:
        """Setup logging configuration"""

        if self.configured:
            return

        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, log_level.upper()))

        console_handler = logging.StreamHandler(sys.stdout)
        if enable_json:
            console_handler.setFormatter(StructuredFormatter())
        else:
            console_handler.setFormatter(
                logging.Formatter(
                    '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
                )
            )
        root_logger.addHandler(console_handler)
        self.handlers.append(console_handler)

        if log_file:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_path,
                maxBytes=max_file_size,
                backupCount=backup_count,
                encoding='utf-8'
            )
            file_handler.setFormatter(StructuredFormatter())
            root_logger.addHandler(file_handler)
            self.handlers.append(file_handler)

        self.configured = True
        logging.getLogger(__name__).info("Logging system initialized")

    def close(self):
        """Detach and close all handlers installed by this manager"""
        root_logger = logging.getLogger()
        for handler in self.handlers:
            root_logger.removeHandler(handler)
            handler.close()
        self.handlers.clear()
        self.configured = False


logging_manager = LoggingManager()


def setup_logging(**kwargs) -> None:
    """Configure process logging once"""
    logging_manager.setup_logging(**kwargs)
