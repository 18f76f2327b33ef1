"""Logging configuration with correlation IDs and secret redaction.

Every polling session runs under its own correlation id so that the submit
call, each poll attempt, the decode and the reconciliation of one analysis
can be followed through interleaved log output of concurrent submissions.
"""
import json
import logging
import logging.handlers
import re
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Union

# Context variable for correlation IDs (task-local under asyncio)
correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)


class CorrelationIDFilter(logging.Filter):
    """Filter to add correlation IDs to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id.get() or 'no-correlation-id'
        return True


class SecuritySafeFormatter(logging.Formatter):
    """Formatter that sanitizes sensitive information from log messages."""

    SENSITIVE_PATTERNS = [
        (re.compile(r'(?i)(api[_-]?key["\s]*[:=]["\s]*)[a-zA-Z0-9_-]+'), r'\1[REDACTED]'),
        (re.compile(r'(?i)([?&]key=)[^&\s"]+'), r'\1[REDACTED]'),
        (re.compile(r'(?i)(bearer\s+)[a-zA-Z0-9._~+/=-]+'), r'\1[REDACTED]'),
        (re.compile(r'(?i)(token["\s]*[:=]["\s]*)[a-zA-Z0-9._-]+'), r'\1[REDACTED]'),
        (re.compile(r'(?i)(password["\s]*[:=]["\s]*)[^\s"]+'), r'\1[REDACTED]'),
        (re.compile(r'[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}'), '[EMAIL_REDACTED]'),
        # base64 image payloads are noise in logs
        (re.compile(r'(data:image/[a-z+.-]+;base64,)[A-Za-z0-9+/=]{32,}'), r'\1[...]'),
    ]

    def format(self, record: logging.LogRecord) -> str:
        return self.redact(super().format(record))

    @classmethod
    def redact(cls, text: str) -> str:
        for pattern, replacement in cls.SENSITIVE_PATTERNS:
            text = pattern.sub(replacement, text)
        return text


class StructuredFormatter(SecuritySafeFormatter):
    """Structured JSON formatter for production logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'correlation_id': getattr(record, 'correlation_id', 'no-correlation-id'),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_entry['exception'] = {
                'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
                'message': str(record.exc_info[1]) if record.exc_info[1] else None,
                'traceback': self.formatException(record.exc_info),
            }

        return self.redact(json.dumps(log_entry, default=str))


class HumanReadableFormatter(SecuritySafeFormatter):
    """Human-readable formatter for development and console output."""

    def __init__(self, include_correlation_id: bool = True):
        self.include_correlation_id = include_correlation_id
        format_string = (
            '%(asctime)s - %(name)s - %(levelname)s'
            + (' - %(correlation_id)s' if include_correlation_id else '')
            + ' - %(message)s'
        )
        super().__init__(format_string)


class LoggingManager:
    """Central logging manager for the application.

    Only handlers installed by the manager are ever removed from the root
    logger, so handlers added by a host application survive reconfiguration.
    """

    def __init__(self):
        self._log_dir: Optional[Path] = None
        self._handlers: Dict[str, logging.Handler] = {}

    @property
    def handlers(self) -> Dict[str, logging.Handler]:
        return dict(self._handlers)

    def configure(
        self,
        log_level: str = 'INFO',
        log_dir: Optional[Union[str, Path]] = None,
        enable_file_logging: bool = False,
        enable_console_logging: bool = True,
        structured_logging: bool = False,
        max_file_size: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5,
        application_name: str = 'dentalvision'
    ) -> None:
        """Configure logging for the application.

        Calling it again replaces the handlers installed by the previous call.

        Args:
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files
            enable_file_logging: Enable rotating log files
            enable_console_logging: Enable console logging
            structured_logging: Use structured JSON logging
            max_file_size: Maximum size of log files before rotation
            backup_count: Number of backup files to keep
            application_name: Name used for log files
        """
        self.shutdown()

        level = getattr(logging, log_level.upper(), logging.INFO)
        root_logger = logging.getLogger()
        root_logger.setLevel(level)

        correlation_filter = CorrelationIDFilter()
        formatter: logging.Formatter = (
            StructuredFormatter() if structured_logging
            else HumanReadableFormatter(include_correlation_id=True)
        )

        if enable_console_logging:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(level)
            console_handler.setFormatter(formatter)
            console_handler.addFilter(correlation_filter)
            root_logger.addHandler(console_handler)
            self._handlers['console'] = console_handler

        if enable_file_logging:
            self._log_dir = Path(log_dir or 'logs')
            self._log_dir.mkdir(parents=True, exist_ok=True)

            app_handler = logging.handlers.RotatingFileHandler(
                self._log_dir / f'{application_name}.log',
                maxBytes=max_file_size,
                backupCount=backup_count,
                encoding='utf-8'
            )
            app_handler.setLevel(level)
            app_handler.setFormatter(formatter)
            app_handler.addFilter(correlation_filter)
            root_logger.addHandler(app_handler)
            self._handlers['application'] = app_handler

            # ERROR and CRITICAL only
            error_handler = logging.handlers.RotatingFileHandler(
                self._log_dir / f'{application_name}-errors.log',
                maxBytes=max_file_size,
                backupCount=backup_count,
                encoding='utf-8'
            )
            error_handler.setLevel(logging.ERROR)
            error_handler.setFormatter(formatter)
            error_handler.addFilter(correlation_filter)
            root_logger.addHandler(error_handler)
            self._handlers['errors'] = error_handler

        self._configure_specific_loggers(level)

        logging.getLogger(__name__).info(
            f"Logging configured - Level: {log_level}, File: {enable_file_logging}, "
            f"Console: {enable_console_logging}"
        )

    def _configure_specific_loggers(self, level: int) -> None:
        """Quiet chatty third-party loggers."""
        logging.getLogger('PIL').setLevel(logging.WARNING)
        logging.getLogger('httpx').setLevel(logging.WARNING)
        logging.getLogger('httpcore').setLevel(logging.WARNING)
        logging.getLogger('google_genai').setLevel(logging.WARNING)

        logging.getLogger('dentalvision').setLevel(level)

    def shutdown(self) -> None:
        """Close the handlers installed by ``configure``."""
        root_logger = logging.getLogger()
        for handler in self._handlers.values():
            root_logger.removeHandler(handler)
            handler.close()
        self._handlers.clear()


# Global logging manager instance
logging_manager = LoggingManager()


def configure_logging(**kwargs) -> None:
    """Configure application logging."""
    logging_manager.configure(**kwargs)


def get_correlation_id() -> Optional[str]:
    return correlation_id.get()


class CorrelationContext:
    """Context manager scoping a correlation ID to a block."""

    def __init__(self, corr_id: Optional[str] = None):
        self.corr_id = corr_id
        self._token = None

    def __enter__(self) -> str:
        corr_id = self.corr_id or str(uuid.uuid4())
        self._token = correlation_id.set(corr_id)
        return corr_id

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        correlation_id.reset(self._token)
