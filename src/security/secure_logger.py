"""
Secure Logger - Automatic TIN Redaction for All Logs

Wraps Python's standard logging so that SSN/EIN-shaped digit runs and values
of sensitive fields (tin, ciphertext, encryption_key, ...) never reach a log
handler.

CRITICAL: A decrypted TIN must never be logged, even at DEBUG.

Usage:
    from security.secure_logger import get_logger

    logger = get_logger(__name__)
    logger.info("Submitting form with TIN 123-45-6789")
    # Logs: Submitting form with TIN [TIN-REDACTED]
"""

import logging
from typing import Any, Dict, Optional

from .data_sanitizer import get_sanitizer, DataSanitizer

# Attributes every LogRecord has; anything else was passed via extra=
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}


class SanitizingLogFilter(logging.Filter):
    """
    Logging filter that sanitizes log records before output.

    Redacts TINs from the message, its arguments, exception text and any
    custom fields passed through extra=.
    """

    def __init__(self, sanitizer: Optional[DataSanitizer] = None):
        super().__init__()
        self.sanitizer = sanitizer or get_sanitizer()

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Sanitize the log record before it's emitted.

        Returns:
            True (always allow the record, just sanitize it first)
        """
        if isinstance(record.msg, str):
            record.msg = self.sanitizer.sanitize_string(record.msg)

        # Arguments for %s formatting
        if record.args:
            if isinstance(record.args, dict):
                record.args = self.sanitizer.sanitize_dict(record.args)
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    self.sanitizer.sanitize_value(arg) for arg in record.args
                )

        if record.exc_info and record.exc_text:
            record.exc_text = self.sanitizer.sanitize_string(record.exc_text)

        for key, value in list(record.__dict__.items()):
            if key in _STANDARD_ATTRS:
                continue
            if key in self.sanitizer.sensitive_fields:
                setattr(record, key, "[REDACTED]")
            elif isinstance(value, (str, dict, list, tuple)):
                setattr(record, key, self.sanitizer.sanitize_value(value))

        return True


class SecureLogger(logging.LoggerAdapter):
    """
    Logger adapter that attaches the sanitizing filter to its logger.

    Drop-in replacement for a standard Python logger.
    """

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})
        self.sanitizer = get_sanitizer()

        if not any(isinstance(f, SanitizingLogFilter) for f in logger.filters):
            logger.addFilter(SanitizingLogFilter(self.sanitizer))

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        if 'extra' in kwargs:
            kwargs['extra'] = self.sanitizer.sanitize_dict(kwargs['extra'])

        if self.extra:
            kwargs.setdefault('extra', {})
            for key, value in self.extra.items():
                kwargs['extra'].setdefault(key, value)

        return msg, kwargs


_loggers: Dict[str, SecureLogger] = {}


def get_logger(name: str, extra: Optional[Dict[str, Any]] = None) -> SecureLogger:
    """
    Get a secure logger instance with automatic TIN redaction.

    Args:
        name: Logger name (typically __name__)
        extra: Extra fields to include in all log records
    """
    if name not in _loggers:
        _loggers[name] = SecureLogger(logging.getLogger(name), extra)
    return _loggers[name]


def configure_secure_logging(
    level: int = logging.INFO,
    format_string: Optional[str] = None,
) -> None:
    """
    Configure secure logging for the whole process.

    Call once at startup (web app, Celery worker). The filter is attached to
    the handler so records from every logger pass through it.
    """
    if format_string is None:
        format_string = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(format_string))
    handler.addFilter(SanitizingLogFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)


__all__ = [
    'get_logger',
    'configure_secure_logging',
    'SecureLogger',
    'SanitizingLogFilter',
]
