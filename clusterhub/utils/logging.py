"""
Structured logging for the cluster registry.

Registry operations only report the outcome of the store write, so the log
is the one place where provisioning failures (unreachable hosts, a missing
metrics database, ...) become visible. Records are emitted as JSON lines and
carry the id of the HTTP request that triggered them.
"""

import json
import logging
import time
import uuid
from contextvars import ContextVar
from datetime import datetime
from functools import wraps
from typing import Any, Dict, Optional

from ..config import settings

# Per-request fields attached to every record, set by the HTTP middleware
request_context: ContextVar[Dict[str, Any]] = ContextVar('request_context', default={})

# Attributes every LogRecord has; anything else came in through ``extra``
_STANDARD_ATTRIBUTES = set(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message', 'taskName'}

_QUIET_LOGGERS = ('httpx', 'httpcore', 'asyncio', 'uvicorn.access')


class StructuredFormatter(logging.Formatter):
    """Renders a record, its ``extra`` fields and the request context as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.utcnow().isoformat() + 'Z',
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }
        entry.update(
            (key, value) for key, value in vars(record).items()
            if key not in _STANDARD_ATTRIBUTES
        )

        context = request_context.get()
        if context:
            entry['request_context'] = context

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry['exception'] = {
                'type': exc_type.__name__ if exc_type else None,
                'message': str(exc_value) if exc_value else None,
                'traceback': self.formatException(record.exc_info)
            }

        return json.dumps(entry, default=str, ensure_ascii=False)


class RequestTrackingFilter(logging.Filter):
    """Copies the request context onto records that do not set the same keys."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in request_context.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


def setup_logging(
    log_level: Optional[str] = None,
    structured: Optional[bool] = None,
    enable_request_tracking: bool = True
) -> None:
    """
    Replace the root handlers with a single console handler.

    Args:
        log_level: Level name; defaults to ``settings.monitoring.log_level``
        structured: Emit JSON lines; defaults to ``settings.monitoring.structured_logging``
        enable_request_tracking: Attach the request context to records
    """
    level = getattr(logging, (log_level or settings.monitoring.log_level.value).upper())
    if structured is None:
        structured = settings.monitoring.structured_logging

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(
        StructuredFormatter() if structured else logging.Formatter(settings.monitoring.log_format)
    )
    if enable_request_tracking:
        handler.addFilter(RequestTrackingFilter())

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    configure_logger_levels()


def configure_logger_levels():
    """Quiet chatty third-party loggers."""
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger('clusterhub').setLevel(logging.DEBUG if settings.debug else logging.INFO)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_request_context(**kwargs):
    """Merge ``kwargs`` into the current request context."""
    request_context.set({**request_context.get(), **kwargs})


def clear_request_context():
    request_context.set({})


def get_request_context() -> Dict[str, Any]:
    return request_context.get()


class LogContext:
    """Times a block and logs whether it completed or raised.

    ``request_id`` and ``logger_name`` may be passed as keyword arguments;
    every other keyword is added to the log record.
    """

    def __init__(self, operation: str, **kwargs):
        self.request_id = kwargs.pop('request_id', None) or str(uuid.uuid4())[:8]
        self.logger_name = kwargs.pop('logger_name', __name__)
        self.operation = operation
        self.context = kwargs
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration_ms = (time.time() - self.start_time) * 1000
        if exc_type is None:
            self.log_success(duration_ms)
        else:
            self.log_error(exc_val, duration_ms)

    def _fields(self, status: str, duration_ms: float) -> Dict[str, Any]:
        return {
            'operation': self.operation,
            'request_id': self.request_id,
            'duration_ms': round(duration_ms, 2),
            'status': status,
            **self.context
        }

    def log_success(self, duration_ms: float):
        get_logger(self.logger_name).info(
            f"Operation completed: {self.operation}",
            extra=self._fields('success', duration_ms)
        )

    def log_error(self, error: BaseException, duration_ms: float):
        fields = self._fields('error', duration_ms)
        fields['error_type'] = type(error).__name__
        fields['error_message'] = str(error)
        get_logger(self.logger_name).error(
            f"Operation failed: {self.operation} - {error}",
            extra=fields
        )


def log_performance(operation: str, **context):
    """Wrap a coroutine function in a ``LogContext``."""
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            with LogContext(operation, **context):
                return await func(*args, **kwargs)
        return wrapper
    return decorator


def log_provisioning_step(
    cluster_name: str,
    step: str,
    success: bool,
    duration_ms: float,
    error: Optional[str] = None,
    **context
):
    """
    Log the outcome of one provisioning step.

    Failures go out at WARNING: the registry operation that ran the step
    still reports success to its caller.
    """
    fields = {
        'cluster_name': cluster_name,
        'step': step,
        'success': success,
        'duration_ms': round(duration_ms, 2),
        'error': error,
        **context
    }
    logger = get_logger('clusterhub.provisioning.steps')
    if success:
        logger.info(f"Provisioning step {step} completed for cluster '{cluster_name}'", extra=fields)
    else:
        logger.warning(f"Provisioning step {step} failed for cluster '{cluster_name}': {error}", extra=fields)


# Configure a handler once if the application has not done so
if not logging.getLogger().handlers:
    setup_logging()
