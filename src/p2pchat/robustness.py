"""
Error taxonomy and logging helpers for p2pchat.

This module provides the exception hierarchy shared by every component,
structured logging setup, and a decorator that re-wraps unexpected
exceptions into the matching chat error.
"""

import functools
import inspect
import json
import logging
import logging.handlers
from collections.abc import Callable
from enum import Enum
from typing import Any

logger = logging.getLogger("p2pchat")


class ContextFormatter(logging.Formatter):
    def format(self, record):
        # copy: every handler formats the same record
        record = logging.makeLogRecord(record.__dict__)
        if hasattr(record, "context"):
            record.context = json.dumps(record.context, default=str)
        else:
            record.context = "{}"
        return super().format(record)


LOG_FORMAT = json.dumps(
    {
        "timestamp": "%(asctime)s",
        "level": "%(levelname)s",
        "component": "%(name)s",
        "message": "%(message)s",
        "context": "%(context)s",
    }
)


def setup_logging(log_level: str = "WARNING", log_file: str | None = None):
    """
    Set up structured logging on the package logger.

    Console output goes to stderr so it never mixes with chat lines on
    stdout. A rotating file handler is added only when ``log_file`` is set.
    """
    logger.setLevel(getattr(logging, str(log_level).upper(), logging.WARNING))
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = ContextFormatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=10 * 1024 * 1024, backupCount=5
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


class ErrorType(Enum):
    NETWORK = "network"
    CRYPTO = "crypto"
    PROTOCOL = "protocol"
    CONFIG = "config"
    GENERAL = "general"


class ChatError(Exception):
    error_type = ErrorType.GENERAL

    def __init__(self, message: str, error_type: ErrorType | None = None, context: dict[str, Any] | None = None):
        super().__init__(message)
        if error_type is not None:
            self.error_type = error_type
        self.context = context or {}


class TransportError(ChatError):
    """Socket creation, bind or send failed. Fatal for the session."""

    error_type = ErrorType.NETWORK


class FrameErrorKind(Enum):
    TOO_FEW_FIELDS = "too_few_fields"
    INVALID_LENGTH = "invalid_length"


class FrameError(ChatError):
    """Malformed or truncated datagram. The receiver drops it."""

    error_type = ErrorType.PROTOCOL

    def __init__(self, kind: FrameErrorKind, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, context=context)
        self.kind = kind


class AuthFailure(ChatError):
    """Ciphertext failed MAC verification."""

    error_type = ErrorType.CRYPTO


class ConfigError(ChatError):
    error_type = ErrorType.CONFIG


ERROR_CLASSES: dict[ErrorType, type[ChatError]] = {
    ErrorType.NETWORK: TransportError,
    ErrorType.CRYPTO: AuthFailure,
    ErrorType.CONFIG: ConfigError,
}


def handle_exception(error_type: ErrorType = ErrorType.GENERAL, context: dict[str, Any] | None = None):
    """
    Decorator to handle exceptions in functions and coroutines.

    ChatError subclasses pass through after logging; anything else is
    re-raised as the ChatError subclass registered for ``error_type``.
    """

    error_cls = ERROR_CLASSES.get(error_type, ChatError)

    def _wrap(e: Exception):
        if isinstance(e, ChatError):
            logger.error(f"Chat error: {e}", extra={"context": {**e.context, **(context or {})}})
            return e
        logger.error(f"Unhandled error: {e}", extra={"context": context or {}})
        wrapped = error_cls(str(e), error_type, context)
        wrapped.__cause__ = e
        return wrapped

    def decorator(func: Callable):
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    raise _wrap(e)

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                raise _wrap(e)

        return wrapper

    return decorator


def log_with_context(message: str, level: str = "info", context: dict[str, Any] | None = None, name: str | None = None):
    """
    Log with additional context.
    """
    extra = {"context": context or {}}
    target = logging.getLogger(name) if name else logger
    getattr(target, level)(message, extra=extra)
