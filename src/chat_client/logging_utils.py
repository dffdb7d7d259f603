"""
Centralized logging and error handling utilities for the chat client.

This module provides decorators and helper functions to standardize logging
and error handling patterns across the codebase, reducing boilerplate and
ensuring consistent error reporting.

Features:
- Structured logging with contextual information
- Error classification onto the client error taxonomy
- Conversion of httpx failures into client errors
- Performance timing for REST operations
"""

from __future__ import annotations

import functools
import time
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, ParamSpec, TypeVar

import httpx
import structlog
from pydantic import ValidationError

from .exceptions import (
    AuthenticationError,
    ChatClientError,
    ProtocolError,
    StreamDecodingError,
    TransportError,
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

# Type variables for generic decorators
P = ParamSpec("P")
T = TypeVar("T")
AsyncCallable = Callable[P, Awaitable[T]]

logger = structlog.get_logger(__name__)


class StreamErrorHandler:
    """Maps raw failures onto client errors with structured logging."""

    @staticmethod
    def classify_error(error: BaseException) -> str:
        """
        Classify an error into a taxonomy category.

        Args:
            error: The exception to classify

        Returns:
            Category name used in logs and error data
        """
        if isinstance(error, AuthenticationError):
            return "precondition_error"
        if isinstance(error, ProtocolError):
            return "protocol_error"
        if isinstance(error, StreamDecodingError):
            return "decoding_error"
        if isinstance(error, TransportError):
            return "transport_error"
        if isinstance(error, httpx.TimeoutException | TimeoutError):
            return "timeout_error"
        if isinstance(error, httpx.TransportError | httpx.StreamError):
            return "transport_error"
        if isinstance(error, ConnectionError | OSError):
            return "transport_error"
        if isinstance(error, UnicodeDecodeError):
            return "decoding_error"
        if isinstance(error, ValidationError | ValueError):
            return "validation_error"
        return "unknown_error"

    @staticmethod
    def wrap_error(
        error: BaseException,
        operation: str,
        context: dict[str, Any] | None = None,
    ) -> ChatClientError:
        """
        Convert an exception into a ChatClientError and log it.

        Client errors pass through unchanged; transport-level failures
        become TransportError carrying the underlying description.

        Args:
            error: Original exception
            operation: Description of the operation that failed
            context: Additional context for logging

        Returns:
            ChatClientError to surface to the caller
        """
        category = StreamErrorHandler.classify_error(error)

        logger.error(
            "Operation failed",
            operation=operation,
            error_type=type(error).__name__,
            error_category=category,
            error_message=str(error),
            **(context or {}),
        )

        if isinstance(error, ChatClientError):
            return error

        message = f"{operation} failed: {error!s}" if str(error) else (
            f"{operation} failed: {type(error).__name__}"
        )
        if category in ("transport_error", "timeout_error"):
            return TransportError(message)
        if category == "decoding_error":
            return StreamDecodingError(message)
        if category == "validation_error":
            # Response body did not have the expected shape
            return ProtocolError(message)
        return ChatClientError(message)


def log_operation(
    operation: str,
    *,
    log_args: bool = False,
    log_result: bool = False,
    log_timing: bool = True,
    context: dict[str, Any] | None = None,
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """
    Decorator for logging async operations with structured context.

    Args:
        operation: Description of the operation being performed
        log_args: Whether to log function arguments
        log_result: Whether to log function result
        log_timing: Whether to log execution timing
        context: Additional context to include in logs

    Returns:
        Decorated function with logging
    """
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            operation_logger = logger.bind(
                operation=operation,
                function=func.__name__,
                **(context or {}),
            )

            log_data = {}
            if log_args:
                log_data.update({
                    "args": args[1:] if args else [],  # Skip 'self' if present
                    "kwargs": kwargs,
                })

            operation_logger.debug("Operation started", **log_data)

            start_time = time.perf_counter() if log_timing else None

            try:
                result = await func(*args, **kwargs)

                end_log_data: dict[str, Any] = {}
                if log_timing and start_time is not None:
                    duration = round((time.perf_counter() - start_time) * 1000, 2)
                    end_log_data["duration_ms"] = duration
                if log_result:
                    end_log_data["result"] = result

                operation_logger.info(
                    "Operation completed successfully", **end_log_data
                )
                return result

            except Exception as e:
                error_log_data: dict[str, Any] = {
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                }
                if log_timing and start_time is not None:
                    duration = round((time.perf_counter() - start_time) * 1000, 2)
                    error_log_data["duration_ms"] = duration

                operation_logger.error("Operation failed", **error_log_data)
                raise

        return wrapper
    return decorator


def handle_client_errors(
    operation: str,
    *,
    context: dict[str, Any] | None = None,
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """
    Decorator that converts any failure into a ChatClientError.

    Args:
        operation: Description of the operation for error context
        context: Additional context to include in logs

    Returns:
        Decorated function raising only ChatClientError
    """
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except ChatClientError:
                raise
            except Exception as e:
                raise StreamErrorHandler.wrap_error(e, operation, context) from e

        return wrapper
    return decorator


# Convenience function for the common REST pattern
def log_client_operation(operation: str, **kwargs) -> Callable:
    """Combined logging and client error handling decorator."""
    log_kwargs = {
        k: v for k, v in kwargs.items()
        if k in ["log_args", "log_result", "log_timing", "context"]
    }
    error_kwargs = {k: v for k, v in kwargs.items() if k in ["context"]}

    def decorator(func):
        return handle_client_errors(operation, **error_kwargs)(
            log_operation(operation, **log_kwargs)(func)
        )
    return decorator


@asynccontextmanager
async def operation_context(
    operation: str,
    *,
    context: dict[str, Any] | None = None,
    log_timing: bool = True,
):
    """
    Async context manager for operation logging.

    Args:
        operation: Description of the operation
        context: Additional context for logging
        log_timing: Whether to log operation timing

    Yields:
        Bound logger for the operation
    """
    operation_logger = logger.bind(
        operation=operation,
        **(context or {}),
    )

    operation_logger.debug("Operation started")
    start_time = time.perf_counter() if log_timing else None

    try:
        yield operation_logger

        log_data: dict[str, Any] = {}
        if log_timing and start_time is not None:
            duration = round((time.perf_counter() - start_time) * 1000, 2)
            log_data["duration_ms"] = duration

        operation_logger.info("Operation completed successfully", **log_data)

    except Exception as e:
        error_log_data: dict[str, Any] = {
            "error_type": type(e).__name__,
            "error_message": str(e),
        }
        if log_timing and start_time is not None:
            duration = round((time.perf_counter() - start_time) * 1000, 2)
            error_log_data["duration_ms"] = duration

        operation_logger.error("Operation failed", **error_log_data)
        raise


class ContextualLogger:
    """Logger that maintains context across related operations."""

    def __init__(self, base_context: dict[str, Any] | None = None):
        self.base_context = base_context or {}
        self._logger = logger.bind(**self.base_context)

    def bind(self, **context: Any) -> ContextualLogger:
        """Create a new logger with additional context."""
        merged_context = {**self.base_context, **context}
        return ContextualLogger(merged_context)

    def info(self, message: str, **context: Any) -> None:
        """Log info message with context."""
        self._logger.info(message, **context)

    def warning(self, message: str, **context: Any) -> None:
        """Log warning message with context."""
        self._logger.warning(message, **context)

    def error(self, message: str, **context: Any) -> None:
        """Log error message with context."""
        self._logger.error(message, **context)

    def debug(self, message: str, **context: Any) -> None:
        """Log debug message with context."""
        self._logger.debug(message, **context)
