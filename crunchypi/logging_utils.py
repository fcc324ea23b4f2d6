"""
Centralized logging and error handling utilities for Crunchypi.

This module provides decorators and helper functions to standardize logging
and transport error handling around calls to the local model server.

Features:
- Structured logging with contextual information
- Transport error classification
- Decorator converting HTTP failures into TransportFailure
- Performance timing
"""

from __future__ import annotations

import asyncio
import functools
import logging
import sys
import time
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, ParamSpec, TypeVar

import httpx
import structlog

from .llm.exceptions import DecodeError, TransportFailure

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

# Errors raised by httpx itself; socket errors reach us already wrapped.
# Anything else (a listener failing, say) is not a transport problem.
TRANSPORT_ERRORS = (httpx.HTTPError, httpx.StreamError)

logger = structlog.get_logger(__name__)


def configure_logging(level: str | int = "WARNING") -> None:
    """Route log output to stderr so it never mixes with streamed tokens."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError("logging.level must be a valid logging level name")

    logging.basicConfig(
        level=level, stream=sys.stderr, format="%(message)s", force=True
    )


class TransportErrorHandler:
    """Centralized transport error handling with structured logging."""

    @staticmethod
    def classify_error(error: Exception) -> str:
        """
        Classify an error raised while talking to the server.

        Args:
            error: The exception to classify

        Returns:
            Error category name
        """
        if isinstance(error, TransportFailure):
            return error.category
        if isinstance(error, httpx.HTTPStatusError):
            return "status_error"
        if isinstance(error, httpx.TimeoutException | TimeoutError):
            return "timeout_error"
        if isinstance(error, httpx.ConnectError | ConnectionError):
            return "connection_error"
        if isinstance(error, httpx.TransportError | httpx.StreamError):
            return "read_error"
        if isinstance(error, OSError):
            return "connection_error"
        return "unknown_error"

    @staticmethod
    def create_transport_failure(
        error: Exception,
        operation: str,
        context: dict[str, Any] | None = None,
        model: str = "unknown",
    ) -> TransportFailure:
        """
        Create a TransportFailure with structured logging.

        Args:
            error: Original exception
            operation: Description of the operation that failed
            context: Additional context for logging
            model: Model the request was addressed to

        Returns:
            TransportFailure describing the original error
        """
        category = TransportErrorHandler.classify_error(error)
        context = context or {}
        detail = str(error) or type(error).__name__

        logger.error(
            "Operation failed",
            operation=operation,
            error_type=type(error).__name__,
            error_category=category,
            error_message=detail,
            **context,
        )

        status_code = None
        if isinstance(error, httpx.HTTPStatusError):
            status_code = error.response.status_code

        return TransportFailure(
            f"{operation} failed: {detail}",
            model=model,
            status_code=status_code,
            category=category,
        )


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

            operation_logger.info("Operation started", **log_data)

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


def handle_transport_errors(
    operation: str,
    *,
    context: dict[str, Any] | None = None,
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """
    Decorator converting transport exceptions into TransportFailure.

    DecodeError subclasses pass through untouched. Anything that is not an
    httpx error propagates as-is. The model named in the failure is taken
    from the decorated method's instance when it has a ``model`` attribute.

    Args:
        operation: Description of the operation for error context
        context: Additional context to include in logs

    Returns:
        Decorated function with transport error handling
    """
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except DecodeError as e:
                logger.error(
                    "Decode error in operation",
                    operation=operation,
                    error_type=type(e).__name__,
                    error_message=str(e),
                    status_code=e.status_code,
                    **(context or {}),
                )
                raise
            except TRANSPORT_ERRORS as e:
                model = getattr(args[0], "model", "unknown") if args else "unknown"
                raise TransportErrorHandler.create_transport_failure(
                    e, operation, context, model=model
                ) from e

        return wrapper
    return decorator


@asynccontextmanager
async def operation_context(
    operation: str,
    *,
    context: dict[str, Any] | None = None,
):
    """
    Async context manager logging one user-facing request.

    Transport failures are logged as an interrupted request with their
    category, cancellation as a cancelled one, and any other exception as
    a failure. The exception is always re-raised.

    Args:
        operation: Description of the operation
        context: Additional context for logging, such as the model

    Yields:
        Bound logger for the operation
    """
    operation_logger = logger.bind(operation=operation, **(context or {}))
    start_time = time.perf_counter()

    def elapsed_ms() -> float:
        return round((time.perf_counter() - start_time) * 1000, 2)

    operation_logger.info("Request started")
    try:
        yield operation_logger
    except TransportFailure as e:
        operation_logger.warning(
            "Request interrupted",
            error_category=e.category,
            status_code=e.status_code,
            error_message=str(e),
            duration_ms=elapsed_ms(),
        )
        raise
    except asyncio.CancelledError:
        operation_logger.info("Request cancelled", duration_ms=elapsed_ms())
        raise
    except Exception as e:
        operation_logger.error(
            "Request failed",
            error_type=type(e).__name__,
            error_message=str(e),
            duration_ms=elapsed_ms(),
        )
        raise
    else:
        operation_logger.info("Request completed", duration_ms=elapsed_ms())
