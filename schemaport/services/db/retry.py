"""Retry utilities with exponential backoff for database operations"""

import logging
import random
import time
from functools import wraps
from typing import Any, Callable, Dict, Optional, TypeVar

from schemaport.config import config
from schemaport.errors import DatabaseConnectionError

from .error_classifier import classify_error

logger = logging.getLogger("schemaport.db")

T = TypeVar("T")


def retry_settings() -> Dict[str, Any]:
    """Retry parameters from ``execution.retry`` in settings.yaml."""
    cfg = (config.get("execution") or {}).get("retry") or {}
    return {
        "max_retries": int(cfg.get("max_retries", 3)),
        "initial_delay": float(cfg.get("initial_delay", 0.1)),
        "max_delay": float(cfg.get("max_delay", 2.0)),
        "exponential_base": float(cfg.get("exponential_base", 2.0)),
        "jitter": bool(cfg.get("jitter", True)),
    }


def retry_with_exponential_backoff(
    func: Callable[..., T],
    *args,
    max_retries: int = 3,
    initial_delay: float = 0.1,
    max_delay: float = 2.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Optional[Callable[[DatabaseConnectionError, int], None]] = None,
    **kwargs,
) -> T:
    """Call *func*, retrying transient database failures with exponential backoff.

    Every exception is classified first; permanent failures (constraint
    violations, syntax errors, authentication, row-level policies) are raised
    immediately. After the last attempt the classified error is raised with
    the attempt count in its diagnostics.

    Args:
        func: Callable to retry
        max_retries: Maximum number of retry attempts after the first call
        initial_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exponential_base: Base for exponential backoff
        jitter: Whether to add random jitter to delay
        sleep: Blocking sleep function
        on_retry: Called with the classified error and attempt number before sleeping
        *args, **kwargs: Arguments to pass to func

    Returns:
        Result from successful function call
    """
    for attempt in range(max_retries + 1):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            error = classify_error(e)
            name = getattr(func, "__name__", repr(func))

            if not error.transient:
                logger.error(f"Non-retryable failure in {name}: {error}")
                if error is e:
                    raise
                raise error from e

            if attempt == max_retries:
                logger.error(
                    f"All {max_retries} retries exhausted for {name}. "
                    f"Last error: {error}"
                )
                error.diagnostics.setdefault("attempts", attempt + 1)
                if error is e:
                    raise
                raise error from e

            # Calculate delay with exponential backoff
            delay = min(initial_delay * (exponential_base**attempt), max_delay)

            # Add jitter to prevent thundering herd
            if jitter:
                delay = delay * (0.5 + random.random())

            logger.warning(
                f"Attempt {attempt + 1}/{max_retries + 1} failed for {name}: {error}. "
                f"Retrying in {delay:.2f}s..."
            )
            if on_retry is not None:
                on_retry(error, attempt + 1)

            sleep(delay)

    # Should never reach here, the last attempt always returns or raises
    raise RuntimeError(f"retry loop exited without a result for {func!r}")


def with_retry(**overrides):
    """Decorator to add retry logic with exponential backoff to a function

    Unspecified parameters come from ``execution.retry`` in settings.yaml.

    Example:
        @with_retry(max_retries=5)
        def apply_statements(conn, statements):
            ...
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            params = {**retry_settings(), **overrides}
            return retry_with_exponential_backoff(func, *args, **params, **kwargs)

        return wrapper

    return decorator
