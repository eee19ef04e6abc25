"""
Performance monitoring utilities.
Logs timing information for update processing and database operations.
"""
import time
import logging
from functools import wraps
from typing import Callable, Any

logger = logging.getLogger(__name__)

SLOW_THRESHOLD = 0.5  # seconds
DEBUG_THRESHOLD = 0.1  # seconds


def log_timing(operation_name: str):
    """
    Decorator to log execution time of async functions.

    Usage:
        @log_timing("process_update")
        async def process_update(payload):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.time()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                elapsed = time.time() - start
                logger.error(f"❌ {operation_name} failed after {elapsed:.2f}s: {e}")
                raise

            elapsed = time.time() - start
            if elapsed > SLOW_THRESHOLD:
                logger.warning(f"⏱️  SLOW: {operation_name} took {elapsed:.2f}s")
            elif elapsed > DEBUG_THRESHOLD:
                logger.debug(f"⏱️  {operation_name} took {elapsed:.2f}s")
            return result

        return async_wrapper
    return decorator


def log_db_timing(func: Callable) -> Callable:
    """
    Decorator to log execution time of database operations.

    Usage:
        @log_db_timing
        def get_task_by_id(task_id):
            ...
    """
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        start = time.time()
        result = func(*args, **kwargs)
        elapsed = time.time() - start

        if elapsed > SLOW_THRESHOLD:
            logger.warning(f"🐌 SLOW DB: {func.__name__} took {elapsed:.2f}s")
        elif elapsed > DEBUG_THRESHOLD:
            logger.debug(f"🐌 DB: {func.__name__} took {elapsed:.3f}s")

        return result

    return wrapper
