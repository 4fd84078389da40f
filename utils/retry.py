# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Retry Utilities - Retry store operations with exponential backoff
"""
import time
import logging
from functools import wraps
from typing import Callable, TypeVar, Any

import config

logger = logging.getLogger(__name__)

T = TypeVar('T')


def retry_with_backoff(
    max_retries: int = None,
    base_delay: float = None,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    retry_on: tuple = (Exception,),
    sleep: Callable[[float], None] = time.sleep
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator that implements retry logic with exponential backoff

    Args:
        max_retries: Maximum number of retry attempts (default: config.MAX_RETRIES)
        base_delay: Initial delay between retries in seconds (default: config.BASE_DELAY)
        max_delay: Maximum delay between retries in seconds
        exponential_base: Base for exponential backoff calculation
        retry_on: Tuple of exceptions to retry on; anything else is raised immediately
        sleep: Sleep function, replaceable in tests

    Returns:
        Decorated function that will retry on specified exceptions
    """
    retries = config.MAX_RETRIES if max_retries is None else max_retries
    initial_delay = config.BASE_DELAY if base_delay is None else base_delay

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            attempt = 0

            while True:
                try:
                    if attempt > 0:
                        logger.info(f"Retry attempt {attempt}/{retries} for {func.__name__}")

                    result = func(*args, **kwargs)

                    if attempt > 0:
                        logger.info(f"Retry successful for {func.__name__} after {attempt} attempts")

                    return result

                except retry_on as e:
                    if attempt >= retries:
                        logger.error(
                            f"Max retries ({retries}) exceeded for {func.__name__}. "
                            f"Final error: {str(e)}"
                        )
                        raise

                    delay = min(initial_delay * (exponential_base ** attempt), max_delay)

                    logger.warning(
                        f"Error in {func.__name__} (attempt {attempt + 1}/{retries + 1}): "
                        f"{type(e).__name__}: {str(e)}. Retrying in {delay:.1f} seconds..."
                    )

                    sleep(delay)
                    attempt += 1

        return wrapper
    return decorator
