import functools
import math
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

MAX_PAGE_SIZE = 100

R = TypeVar("R")


def to_int(value: Any) -> int | None:
    """Floor value to an int, or None when it is not a finite number."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return math.floor(number)


def clamp_limit(value: Any, default: int, maximum: int = MAX_PAGE_SIZE) -> int:
    """
    Coerce a requested page size into [1, maximum].

    Non-numeric input falls back to default. clamp_limit(clamp_limit(x)) ==
    clamp_limit(x) for every x.
    """
    number = to_int(value)
    if number is None:
        number = default
    return min(max(number, 1), maximum)


def coerce_page(value: Any, default: int = 1) -> int:
    """Coerce a page number to a positive int (no upper bound)."""
    number = to_int(value)
    if number is None:
        number = default
    return max(number, 1)


def safe_job(func: Callable[..., Awaitable[R]]) -> Callable[..., Awaitable[R | None]]:
    """
    Decorator for scheduled coroutine jobs.

    Logs entry and exit. Exceptions are logged with their traceback and not
    re-raised, so a failing run never takes the scheduler down.
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        func_name = func.__name__
        logger.info(f"Entering job {func_name}")

        try:
            result = await func(*args, **kwargs)
            logger.info(f"Job {func_name} succeeded")
            return result
        except Exception as e:
            logger.exception(f"Job {func_name} failed: {type(e).__name__}: {e}")
            return None

    return wrapper
