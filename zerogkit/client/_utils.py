import asyncio
import inspect
import logging
import math
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..defaults import DEFAULT_BACKOFF_MULTIPLIER, DEFAULT_RETRIES, DEFAULT_RETRY_DELAY_SEC, MAX_MESSAGE_LENGTH
from .exceptions import ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_RETRIES,
    initial_delay: float = DEFAULT_RETRY_DELAY_SEC,
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    operation_name: Optional[str] = None,
) -> T:
    """
    Run an async operation with bounded retries and exponential backoff.

    ``max_attempts`` counts every call, including the first one. After a failed
    attempt ``i`` the executor sleeps ``initial_delay * backoff_multiplier ** (i - 1)``
    seconds; there is no sleep after the final attempt.

    Args:
        operation: Zero-argument coroutine function to invoke.
        max_attempts (int): Total number of attempts.
        initial_delay (float): Delay in seconds before the second attempt.
        backoff_multiplier (float): Growth factor applied to each following delay.
        operation_name (str, optional): Label used in log messages.

    Returns:
        Whatever the first successful attempt returns.

    Raises:
        The exception raised by the last attempt, unchanged.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    name = operation_name or getattr(operation, "__name__", "operation")

    for attempt in range(1, max_attempts + 1):
        try:
            logger.debug("%s: attempt %d/%d", name, attempt, max_attempts)
            return await operation()
        except Exception as e:
            if attempt == max_attempts:
                logger.error("%s failed after %d attempts: %s", name, max_attempts, e)
                raise

            delay = initial_delay * backoff_multiplier ** (attempt - 1)
            logger.warning("%s: attempt %d failed (%s), retrying in %.3fs", name, attempt, e, delay)
            await asyncio.sleep(delay)

    # unreachable: the loop either returns or raises
    raise RuntimeError(f"{name}: retry loop exited without a result")


async def maybe_await(value: Any) -> Any:
    """Await ``value`` if it is awaitable, otherwise return it as is."""
    if inspect.isawaitable(value):
        return await value
    return value


def validate_chat_message(message) -> str:
    if not isinstance(message, str):
        raise ValidationError("Message must be a string", field="message")
    if not message.strip():
        raise ValidationError("Message cannot be empty", field="message")
    if len(message) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message is too long ({len(message)} > {MAX_MESSAGE_LENGTH} characters)", field="message")
    return message


def validate_amount(amount, operation: str) -> float:
    """Reject non-numeric, non-finite and non-positive ledger amounts."""
    if isinstance(amount, bool) or not isinstance(amount, (int, float, Decimal)):
        raise ValidationError(f"{operation} amount must be a number", field="amount")
    finite = amount.is_finite() if isinstance(amount, Decimal) else math.isfinite(amount)
    if not finite:
        raise ValidationError(f"{operation} amount must be finite", field="amount")
    if amount <= 0:
        raise ValidationError(f"{operation} amount must be greater than 0", field="amount")
    return amount


_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "silent": logging.CRITICAL + 1,
}


def set_log_level(level: str) -> None:
    """Set the level of the ``zerogkit`` logger tree. ``silent`` mutes it."""
    logging.getLogger("zerogkit").setLevel(_LOG_LEVELS[level.lower()])
