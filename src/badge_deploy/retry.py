import logging
import time
from collections.abc import Callable
from typing import TypeVar

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)

T = TypeVar("T")


class RetryError(RuntimeError):
    """Raised when every attempt of a retried operation has failed.

    Attributes:
        attempts (int): The number of attempts that were made.
        description (str): A short label for the operation.
    """

    def __init__(self, description: str, attempts: int):
        super().__init__(f"All {attempts} attempts to {description} failed.")
        self.description = description
        self.attempts = attempts


def retry(
    operation: Callable[[], T],
    attempts: int = 3,
    delay: float = 2.0,
    description: str = "run operation",
) -> T:
    """Invokes a flaky operation up to a fixed number of times.

    The delay between attempts is constant (no backoff, no jitter) and no
    sleep happens after the final attempt.

    Args:
        operation (Callable[[], T]): The zero-argument callable to invoke.
        attempts (int, optional): Maximum number of invocations. Defaults to 3.
        delay (float, optional): Seconds to wait between attempts. Defaults to 2.0.
        description (str, optional): Label used in log and error messages.

    Returns:
        T: The result of the first successful invocation.

    Raises:
        ValueError: If `attempts` is lower than 1.
        RetryError: If all attempts fail. Chained to the last exception.
    """
    if attempts < 1:
        raise ValueError(f"attempts must be at least 1, got {attempts}")

    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except Exception as e:
            logger.warning(f"Attempt {attempt}/{attempts} to {description} failed: {e}")
            if attempt == attempts:
                raise RetryError(description, attempts) from e
            time.sleep(delay)

    # Unreachable: the loop either returns or raises on the last attempt.
    raise RetryError(description, attempts)
