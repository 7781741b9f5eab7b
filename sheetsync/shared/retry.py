"""
Retry helpers with exponential backoff.

Used for startup dependency checks. The sync pipeline itself never retries;
rescheduling is left to whoever enqueues jobs.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """Retry attempts and delay bounds (seconds)."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0

    def delay_for(self, attempt: int) -> float:
        """Delay after the given 1-based failed attempt."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)


DEFAULT = RetryConfig()

# Startup checks: fail fast but ride out a slow database container
CRITICAL = RetryConfig(max_attempts=3, base_delay=2.0, max_delay=8.0)


async def with_exponential_backoff(
    operation: Callable[[], Awaitable[T]],
    name: str,
    config: RetryConfig = DEFAULT,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run an async operation, retrying failures with exponential backoff.

    Args:
        operation: Zero-argument coroutine factory
        name: Operation name for logs
        config: Attempts and delay bounds
        sleep: Sleep function (injectable for tests)

    Returns:
        The operation's result

    Raises:
        The last exception once all attempts have failed
    """
    for attempt in range(1, config.max_attempts + 1):
        try:
            result = await operation()
        except Exception as e:
            if attempt == config.max_attempts:
                logger.critical(
                    f"Operation {name} failed after {config.max_attempts} attempts: {e}"
                )
                raise

            delay = config.delay_for(attempt)
            logger.warning(
                f"Operation {name} failed (attempt {attempt}/{config.max_attempts}), "
                f"retrying in {delay:.1f}s: {e}"
            )
            await sleep(delay)
            continue

        if attempt > 1:
            logger.info(f"Operation {name} succeeded after retry (attempt {attempt})")
        else:
            logger.debug(f"Operation {name} succeeded on first attempt")
        return result

    raise RuntimeError(f"Operation {name} ran with max_attempts < 1")
