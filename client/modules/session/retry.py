"""
Bounded retry while the backend client is not ready.

The backend client may still be constructing when the coordinator first
needs it. ``RetryController`` polls a readiness check, waits between
attempts, and gives up with ``ServiceUnavailableError`` once the attempt
budget is spent. Only readiness problems are retried.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from modules.auth.exceptions import ClientNotReadyError, ServiceUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryState:
    """Attempt counter; only ever incremented or reset to zero."""

    attempts: int = 0

    def increment(self) -> int:
        self.attempts += 1
        return self.attempts

    def reset(self) -> None:
        self.attempts = 0


class RetryController:
    """
    Explicit bounded retry loop.

    Args:
        max_attempts: Retries allowed after the first check
        delay: Seconds to wait between checks
        sleep: Awaitable sleep (injectable for tests)
    """

    def __init__(
        self,
        max_attempts: int,
        delay: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.max_attempts = max_attempts
        self.delay = delay
        self._sleep = sleep
        self.state = RetryState()

    @property
    def attempts(self) -> int:
        return self.state.attempts

    async def run(
        self,
        readiness_check: Callable[[], Awaitable[bool]],
        action: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Run ``action`` once ``readiness_check`` passes.

        A ``ClientNotReadyError`` from the action counts as a failed check.
        The counter resets once the action gets past the readiness stage.

        Raises:
            ServiceUnavailableError: When retries are exhausted
        """
        while True:
            if await readiness_check():
                try:
                    result = await action()
                except ClientNotReadyError as e:
                    logger.warning(f"Backend reported not ready: {e.message}")
                except Exception:
                    self.state.reset()
                    raise
                else:
                    self.state.reset()
                    return result

            if self.state.attempts >= self.max_attempts:
                logger.error(
                    f"Authentication service still unavailable after {self.state.attempts} retries"
                )
                raise ServiceUnavailableError(self.state.attempts)

            attempt = self.state.increment()
            logger.info(
                f"Auth client not ready, retrying in {self.delay:g}s "
                f"(attempt {attempt}/{self.max_attempts})"
            )
            await self._sleep(self.delay)
