"""
Deadline race for network operations.

``TimeoutRace.race`` waits for whichever settles first: the operation or its
deadline. On expiry the operation is left running; its eventual outcome is
collected and dropped so the event loop never reports an unretrieved
exception. Each coordinator owns its own ``TimeoutRace``.
"""

import asyncio
import logging
from typing import Awaitable, TypeVar

from modules.auth.exceptions import AuthTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TimeoutRace:
    """Races operations against deadlines and keeps the losers referenced until they settle."""

    def __init__(self) -> None:
        self._abandoned: set[asyncio.Future] = set()

    @property
    def pending(self) -> int:
        """Number of abandoned operations that have not settled yet."""
        return len(self._abandoned)

    def _collect(self, task: asyncio.Future) -> None:
        self._abandoned.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.debug(f"Late failure from abandoned operation ignored: {error!r}")

    def _abandon(self, task: asyncio.Future) -> None:
        self._abandoned.add(task)
        task.add_done_callback(self._collect)

    async def race(self, operation: Awaitable[T], deadline: float, label: str = "Operation") -> T:
        """
        Await ``operation`` for at most ``deadline`` seconds.

        Args:
            operation: Coroutine or future to run
            deadline: Seconds before giving up
            label: Operation name used in the timeout message

        Returns:
            The operation's result

        Raises:
            AuthTimeoutError: If the deadline elapses first
            Exception: Whatever the operation raised, if it settled first
        """
        task = asyncio.ensure_future(operation)
        try:
            done, _ = await asyncio.wait({task}, timeout=deadline)
        except asyncio.CancelledError:
            self._abandon(task)
            raise

        if task in done:
            return task.result()

        self._abandon(task)
        logger.warning(f"{label} timed out after {deadline:g}s")
        raise AuthTimeoutError(label, deadline)
