import asyncio
from dataclasses import dataclass

from classroom.core.config import (
    UPLOAD_BACKOFF_MULTIPLIER,
    UPLOAD_BASE_DELAY_SECONDS,
    UPLOAD_MAX_RETRIES,
)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff for a single file.

    A file gets one initial attempt plus ``max_retries`` retries. The
    wait before retry ``n`` (1-based) is ``base_delay * multiplier ** (n - 1)``,
    so the defaults wait 2s, 4s, 8s.
    """

    max_retries: int = UPLOAD_MAX_RETRIES
    base_delay: float = UPLOAD_BASE_DELAY_SECONDS
    multiplier: float = UPLOAD_BACKOFF_MULTIPLIER

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, retry_number: int) -> float:
        return self.base_delay * self.multiplier ** (retry_number - 1)


class CancellationToken:
    """Set once by the owner; waits in the pipeline end early when it is."""

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def sleep(self, delay: float) -> bool:
        """Sleep for ``delay`` seconds. Returns False if cancelled meanwhile."""
        if self.cancelled:
            return False
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return True
        return False
