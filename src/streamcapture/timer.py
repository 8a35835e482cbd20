"""
Cancellable sleeping for the capture loops.
"""

import asyncio


class Timer:
    """
    Sleep that can be interrupted.

    All monitor, poller and reassembler waits go through one Timer so a
    shutdown signal wakes every loop at once.
    """

    def __init__(self):
        self._stopped = asyncio.Event()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def stop(self) -> None:
        """Wake all sleepers and make further sleeps return immediately."""
        self._stopped.set()

    async def sleep(self, seconds: float) -> bool:
        """
        Wait for the given number of seconds.

        Returns:
            True if the full delay elapsed, False if the timer was stopped.
        """
        if self._stopped.is_set():
            return False
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=max(0.0, seconds))
            return False
        except asyncio.TimeoutError:
            return True
