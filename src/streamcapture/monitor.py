"""
Availability monitor for Stream Capture.
Waits for the channel to go live and hands each broadcast to a session.
"""

import asyncio
from typing import Callable, Optional

import aiohttp

from .config import Config
from .errors import CaptureFatalError
from .logger import get_channel_logger
from .models import SessionResult
from .playlist import is_live_page
from .session import SessionController
from .site_client import SiteClient
from .timer import Timer


class AvailabilityMonitor:
    """
    Outer loop: OFFLINE <-> CAPTURING.

    Checks the channel page every `interval` minutes while offline and runs a
    fresh SessionController for every broadcast it sees.
    """

    def __init__(
        self,
        config: Config,
        client: SiteClient,
        timer: Timer,
        session_factory: Optional[Callable[[], SessionController]] = None
    ):
        self.config = config
        self.client = client
        self.timer = timer
        self.session_factory = session_factory or (lambda: SessionController(config, client, timer))

        self.sessions_completed = 0
        self.last_result: Optional[SessionResult] = None
        self._logger = get_channel_logger(config.channel, 'monitor')

    async def check_online(self) -> bool:
        """True if the channel page is serving a live playlist."""
        try:
            page = await self.client.get_channel_page()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._logger.warning(f"Online check failed: {e!r}")
            return False
        return is_live_page(page)

    def _ensure_channel_dir(self) -> None:
        try:
            self.config.channel_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CaptureFatalError(f"Cannot create {self.config.channel_dir}: {e}") from e

    async def run(self) -> None:
        """Cycle between waiting and capturing until the timer is stopped."""
        self._ensure_channel_dir()
        channel = self.config.channel

        while not self.timer.stopped:
            if await self.check_online():
                self._logger.info(f"🔴 {channel} is online! Starting capture...")
                result = await self.session_factory().run()
                if result is None:
                    # Page said live but no usable source yet
                    await self.timer.sleep(self.config.capture.poll_retry_delay)
                    continue
                self.sessions_completed += 1
                self.last_result = result
                continue

            self._logger.info(f"{channel} is offline, checking again in {self.config.interval} minute(s)...")
            await self.timer.sleep(self.config.interval * 60)
