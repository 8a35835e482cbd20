"""
Segment poller for Stream Capture.
Polls the live media playlist and decides when the broadcast has ended.
"""

import asyncio
from typing import AsyncIterator

import aiohttp

from .errors import TransientPollError
from .logger import get_channel_logger
from .models import CaptureSession, PollerState
from .playlist import PlaylistSnapshot, parse_media_playlist
from .site_client import SiteClient
from .timer import Timer


class OfflineDetector:
    """
    Offline confirmation for one session.

    LIVE -> SUSPECT on the first failed poll, back to LIVE on any success,
    OFFLINE once failures exceed max_failures. OFFLINE is terminal.
    """

    def __init__(self, session: CaptureSession, max_failures: int = 10):
        self.session = session
        self.max_failures = max_failures

    @property
    def offline(self) -> bool:
        return self.session.state is PollerState.OFFLINE

    def record_failure(self) -> PollerState:
        session = self.session
        if session.state is PollerState.OFFLINE:
            return session.state

        session.consecutive_failures += 1
        if session.consecutive_failures > self.max_failures:
            session.state = PollerState.OFFLINE
        else:
            session.state = PollerState.SUSPECT
        return session.state

    def record_success(self) -> PollerState:
        session = self.session
        if session.state is not PollerState.OFFLINE:
            session.consecutive_failures = 0
            session.state = PollerState.LIVE
        return session.state


class SegmentPoller:
    """Fetches the media playlist on a schedule derived from its target duration."""

    def __init__(
        self,
        client: SiteClient,
        base_url: str,
        timer: Timer,
        retry_delay: float = 3.0,
        max_failures: int = 10
    ):
        """
        Args:
            client: HTTP client.
            base_url: URL segment paths resolve against.
            timer: Shared cancellable timer.
            retry_delay: Seconds to wait after a failed poll.
            max_failures: Consecutive failures tolerated before going offline.
        """
        self.client = client
        self.base_url = base_url
        self.timer = timer
        self.retry_delay = retry_delay
        self.max_failures = max_failures

    async def poll_once(self, stream_url: str) -> PlaylistSnapshot:
        """
        Fetch and decode the media playlist once.

        Raises:
            TransientPollError: Network error, HTTP error (403 when the feed
                stalls or ends) or an undecodable playlist.
        """
        try:
            text = await self.client.get_text(stream_url)
        except aiohttp.ClientResponseError as e:
            raise TransientPollError(f"Playlist returned HTTP {e.status}", self.retry_delay) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientPollError(f"Playlist request failed: {e!r}", self.retry_delay) from e

        try:
            return parse_media_playlist(text, self.base_url, fallback_interval=self.retry_delay)
        except ValueError as e:
            raise TransientPollError(str(e), self.retry_delay) from e

    async def watch(self, stream_url: str, session: CaptureSession) -> AsyncIterator[PlaylistSnapshot]:
        """
        Yield snapshots until the broadcast is confirmed offline.

        Args:
            stream_url: Media playlist URL.
            session: Session whose failure counter and state are updated.
        """
        logger = get_channel_logger(session.channel, 'poller', session.session_id)
        detector = OfflineDetector(session, self.max_failures)

        while not self.timer.stopped:
            try:
                snapshot = await self.poll_once(stream_url)
            except TransientPollError as e:
                state = detector.record_failure()
                if state is PollerState.OFFLINE:
                    logger.info(
                        f"⚫ Playlist unavailable after {self.max_failures} retries, "
                        f"{session.channel} probably went offline"
                    )
                    return
                logger.warning(
                    f"Could not fetch segments ({e}), retrying "
                    f"({session.consecutive_failures}/{self.max_failures})"
                )
                await self.timer.sleep(e.retry_after)
                continue

            if session.consecutive_failures:
                logger.info(f"🔄 {session.channel} is back after {session.consecutive_failures} failed polls")
            detector.record_success()

            yield snapshot
            await self.timer.sleep(snapshot.poll_interval)
