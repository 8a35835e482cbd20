"""
Segment fetcher for Stream Capture.
Downloads segments concurrently and stages them for the reassembler.
"""

import asyncio
from typing import Callable, Optional, Set

import aiohttp

from .errors import EmptySegment
from .logger import get_channel_logger
from .playlist import SegmentDescriptor
from .site_client import SiteClient
from .staging import StagingArea


class SegmentFetcher:
    """
    One task per new segment, at most max_concurrent downloads at a time.

    Failures are logged and not retried; a segment that never gets staged is
    skipped later by the reassembler.
    """

    def __init__(
        self,
        client: SiteClient,
        staging: StagingArea,
        channel: str,
        max_concurrent: int = 16,
        is_stale: Optional[Callable[[int], bool]] = None
    ):
        """
        Args:
            client: Connected site client.
            staging: Where fetched segments are staged.
            channel: Channel name for log context.
            max_concurrent: Simultaneous downloads.
            is_stale: Tells whether an index was already written or skipped;
                such segments are dropped instead of staged.
        """
        self.client = client
        self.staging = staging
        self.max_concurrent = max_concurrent
        self.is_stale = is_stale or (lambda index: False)

        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._tasks: Set[asyncio.Task] = set()
        self._logger = get_channel_logger(channel, 'fetcher', staging.session_id)

        self.staged = 0
        self.failed = 0
        self.late = 0

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def dispatch(self, segment: SegmentDescriptor) -> asyncio.Task:
        """Start fetching a segment in the background."""
        task = asyncio.create_task(self._fetch(segment), name=f"fetch-{segment.index}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _download(self, segment: SegmentDescriptor) -> bytes:
        body = await self.client.get_bytes(segment.url)
        self._logger.debug(f"Fetched {segment.uri} (size: {len(body)})")
        if not body:
            raise EmptySegment(segment.uri)
        return body

    async def _fetch(self, segment: SegmentDescriptor) -> bool:
        async with self._semaphore:
            try:
                body = await self._download(segment)
                if self.is_stale(segment.index):
                    return self._drop_late(segment)
                await self.staging.put(segment.index, body)
                if self.is_stale(segment.index) and await self.staging.discard(segment.index):
                    return self._drop_late(segment)
            except EmptySegment:
                self._logger.warning(f"Skipping empty segment {segment.uri}")
                self.failed += 1
                return False
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                self._logger.warning(f"Failed to fetch segment {segment.index} ({segment.uri}): {e!r}")
                self.failed += 1
                return False
            except OSError as e:
                self._logger.error(f"Failed to stage segment {segment.index}: {e}")
                self.failed += 1
                return False

        self.staged += 1
        return True

    def _drop_late(self, segment: SegmentDescriptor) -> bool:
        self._logger.warning(f"Segment {segment.index} arrived after it was skipped, dropping it")
        self.late += 1
        return False

    async def drain(self) -> None:
        """Wait for every in-flight fetch to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel(self) -> None:
        """Abort every in-flight fetch."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
