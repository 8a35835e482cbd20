"""
Session controller for Stream Capture.
Runs one broadcast from online detection to offline confirmation.
"""

import asyncio
from datetime import datetime
from typing import Callable, Optional, Tuple

import aiofiles
import aiohttp

from .config import Config
from .errors import CaptureFatalError, SourceNotFound
from .fetcher import SegmentFetcher
from .logger import get_channel_logger
from .models import CaptureSession, SessionResult
from .playlist import resolve_source, select_variant
from .poller import SegmentPoller
from .reassembler import SequentialReassembler
from .site_client import SiteClient
from .staging import StagingArea
from .timer import Timer


class SessionController:
    """
    Wires poller, fetcher and reassembler together for one broadcast.

    Every run() starts from a fresh CaptureSession, so nothing carries over
    from a previous broadcast.
    """

    def __init__(
        self,
        config: Config,
        client: SiteClient,
        timer: Timer,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.config = config
        self.client = client
        self.timer = timer
        self.clock = clock
        self.session: Optional[CaptureSession] = None
        self._logger = get_channel_logger(config.channel, 'session')

    async def resolve_stream(self) -> Tuple[str, str]:
        """
        Find the stream to capture.

        Returns:
            (stream_url, base_url)

        Raises:
            SourceNotFound: Channel page or master playlist unusable.
            aiohttp.ClientError: Page or master playlist could not be fetched.
        """
        page = await self.client.get_channel_page()
        master_url, base_url = resolve_source(page)
        self._logger.debug(f"HLS source: {master_url}")

        master_text = await self.client.get_text(master_url)
        stream_url = select_variant(master_text, master_url, self.config.capture.variant_selection)
        self._logger.debug(f"Selected stream: {stream_url}")
        return stream_url, base_url

    async def _open_master(self, session: CaptureSession):
        try:
            session.channel_dir.mkdir(parents=True, exist_ok=True)
            return await aiofiles.open(session.output_path, 'ab')
        except OSError as e:
            raise CaptureFatalError(f"Cannot create output file {session.output_path}: {e}") from e

    async def _sweep(self, staging: StagingArea) -> None:
        """Remove artifacts that landed after the reassembler moved past them."""
        try:
            leftovers = await staging.purge()
        except OSError as e:
            self._logger.warning(f"Could not clean up staged segments: {e}")
            return
        if leftovers:
            self._logger.info(f"Removed {len(leftovers)} orphaned segment file(s)")

    async def run(self) -> Optional[SessionResult]:
        """
        Capture until the broadcast is confirmed offline.

        Returns:
            SessionResult, or None if the session could not be started.

        Raises:
            CaptureFatalError: The output file could not be created or written.
        """
        try:
            stream_url, base_url = await self.resolve_stream()
        except SourceNotFound as e:
            self._logger.warning(f"Stream source not found: {e}")
            return None
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._logger.warning(f"Could not resolve stream source: {e!r}")
            return None

        capture = self.config.capture
        session = CaptureSession.begin(
            self.config.channel,
            self.config.channel_dir,
            dedup_size=capture.dedup_window,
            now=self.clock()
        )
        self.session = session
        log = self._logger.for_session(session.session_id)

        master_file = await self._open_master(session)
        log.info(f"Recording to \"{session.output_path}\"")

        staging = StagingArea(session.channel_dir, session.session_id)
        reassembler = SequentialReassembler(
            session,
            staging,
            master_file,
            self.timer,
            warmup_delay=capture.warmup_delay,
            idle_delay=capture.idle_delay,
            max_missing_retries=capture.max_missing_retries
        )
        fetcher = SegmentFetcher(
            self.client,
            staging,
            session.channel,
            max_concurrent=capture.max_concurrent_fetches,
            is_stale=lambda index: index < reassembler.cursor
        )
        poller = SegmentPoller(
            self.client,
            base_url,
            self.timer,
            retry_delay=capture.poll_retry_delay,
            max_failures=capture.max_poll_failures
        )

        reassembler_task = asyncio.create_task(reassembler.run(), name=f"reassemble-{session.session_id}")
        snapshots = poller.watch(stream_url, session)
        try:
            async for snapshot in snapshots:
                if reassembler_task.done():
                    break
                for segment in session.admit(snapshot.segments):
                    fetcher.dispatch(segment)

            if self.timer.stopped:
                await fetcher.cancel()
            else:
                await fetcher.drain()
            reassembler.stop()
            await reassembler_task
        except OSError as e:
            raise CaptureFatalError(f"Writing {session.output_path} failed: {e}") from e
        finally:
            await snapshots.aclose()
            if not reassembler_task.done():
                reassembler_task.cancel()
                await asyncio.gather(reassembler_task, return_exceptions=True)
            await fetcher.cancel()
            await master_file.close()
            await self._sweep(staging)

        result = SessionResult(
            channel=session.channel,
            output_path=str(session.output_path),
            started_at=session.started_at,
            ended_at=self.clock(),
            segments_dispatched=session.highest_index,
            segments_written=reassembler.segments_written,
            segments_skipped=len(reassembler.skipped),
            bytes_written=reassembler.bytes_written,
        )
        log.info(
            f"Session ended: {result.segments_written}/{result.segments_dispatched} segments, "
            f"{result.file_size_formatted}, {result.duration_formatted}"
        )
        return result
