"""
Sequential reassembler for Stream Capture.
Appends staged segments to the master file strictly in index order.
"""

from typing import List

from .errors import PermanentSegmentLoss
from .logger import get_channel_logger
from .models import CaptureSession
from .staging import StagingArea
from .timer import Timer


class SequentialReassembler:
    """
    Single writer of a session's master file.

    Keeps its own cursor starting at 1. A staged artifact is appended and
    deleted as soon as the cursor reaches it; a missing one is waited for
    with linear backoff and skipped once the retries run out, so one lost
    segment never stalls the rest of the recording.
    """

    def __init__(
        self,
        session: CaptureSession,
        staging: StagingArea,
        master_file,
        timer: Timer,
        warmup_delay: float = 4.0,
        idle_delay: float = 1.0,
        max_missing_retries: int = 5,
        missing_backoff: float = 1.0
    ):
        """
        Args:
            session: Session whose dispatched indices are consumed.
            staging: Where fetched segments are staged.
            master_file: Open aiofiles binary handle in append mode.
            timer: Shared cancellable timer.
            warmup_delay: Wait before the first segment is looked for.
            idle_delay: Wait when every dispatched segment is consumed.
            max_missing_retries: Backoff steps before a segment is skipped.
            missing_backoff: Backoff unit; attempt n waits n * missing_backoff.
        """
        self.session = session
        self.staging = staging
        self.master_file = master_file
        self.timer = timer
        self.warmup_delay = warmup_delay
        self.idle_delay = idle_delay
        self.max_missing_retries = max_missing_retries
        self.missing_backoff = missing_backoff

        self.cursor = 1
        self.segments_written = 0
        self.bytes_written = 0
        self.skipped: List[int] = []

        self._stopping = False
        self._logger = get_channel_logger(session.channel, 'reassembler', session.session_id)

    def stop(self) -> None:
        """Finish once every dispatched segment has been written or skipped."""
        self._stopping = True

    async def run(self) -> None:
        await self.timer.sleep(self.warmup_delay)

        while not self.timer.stopped:
            if self.cursor > self.session.highest_index:
                if self._stopping:
                    break
                await self.timer.sleep(self.idle_delay)
                continue

            try:
                if not await self._wait_for_artifact(self.cursor):
                    break
            except PermanentSegmentLoss as e:
                self._logger.warning(f"Segment {e.index} lost, skipping it")
                self.skipped.append(e.index)
                self.cursor += 1
                continue

            await self._append(self.cursor)
            self.cursor += 1

    async def _wait_for_artifact(self, index: int) -> bool:
        """
        Wait until the artifact for index is staged.

        Returns:
            True when present, False if the timer was stopped meanwhile.

        Raises:
            PermanentSegmentLoss: Still absent after every retry.
        """
        for attempt in range(1, self.max_missing_retries + 1):
            if await self.staging.exists(index):
                return True
            if attempt > 1:
                self._logger.info(
                    f"Segment {index} not found yet, retrying ({attempt}/{self.max_missing_retries})"
                )
            if not await self.timer.sleep(self.missing_backoff * attempt):
                return False

        if await self.staging.exists(index):
            return True
        raise PermanentSegmentLoss(index, self.max_missing_retries, str(self.staging.path_for(index)))

    async def _append(self, index: int) -> None:
        data = await self.staging.take(index)
        await self.master_file.write(data)
        await self.master_file.flush()

        self.segments_written += 1
        self.bytes_written += len(data)
        self._logger.info(
            f"Inserted segment {index} into master file (total: {self.session.highest_index})"
        )
