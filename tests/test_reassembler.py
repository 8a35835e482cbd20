import asyncio
import tempfile
import unittest
from datetime import datetime
from pathlib import Path

import aiofiles

from streamcapture.models import CaptureSession
from streamcapture.reassembler import SequentialReassembler
from streamcapture.staging import StagingArea
from tests._fakes import ScaledTimer


class ReassemblerTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.channel_dir = Path(self._tmp.name)
        self.session = CaptureSession.begin("someone", self.channel_dir, now=datetime(2024, 1, 1))
        self.staging = StagingArea(self.channel_dir, self.session.session_id)
        self.master_file = await aiofiles.open(self.session.output_path, 'ab')

    async def asyncTearDown(self) -> None:
        await self.master_file.close()
        self._tmp.cleanup()

    def _dispatched(self, count: int) -> None:
        self.session.next_index = count + 1

    async def _output(self) -> bytes:
        await self.master_file.close()
        return self.session.output_path.read_bytes()

    async def test_writes_in_index_order_regardless_of_staging_order(self) -> None:
        timer = ScaledTimer(scale=0.01)
        reassembler = SequentialReassembler(self.session, self.staging, self.master_file, timer)
        self._dispatched(3)

        async def stage_out_of_order():
            await self.staging.put(3, b"CCC")
            await self.staging.put(2, b"BB")
            await asyncio.sleep(0.06)
            await self.staging.put(1, b"A")
            reassembler.stop()

        await asyncio.gather(reassembler.run(), stage_out_of_order())

        self.assertEqual(await self._output(), b"ABBCCC")
        self.assertEqual(reassembler.segments_written, 3)
        self.assertEqual(reassembler.skipped, [])

    async def test_missing_segment_skipped_after_linear_backoff(self) -> None:
        for index, data in ((1, b"1"), (2, b"2"), (4, b"4"), (5, b"5")):
            await self.staging.put(index, data)
        self._dispatched(5)

        timer = ScaledTimer()
        reassembler = SequentialReassembler(self.session, self.staging, self.master_file, timer)
        reassembler.stop()
        await reassembler.run()

        self.assertEqual(await self._output(), b"1245")
        self.assertEqual(reassembler.skipped, [3])
        self.assertEqual(timer.sleeps, [4.0, 1.0, 2.0, 3.0, 4.0, 5.0])

    async def test_consumed_artifacts_are_deleted(self) -> None:
        await self.staging.put(1, b"x")
        self._dispatched(1)

        reassembler = SequentialReassembler(self.session, self.staging, self.master_file, ScaledTimer())
        reassembler.stop()
        await reassembler.run()

        self.assertFalse(await self.staging.exists(1))
        self.assertEqual(reassembler.bytes_written, 1)

    async def test_idles_until_segments_are_dispatched(self) -> None:
        timer = ScaledTimer(scale=0.001)
        reassembler = SequentialReassembler(self.session, self.staging, self.master_file, timer)

        async def dispatch_later():
            await asyncio.sleep(0.02)
            await self.staging.put(1, b"late")
            self._dispatched(1)
            await asyncio.sleep(0.02)
            reassembler.stop()

        await asyncio.gather(reassembler.run(), dispatch_later())

        self.assertEqual(await self._output(), b"late")
        self.assertIn(1.0, timer.sleeps)

    async def test_stopped_timer_exits_immediately(self) -> None:
        self._dispatched(2)
        timer = ScaledTimer()
        timer.stop()
        reassembler = SequentialReassembler(self.session, self.staging, self.master_file, timer)
        await reassembler.run()
        self.assertEqual(reassembler.cursor, 1)


if __name__ == "__main__":
    unittest.main()
