import asyncio
import unittest

from streamcapture.timer import Timer


class TimerTests(unittest.IsolatedAsyncioTestCase):
    async def test_full_delay_returns_true(self) -> None:
        self.assertTrue(await Timer().sleep(0.01))

    async def test_stop_wakes_sleepers(self) -> None:
        timer = Timer()
        sleeper = asyncio.create_task(timer.sleep(30))
        await asyncio.sleep(0)
        timer.stop()

        self.assertFalse(await asyncio.wait_for(sleeper, timeout=1))
        self.assertTrue(timer.stopped)
        self.assertFalse(await timer.sleep(30))


if __name__ == "__main__":
    unittest.main()
