import unittest
from datetime import datetime
from pathlib import Path

from streamcapture.errors import TransientPollError
from streamcapture.models import CaptureSession, PollerState
from streamcapture.poller import OfflineDetector, SegmentPoller
from tests._fakes import BASE_URL, STREAM_URL, FakeClient, ScaledTimer, connection_error, media_playlist


def new_session() -> CaptureSession:
    return CaptureSession.begin("someone", Path("someone"), now=datetime(2024, 1, 1))


class OfflineDetectorTests(unittest.TestCase):
    def test_eleventh_failure_goes_offline(self) -> None:
        session = new_session()
        detector = OfflineDetector(session, max_failures=10)
        for _ in range(10):
            self.assertIs(detector.record_failure(), PollerState.SUSPECT)
        self.assertIs(detector.record_failure(), PollerState.OFFLINE)
        self.assertTrue(detector.offline)

    def test_success_resets_counter(self) -> None:
        session = new_session()
        detector = OfflineDetector(session, max_failures=10)
        for _ in range(10):
            detector.record_failure()
        self.assertIs(detector.record_success(), PollerState.LIVE)
        self.assertEqual(session.consecutive_failures, 0)

    def test_offline_is_terminal(self) -> None:
        session = new_session()
        detector = OfflineDetector(session, max_failures=0)
        detector.record_failure()
        self.assertIs(detector.record_success(), PollerState.OFFLINE)


class SegmentPollerTests(unittest.IsolatedAsyncioTestCase):
    async def test_poll_once_returns_snapshot(self) -> None:
        client = FakeClient(texts={STREAM_URL: [media_playlist("seg_0001.ts", target_duration=6)]})
        poller = SegmentPoller(client, BASE_URL, ScaledTimer())
        snapshot = await poller.poll_once(STREAM_URL)
        self.assertAlmostEqual(snapshot.poll_interval, 4.0)
        self.assertEqual(snapshot.segments[0].url, BASE_URL + "seg_0001.ts")

    async def test_network_error_is_transient(self) -> None:
        client = FakeClient(texts={STREAM_URL: [connection_error()]})
        poller = SegmentPoller(client, BASE_URL, ScaledTimer())
        with self.assertRaises(TransientPollError) as ctx:
            await poller.poll_once(STREAM_URL)
        self.assertEqual(ctx.exception.retry_after, 3.0)

    async def test_eleven_consecutive_failures_end_the_session(self) -> None:
        client = FakeClient(texts={STREAM_URL: [connection_error()]})
        timer = ScaledTimer()
        session = new_session()
        poller = SegmentPoller(client, BASE_URL, timer)

        snapshots = [s async for s in poller.watch(STREAM_URL, session)]

        self.assertEqual(snapshots, [])
        self.assertEqual(client.calls[STREAM_URL], 11)
        self.assertIs(session.state, PollerState.OFFLINE)
        self.assertEqual(timer.sleeps, [3.0] * 10)

    async def test_ten_failures_then_success_stays_live(self) -> None:
        responses = [connection_error()] * 10 + [media_playlist("seg_0001.ts")]
        client = FakeClient(texts={STREAM_URL: responses})
        timer = ScaledTimer()
        session = new_session()
        poller = SegmentPoller(client, BASE_URL, timer)

        watch = poller.watch(STREAM_URL, session)
        snapshot = await watch.__anext__()
        await watch.aclose()

        self.assertEqual([s.uri for s in snapshot.segments], ["seg_0001.ts"])
        self.assertEqual(session.consecutive_failures, 0)
        self.assertIs(session.state, PollerState.LIVE)
        self.assertEqual(timer.sleeps, [3.0] * 10)

    async def test_success_waits_poll_interval(self) -> None:
        client = FakeClient(texts={STREAM_URL: [media_playlist("a.ts"), connection_error()]})
        timer = ScaledTimer()
        poller = SegmentPoller(client, BASE_URL, timer, max_failures=0)

        snapshots = [s async for s in poller.watch(STREAM_URL, new_session())]

        self.assertEqual(len(snapshots), 1)
        self.assertEqual(timer.sleeps, [4.0])

    async def test_stopped_timer_ends_watch(self) -> None:
        client = FakeClient(texts={STREAM_URL: [media_playlist("a.ts")]})
        timer = ScaledTimer()
        timer.stop()
        poller = SegmentPoller(client, BASE_URL, timer)
        self.assertEqual([s async for s in poller.watch(STREAM_URL, new_session())], [])


if __name__ == "__main__":
    unittest.main()
