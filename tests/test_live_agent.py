import asyncio
import os
import tempfile
import unittest
import sys
import uuid
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from quant_ninja.LedgerEngine.models import RawObservation
from quant_ninja.LedgerEngine.service import LedgerService
from quant_ninja.LedgerEngine.store import LedgerStore
from quant_ninja.Oracle.parsing import ExtractionResult
from quant_ninja.Services.live_agent import LiveAgent, RepeatingTask

FRAME = b"\xff\xd8\xff\xe0fake-jpeg"


class FakeVision:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.frames = []

    async def extract_candidates(self, image):
        self.frames.append(image)
        if self.error:
            raise self.error
        return self.result


def frames(*items):
    queue = list(items)

    async def take():
        return queue.pop(0) if queue else None
    return take


class TestLiveAgent(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.db_path = os.path.join(tempfile.gettempdir(), f"test_agent_{uuid.uuid4().hex}.sqlite")
        self.service = LedgerService(store=LedgerStore(db_path=self.db_path))

    def tearDown(self):
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def _candidate(self):
        return RawObservation(event="Arsenal vs Spurs", market="Arsenal ML", odds=2.2, ev=5.0, bookie="Caesars")

    async def test_scan_places_positions(self):
        oracle = FakeVision(ExtractionResult(valid=True, candidates=[self._candidate()]))
        agent = LiveAgent(oracle, self.service, frames(FRAME))

        placed = await agent.scan_once()

        self.assertEqual(placed, 1)
        self.assertEqual(oracle.frames, [FRAME])
        self.assertEqual(agent.last_frame, FRAME)
        self.assertEqual(agent.logs[0].msg, "Auto-placed 1 positions.")
        self.assertEqual(agent.logs[0].level, "success")
        self.assertTrue(self.service.bets()[0].id.startswith("live-"))
        self.assertFalse(agent.scanning)

    async def test_repeat_sighting_places_nothing(self):
        oracle = FakeVision(ExtractionResult(valid=True, candidates=[self._candidate()]))
        agent = LiveAgent(oracle, self.service, frames(FRAME, FRAME))

        await agent.scan_once()
        self.assertEqual(await agent.scan_once(), 0)
        self.assertEqual(agent.logs[0].msg, "No new +EV lines found.")

    async def test_empty_screen(self):
        agent = LiveAgent(FakeVision(ExtractionResult(valid=True)), self.service, frames(FRAME))
        self.assertEqual(await agent.scan_once(), 0)
        self.assertEqual(agent.logs[0].msg, "No new +EV lines found.")

    async def test_invalid_screen_disarms(self):
        agent = LiveAgent(FakeVision(ExtractionResult(valid=False)), self.service, frames(FRAME), first_delay=100)
        agent.start()
        self.assertTrue(agent.active)

        await agent.scan_once()
        await agent._stopping

        self.assertFalse(agent.active)
        self.assertEqual(agent.logs[0].msg, "System disarmed.")
        self.assertEqual(agent.logs[1].msg, "Invalid viewport detected. Auto-terminating link.")
        self.assertEqual(agent.logs[1].level, "warn")
        self.assertEqual(self.service.bets(), [])

    async def test_no_frame_skips_oracle(self):
        oracle = FakeVision(ExtractionResult(valid=True))
        agent = LiveAgent(oracle, self.service, frames())
        self.assertEqual(await agent.scan_once(), 0)
        self.assertEqual(oracle.frames, [])

    async def test_scan_in_flight_is_skipped(self):
        oracle = FakeVision(ExtractionResult(valid=True))
        agent = LiveAgent(oracle, self.service, frames(FRAME))
        agent.scanning = True
        self.assertEqual(await agent.scan_once(), 0)
        self.assertEqual(oracle.frames, [])

    async def test_oracle_error_is_logged(self):
        agent = LiveAgent(FakeVision(error=RuntimeError("rate limited")), self.service, frames(FRAME))
        self.assertEqual(await agent.scan_once(), 0)
        self.assertEqual(agent.logs[0].msg, "Vision error: rate limited")
        self.assertEqual(agent.logs[0].level, "warn")
        self.assertFalse(agent.scanning)

    async def test_log_is_bounded_newest_first(self):
        agent = LiveAgent(FakeVision(), self.service, frames(), log_limit=3)
        for i in range(5):
            agent.log(f"entry {i}")
        self.assertEqual([e.msg for e in agent.logs], ["entry 4", "entry 3", "entry 2"])

    async def test_start_stop(self):
        agent = LiveAgent(FakeVision(), self.service, frames(), first_delay=100)
        agent.start()
        agent.start()
        self.assertTrue(agent.active)
        self.assertGreater(agent.next_scan_in(), 0)

        await agent.stop()
        self.assertFalse(agent.active)
        self.assertIsNone(agent.next_scan_in())
        self.assertEqual([e.msg for e in agent.logs], ["System disarmed.", "Handshake complete. Vision online."])


class TestRepeatingTask(unittest.IsolatedAsyncioTestCase):

    async def test_runs_until_stopped(self):
        calls = []

        async def tick():
            calls.append(1)

        task = RepeatingTask(0.01, tick)
        task.start()
        await asyncio.sleep(0.1)
        await task.stop()

        count = len(calls)
        self.assertGreaterEqual(count, 2)
        await asyncio.sleep(0.05)
        self.assertEqual(len(calls), count)

    async def test_survives_callback_errors(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise ValueError("first run fails")

        task = RepeatingTask(0.01, flaky)
        task.start()
        await asyncio.sleep(0.1)
        self.assertTrue(task.running)
        await task.stop()
        self.assertGreaterEqual(len(calls), 2)

    async def test_countdown_available_right_after_start(self):
        task = RepeatingTask(10, asyncio.sleep, first_delay=30)
        task.start()
        remaining = task.seconds_until_next()
        await task.stop()

        self.assertIsNotNone(remaining)
        self.assertGreater(remaining, 29)
        self.assertLessEqual(remaining, 30)

    async def test_stop_without_start(self):
        task = RepeatingTask(1, asyncio.sleep)
        await task.stop()
        self.assertFalse(task.running)


if __name__ == '__main__':
    unittest.main()
