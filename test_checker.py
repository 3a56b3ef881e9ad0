#!/usr/bin/env python3
"""
Tests for the stimulus driver / checker: latency-offset checking, held
vectors, reset flushing, mismatch reporting and the verification log.
"""
import os
import tempfile
import unittest

from datapath import InputRangeError, PipelineError, PIPELINE_LATENCY
from engine import ClockedSimulationEngine
from checker import Checker, MismatchError, Vector, VerificationRecord, read_log
from stimulus import SCENARIO_VECTORS, SCENARIO_EXPECTED, CounterVectors, drive


class BrokenEngine(ClockedSimulationEngine):
    """Engine whose output is off by one at a single tick."""

    def __init__(self, bad_tick: int):
        super().__init__()
        self.bad_tick = bad_tick

    def tick(self, a, b, reset=False):
        tick = self.cycle
        p = super().tick(a, b, reset)
        return p + 1 if tick == self.bad_tick else p


class TestSchedule(unittest.TestCase):
    def test_schedule_returns_due_tick(self):
        chk = Checker()
        chk.reset(2)
        self.assertEqual(chk.tick, 2)
        self.assertEqual(chk.schedule(3, 4), 2 + PIPELINE_LATENCY)

    def test_schedule_validates(self):
        chk = Checker()
        with self.assertRaises(InputRangeError):
            chk.schedule(16, 0)
        self.assertEqual(chk.tick, 0)

    def test_vector_record(self):
        v = Vector(tick=5, a=7, b=9)
        self.assertEqual(v.due, 8)
        self.assertEqual(v.expected, 63)
        self.assertFalse(v.held)


class TestChecking(unittest.TestCase):
    def test_scenario(self):
        chk = Checker()
        chk.reset(2)
        for a, b in SCENARIO_VECTORS:
            chk.schedule(a, b)
            chk.step()
        chk.drain()
        after_reset = chk.outputs[2:]
        self.assertEqual(after_reset[3:8], SCENARIO_EXPECTED)
        scheduled = [rec for rec in chk.log if not rec.held]
        self.assertEqual([(r.a, r.b) for r in scheduled], SCENARIO_VECTORS)
        self.assertTrue(all(r.passed for r in chk.log))

    def test_checked_at_latency_offset(self):
        chk = Checker()
        chk.reset()
        start = chk.tick
        chk.schedule(5, 5)
        chk.step()
        self.assertEqual(chk.log, [])
        chk.step()
        chk.step()
        self.assertEqual(chk.log, [])
        chk.step()
        self.assertEqual(len(chk.log), 1)
        rec = chk.log[0]
        self.assertEqual(rec.tick, start + PIPELINE_LATENCY)
        self.assertEqual((rec.expected, rec.observed), (25, 25))

    def test_full_throughput(self):
        chk = Checker()
        chk.reset()
        drive(chk, CounterVectors(), 256)
        chk.drain()
        scheduled = [r for r in chk.log if not r.held]
        self.assertEqual(len(scheduled), 256)
        ticks = [r.tick for r in scheduled]
        self.assertEqual(ticks, list(range(ticks[0], ticks[0] + 256)))

    def test_held_vectors_are_checked(self):
        chk = Checker()
        chk.reset()
        chk.schedule(4, 3)
        for _ in range(10):
            chk.step()
        self.assertEqual(len(chk.log), 10 - PIPELINE_LATENCY)
        self.assertFalse(chk.log[0].held)
        self.assertTrue(all(r.held for r in chk.log[1:]))
        self.assertTrue(all(r.observed == 12 for r in chk.log))

    def test_drain_stops_after_last_scheduled(self):
        chk = Checker()
        chk.reset()
        chk.schedule(2, 2)
        chk.step()
        self.assertEqual(chk.drain(), PIPELINE_LATENCY)
        self.assertEqual(chk.summary()["checked"], 1)
        self.assertEqual(chk.drain(), 0)

    def test_reset_flushes_in_flight(self):
        chk = Checker()
        chk.reset()
        chk.schedule(9, 9)
        chk.step()
        chk.step()
        self.assertEqual(chk.in_flight, 2)
        chk.reset(1)
        self.assertEqual(chk.in_flight, 0)
        chk.schedule(1, 1)
        chk.step()
        chk.drain()
        self.assertTrue(all(r.passed for r in chk.log))
        self.assertNotIn((9, 9), [(r.a, r.b) for r in chk.log])

    def test_reset_hold_too_short(self):
        chk = Checker()
        with self.assertRaises(ValueError):
            chk.reset(0)


class TestDirectEngineTicks(unittest.TestCase):
    """Ticks that reach the engine without going through the checker."""

    def test_direct_reset_flushes_in_flight(self):
        chk = Checker()
        chk.reset(2)
        chk.schedule(3, 2)
        chk.step()                          # tick 2, due 5
        chk.engine.tick(0, 0, reset=True)   # tick 3
        for _ in range(3):
            chk.step()                      # ticks 4..6, nothing due
        self.assertEqual(chk.log, [])
        self.assertEqual(chk.in_flight, 3)
        chk.step()                          # tick 7 checks the tick-4 vector
        self.assertEqual(len(chk.log), 1)
        rec = chk.log[0]
        self.assertTrue(rec.held)
        self.assertEqual((rec.tick, rec.expected, rec.observed), (7, 6, 6))

    def test_overdue_vector_dropped_not_failed(self):
        chk = Checker()
        chk.reset(2)
        chk.schedule(3, 2)
        chk.step()                          # tick 2, due 5
        for _ in range(3):
            chk.engine.tick(5, 5)           # ticks 3..5
        chk.step()                          # tick 6, P comes from tick 3
        self.assertEqual(chk.log, [])
        self.assertEqual(chk.summary()["unobserved"], 1)
        for _ in range(3):
            chk.step()
        self.assertEqual(len(chk.log), 1)
        self.assertTrue(chk.log[0].passed)
        self.assertEqual(chk.log[0].tick, 9)

    def test_direct_ticks_within_latency_still_checked(self):
        chk = Checker()
        chk.reset(2)
        chk.schedule(4, 4)
        chk.step()                          # tick 2, due 5
        chk.engine.tick(1, 1)               # tick 3
        chk.step()
        chk.step()                          # tick 5
        self.assertEqual(len(chk.log), 1)
        rec = chk.log[0]
        self.assertEqual((rec.tick, rec.expected, rec.observed), (5, 16, 16))
        self.assertEqual(chk.summary()["unobserved"], 0)

    def test_drain_after_direct_ticks(self):
        chk = Checker()
        chk.reset()
        chk.schedule(9, 9)
        chk.step()
        chk.engine.tick(0, 0, reset=True)
        self.assertEqual(chk.drain(), 0)
        self.assertEqual(chk.in_flight, 0)

        chk.schedule(2, 2)
        chk.step()
        chk.engine.idle(5)
        self.assertEqual(chk.drain(), 0)
        self.assertEqual(chk.summary()["unobserved"], 1)
        self.assertEqual(chk.log, [])


class TestMismatch(unittest.TestCase):
    def test_mismatch_raised_and_logged(self):
        chk = Checker(BrokenEngine(bad_tick=5))
        chk.reset(2)
        chk.schedule(3, 3)       # tick 2, due tick 5
        chk.step()
        chk.step()
        chk.step()
        with self.assertRaises(MismatchError) as cm:
            chk.step()
        e = cm.exception
        self.assertEqual((e.tick, e.a, e.b, e.expected, e.observed), (5, 3, 3, 9, 10))
        self.assertIsInstance(e, PipelineError)
        self.assertIn("tick 5", str(e))
        self.assertFalse(chk.log[-1].passed)
        self.assertEqual(chk.summary()["failed"], 1)

    def test_mismatch_not_retried(self):
        chk = Checker(BrokenEngine(bad_tick=4))
        chk.reset(1)
        chk.schedule(2, 7)
        with self.assertRaises(MismatchError):
            for _ in range(5):
                chk.step()
        self.assertEqual(sum(1 for r in chk.log if not r.passed), 1)


class TestLog(unittest.TestCase):
    def test_summary(self):
        chk = Checker()
        chk.reset()
        drive(chk, CounterVectors(), 20)
        chk.drain()
        s = chk.summary()
        self.assertEqual(s["checked"], 20)
        self.assertEqual(s["passed"], 20)
        self.assertEqual(s["failed"], 0)
        self.assertEqual(s["ticks"], 2 + 20 + PIPELINE_LATENCY)

    def test_write_and_read_jsonl(self):
        chk = Checker()
        chk.reset()
        for a, b in SCENARIO_VECTORS:
            chk.schedule(a, b)
            chk.step()
        chk.drain()
        with tempfile.NamedTemporaryFile(suffix=".jsonl", delete=False) as f:
            path = f.name
        try:
            chk.write_log(path)
            back = read_log(path)
        finally:
            os.unlink(path)
        self.assertEqual(back, chk.log)
        self.assertIsInstance(back[0], VerificationRecord)


if __name__ == "__main__":
    unittest.main()
