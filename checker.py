"""
Stimulus Driver / Checker
==========================
Schedules operand vectors against a ClockedSimulationEngine and checks
each observed P against the un-pipelined product, PIPELINE_LATENCY ticks
after the vector was applied.

There is no valid signal in the datapath, so every tick captures
whatever is on A/B.  Ticks without a newly scheduled vector re-apply the
last held one and are checked the same way.

The engine may also be ticked directly (the monitor's raw `tick`
command does this).  Before each step the checker catches up: a reset
tick anywhere in that gap flushes everything in flight, and vectors
whose due tick went by unobserved are dropped and counted.

Usage:
    from checker import Checker
    chk = Checker()
    chk.reset()
    for a, b in [(3, 2), (7, 4)]:
        chk.schedule(a, b)
        chk.step()
    chk.drain()
"""

from __future__ import annotations
import json
from collections import deque
from dataclasses import dataclass, asdict
from typing import Optional

from datapath import PipelineError, PIPELINE_LATENCY, check_operand, multiply
from engine import ClockedSimulationEngine, RESET_HOLD_TICKS


class MismatchError(PipelineError):
    """Observed P diverged from the golden product."""

    def __init__(self, tick: int, a: int, b: int, expected: int, observed: int):
        self.tick = tick
        self.a = a
        self.b = b
        self.expected = expected
        self.observed = observed
        super().__init__(f"tick {tick}: {a}*{b} expected P={expected}, "
                         f"observed P={observed}")


# ---------------------------------------------------------------------------
#  Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Vector:
    """An (A, B) pair applied at a given tick."""

    tick: int
    a: int
    b: int
    held: bool = False

    @property
    def due(self) -> int:
        return self.tick + PIPELINE_LATENCY

    @property
    def expected(self) -> int:
        return multiply(self.a, self.b)


@dataclass(frozen=True)
class VerificationRecord:
    tick: int           # tick at which P was sampled
    a: int
    b: int
    expected: int
    observed: int
    passed: bool
    held: bool = False

    def to_json(self) -> str:
        return json.dumps(asdict(self), sort_keys=True)


# ---------------------------------------------------------------------------
#  Checker
# ---------------------------------------------------------------------------

class Checker:
    """Drives an engine and verifies its outputs tick by tick."""

    def __init__(self, engine: Optional[ClockedSimulationEngine] = None):
        self.engine = engine if engine is not None else ClockedSimulationEngine()
        self.log: list[VerificationRecord] = []
        self.outputs: list[int] = []         # observed P, one per step()
        self._in_flight: deque[Vector] = deque()
        self._scheduled: Optional[tuple[int, int]] = None
        self._held: tuple[int, int] = (0, 0)
        self._synced = self.engine.cycle     # first tick not seen by step()
        self.unobserved = 0

    # -- Scheduling --

    @property
    def tick(self) -> int:
        """Index of the tick the next ``step()`` will run."""
        return self.engine.cycle

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    @property
    def held(self) -> tuple[int, int]:
        return self._held

    def schedule(self, a: int, b: int) -> int:
        """Apply (A, B) at the current tick.  Returns the tick at which
        the product is expected on P."""
        check_operand("A", a)
        check_operand("B", b)
        self._scheduled = (a, b)
        return self.tick + PIPELINE_LATENCY

    # -- Execution --

    def reset(self, ticks: int = RESET_HOLD_TICKS):
        """Hold reset for *ticks* cycles.  Everything in flight is lost."""
        self.outputs.extend(self.engine.hold_reset(ticks, *self._held))
        self._in_flight.clear()
        self._synced = self.engine.cycle

    def _sync(self):
        """Account for ticks that reached the engine outside step()."""
        now = self.engine.cycle
        if now == self._synced:
            return
        last_reset = self.engine.last_reset_tick
        if last_reset is not None and last_reset >= self._synced:
            self._in_flight.clear()
        while self._in_flight and self._in_flight[0].due < now:
            self._in_flight.popleft()
            self.unobserved += 1
        self._synced = now

    def step(self) -> int:
        """Advance one tick and check any vector that is now due."""
        held = self._scheduled is None
        if not held:
            self._held = self._scheduled
            self._scheduled = None
        a, b = self._held

        self._sync()
        vec = Vector(self.tick, a, b, held=held)
        observed = self.engine.tick(a, b)
        self.outputs.append(observed)
        self._in_flight.append(vec)
        self._synced = self.engine.cycle

        while self._in_flight and self._in_flight[0].due == vec.tick:
            self._check(self._in_flight.popleft(), vec.tick, observed)
        return observed

    def drain(self) -> int:
        """Step with held inputs until every scheduled vector is checked.
        Returns the number of ticks run."""
        self._sync()
        n = 0
        while self._in_flight and any(not v.held for v in self._in_flight):
            self.step()
            n += 1
        return n

    def _check(self, vec: Vector, tick: int, observed: int):
        expected = vec.expected
        rec = VerificationRecord(tick, vec.a, vec.b, expected, observed,
                                 observed == expected, vec.held)
        self.log.append(rec)
        if not rec.passed:
            raise MismatchError(tick, vec.a, vec.b, expected, observed)

    # -- Reporting --

    def summary(self) -> dict[str, int]:
        passed = sum(1 for rec in self.log if rec.passed)
        return {
            "ticks": self.tick,
            "checked": len(self.log),
            "passed": passed,
            "failed": len(self.log) - passed,
            "in_flight": self.in_flight,
            "unobserved": self.unobserved,
        }

    def write_log(self, path: str):
        """Write the verification log as JSON Lines."""
        with open(path, "w") as f:
            for rec in self.log:
                f.write(rec.to_json() + "\n")


def read_log(path: str) -> list[VerificationRecord]:
    records = []
    with open(path) as f:
        for line in f:
            line = line.strip()
            if line:
                records.append(VerificationRecord(**json.loads(line)))
    return records
