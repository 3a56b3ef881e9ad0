"""
Clocked Simulation Engine
==========================
Drives discrete clock ticks over a PipelineDatapath:
  - one ``tick()`` call = one clock cycle
  - reset hold / release protocol
  - optional per-tick trace for waveform inspection (waveform.py)

The engine keeps no pipeline state of its own; everything lives in the
datapath's register file.
"""

from __future__ import annotations
import threading
from collections import deque
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

import numpy as np

from datapath import PipelineDatapath, RegisterFile, REG_NAMES

# ---------------------------------------------------------------------------
#  Reset protocol
# ---------------------------------------------------------------------------

RESET_HOLD_TICKS = 2   # conventional hold used by the checker
MIN_RESET_TICKS  = 1   # shortest hold that guarantees a clean start

TRACE_COLUMNS = ("tick", "a", "b", "reset") + REG_NAMES


# ---------------------------------------------------------------------------
#  Trace
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TraceRecord:
    """Inputs applied at a tick and the registers committed by it."""

    tick: int
    a: int
    b: int
    reset: bool
    regs: RegisterFile
    observed: int

    def as_row(self) -> tuple[int, ...]:
        return (self.tick, self.a, self.b, int(self.reset)) + self.regs.as_tuple()


class Trace:
    """Ordered per-tick snapshots.  Bounded when *depth* is given.

    Appends come from the simulating thread; the waveform viewer reads
    from its own thread, so both sides go through the lock.
    """

    def __init__(self, depth: Optional[int] = None):
        self.depth = depth
        self._records: deque[TraceRecord] = deque(maxlen=depth)
        self._lock = threading.Lock()

    def append(self, rec: TraceRecord):
        with self._lock:
            self._records.append(rec)

    def clear(self):
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __iter__(self):
        return iter(self.records())

    def __getitem__(self, idx: int) -> TraceRecord:
        with self._lock:
            return self._records[idx]

    def records(self) -> list[TraceRecord]:
        with self._lock:
            return list(self._records)

    def column(self, name: str) -> list[int]:
        idx = TRACE_COLUMNS.index(name)
        return [rec.as_row()[idx] for rec in self.records()]

    def to_array(self) -> np.ndarray:
        """Trace as an (n_ticks, len(TRACE_COLUMNS)) int64 matrix."""
        records = self.records()
        if not records:
            return np.zeros((0, len(TRACE_COLUMNS)), dtype=np.int64)
        return np.array([rec.as_row() for rec in records], dtype=np.int64)

    def register_array(self) -> np.ndarray:
        """Register columns only, as uint8 (every field fits 8 bits)."""
        return self.to_array()[:, 4:].astype(np.uint8)


# ---------------------------------------------------------------------------
#  Engine
# ---------------------------------------------------------------------------

class ClockedSimulationEngine:
    """Owns one datapath and advances it one tick at a time."""

    def __init__(self, trace: bool = False, trace_depth: Optional[int] = None):
        self.datapath = PipelineDatapath()
        self.cycle: int = 0            # index of the next tick
        self.trace: Optional[Trace] = Trace(trace_depth) if trace else None

        # Reset bookkeeping
        self.in_reset: bool = False
        self.reset_run: int = 0        # consecutive reset ticks so far
        self.last_reset_tick: Optional[int] = None
        self._initialized: bool = False

        # Callbacks
        self.on_tick: Optional[Callable[[TraceRecord], None]] = None

    # -- Property shortcuts --

    @property
    def registers(self) -> RegisterFile:
        return self.datapath.registers

    @property
    def initialized(self) -> bool:
        """True once reset has been held a full tick and released."""
        return self._initialized

    # -- Execution --

    def tick(self, a: int, b: int, reset: bool = False) -> int:
        """Run one clock cycle.  Returns the observed P for this tick."""
        observed = self.datapath.advance(a, b, reset)

        if reset:
            self.reset_run += 1
            self.last_reset_tick = self.cycle
            self.in_reset = True
        else:
            if self.in_reset and self.reset_run >= MIN_RESET_TICKS:
                self._initialized = True
            self.in_reset = False
            self.reset_run = 0

        if self.trace is not None or self.on_tick is not None:
            rec = TraceRecord(self.cycle, a, b, bool(reset),
                              self.datapath.registers, observed)
            if self.trace is not None:
                self.trace.append(rec)
            if self.on_tick is not None:
                self.on_tick(rec)

        self.cycle += 1
        return observed

    def hold_reset(self, ticks: int = RESET_HOLD_TICKS,
                   a: int = 0, b: int = 0) -> list[int]:
        """Assert reset for *ticks* full cycles.  Release happens on the
        next ordinary ``tick()``."""
        if ticks < MIN_RESET_TICKS:
            raise ValueError(f"reset must be held for at least "
                             f"{MIN_RESET_TICKS} tick(s), got {ticks}")
        return [self.tick(a, b, reset=True) for _ in range(ticks)]

    def run(self, vectors: Iterable[tuple[int, int]]) -> list[int]:
        """Tick once per (A, B) pair with reset released."""
        return [self.tick(a, b) for a, b in vectors]

    def idle(self, ticks: int, a: int = 0, b: int = 0) -> list[int]:
        """Tick *ticks* times with constant inputs."""
        return [self.tick(a, b) for _ in range(ticks)]

    # -- Debug / introspection --

    def dump_state(self) -> str:
        lines = ["=== Pipeline Registers ===",
                 self.datapath.dump_regs(),
                 f"  Tick: {self.cycle}  Reset: {'asserted' if self.in_reset else 'released'}"
                 f"  Initialized: {self._initialized}"]
        if self.trace is not None:
            lines.append(f"  Trace: {len(self.trace)} record(s)"
                         + (f" (depth {self.trace.depth})" if self.trace.depth else ""))
        return "\n".join(lines)
