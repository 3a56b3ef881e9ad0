"""
Pipeline Waveform Export & Viewer
==================================
Turns an engine Trace into something a human can look at:

  write_vcd()        Value Change Dump, opens in GTKWave
  render_ascii()     fixed-width table, one row per tick
  WaveformDisplay    live pygame window, runs in a background thread
  HeadlessWaveform   no-op stand-in for tests, keeps text snapshots

Usage (programmatic):
    from waveform import WaveformDisplay
    disp = WaveformDisplay(engine)
    disp.start()        # launches background thread
    ...                 # tick the engine normally
    disp.stop()         # clean shutdown

Usage (CLI):
    python cli.py --scenario --vcd scenario.vcd
    python cli.py --random 500 --display
"""

from __future__ import annotations

import threading
import time
from typing import IO, TYPE_CHECKING, Optional, Union

from datapath import REG_WIDTHS, RESET_STATE, OPERAND_BITS

if TYPE_CHECKING:
    from engine import ClockedSimulationEngine, Trace

VCD_TIMESCALE = "1ns"
VCD_SCOPE = "pipelined_mult"
DEFAULT_PERIOD = 10        # time units per tick

# (name, width) in dump order; clk and rst_n are synthesized
VCD_SIGNALS = [("clk", 1), ("rst_n", 1),
               ("A", OPERAND_BITS), ("B", OPERAND_BITS)] + list(REG_WIDTHS.items())

# Viewer defaults
VIEW_TICKS = 32            # ticks visible in the window
LANE_HEIGHT = 34           # pixels per signal lane
LABEL_WIDTH = 70           # pixels for the signal name column


# ── VCD ───────────────────────────────────────────────────────────────

def _vcd_ids(n: int) -> list[str]:
    """Short printable identifier codes, '!' upward."""
    return [chr(33 + i) for i in range(n)]


def _vcd_value(value, width: int, ident: str) -> str:
    if value is None:
        return f"x{ident}" if width == 1 else f"bx {ident}"
    if width == 1:
        return f"{value & 1}{ident}"
    return f"b{value:b} {ident}"


def _vcd_name(name: str) -> str:
    return "P" if name == "p" else name


def write_vcd(trace: "Trace", out: Union[str, IO[str]],
              period: int = DEFAULT_PERIOD,
              timescale: str = VCD_TIMESCALE,
              scope: str = VCD_SCOPE) -> int:
    """Dump *trace* as VCD to a path or open text file.

    Tick t spans [t*period, (t+1)*period).  Inputs change at the start of
    the tick and the clock rises at mid-tick, where the registers take
    the values committed by that tick.  Returns the number of ticks
    written.
    """
    if period < 2 or period % 2:
        raise ValueError(f"period must be an even number >= 2, got {period}")

    if isinstance(out, str):
        with open(out, "w") as f:
            return write_vcd(trace, f, period, timescale, scope)

    records = trace.records()
    ids = dict(zip((name for name, _ in VCD_SIGNALS), _vcd_ids(len(VCD_SIGNALS))))
    widths = dict(VCD_SIGNALS)

    out.write("$version pipemul waveform dump $end\n")
    out.write(f"$timescale {timescale} $end\n")
    out.write(f"$scope module {scope} $end\n")
    for name, width in VCD_SIGNALS:
        rng = f" [{width - 1}:0]" if width > 1 else ""
        out.write(f"$var wire {width} {ids[name]} {_vcd_name(name)}{rng} $end\n")
    out.write("$upscope $end\n$enddefinitions $end\n")

    if not records:
        return 0

    # Registers before the first record are known only for a fresh engine
    first = records[0]
    pre = RESET_STATE.as_dict() if first.tick == 0 else dict.fromkeys(REG_WIDTHS)
    last = {"clk": 0, "rst_n": 0 if first.reset else 1,
            "A": first.a, "B": first.b, **pre}

    out.write("#0\n$dumpvars\n")
    for name, width in VCD_SIGNALS:
        out.write(_vcd_value(last[name], width, ids[name]) + "\n")
    out.write("$end\n")

    half = period // 2

    def emit(changes: dict):
        for name, value in changes.items():
            if last.get(name) != value:
                last[name] = value
                out.write(_vcd_value(value, widths[name], ids[name]) + "\n")

    for i, rec in enumerate(records):
        t0 = rec.tick * period
        if i:
            out.write(f"#{t0}\n")
            emit({"clk": 0, "rst_n": 0 if rec.reset else 1,
                  "A": rec.a, "B": rec.b})
        out.write(f"#{t0 + half}\n")
        emit({"clk": 1, **rec.regs.as_dict()})

    out.write(f"#{(records[-1].tick + 1) * period}\n")
    emit({"clk": 0})
    return len(records)


# ── ASCII table ───────────────────────────────────────────────────────

ASCII_COLUMNS = [("tick", 5), ("rst", 3), ("A", 3), ("B", 3),
                 ("pp0", 3), ("pp1", 3), ("pp2", 3), ("pp3", 3),
                 ("s1_a", 4), ("s1_b", 4), ("P", 4), ("out", 4)]


def render_ascii(trace: "Trace", last: Optional[int] = None) -> str:
    """One row per tick: inputs, committed registers, observed output."""
    records = trace.records()
    if last is not None:
        records = records[-last:] if last > 0 else []
    header = " ".join(f"{name:>{w}}" for name, w in ASCII_COLUMNS)
    lines = [header, "-" * len(header)]
    for rec in records:
        r = rec.regs
        vals = [rec.tick, "R" if rec.reset else ".", rec.a, rec.b,
                r.pp0, r.pp1, r.pp2, r.pp3, r.s1_a, r.s1_b, r.p, rec.observed]
        lines.append(" ".join(f"{v:>{w}}" for v, (_, w) in zip(vals, ASCII_COLUMNS)))
    return "\n".join(lines)


# ── Live viewer ───────────────────────────────────────────────────────

class WaveformDisplay:
    """Background-threaded pygame view of the most recent ticks."""

    LANES = ["rst_n", "A", "B", "pp0", "pp1", "pp2", "pp3", "s1_a", "s1_b", "P"]

    def __init__(self, engine: "ClockedSimulationEngine", scale: int = 1,
                 title: str = "pipemul", view_ticks: int = VIEW_TICKS):
        if engine.trace is None:
            raise ValueError("engine was created without trace=True")
        self.engine = engine
        self.scale = max(1, scale)
        self.title = title
        self.view_ticks = view_ticks
        self.fps = 30
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._started = threading.Event()

    # -- public API -------------------------------------------------------

    def start(self):
        """Start the display thread.  Returns once the window is open."""
        self._stop_event.clear()
        self._started.clear()
        self._thread = threading.Thread(target=self._run, daemon=True,
                                        name="pipemul-waveform")
        self._thread.start()
        self._started.wait(timeout=5.0)

    def stop(self):
        """Signal the display thread to shut down and wait for it."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=3.0)
            self._thread = None

    def wait(self):
        """Block until the user closes the window."""
        while self.running:
            time.sleep(0.1)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -- internals --------------------------------------------------------

    def lane_values(self):
        """(ticks, {lane: values}, {lane: change columns}) for the visible window."""
        import numpy as np

        arr = self.engine.trace.to_array()[-self.view_ticks:]
        ticks = arr[:, 0]
        lanes = {
            "rst_n": 1 - arr[:, 3],
            "A": arr[:, 1],
            "B": arr[:, 2],
        }
        for i, name in enumerate(REG_WIDTHS):
            lanes[_vcd_name(name)] = arr[:, 4 + i]
        # Columns where a bus changes value; the first tick always starts one
        edges = {name: np.flatnonzero(np.diff(v, prepend=-1)) for name, v in lanes.items()}
        return ticks, lanes, edges

    def _run(self):
        """Main display loop (runs in background thread)."""
        import pygame

        pygame.init()
        pygame.display.set_caption(self.title)
        font = pygame.font.SysFont("monospace", 12 * self.scale)

        col_w = 28 * self.scale
        lane_h = LANE_HEIGHT * self.scale
        win_w = LABEL_WIDTH * self.scale + col_w * self.view_ticks
        win_h = lane_h * (len(self.LANES) + 1)
        screen = pygame.display.set_mode((win_w, win_h))
        clock = pygame.time.Clock()

        self._started.set()

        try:
            while not self._stop_event.is_set():
                for event in pygame.event.get():
                    if event.type == pygame.QUIT:
                        self._stop_event.set()
                        return
                    elif event.type == pygame.KEYDOWN and event.key == pygame.K_ESCAPE:
                        self._stop_event.set()
                        return

                screen.fill((24, 24, 32))
                self._draw(pygame, screen, font, col_w, lane_h)
                pygame.display.flip()
                clock.tick(self.fps)
        except Exception as e:
            print(f"\n[display] error: {e}")
        finally:
            pygame.quit()

    def _draw(self, pygame, screen, font, col_w: int, lane_h: int):
        ticks, lanes, edges = self.lane_values()
        x0 = LABEL_WIDTH * self.scale
        fg = (200, 220, 200)
        dim = (90, 90, 110)

        # Tick ruler
        for col, t in enumerate(ticks):
            label = font.render(str(int(t)), True, dim)
            screen.blit(label, (x0 + col * col_w + 2, 4))

        for row, name in enumerate(self.LANES):
            y = lane_h * (row + 1)
            screen.blit(font.render(name, True, fg), (6, y + lane_h // 3))
            values = lanes[name]
            hi, lo = y + 6, y + lane_h - 6
            if name == "rst_n":
                for col, v in enumerate(values):
                    yy = hi if v else lo
                    pygame.draw.line(screen, fg, (x0 + col * col_w, yy),
                                     (x0 + (col + 1) * col_w, yy))
                    if col and values[col - 1] != v:
                        pygame.draw.line(screen, fg, (x0 + col * col_w, hi),
                                         (x0 + col * col_w, lo))
                continue
            # Bus lane: outline plus value label at every change
            pygame.draw.line(screen, fg, (x0, hi), (x0 + len(values) * col_w, hi))
            pygame.draw.line(screen, fg, (x0, lo), (x0 + len(values) * col_w, lo))
            for col in edges[name]:
                x = x0 + int(col) * col_w
                pygame.draw.line(screen, fg, (x, hi), (x, lo))
                text = font.render(str(int(values[col])), True, (240, 240, 160))
                screen.blit(text, (x + 3, y + lane_h // 3))


class HeadlessWaveform:
    """No-op viewer for testing.  Keeps ASCII snapshots of the trace."""

    def __init__(self, engine: "ClockedSimulationEngine", view_ticks: int = VIEW_TICKS):
        if engine.trace is None:
            raise ValueError("engine was created without trace=True")
        self.engine = engine
        self.view_ticks = view_ticks
        self.snapshots: list[str] = []

    def start(self):
        pass

    def stop(self):
        pass

    def wait(self):
        pass

    def snapshot(self) -> str:
        text = render_ascii(self.engine.trace, last=self.view_ticks)
        self.snapshots.append(text)
        return text

    @property
    def running(self) -> bool:
        return False
