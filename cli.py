#!/usr/bin/env python3
"""
Pipelined Multiplier Monitor / CLI
===================================
Command-line front end for the 3-stage 4x4 multiplier simulator.

Provides:
  - Batch verification runs (literal scenario, exhaustive, random, replay)
  - Waveform export (VCD, ASCII table) and an optional live viewer
  - Verification log export (JSON Lines)
  - RTL / SDC emission and hand-off to an external backend tool
  - An interactive monitor for ticking the pipeline by hand

Usage:
  python cli.py --scenario [--vcd FILE] [--log FILE] [--trace]
  python cli.py --exhaustive
  python cli.py --random N [--seed S]
  python cli.py --vectors FILE.csv|FILE.vec
  python cli.py --emit-rtl DIR [--clock-period NS] [--backend CMD]
  python cli.py                      # interactive monitor
"""

from __future__ import annotations
import argparse
import cmd
import os
import shlex
import sys
from typing import Optional

from datapath import PipelineError
from engine import ClockedSimulationEngine, RESET_HOLD_TICKS
from checker import Checker, MismatchError
from stimulus import (
    CounterVectors, RandomVectors, NUM_PAIRS, SCENARIO_EXPECTED,
    SCENARIO_VECTORS, drive, open_vector_file, scenario_source,
)
from waveform import render_ascii, write_vcd
from rtl import BackendRunner, DEFAULT_CLOCK_PERIOD_NS, write_design

DEFAULT_SEED = 42
DEFAULT_BACKEND = os.environ.get("PIPEMUL_BACKEND")


# ---------------------------------------------------------------------------
#  Interactive monitor
# ---------------------------------------------------------------------------

class PipemulCLI(cmd.Cmd):
    """Interactive monitor for the pipelined multiplier."""

    intro = (
        "\n"
        "Pipelined 4x4 Multiplier Monitor\n"
        "  Type 'help' for commands.  'quit' to exit.\n"
    )
    prompt = "MUL> "

    def __init__(self, checker: Optional[Checker] = None, stdout=None):
        super().__init__(stdout=stdout)
        self.chk = checker if checker is not None else Checker(
            ClockedSimulationEngine(trace=True))

    @property
    def engine(self) -> ClockedSimulationEngine:
        return self.chk.engine

    def _print(self, text: str = ""):
        self.stdout.write(text + "\n")

    def _parse_ints(self, arg: str) -> list[int]:
        return [int(s, 0) for s in shlex.split(arg)]

    # ================================================================
    #  Commands
    # ================================================================

    # -- Raw engine access --

    def do_tick(self, arg):
        """Tick the engine directly: tick <A> <B> [reset]
        Bypasses the checker; nothing is verified."""
        parts = shlex.split(arg)
        if len(parts) < 2:
            self._print("Usage: tick <A> <B> [reset]")
            return
        try:
            a, b = int(parts[0], 0), int(parts[1], 0)
            reset = len(parts) > 2 and parts[2].lower() in ("1", "reset", "r")
            p = self.engine.tick(a, b, reset)
        except (ValueError, PipelineError) as e:
            self._print(f"Error: {e}")
            return
        self._print(f"  tick {self.engine.cycle - 1}: A={a} B={b}"
                    f"{' RESET' if reset else ''}  P={p}")

    # -- Checked operation --

    def do_reset(self, arg):
        """Hold reset: reset [ticks]   (default 2)"""
        try:
            ticks = self._parse_ints(arg)[0] if arg.strip() else RESET_HOLD_TICKS
            self.chk.reset(ticks)
        except ValueError as e:
            self._print(f"Error: {e}")
            return
        self._print(f"Reset held for {ticks} tick(s).")

    def do_schedule(self, arg):
        """Schedule a vector for the next step: schedule <A> <B>"""
        try:
            a, b = self._parse_ints(arg)
            due = self.chk.schedule(a, b)
        except (ValueError, PipelineError) as e:
            self._print(f"Error: {e}")
            return
        self._print(f"  {a}*{b} scheduled at tick {self.chk.tick}, expected at tick {due}")

    def do_step(self, arg):
        """Step N ticks with the scheduled or held vector: step [count]"""
        try:
            count = self._parse_ints(arg)[0] if arg.strip() else 1
        except ValueError as e:
            self._print(f"Error: {e}")
            return
        for _ in range(count):
            tick = self.chk.tick
            try:
                p = self.chk.step()
            except MismatchError as e:
                self._print(f"MISMATCH: {e}")
                return
            a, b = self.chk.held
            self._print(f"  tick {tick}: A={a} B={b}  P={p}")

    def do_drain(self, arg):
        """Step until every scheduled vector has been checked."""
        try:
            n = self.chk.drain()
        except MismatchError as e:
            self._print(f"MISMATCH: {e}")
            return
        self._print(f"Drained in {n} tick(s).")

    # -- Inspection --

    def do_regs(self, arg):
        """Show pipeline registers."""
        self._print(self.engine.datapath.dump_regs())

    def do_status(self, arg):
        """Show engine and checker status."""
        self._print(self.engine.dump_state())
        s = self.chk.summary()
        self._print(f"  Checked: {s['checked']}  passed={s['passed']} "
                    f"failed={s['failed']}  in flight={s['in_flight']}  "
                    f"unobserved={s['unobserved']}")

    def do_trace(self, arg):
        """Show the last N traced ticks: trace [count]   (default 16)"""
        if self.engine.trace is None:
            self._print("Tracing is off.")
            return
        try:
            n = self._parse_ints(arg)[0] if arg.strip() else 16
        except ValueError as e:
            self._print(f"Error: {e}")
            return
        self._print(render_ascii(self.engine.trace, last=n))

    def do_vcd(self, arg):
        """Write the trace as VCD: vcd <file>"""
        parts = shlex.split(arg)
        if not parts:
            self._print("Usage: vcd <file>")
            return
        if self.engine.trace is None:
            self._print("Tracing is off.")
            return
        try:
            n = write_vcd(self.engine.trace, parts[0])
        except OSError as e:
            self._print(f"Error: {e}")
            return
        self._print(f"Wrote {n} tick(s) to '{parts[0]}'")

    def do_log(self, arg):
        """Show the verification log, or write it: log [file]"""
        parts = shlex.split(arg)
        if parts:
            try:
                self.chk.write_log(parts[0])
            except OSError as e:
                self._print(f"Error: {e}")
                return
            self._print(f"Wrote {len(self.chk.log)} record(s) to '{parts[0]}'")
            return
        for rec in self.chk.log[-20:]:
            mark = "ok " if rec.passed else "BAD"
            self._print(f"  {mark} tick {rec.tick:>5d}: {rec.a:>2d}*{rec.b:<2d} "
                        f"expected={rec.expected:>3d} observed={rec.observed:>3d}"
                        f"{'  (held)' if rec.held else ''}")

    def do_quit(self, arg):
        """Exit the monitor."""
        self._print("Goodbye.")
        return True

    do_exit = do_quit

    def do_EOF(self, arg):
        self._print()
        return True

    def emptyline(self):
        pass


# ---------------------------------------------------------------------------
#  Batch mode
# ---------------------------------------------------------------------------

def _scenario_report(chk: Checker, reset_ticks: int) -> bool:
    """Print P at ticks 4..8 after reset and compare with the expected list."""
    start = reset_ticks + 3
    seen = chk.outputs[start:start + len(SCENARIO_EXPECTED)]
    ok = seen == SCENARIO_EXPECTED
    print(f"[check] scenario P at ticks 4-8: {seen} "
          f"({'matches' if ok else 'expected ' + str(SCENARIO_EXPECTED)})")
    return ok


def run_batch(args) -> int:
    """Run the selected verification mode.  Returns the exit status."""
    want_trace = bool(args.trace or args.vcd or args.display)
    engine = ClockedSimulationEngine(trace=want_trace)
    chk = Checker(engine)

    display = None
    if args.display:
        try:
            import pygame  # noqa: F401
            from waveform import WaveformDisplay
            display = WaveformDisplay(engine)
            display.start()
            print("[display] waveform window opened")
        except ImportError as e:
            print(f"[display] pygame not available: {e}", file=sys.stderr)
            print("[display] Install with: pip install pygame", file=sys.stderr)

    rc = 0
    try:
        chk.reset(args.reset_ticks)
        if args.scenario:
            drive(chk, scenario_source(), len(SCENARIO_VECTORS))
        elif args.exhaustive:
            drive(chk, CounterVectors(), NUM_PAIRS)
        elif args.random is not None:
            drive(chk, RandomVectors(seed=args.seed), args.random)
        elif args.vectors:
            src = open_vector_file(args.vectors)
            drive(chk, src, len(src.vectors))
        chk.drain()
        if args.scenario and not _scenario_report(chk, args.reset_ticks):
            rc = 1
    except MismatchError as e:
        print(f"[check] MISMATCH: {e}", file=sys.stderr)
        rc = 1
    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        rc = 1

    s = chk.summary()
    print(f"[check] {s['checked']} checked, {s['passed']} passed, "
          f"{s['failed']} failed over {s['ticks']} ticks")

    try:
        if args.log:
            chk.write_log(args.log)
            print(f"[check] log written to '{args.log}'")
        if args.vcd:
            n = write_vcd(engine.trace, args.vcd)
            print(f"[vcd] {n} tick(s) written to '{args.vcd}'")
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        rc = 1
    if args.trace:
        print(render_ascii(engine.trace))

    if display is not None:
        print("[display] close the window to exit")
        display.wait()
        display.stop()
    return rc


def run_backend(args) -> int:
    if args.backend:
        runner = BackendRunner(args.backend, args.emit_rtl,
                               clock_period_ns=args.clock_period)
        result = runner.run()
        print(f"[backend] '{' '.join(result.command)}' exited with {result.rc}")
        if result.stdout_tail:
            print(result.stdout_tail)
        if result.stderr_tail:
            print(result.stderr_tail, file=sys.stderr)
        for name in result.reports:
            print(f"[backend] report: {name}")
        return 0 if result.ok else 1

    v_path, sdc_path = write_design(args.emit_rtl, clock_period_ns=args.clock_period)
    print(f"[rtl] wrote {v_path} and {sdc_path}")
    return 0


# ---------------------------------------------------------------------------
#  Main
# ---------------------------------------------------------------------------

def integer(text: str) -> int:
    """argparse type: decimal, 0x hex or 0b binary."""
    return int(text, 0)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Pipelined 4x4 Multiplier Simulator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  python cli.py --scenario --trace\n"
               "  python cli.py --exhaustive --log check.jsonl\n"
               "  python cli.py --random 10000 --seed 7 --vcd run.vcd\n"
               "  python cli.py --emit-rtl build/ --clock-period 5\n"
               "  python cli.py --emit-rtl build/ --backend 'openroad -exit flow.tcl'\n"
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--scenario", action="store_true",
                      help="Run the reference end-to-end scenario")
    mode.add_argument("--exhaustive", action="store_true",
                      help="Check all 256 operand pairs back-to-back")
    mode.add_argument("--random", type=int, default=None, metavar="N",
                      help="Check N pseudo-random vectors")
    mode.add_argument("--vectors", type=str, default=None, metavar="FILE",
                      help="Replay vectors from a .csv or binary .vec file")
    # A string default goes through integer(), so a bad PIPEMUL_SEED is
    # reported by argparse like a bad --seed
    parser.add_argument("--seed", type=integer,
                        default=os.environ.get("PIPEMUL_SEED", str(DEFAULT_SEED)),
                        help=f"Random seed (default: {DEFAULT_SEED}, env PIPEMUL_SEED)")
    parser.add_argument("--reset-ticks", type=int, default=RESET_HOLD_TICKS,
                        metavar="N",
                        help=f"Ticks to hold reset before driving (default: {RESET_HOLD_TICKS})")
    parser.add_argument("--vcd", type=str, default=None, metavar="FILE",
                        help="Write a VCD waveform of the run")
    parser.add_argument("--log", type=str, default=None, metavar="FILE",
                        help="Write the verification log as JSON Lines")
    parser.add_argument("--trace", action="store_true",
                        help="Print an ASCII waveform table after the run")
    parser.add_argument("--display", action="store_true",
                        help="Open a pygame waveform window")

    parser.add_argument("--emit-rtl", type=str, default=None, metavar="DIR",
                        help="Write Verilog and SDC for the datapath into DIR")
    parser.add_argument("--clock-period", type=float,
                        default=DEFAULT_CLOCK_PERIOD_NS, metavar="NS",
                        help=f"Clock period for SDC (default: {DEFAULT_CLOCK_PERIOD_NS:g})")
    parser.add_argument("--backend", type=str, default=DEFAULT_BACKEND,
                        metavar="CMD",
                        help="External backend command to run on the emitted "
                             "design (env PIPEMUL_BACKEND)")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # ---- RTL / backend mode -------------------------------------------
    if args.emit_rtl:
        try:
            return run_backend(args)
        except (OSError, ValueError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    # ---- Batch verification -------------------------------------------
    if args.scenario or args.exhaustive or args.random is not None or args.vectors:
        return run_batch(args)

    # ---- Interactive monitor ------------------------------------------
    cli = PipemulCLI()
    try:
        cli.cmdloop()
    except KeyboardInterrupt:
        print("\nInterrupted. Goodbye.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
