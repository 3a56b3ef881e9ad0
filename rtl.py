"""
RTL emission and backend hand-off for the pipelined multiplier.

The backend flow (synthesis, floorplan, place & route, signoff) is an
external tool and stays a black box here.  This module produces the two
things it consumes, a Verilog description of the datapath and an SDC
constraints file, runs the tool's command line, and collects whatever
reports it leaves behind.

Environment handed to the backend command:
    PIPEMUL_DESIGN    path to <top>.v
    PIPEMUL_SDC       path to <top>.sdc
    PIPEMUL_TOP       top module name
    PIPEMUL_REPORTS   directory the tool should write reports into
"""

from __future__ import annotations

import os
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from datapath import OPERAND_BITS, PIPELINE_LATENCY, REG_WIDTHS

DEFAULT_TOP = "pipelined_mult"
DEFAULT_CLOCK_PERIOD_NS = 10.0
DEFAULT_IO_DELAY_FRACTION = 0.2   # input/output delay as a share of the period
TAIL_LINES = 20


def emit_verilog(top: str = DEFAULT_TOP) -> str:
    """Verilog-2001 text for the 3-stage datapath."""
    w = REG_WIDTHS
    ob = OPERAND_BITS
    pp_decl = "\n".join(f"    reg [{w[f'pp{k}'] - 1}:0] pp{k};" for k in range(ob))
    pp_reset = "\n".join(f"            pp{k} <= {w[f'pp{k}']}'d0;" for k in range(ob))
    pp_next = "\n".join(f"            pp{k} <= B[{k}] ? A : {w[f'pp{k}']}'d0;"
                        for k in range(ob))
    return f"""\
// {top}: {PIPELINE_LATENCY}-stage pipelined unsigned {ob}x{ob} multiplier
// Generated by pipemul rtl.py

module {top} (
    input  wire       clk,
    input  wire       rst_n,
    input  wire [{ob - 1}:0] A,
    input  wire [{ob - 1}:0] B,
    output reg  [{w['p'] - 1}:0] P
);

    // stage 1: partial products
{pp_decl}
    // stage 2: partial sums
    reg [{w['s1_a'] - 1}:0] s1_a;
    reg [{w['s1_b'] - 1}:0] s1_b;

    always @(posedge clk or negedge rst_n) begin
        if (!rst_n) begin
{pp_reset}
            s1_a <= {w['s1_a']}'d0;
            s1_b <= {w['s1_b']}'d0;
            P    <= {w['p']}'d0;
        end else begin
{pp_next}
            s1_a <= pp0 + (pp1 << 1);
            s1_b <= (pp2 << 2) + (pp3 << 3);
            P    <= s1_a + s1_b;
        end
    end

endmodule
"""


def emit_sdc(clock_period_ns: float = DEFAULT_CLOCK_PERIOD_NS,
             io_delay_fraction: float = DEFAULT_IO_DELAY_FRACTION,
             clock_port: str = "clk", reset_port: str = "rst_n") -> str:
    """SDC constraints: one clock, I/O delays, reset as a false path."""
    if clock_period_ns <= 0:
        raise ValueError(f"clock period must be positive, got {clock_period_ns}")
    if not 0 <= io_delay_fraction < 1:
        raise ValueError(f"io delay fraction must be in [0, 1), got {io_delay_fraction}")
    delay = round(clock_period_ns * io_delay_fraction, 4)
    return f"""\
# Generated by pipemul rtl.py
create_clock -name core_clock -period {clock_period_ns:g} [get_ports {clock_port}]
set_input_delay {delay:g} -clock core_clock [get_ports {{A[*] B[*]}}]
set_output_delay {delay:g} -clock core_clock [get_ports {{P[*]}}]
set_false_path -from [get_ports {reset_port}]
"""


def write_design(out_dir: Union[str, Path], top: str = DEFAULT_TOP,
                 clock_period_ns: float = DEFAULT_CLOCK_PERIOD_NS) -> tuple[Path, Path]:
    """Write <top>.v and <top>.sdc into *out_dir*.  Returns both paths."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    v_path = out_dir / f"{top}.v"
    sdc_path = out_dir / f"{top}.sdc"
    v_path.write_text(emit_verilog(top), encoding="utf-8")
    sdc_path.write_text(emit_sdc(clock_period_ns), encoding="utf-8")
    return v_path, sdc_path


# ---------------------------------------------------------------------------
#  Backend runner
# ---------------------------------------------------------------------------

@dataclass
class BackendResult:
    command: list[str]
    rc: int
    stdout_tail: str = ""
    stderr_tail: str = ""
    reports: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.rc == 0


def _tail(text: str, n: int = TAIL_LINES) -> str:
    return "\n".join(text.splitlines()[-n:])


class BackendRunner:
    """Runs an external backend command against the emitted design."""

    def __init__(self, command: Union[str, list[str]], work_dir: Union[str, Path],
                 top: str = DEFAULT_TOP,
                 clock_period_ns: float = DEFAULT_CLOCK_PERIOD_NS,
                 timeout: Optional[float] = None):
        self.command = shlex.split(command) if isinstance(command, str) else list(command)
        if not self.command:
            raise ValueError("backend command is empty")
        self.work_dir = Path(work_dir)
        self.top = top
        self.clock_period_ns = clock_period_ns
        self.timeout = timeout

    @property
    def reports_dir(self) -> Path:
        return self.work_dir / "reports"

    def run(self) -> BackendResult:
        v_path, sdc_path = write_design(self.work_dir, self.top, self.clock_period_ns)
        self.reports_dir.mkdir(parents=True, exist_ok=True)

        env = os.environ.copy()
        env["PIPEMUL_DESIGN"] = str(v_path.resolve())
        env["PIPEMUL_SDC"] = str(sdc_path.resolve())
        env["PIPEMUL_TOP"] = self.top
        env["PIPEMUL_REPORTS"] = str(self.reports_dir.resolve())

        try:
            p = subprocess.run(self.command, cwd=str(self.work_dir), env=env,
                               capture_output=True, text=True, timeout=self.timeout)
        except FileNotFoundError as e:
            return BackendResult(self.command, 127, stderr_tail=str(e))
        except subprocess.TimeoutExpired as e:
            return BackendResult(self.command, -1,
                                 stderr_tail=f"timed out after {e.timeout}s")

        return BackendResult(
            command=self.command,
            rc=p.returncode,
            stdout_tail=_tail(p.stdout),
            stderr_tail=_tail(p.stderr),
            reports=self.collect_reports(),
        )

    def collect_reports(self) -> dict[str, str]:
        """Text of every file the tool left in the reports directory."""
        reports = {}
        if not self.reports_dir.is_dir():
            return reports
        for path in sorted(self.reports_dir.rglob("*")):
            if path.is_file():
                rel = path.relative_to(self.reports_dir).as_posix()
                reports[rel] = path.read_text(encoding="utf-8", errors="replace")
        return reports
