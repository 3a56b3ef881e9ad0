"""
Pipelined 4x4 Multiplier Datapath
==================================
A cycle-step model of a 3-stage register-pipelined unsigned 4x4-bit
multiplier.  One call to ``advance()`` is one rising clock edge.

Pipeline structure (matches the RTL emitted by rtl.py):

    stage 1   pp0..pp3   partial products, B[k] ? A : 0
    stage 2   s1_a       pp0 + (pp1 << 1)
              s1_b       (pp2 << 2) + (pp3 << 3)
    stage 3   P          s1_a + s1_b

Every next-state value is computed from the registers as they stood
before the edge, then all seven registers are committed together.  Reset is
asynchronous: when asserted it overrides whatever the edge computed.
"""

from __future__ import annotations
from dataclasses import dataclass, fields, replace

# ---------------------------------------------------------------------------
#  Constants
# ---------------------------------------------------------------------------

OPERAND_BITS     = 4
OPERAND_MAX      = (1 << OPERAND_BITS) - 1   # 15
PIPELINE_LATENCY = 3                         # ticks from input to P

# Register widths in bits, in pipeline order
REG_WIDTHS = {
    "pp0":  4,
    "pp1":  4,
    "pp2":  4,
    "pp3":  4,
    "s1_a": 6,
    "s1_b": 8,
    "p":    8,
}

REG_NAMES = tuple(REG_WIDTHS)

# Largest value each register can ever hold given 4-bit operands.
# Tighter than the widths above; s1_a tops out at 15 + 30.
REG_MAX = {
    "pp0":  15,
    "pp1":  15,
    "pp2":  15,
    "pp3":  15,
    "s1_a": 45,
    "s1_b": 180,
    "p":    225,
}

# ---------------------------------------------------------------------------
#  Errors
# ---------------------------------------------------------------------------

class PipelineError(Exception):
    """Base for all pipeline simulation errors."""
    pass


class InputRangeError(PipelineError, ValueError):
    """An operand is not a 4-bit unsigned integer."""

    def __init__(self, name: str, value, message: str = ""):
        self.name = name
        self.value = value
        super().__init__(message or
                         f"operand {name}={value!r} outside [0, {OPERAND_MAX}]")


# ---------------------------------------------------------------------------
#  Helpers
# ---------------------------------------------------------------------------

def check_operand(name: str, value) -> int:
    """Return *value* if it is a valid 4-bit operand, else raise."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InputRangeError(name, value,
                              f"operand {name}={value!r} is not an integer")
    if not 0 <= value <= OPERAND_MAX:
        raise InputRangeError(name, value)
    return value


def bit(val: int, n: int) -> int:
    """Bit *n* of *val*."""
    return (val >> n) & 1


# ---------------------------------------------------------------------------
#  Register file
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RegisterFile:
    """Committed pipeline state.  Frozen; each tick swaps in a new one."""

    pp0: int = 0
    pp1: int = 0
    pp2: int = 0
    pp3: int = 0
    s1_a: int = 0
    s1_b: int = 0
    p: int = 0

    def as_tuple(self) -> tuple[int, ...]:
        return (self.pp0, self.pp1, self.pp2, self.pp3,
                self.s1_a, self.s1_b, self.p)

    def as_dict(self) -> dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def in_bounds(self) -> bool:
        """True if every field lies within its reachable range."""
        return all(0 <= getattr(self, name) <= REG_MAX[name]
                   for name in REG_NAMES)

    def fits_widths(self) -> bool:
        """True if every field is representable in its declared width."""
        return all(0 <= getattr(self, name) < (1 << width)
                   for name, width in REG_WIDTHS.items())


RESET_STATE = RegisterFile()


# ---------------------------------------------------------------------------
#  Datapath
# ---------------------------------------------------------------------------

class PipelineDatapath:
    """3-stage pipelined 4x4 multiplier.

    The register file is private to the instance.  ``registers`` hands out
    the committed (immutable) state for inspection.
    """

    def __init__(self):
        self._regs: RegisterFile = RESET_STATE
        self.edge_count: int = 0

    # -- Property shortcuts --

    @property
    def registers(self) -> RegisterFile:
        return self._regs

    @property
    def p(self) -> int:
        return self._regs.p

    # -- Next-state logic --

    def _next_state(self, a: int, b: int) -> RegisterFile:
        """Evaluate all stages against the pre-edge registers."""
        old = self._regs
        return RegisterFile(
            pp0=a if bit(b, 0) else 0,
            pp1=a if bit(b, 1) else 0,
            pp2=a if bit(b, 2) else 0,
            pp3=a if bit(b, 3) else 0,
            s1_a=old.pp0 + (old.pp1 << 1),
            s1_b=(old.pp2 << 2) + (old.pp3 << 3),
            p=old.s1_a + old.s1_b,
        )

    # -- Clock edge --

    def advance(self, a: int, b: int, reset_asserted: bool = False) -> int:
        """Apply one clock edge.  Returns P as seen during this tick.

        P is sampled before the edge commits, so a vector applied at tick
        t shows up at tick t+3.  With reset asserted the registers are
        held at zero for the whole tick and 0 is returned.
        """
        check_operand("A", a)
        check_operand("B", b)

        observed = self._regs.p
        nxt = self._next_state(a, b)

        # Asynchronous reset wins over the edge
        if reset_asserted:
            nxt = RESET_STATE
            observed = 0

        self._regs = nxt
        self.edge_count += 1
        return observed

    def reset(self):
        """Asynchronous clear outside of a clock edge."""
        self._regs = RESET_STATE

    def load_state(self, **values):
        """Force register fields (test and debug use only)."""
        regs = replace(self._regs, **values)
        for name, width in REG_WIDTHS.items():
            v = getattr(regs, name)
            if not 0 <= v < (1 << width):
                raise ValueError(f"{name}={v} does not fit {width} bits")
        self._regs = regs

    # -- Debug / introspection --

    def dump_regs(self) -> str:
        r = self._regs
        lines = [
            f"  stage 1  pp0={r.pp0:>2d}  pp1={r.pp1:>2d}  "
            f"pp2={r.pp2:>2d}  pp3={r.pp3:>2d}",
            f"  stage 2  s1_a={r.s1_a:>3d}  s1_b={r.s1_b:>3d}",
            f"  stage 3  P={r.p:>3d}  ({r.p:#04x})",
        ]
        return "\n".join(lines)


def multiply(a: int, b: int) -> int:
    """Golden un-pipelined reference."""
    return check_operand("A", a) * check_operand("B", b)
