"""
stimulus.py: operand vector sources for the multiplier checker

Sources hand out (A, B) pairs one at a time through ``next_vector()``;
``drive()`` feeds them into a Checker, one vector per tick.

Binary vector files (.vec) hold one byte per vector:
    bits 7..4   A
    bits 3..0   B

Usage:
    from stimulus import RandomVectors, drive
    src = RandomVectors(seed=7)
    drive(checker, src, count=1000)
"""

from __future__ import annotations
import random

from datapath import OPERAND_MAX, check_operand

# The literal end-to-end scenario: reset held 2 ticks, then these vectors
# one per tick.  SCENARIO_EXPECTED is P at ticks 4..8 counted from the
# first non-reset tick.
SCENARIO_RESET_TICKS = 2
SCENARIO_VECTORS = [(3, 2), (7, 4), (9, 3), (15, 15), (6, 8), (0, 0)]
SCENARIO_EXPECTED = [6, 28, 27, 225, 48]

NUM_PAIRS = (OPERAND_MAX + 1) ** 2   # 256


# ---- Vector file encoding / decoding ----

def pack_vector(a: int, b: int) -> int:
    """Pack an operand pair into one byte, A in the high nibble."""
    return (check_operand("A", a) << 4) | check_operand("B", b)


def unpack_vector(byte: int) -> tuple[int, int]:
    if not 0 <= byte <= 0xFF:
        raise ValueError(f"vector byte {byte!r} out of range")
    return (byte >> 4) & 0xF, byte & 0xF


def save_vectors(path: str, vectors) -> int:
    """Write vectors to a binary .vec file.  Returns the count."""
    data = bytes(pack_vector(a, b) for a, b in vectors)
    with open(path, "wb") as f:
        f.write(data)
    return len(data)


def load_vectors(path: str) -> list[tuple[int, int]]:
    with open(path, "rb") as f:
        return [unpack_vector(byte) for byte in f.read()]


# ---- Base class ----

class VectorSource:
    """Base vector source.  Subclasses override next_vector()."""

    def __init__(self):
        self.count = 0

    def _vector(self, a: int, b: int) -> tuple[int, int]:
        self.count += 1
        return a, b

    def next_vector(self) -> tuple[int, int]:
        raise NotImplementedError

    def take(self, n: int) -> list[tuple[int, int]]:
        return [self.next_vector() for _ in range(n)]

    def __iter__(self):
        return self

    def __next__(self) -> tuple[int, int]:
        if getattr(self, "exhausted", False):
            raise StopIteration
        return self.next_vector()


# ---- Concrete sources ----

class CounterVectors(VectorSource):
    """Every operand pair in order, A major.  Wraps after 256."""

    def __init__(self, start: int = 0):
        super().__init__()
        self._idx = start % NUM_PAIRS

    def next_vector(self) -> tuple[int, int]:
        a, b = divmod(self._idx % NUM_PAIRS, OPERAND_MAX + 1)
        self._idx += 1
        return self._vector(a, b)

    @property
    def exhausted(self) -> bool:
        return self._idx >= NUM_PAIRS


class RandomVectors(VectorSource):
    """Pseudo-random operands, reproducible from *seed*."""

    def __init__(self, seed: int = 42):
        super().__init__()
        self.seed = seed
        self.rng = random.Random(seed)

    def next_vector(self) -> tuple[int, int]:
        return self._vector(self.rng.randint(0, OPERAND_MAX),
                            self.rng.randint(0, OPERAND_MAX))


class BoundaryVectors(VectorSource):
    """Corner operands crossed with each other."""

    CORNERS = (0, 1, 8, OPERAND_MAX)

    def __init__(self):
        super().__init__()
        self._pairs = [(a, b) for a in self.CORNERS for b in self.CORNERS]
        self._pos = 0

    def next_vector(self) -> tuple[int, int]:
        pair = self._pairs[self._pos % len(self._pairs)]
        self._pos += 1
        return self._vector(*pair)

    @property
    def exhausted(self) -> bool:
        return self._pos >= len(self._pairs)


class ReplayVectors(VectorSource):
    """Replay a fixed vector list, then hold (0, 0)."""

    def __init__(self, vectors):
        super().__init__()
        self.vectors = [(check_operand("A", a), check_operand("B", b))
                        for a, b in vectors]
        self._pos = 0

    def next_vector(self) -> tuple[int, int]:
        if self._pos < len(self.vectors):
            pair = self.vectors[self._pos]
        else:
            pair = (0, 0)
        self._pos += 1
        return self._vector(*pair)

    @property
    def exhausted(self) -> bool:
        return self._pos >= len(self.vectors)


class CSVVectors(ReplayVectors):
    """Read A,B columns from a CSV file.  Unparseable rows are skipped."""

    def __init__(self, filepath: str, has_header: bool = True,
                 a_column: int = 0, b_column: int = 1):
        super().__init__(self._load(filepath, has_header, a_column, b_column))
        self.filepath = filepath

    @staticmethod
    def _load(filepath, has_header, a_column, b_column):
        import csv
        vectors = []
        with open(filepath, newline="") as f:
            reader = csv.reader(f)
            if has_header:
                next(reader, None)
            for row in reader:
                try:
                    a = int(row[a_column], 0)
                    b = int(row[b_column], 0)
                except (IndexError, ValueError):
                    continue
                if 0 <= a <= OPERAND_MAX and 0 <= b <= OPERAND_MAX:
                    vectors.append((a, b))
        return vectors


def scenario_source() -> ReplayVectors:
    return ReplayVectors(SCENARIO_VECTORS)


def open_vector_file(path: str) -> ReplayVectors:
    """Pick a reader by extension: .csv is text, anything else is .vec."""
    if path.lower().endswith(".csv"):
        return CSVVectors(path)
    return ReplayVectors(load_vectors(path))


# ---- Driving ----

def drive(checker, source: VectorSource, count: int = 1) -> list[int]:
    """Schedule and step *count* vectors from *source*.  Returns the P
    values observed on those ticks."""
    observed = []
    for _ in range(count):
        checker.schedule(*source.next_vector())
        observed.append(checker.step())
    return observed
