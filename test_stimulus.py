#!/usr/bin/env python3
"""
Tests for vector sources, vector files and the drive() helper.
"""
import os
import random
import tempfile
import unittest

import pytest

from datapath import InputRangeError
from checker import Checker
from stimulus import (
    BoundaryVectors, CounterVectors, CSVVectors, RandomVectors, ReplayVectors,
    NUM_PAIRS, SCENARIO_EXPECTED, SCENARIO_VECTORS, drive, load_vectors,
    open_vector_file, pack_vector, save_vectors, scenario_source, unpack_vector,
)


class TestVectorFiles(unittest.TestCase):
    def test_pack_layout(self):
        self.assertEqual(pack_vector(0xA, 0x3), 0xA3)
        self.assertEqual(unpack_vector(0xF0), (15, 0))

    def test_pack_rejects_out_of_range(self):
        with self.assertRaises(InputRangeError):
            pack_vector(16, 0)
        with self.assertRaises(ValueError):
            unpack_vector(256)

    def test_save_and_load(self):
        with tempfile.NamedTemporaryFile(suffix=".vec", delete=False) as f:
            path = f.name
        try:
            n = save_vectors(path, SCENARIO_VECTORS)
            self.assertEqual(n, len(SCENARIO_VECTORS))
            with open(path, "rb") as f:
                self.assertEqual(f.read()[:2], bytes([0x32, 0x74]))
            self.assertEqual(load_vectors(path), SCENARIO_VECTORS)
            src = open_vector_file(path)
            self.assertEqual(src.vectors, SCENARIO_VECTORS)
        finally:
            os.unlink(path)


class TestSources(unittest.TestCase):
    def test_counter_covers_every_pair_once(self):
        src = CounterVectors()
        pairs = list(src)
        self.assertEqual(len(pairs), NUM_PAIRS)
        self.assertEqual(len(set(pairs)), NUM_PAIRS)
        self.assertEqual(pairs[:3], [(0, 0), (0, 1), (0, 2)])
        self.assertEqual(pairs[-1], (15, 15))
        self.assertTrue(src.exhausted)
        # Keeps wrapping when called directly
        self.assertEqual(src.next_vector(), (0, 0))

    def test_random_reproducible(self):
        a = RandomVectors(seed=99).take(100)
        b = RandomVectors(seed=99).take(100)
        self.assertEqual(a, b)
        self.assertNotEqual(a, RandomVectors(seed=100).take(100))
        self.assertTrue(all(0 <= x <= 15 and 0 <= y <= 15 for x, y in a))

    def test_boundary(self):
        pairs = list(BoundaryVectors())
        self.assertEqual(len(pairs), 16)
        self.assertIn((15, 15), pairs)
        self.assertIn((0, 15), pairs)

    def test_replay_holds_zero_after_end(self):
        src = ReplayVectors([(1, 2)])
        self.assertEqual(src.next_vector(), (1, 2))
        self.assertTrue(src.exhausted)
        self.assertEqual(src.next_vector(), (0, 0))
        self.assertEqual(src.count, 2)

    def test_replay_validates(self):
        with self.assertRaises(InputRangeError):
            ReplayVectors([(1, 2), (3, 17)])

    def test_csv_skips_bad_rows(self):
        with tempfile.NamedTemporaryFile("w", suffix=".csv", delete=False) as f:
            f.write("a,b\n3,2\n0x7,4\nbogus,1\n99,1\n15\n9,3\n")
            path = f.name
        try:
            src = CSVVectors(path)
            self.assertEqual(src.vectors, [(3, 2), (7, 4), (9, 3)])
            self.assertIsInstance(open_vector_file(path), CSVVectors)
        finally:
            os.unlink(path)


class TestDrive(unittest.TestCase):
    def test_scenario_source(self):
        chk = Checker()
        chk.reset(2)
        drive(chk, scenario_source(), len(SCENARIO_VECTORS))
        chk.drain()
        self.assertEqual(chk.outputs[2 + 3:2 + 8], SCENARIO_EXPECTED)

    def test_exhaustive(self):
        chk = Checker()
        chk.reset()
        drive(chk, CounterVectors(), NUM_PAIRS)
        chk.drain()
        self.assertEqual(chk.summary()["failed"], 0)
        self.assertGreaterEqual(chk.summary()["checked"], NUM_PAIRS)

    @pytest.mark.soak
    def test_random_soak(self):
        rng = random.Random(2024)
        chk = Checker()
        chk.reset()
        src = RandomVectors(seed=7)
        for _ in range(200):
            drive(chk, src, rng.randint(1, 500))
            if rng.random() < 0.2:
                chk.reset(rng.randint(1, 3))
        chk.drain()
        self.assertEqual(chk.summary()["failed"], 0)


if __name__ == "__main__":
    unittest.main()
