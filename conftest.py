"""
Pytest configuration for the pipelined multiplier test suite.

    python -m pytest                  # everything except soak runs
    PIPEMUL_SOAK=1 python -m pytest   # include long randomized soak runs

Tests marked ``display`` need pygame and a usable video driver; they
are skipped when pygame cannot be imported.
"""

import importlib.util
import os

import pytest


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers",
        "soak: long randomized runs (deselected unless PIPEMUL_SOAK=1)")
    config.addinivalue_line("markers",
        "display: tests that open a pygame window")


def pytest_collection_modifyitems(config, items):
    if not os.environ.get("PIPEMUL_SOAK"):
        keep, dropped = [], []
        for item in items:
            (dropped if item.get_closest_marker("soak") else keep).append(item)
        if dropped:
            config.hook.pytest_deselected(items=dropped)
            items[:] = keep

    if importlib.util.find_spec("pygame") is None:
        skip = pytest.mark.skip(reason="pygame not installed")
        for item in items:
            if item.get_closest_marker("display"):
                item.add_marker(skip)
