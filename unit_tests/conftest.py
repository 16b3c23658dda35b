"""
Shared fixtures for unit tests.
"""

import pytest
import numpy as np
import tempfile
from pathlib import Path


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def rng():
    """Seeded random generator so every run sees the same rasters."""
    return np.random.default_rng(1234)


def random_raster(rng, width, height):
    """Random RGB uint8 raster of the given size."""
    return rng.integers(0, 256, (height, width, 3), dtype=np.uint8)


def embed(source, target, x, y):
    """Copy of `source` with `target` pasted at (x, y)."""
    result = source.copy()
    h, w = target.shape[:2]
    result[y:y + h, x:x + w] = target
    return result


@pytest.fixture
def noise_source(rng):
    """A 200x160 random RGB source."""
    return random_raster(rng, 200, 160)


@pytest.fixture
def noise_target(rng):
    """A 40x30 random RGB target."""
    return random_raster(rng, 40, 30)
