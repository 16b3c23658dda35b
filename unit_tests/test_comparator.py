"""
Unit tests for comparator module.
"""

import pytest
import numpy as np
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from aggregates import AggregateGrid, build_aggregates
from comparator import (
    MAX_BATCH_ELEMENTS,
    batch_size,
    combine_similarity,
    compare,
    compare_region,
    diff_sample_shape,
    similarity_ratio,
    step_threshold
)
from geometry import Rect
from conftest import random_raster


def grids_for(source, target):
    """Aggregate grids for a full source and a full target."""
    target_size = (target.shape[1], target.shape[0])
    source_grid = AggregateGrid(source.shape[1], source.shape[0])
    target_grid = AggregateGrid(*target_size)
    build_aggregates(source, source_grid, target_size, [Rect(0, 0, source.shape[1], source.shape[0])])
    build_aggregates(target, target_grid, target_size, [Rect.from_size(target_size)])
    return source_grid, target_grid, target_size


class TestSimilarityRatio:
    """Test the min/max ratio and its zero policy."""

    def test_basic_ratio(self):
        assert similarity_ratio(2, 4) == pytest.approx(0.5)
        assert similarity_ratio(4, 2) == pytest.approx(0.5)

    def test_identical_values(self):
        assert similarity_ratio(123, 123) == 1.0

    def test_both_zero_is_identical(self):
        assert similarity_ratio(0, 0) == 1.0

    def test_one_zero_is_dissimilar(self):
        assert similarity_ratio(5, 0) == 0.0
        assert similarity_ratio(0, 5) == 0.0

    def test_vectorised_never_nan(self):
        a = np.array([0, 0, 3, 10])
        b = np.array([0, 7, 0, 5])
        result = similarity_ratio(a, b)
        assert not np.any(np.isnan(result))
        np.testing.assert_allclose(result, [1.0, 0.0, 0.0, 0.5])


class TestThresholdAndCombination:
    """Test scale-dependent threshold and score blending."""

    def test_full_resolution_threshold_unmodified(self):
        assert step_threshold(0.95, 1) == 0.95

    def test_coarse_threshold_relaxed(self):
        assert step_threshold(0.95, 2) == pytest.approx(0.95 * 0.9275 ** 2)
        assert step_threshold(0.95, 8) == pytest.approx(0.95 * 0.9275 ** 8)
        assert step_threshold(0.95, 8) < step_threshold(0.95, 4) < 0.95

    def test_combine_with_diff(self):
        assert combine_similarity(0.8, 0.6, 0.5, 2) == pytest.approx(((0.8 + 0.6) * 2 + 0.5) / 5)

    def test_combine_without_diff(self):
        assert combine_similarity(0.8, 0.6, None, 3) == pytest.approx(0.7)

    def test_diff_sample_shape(self):
        assert diff_sample_shape((20, 15), 1) == (14, 19)
        assert diff_sample_shape((20, 15), 2) == (7, 10)
        assert diff_sample_shape((1, 15), 1) == (14, 0)


class TestCompare:
    """Test single-position comparison."""

    def test_exact_copy_scores_one(self, rng):
        source = random_raster(rng, 60, 50)
        target = source[10:25, 20:40].copy()
        source_grid, target_grid, target_size = grids_for(source, target)

        match = compare(source_grid, target_grid, (20, 10), target_size, 1, 0.95)

        assert match is not None
        assert match.zone == Rect(20, 10, 20, 15)
        assert match.similarity == pytest.approx(1.0)

    def test_dissimilar_window_rejected(self, rng):
        source = random_raster(rng, 60, 50)
        target = source[10:25, 20:40].copy()
        source_grid, target_grid, target_size = grids_for(source, target)

        assert compare(source_grid, target_grid, (0, 30), target_size, 1, 0.95) is None

    def test_black_window_matches_black_target(self):
        source = np.zeros((30, 30, 3), dtype=np.uint8)
        target = np.zeros((10, 10, 3), dtype=np.uint8)
        source_grid, target_grid, target_size = grids_for(source, target)

        match = compare(source_grid, target_grid, (5, 5), target_size, 1, 0.95)

        assert match is not None
        assert match.similarity == pytest.approx(1.0)

    def test_black_window_against_bright_target(self):
        # Only the flat diff layers agree: similarity is (0 + 0 + 1) / 3
        source = np.zeros((30, 30, 3), dtype=np.uint8)
        target = np.full((10, 10, 3), 200, dtype=np.uint8)
        source_grid, target_grid, target_size = grids_for(source, target)

        assert compare(source_grid, target_grid, (5, 5), target_size, 1, 0.5) is None

    def test_coarse_step_accepts_below_full_threshold(self, rng):
        source = random_raster(rng, 60, 50)
        target = source[10:25, 20:40].copy()
        source_grid, target_grid, target_size = grids_for(source, target)

        # A window shifted by one pixel: too weak at full resolution, but the
        # relaxed threshold at step 8 lets it through with threshold 0.5
        assert compare(source_grid, target_grid, (21, 10), target_size, 1, 0.99) is None
        assert compare(source_grid, target_grid, (21, 10), target_size, 8, 0.5) is not None


class TestCompareRegion:
    """Test vectorised region scan."""

    def test_agrees_with_compare(self, rng):
        source = random_raster(rng, 48, 36)
        target = random_raster(rng, 12, 9)
        source_grid, target_grid, target_size = grids_for(source, target)
        region = Rect(0, 0, 48, 36)

        for step in (1, 2, 4):
            matches = compare_region(source_grid, target_grid, region, target_size, step, 0.0)
            assert len(matches) == (48 - 12 + 1) * (36 - 9 + 1)
            for match in matches[::17]:
                single = compare(source_grid, target_grid, (match.zone.x, match.zone.y), target_size, step, 0.0)
                assert single is not None
                assert match.similarity == pytest.approx(single.similarity, abs=1e-9)

    def test_similarity_bounds(self, rng):
        source = random_raster(rng, 40, 40)
        target = random_raster(rng, 10, 10)
        source_grid, target_grid, target_size = grids_for(source, target)

        matches = compare_region(source_grid, target_grid, Rect(0, 0, 40, 40), target_size, 1, 0.0)

        similarities = np.array([m.similarity for m in matches])
        assert np.all(similarities > 0)
        assert np.all(similarities <= 1.0 + 1e-12)

    def test_finds_embedded_copy(self, rng):
        source = random_raster(rng, 80, 60)
        target = source[22:37, 31:51].copy()
        source_grid, target_grid, target_size = grids_for(source, target)

        matches = compare_region(source_grid, target_grid, Rect(0, 0, 80, 60), target_size, 1, 0.95, workers=3)

        assert [m.zone for m in matches] == [Rect(31, 22, 20, 15)]

    def test_includes_last_window_position(self, rng):
        source = random_raster(rng, 30, 20)
        target = source[10:20, 18:30].copy()
        source_grid, target_grid, target_size = grids_for(source, target)

        matches = compare_region(source_grid, target_grid, Rect(0, 0, 30, 20), target_size, 1, 0.95)

        assert [m.zone for m in matches] == [Rect(18, 10, 12, 10)]

    def test_sub_region(self, rng):
        source = random_raster(rng, 80, 60)
        target = source[22:37, 31:51].copy()
        source_grid, target_grid, target_size = grids_for(source, target)

        inside = compare_region(source_grid, target_grid, Rect(25, 20, 30, 20), target_size, 1, 0.95)
        outside = compare_region(source_grid, target_grid, Rect(40, 0, 40, 60), target_size, 1, 0.95)

        assert [m.zone for m in inside] == [Rect(31, 22, 20, 15)]
        assert outside == []

    def test_region_too_small(self, rng):
        source = random_raster(rng, 30, 30)
        target = random_raster(rng, 10, 10)
        source_grid, target_grid, target_size = grids_for(source, target)

        assert compare_region(source_grid, target_grid, Rect(0, 0, 9, 30), target_size, 1, 0.0) == []

    def test_small_batches_agree(self, rng, monkeypatch):
        import comparator

        source = random_raster(rng, 40, 30)
        target = random_raster(rng, 8, 6)
        source_grid, target_grid, target_size = grids_for(source, target)
        region = Rect(0, 0, 40, 30)

        full = compare_region(source_grid, target_grid, region, target_size, 2, 0.0)
        monkeypatch.setattr(comparator, 'MAX_BATCH_ELEMENTS', 1)
        batched = compare_region(source_grid, target_grid, region, target_size, 2, 0.0)

        assert [m.zone for m in full] == [m.zone for m in batched]
        np.testing.assert_allclose([m.similarity for m in full], [m.similarity for m in batched])

    def test_batch_shrinks_with_workers(self):
        single = batch_size(1000, 1)
        assert single == MAX_BATCH_ELEMENTS // 1000
        assert batch_size(1000, 8) == MAX_BATCH_ELEMENTS // 8000
        assert batch_size(1000, 8) * 1000 * 8 <= MAX_BATCH_ELEMENTS

    def test_batch_never_empty(self):
        assert batch_size(MAX_BATCH_ELEMENTS * 2, 16) == 1

    def test_threaded_batches_agree(self, rng):
        source = random_raster(rng, 60, 40)
        target = random_raster(rng, 10, 8)
        source_grid, target_grid, target_size = grids_for(source, target)
        region = Rect(0, 0, 60, 40)

        single = compare_region(source_grid, target_grid, region, target_size, 1, 0.0)
        threaded = compare_region(source_grid, target_grid, region, target_size, 1, 0.0, workers=4)

        assert [m.zone for m in single] == [m.zone for m in threaded]
