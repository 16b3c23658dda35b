"""
Aggregate grid builder.

For one raster and one target size, computes three per-pixel statistic layers:

- hsum: per-channel sum over a horizontal window of target-width pixels
  starting at the cell
- vsum: per-channel sum over a vertical window of target-height pixels
  starting at the cell
- diff: per-channel gradient magnitude |p - right| + |p - below| + 1

The window sums are produced with the sliding recurrence
next = previous - leaving + entering, so every shift costs O(1) after the
first window. Rows (hsum) and columns (vsum, diff) are independent and are
split into bands that are processed by separate worker threads; each worker
writes only the cells of its own band.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Optional, Tuple

import numpy as np

from geometry import Rect
from performance_optimizations import run_parallel, split_range


class AggregateGrid:
    """Per-pixel hsum/vsum/diff layers for one raster, stored as (height, width, 3) int32 arrays."""

    def __init__(self, width: int, height: int):
        self.width = 0
        self.height = 0
        self.hsum = None
        self.vsum = None
        self.diff = None
        self.ensure_shape(width, height)

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def ensure_shape(self, width: int, height: int) -> bool:
        """
        Make the grid exactly width x height, reallocating only on a change.

        Returns:
            True if the layers were reallocated
        """
        if (width, height) == (self.width, self.height) and self.hsum is not None:
            return False
        if width <= 0 or height <= 0:
            raise ValueError(f"Grid size must be positive, got {width}x{height}")

        shape = (height, width, 3)
        self.hsum = np.zeros(shape, dtype=np.int32)
        self.vsum = np.zeros(shape, dtype=np.int32)
        self.diff = np.zeros(shape, dtype=np.int32)
        self.width, self.height = width, height
        logging.debug(f"Allocated aggregate grid {width}x{height}")
        return True


def _check_region(region: Rect, pixels: np.ndarray, grid: AggregateGrid, target_size: Tuple[int, int]):
    height, width = pixels.shape[:2]
    tw, th = target_size
    if not Rect(0, 0, width, height).contains(region):
        raise ValueError(f"Region {region.to_tuple()} exceeds raster bounds {width}x{height}")
    if not Rect(0, 0, grid.width, grid.height).contains(region):
        raise ValueError(f"Region {region.to_tuple()} exceeds grid bounds {grid.width}x{grid.height}")
    if region.width < tw or region.height < th:
        raise ValueError(f"Region {region.to_tuple()} is smaller than the {tw}x{th} window")


def _hsum_band(pixels: np.ndarray, out: np.ndarray, region: Rect, window: int, band: Tuple[int, int]):
    """Horizontal window sums for rows [band): sequential along each row, vectorised across rows."""
    r0, r1 = band
    rows = pixels[r0:r1, region.left:region.right].astype(np.int32)
    acc = rows[:, :window].sum(axis=1, dtype=np.int32)
    out[r0:r1, region.left] = acc
    for i in range(1, region.width - window + 1):
        acc = acc - rows[:, i - 1] + rows[:, i + window - 1]
        out[r0:r1, region.left + i] = acc


def _vsum_band(pixels: np.ndarray, out: np.ndarray, region: Rect, window: int, band: Tuple[int, int]):
    """Vertical window sums for columns [band): sequential down each column, vectorised across columns."""
    c0, c1 = band
    cols = pixels[region.top:region.bottom, c0:c1].astype(np.int32)
    acc = cols[:window].sum(axis=0, dtype=np.int32)
    out[region.top, c0:c1] = acc
    for j in range(1, region.height - window + 1):
        acc = acc - cols[j - 1] + cols[j + window - 1]
        out[region.top + j, c0:c1] = acc


def _diff_band(pixels: np.ndarray, out: np.ndarray, region: Rect, band: Tuple[int, int]):
    """Gradient magnitude for columns [band); the band never includes the region's last column."""
    c0, c1 = band
    block = pixels[region.top:region.bottom, c0:c1 + 1].astype(np.int32)
    current = block[:-1, :-1]
    right = block[:-1, 1:]
    below = block[1:, :-1]
    out[region.top:region.bottom - 1, c0:c1] = np.abs(current - right) + np.abs(current - below) + 1


def build_aggregates(pixels: np.ndarray, grid: AggregateGrid, target_size: Tuple[int, int],
                     regions: Iterable[Rect], workers: int = 1,
                     executor: Optional[ThreadPoolExecutor] = None) -> AggregateGrid:
    """
    Recompute the aggregate layers of `grid` over the given regions.

    Cells outside the regions are left untouched and must not be read. Inside a
    region, hsum is valid for x in [left, right - tw], vsum for y in
    [top, bottom - th] and diff for x < right - 1, y < bottom - 1.

    Args:
        pixels: (height, width, 3) uint8 raster
        grid: Grid to update in place, at least as large as the raster
        target_size: (width, height) of the window
        regions: Rectangles to compute; each must fit the raster and hold one window
        workers: Number of worker threads per layer
        executor: Shared thread pool, or None to create one per layer

    Returns:
        The updated grid
    """
    tw, th = target_size
    for region in regions:
        _check_region(region, pixels, grid, target_size)

        row_bands = split_range(region.top, region.bottom, workers)
        run_parallel(lambda band: _hsum_band(pixels, grid.hsum, region, tw, band), row_bands, workers, executor)

        col_bands = split_range(region.left, region.right, workers)
        run_parallel(lambda band: _vsum_band(pixels, grid.vsum, region, th, band), col_bands, workers, executor)

        if region.height > 1:
            diff_bands = split_range(region.left, region.right - 1, workers)
            run_parallel(lambda band: _diff_band(pixels, grid.diff, region, band), diff_bands, workers, executor)

    return grid
