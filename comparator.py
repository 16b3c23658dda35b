"""
Candidate comparator.

Scores a candidate window of the source against the target by comparing their
aggregate layers. Every comparison uses the ratio min(a, b) / max(a, b), which
is 1.0 for identical values and falls toward 0 as they diverge:

- column profile: vsum of each of the target-width columns at the window's top row
- row profile: hsum of each of the target-height rows at the window's left column
- diff: gradient cells inside the window, sampled every `step` cells

The three averages are blended so the diff term gains weight as the scale
gets finer, and the acceptance threshold is relaxed at coarse scales.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Tuple

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from aggregates import AggregateGrid
from defaults import COARSE_THRESHOLD_DECAY
from geometry import Match, Rect
from performance_optimizations import run_parallel, split_range

# Upper bound on ratio cells evaluated at once, shared by all workers
MAX_BATCH_ELEMENTS = 4_000_000


def similarity_ratio(a, b) -> np.ndarray:
    """
    Element-wise min(a, b) / max(a, b) for non-negative values.

    Both zero counts as identical (1.0); exactly one zero gives 0.0.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    high = np.maximum(a, b)
    low = np.minimum(a, b)
    out = np.ones(np.broadcast(a, b).shape, dtype=np.float64)
    np.divide(low, high, out=out, where=high > 0)
    return out


def batch_size(cells_per_window: int, workers: int) -> int:
    """Windows per batch so that `workers` concurrent batches stay within MAX_BATCH_ELEMENTS."""
    return max(1, MAX_BATCH_ELEMENTS // (cells_per_window * max(1, workers)))


def step_threshold(threshold: float, step: int) -> float:
    """Acceptance threshold at a scale level; full resolution (step 1) is unmodified."""
    if step == 1:
        return threshold
    return threshold * COARSE_THRESHOLD_DECAY ** step


def combine_similarity(row_avg, column_avg, diff_avg, step: int):
    """Blend the profile averages with the diff average (None when no diff cells were sampled)."""
    if diff_avg is None:
        return (row_avg + column_avg) / 2
    return ((row_avg + column_avg) * step + diff_avg) / (2 * step + 1)


def diff_sample_shape(target_size: Tuple[int, int], step: int) -> Tuple[int, int]:
    """(rows, columns) of diff cells sampled inside a window."""
    tw, th = target_size
    return len(range(0, th - 1, step)), len(range(0, tw - 1, step))


def compare(source: AggregateGrid, target: AggregateGrid, position: Tuple[int, int],
            target_size: Tuple[int, int], step: int, threshold: float) -> Optional[Match]:
    """
    Score the window whose top-left corner is `position`.

    Args:
        source: Source aggregates, valid around the window
        target: Target aggregates computed over the whole target
        position: (x, y) of the window in source pixels
        target_size: (width, height) of the target at this scale
        step: Scale divider; also the diff sampling step
        threshold: Similarity threshold at full resolution

    Returns:
        The match, or None when the similarity is below the threshold for this step
    """
    x, y = position
    tw, th = target_size

    column_avg = similarity_ratio(source.vsum[y, x:x + tw], target.vsum[0, :tw]).sum() / (3 * tw)
    row_avg = similarity_ratio(source.hsum[y:y + th, x], target.hsum[:th, 0]).sum() / (3 * th)

    diff_avg = None
    rows, cols = diff_sample_shape(target_size, step)
    if rows * cols > 0:
        source_diff = source.diff[y:y + th - 1:step, x:x + tw - 1:step]
        target_diff = target.diff[0:th - 1:step, 0:tw - 1:step]
        diff_avg = similarity_ratio(source_diff, target_diff).sum() / (3 * rows * cols)

    similarity = float(combine_similarity(row_avg, column_avg, diff_avg, step))
    if similarity < step_threshold(threshold, step):
        return None
    return Match(Rect(x, y, tw, th), similarity)


class _RegionScorer:
    """Vectorised scoring of consecutive window positions along one window row."""

    def __init__(self, source: AggregateGrid, target: AggregateGrid,
                 target_size: Tuple[int, int], step: int):
        tw, th = target_size
        self.source = source
        self.tw, self.th = tw, th
        self.step = step
        self.diff_rows, self.diff_cols = diff_sample_shape(target_size, step)

        # Target layers reshaped to broadcast against batches of windows
        self.target_vsum = target.vsum[0, :tw].astype(np.float64).T
        self.target_hsum = target.hsum[:th, 0].astype(np.float64)[:, None, :]
        if self.diff_rows * self.diff_cols > 0:
            target_diff = target.diff[0:th - 1:step, 0:tw - 1:step].astype(np.float64)
            self.target_diff = target_diff.transpose(0, 2, 1)[:, None, :, :]
        else:
            self.target_diff = None

    @property
    def cells_per_window(self) -> int:
        return 3 * (self.tw + self.th + self.diff_rows * self.diff_cols)

    def score(self, y: int, x0: int, count: int) -> np.ndarray:
        """Similarities of windows at (x0 .. x0 + count - 1, y)."""
        tw, th, step = self.tw, self.th, self.step
        source = self.source

        vsum = source.vsum[y, x0:x0 + count + tw - 1]
        windows = sliding_window_view(vsum, tw, axis=0)
        column_avg = similarity_ratio(windows, self.target_vsum).sum(axis=(1, 2)) / (3 * tw)

        hsum = source.hsum[y:y + th, x0:x0 + count]
        row_avg = similarity_ratio(hsum, self.target_hsum).sum(axis=(0, 2)) / (3 * th)

        diff_avg = None
        if self.target_diff is not None:
            diff = source.diff[y:y + th - 1:step, x0:x0 + count + tw - 2]
            windows = sliding_window_view(diff, tw - 1, axis=1)[..., ::step]
            cells = self.diff_rows * self.diff_cols
            diff_avg = similarity_ratio(windows, self.target_diff).sum(axis=(0, 2, 3)) / (3 * cells)

        return combine_similarity(row_avg, column_avg, diff_avg, step)


def compare_region(source: AggregateGrid, target: AggregateGrid, region: Rect,
                   target_size: Tuple[int, int], step: int, threshold: float,
                   workers: int = 1, executor: Optional[ThreadPoolExecutor] = None) -> List[Match]:
    """
    Score every window position inside `region` and keep those above the threshold.

    Window rows are split into bands handled by separate workers; each worker
    collects its own matches and the lists are concatenated afterwards. The
    result agrees position by position with compare().
    """
    tw, th = target_size
    columns = region.width - tw + 1
    rows = region.height - th + 1
    if columns <= 0 or rows <= 0:
        return []

    scorer = _RegionScorer(source, target, target_size, step)
    limit = step_threshold(threshold, step)
    bands = split_range(region.top, region.top + rows, workers)
    batch = batch_size(scorer.cells_per_window, len(bands))

    def scan(band):
        found = []
        for y in range(band[0], band[1]):
            for x0 in range(region.left, region.left + columns, batch):
                count = min(batch, region.left + columns - x0)
                similarities = scorer.score(y, x0, count)
                for offset in np.flatnonzero(similarities >= limit):
                    found.append(Match(Rect(x0 + int(offset), y, tw, th), float(similarities[offset])))
        return found

    matches = []
    for found in run_parallel(scan, bands, workers, executor):
        matches.extend(found)
    return matches
