"""
Pyramid search controller and the public ImageFinder API.

The search recurses to the coarsest pyramid level first, then works back
toward full resolution. Each finer level only searches around the matches of
the previous one, and a level without matches ends the whole search:

    level d = 8   target area < 100  -> INITIAL (nothing searched here)
    level d = 4   search whole source -> matches? SEQUENT : NONE
    level d = 2   search around d = 4 matches
    level d = 1   search around d = 2 matches -> final result
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

from aggregates import AggregateGrid, build_aggregates
from comparator import compare_region
from defaults import (
    DEFAULT_INTERPOLATION,
    DEFAULT_MAX_SOURCE_SIZE,
    DEFAULT_MAX_TARGET_SIZE,
    DEFAULT_MIN_SEARCH_AREA,
    DEFAULT_SIMILARITY_THRESHOLD,
    DEFAULT_WORKERS
)
from errors import SizeConstraintError, SourceNotSetError
from geometry import Match, Rect
from performance_optimizations import create_executor, get_worker_count
from postprocessing import filter_worst_matches, merge_near_matches, normalize_matches
from preprocessing import as_pixel_buffer, raster_size, resample_for_level


@dataclass
class FinderConfig:
    """Configuration for the image finder."""
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    max_source_size: Tuple[int, int] = DEFAULT_MAX_SOURCE_SIZE
    max_target_size: Tuple[int, int] = DEFAULT_MAX_TARGET_SIZE
    min_search_area: int = DEFAULT_MIN_SEARCH_AREA
    interpolation: str = DEFAULT_INTERPOLATION
    workers: Optional[int] = DEFAULT_WORKERS

    def __post_init__(self):
        self.max_source_size = tuple(self.max_source_size)
        self.max_target_size = tuple(self.max_target_size)

    @classmethod
    def from_dict(cls, config_dict: dict):
        """Create config from dictionary."""
        return cls(**{k: v for k, v in config_dict.items() if k in cls.__annotations__})

    def to_dict(self) -> dict:
        config_dict = asdict(self)
        config_dict['max_source_size'] = list(self.max_source_size)
        config_dict['max_target_size'] = list(self.max_target_size)
        return config_dict


class FindState(Enum):
    NONE = 0
    INITIAL = 1
    SEQUENT = 2


@dataclass
class LevelStats:
    """What one searched pyramid level did."""
    scale_divider: int
    source_size: Tuple[int, int]
    target_size: Tuple[int, int]
    regions: int
    candidates: int
    matches: int


@dataclass
class SearchContext:
    """Working state owned by a single find() call."""
    source: np.ndarray
    target: np.ndarray
    threshold: float
    source_grid: AggregateGrid
    target_grid: AggregateGrid
    matches: List[Match] = field(default_factory=list)
    stats: List[LevelStats] = field(default_factory=list)
    executor: Optional[ThreadPoolExecutor] = None


class ImageFinder:
    """Finds every occurrence of a target raster inside a source raster."""

    def __init__(self, config: Optional[FinderConfig] = None):
        self.config = config or FinderConfig()
        self.workers = get_worker_count(self.config.workers)
        self.source = None
        self.last_matches: List[Match] = []
        self.level_stats: List[LevelStats] = []
        self._source_grid = None
        self._target_grid = None

    def set_source(self, image: np.ndarray):
        """
        Set the raster that subsequent find() calls search in.

        Raises:
            RasterFormatError: If the raster is not (height, width, 3) uint8
            SizeConstraintError: If the raster is empty or exceeds max_source_size
        """
        pixels = as_pixel_buffer(image, 'source')
        width, height = raster_size(pixels)
        max_width, max_height = self.config.max_source_size
        if width == 0 or height == 0:
            raise SizeConstraintError("Source image can not be empty.")
        if width > max_width:
            raise SizeConstraintError(f"Source image width can not be larger than {max_width} pixels.")
        if height > max_height:
            raise SizeConstraintError(f"Source image height can not be larger than {max_height} pixels.")
        self.source = pixels
        logging.debug(f"Source set: {width}x{height}")

    def find(self, image: np.ndarray, similarity_threshold: Optional[float] = None) -> List[Match]:
        """
        Search the source for every region resembling `image`.

        Args:
            image: Target raster, (height, width, 3) uint8
            similarity_threshold: Minimum similarity at full resolution
                (defaults to config.similarity_threshold)

        Returns:
            Matches sorted by descending similarity; also kept in last_matches

        Raises:
            SourceNotSetError: If set_source() was not called
            RasterFormatError: If the raster is not (height, width, 3) uint8
            SizeConstraintError: If the target is empty, larger than the source
                or larger than max_target_size
        """
        if self.source is None:
            raise SourceNotSetError("Source image not specified.")

        target = as_pixel_buffer(image, 'target')
        self._validate_target(target)

        threshold = self.config.similarity_threshold if similarity_threshold is None else similarity_threshold
        self.last_matches = []
        self.level_stats = []

        context = self._create_context(target, threshold)

        source_w, source_h = raster_size(self.source)
        target_w, target_h = raster_size(target)
        logging.info(f"Searching {target_w}x{target_h} target in {source_w}x{source_h} source "
                     f"(threshold {threshold})")

        context.executor = create_executor(self.workers)
        try:
            self._inner_find(context)
        finally:
            if context.executor is not None:
                context.executor.shutdown()

        self.last_matches = sorted(context.matches, key=lambda m: m.similarity, reverse=True)
        self.level_stats = context.stats
        logging.info(f"Found {len(self.last_matches)} match(es) after {len(self.level_stats)} level(s)")
        return list(self.last_matches)

    def _validate_target(self, target: np.ndarray):
        width, height = raster_size(target)
        source_width, source_height = raster_size(self.source)
        max_width, max_height = self.config.max_target_size
        if width == 0 or height == 0:
            raise SizeConstraintError("Target image can not be empty.")
        if width > source_width:
            raise SizeConstraintError("Target image width can not be larger than source width.")
        if height > source_height:
            raise SizeConstraintError("Target image height can not be larger than source height.")
        if width > max_width:
            raise SizeConstraintError(f"Target image width can not be larger than {max_width} pixels.")
        if height > max_height:
            raise SizeConstraintError(f"Target image height can not be larger than {max_height} pixels.")

    def _create_context(self, target: np.ndarray, threshold: float) -> SearchContext:
        """Per-call working state; grids are reused while the full-resolution sizes stay the same."""
        source_w, source_h = raster_size(self.source)
        target_w, target_h = raster_size(target)
        if self._source_grid is None:
            self._source_grid = AggregateGrid(source_w, source_h)
        else:
            self._source_grid.ensure_shape(source_w, source_h)
        if self._target_grid is None:
            self._target_grid = AggregateGrid(target_w, target_h)
        else:
            self._target_grid.ensure_shape(target_w, target_h)

        return SearchContext(
            source=self.source,
            target=target,
            threshold=threshold,
            source_grid=self._source_grid,
            target_grid=self._target_grid
        )

    def _inner_find(self, context: SearchContext, scale_divider: int = 1) -> FindState:
        target_w, target_h = raster_size(context.target)
        scaled_area = (target_w // scale_divider) * (target_h // scale_divider)

        if scaled_area >= self.config.min_search_area:
            state = self._inner_find(context, scale_divider * 2)
            if state is FindState.NONE:
                return FindState.NONE
        else:
            return FindState.INITIAL

        return self._search_level(context, scale_divider, state)

    def _search_level(self, context: SearchContext, scale_divider: int, state: FindState) -> FindState:
        source = resample_for_level(context.source, scale_divider, self.config.interpolation)
        target = resample_for_level(context.target, scale_divider, self.config.interpolation)
        source_size = raster_size(source)
        target_size = raster_size(target)

        regions = self._regions_for_level(state, context.matches, source_size, target_size)
        logging.debug(f"  Level 1/{scale_divider}: source {source_size[0]}x{source_size[1]}, "
                      f"target {target_size[0]}x{target_size[1]}, {len(regions)} region(s)")

        build_aggregates(source, context.source_grid, target_size, regions,
                         self.workers, context.executor)
        build_aggregates(target, context.target_grid, target_size, [Rect.from_size(target_size)],
                         self.workers, context.executor)

        matches = []
        for region in regions:
            matches.extend(compare_region(
                context.source_grid, context.target_grid, region, target_size,
                scale_divider, context.threshold, self.workers, context.executor
            ))
        candidates = len(matches)

        if matches:
            matches = filter_worst_matches(matches, scale_divider)
        if scale_divider > 1:
            matches = merge_near_matches(matches, scale_divider)
        else:
            matches = normalize_matches(matches)

        context.matches = matches
        context.stats.append(LevelStats(
            scale_divider=scale_divider,
            source_size=source_size,
            target_size=target_size,
            regions=len(regions),
            candidates=candidates,
            matches=len(matches)
        ))
        logging.debug(f"  Level 1/{scale_divider}: {candidates} candidate(s) -> {len(matches)} match(es)")

        return FindState.SEQUENT if matches else FindState.NONE

    @staticmethod
    def _regions_for_level(state: FindState, previous: List[Match],
                           source_size: Tuple[int, int], target_size: Tuple[int, int]) -> List[Rect]:
        """
        Candidate regions at this level: the whole source after INITIAL, otherwise
        every previous match grown by one pixel and mapped to this level's coordinates.
        Regions that can not hold one target window are dropped.
        """
        bounds = Rect.from_size(source_size)
        if state is FindState.INITIAL:
            candidates = [bounds]
        else:
            candidates = [
                Rect.from_ltrb(
                    (m.zone.left - 1) * 2,
                    (m.zone.top - 1) * 2,
                    (m.zone.right + 1) * 2,
                    (m.zone.bottom + 1) * 2
                ).intersect(bounds)
                for m in previous
            ]
        return [r for r in candidates if r.width >= target_size[0] and r.height >= target_size[1]]
