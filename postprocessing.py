"""
Match post-processing: filtering weak candidates and merging duplicates.

All functions return new lists and leave their input untouched.
"""

import logging
from typing import List

from defaults import MERGE_THRESHOLD_BASES, NORMALIZE_OVERLAP_THRESHOLD
from geometry import Match


def overlap_ratio(first: Match, second: Match) -> float:
    """Intersection area divided by the smaller zone's area (0.0 if either zone is empty)."""
    a, b = first.zone, second.zone
    smaller = min(a.area, b.area)
    if smaller <= 0:
        return 0.0
    width = min(a.x + a.width, b.x + b.width) - max(a.x, b.x)
    height = min(a.y + a.height, b.y + b.height) - max(a.y, b.y)
    if width <= 0 or height <= 0:
        return 0.0
    return (width * height) / smaller


def filter_worst_matches(matches: List[Match], scale_divider: int) -> List[Match]:
    """
    Sort by similarity (best first) and drop matches below an adaptive cutoff.

    With many candidates (more than 64 per scale divider) the cutoff leans on the
    median; otherwise it sits between the best and the worst candidate.
    """
    ranked = sorted(matches, key=lambda m: m.similarity, reverse=True)
    if not ranked:
        return ranked

    best = ranked[0].similarity
    if len(ranked) > 64 * scale_divider:
        median = ranked[len(ranked) // 2].similarity
        cutoff = (best + median * 2.75) / 3.75
    else:
        worst = ranked[-1].similarity
        cutoff = (best * 1.25 + worst) / 2.25

    kept = [m for m in ranked if m.similarity >= cutoff]
    logging.debug(f"    Filter: {len(ranked)} -> {len(kept)} (cutoff {cutoff:.4f})")
    return kept


def merge_near_matches(matches: List[Match], scale_divider: int) -> List[Match]:
    """
    Merge overlapping matches into their union under progressively stricter thresholds.

    For each base in 0.90 .. 0.99 the threshold is base ** (scale_divider ** 0.25);
    every pair overlapping by more than it is replaced by one match covering both
    zones with the higher of the two similarities.
    """
    merged = list(matches)
    exponent = scale_divider ** 0.25
    for base in MERGE_THRESHOLD_BASES:
        threshold = base ** exponent
        n = 0
        while n < len(merged):
            for m in range(len(merged) - 1, n, -1):
                if overlap_ratio(merged[n], merged[m]) > threshold:
                    merged[n] = Match(
                        merged[n].zone.union(merged[m].zone),
                        max(merged[n].similarity, merged[m].similarity)
                    )
                    del merged[m]
            n += 1
    logging.debug(f"    Merge: {len(matches)} -> {len(merged)}")
    return merged


def normalize_matches(matches: List[Match]) -> List[Match]:
    """
    Final deduplication at full resolution.

    Of each pair overlapping by more than the fixed threshold only the more
    similar match survives, with its own zone. When a match is replaced the
    remaining candidates are rescanned against the survivor, so the result is
    pairwise non-overlapping and normalizing it again changes nothing.
    """
    normalized = list(matches)
    n = 0
    while n < len(normalized):
        m = len(normalized) - 1
        while m > n:
            if overlap_ratio(normalized[n], normalized[m]) > NORMALIZE_OVERLAP_THRESHOLD:
                replaced = normalized[m].similarity > normalized[n].similarity
                if replaced:
                    normalized[n] = normalized[m]
                del normalized[m]
                if replaced:
                    m = len(normalized) - 1
                    continue
            m -= 1
        n += 1
    logging.debug(f"    Normalize: {len(matches)} -> {len(normalized)}")
    return normalized
