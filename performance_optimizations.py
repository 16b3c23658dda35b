"""
Thread settings and fan-out helpers for the parallel parts of the search.
Call setup_thread_optimizations() once at the start of your program.
"""

import os
import cv2
import logging
from concurrent.futures import ThreadPoolExecutor
from multiprocessing import cpu_count
from typing import Callable, List, Optional, Sequence, Tuple


def get_worker_count(requested: Optional[int] = None) -> int:
    """
    Number of worker threads to use for the parallel kernels.

    Args:
        requested: Explicit worker count, or None to derive it from the CPU count

    Returns:
        Worker count (at least 1)
    """
    if requested is not None:
        if requested < 1:
            raise ValueError(f"Worker count must be at least 1, got {requested}")
        return requested
    return max(1, min(cpu_count(), 16))


def setup_thread_optimizations(workers: Optional[int] = None) -> dict:
    """
    Configure OpenCV and BLAS thread pools for the detected core count.

    Args:
        workers: Explicit worker count, or None to detect

    Returns:
        Summary of the applied settings
    """
    cores = cpu_count()
    worker_count = get_worker_count(workers)

    logging.info(f"Detected {cores} CPU cores")

    # Resampling runs once per level; keep OpenCV from oversubscribing our own pool
    cv2.setNumThreads(worker_count)
    cv2.setUseOptimized(True)
    logging.debug(f"OpenCV threads: {worker_count}")

    os.environ.setdefault('OPENBLAS_NUM_THREADS', str(worker_count))
    os.environ.setdefault('OMP_NUM_THREADS', str(worker_count))

    return {
        'cores': cores,
        'workers': worker_count
    }


def split_range(start: int, stop: int, parts: int) -> List[Tuple[int, int]]:
    """
    Split [start, stop) into at most `parts` contiguous, non-overlapping bands.

    Empty bands are omitted, so the result is empty when stop <= start.
    """
    total = stop - start
    if total <= 0:
        return []
    parts = max(1, min(parts, total))
    base, extra = divmod(total, parts)
    bands = []
    lo = start
    for i in range(parts):
        hi = lo + base + (1 if i < extra else 0)
        bands.append((lo, hi))
        lo = hi
    return bands


def create_executor(workers: int) -> Optional[ThreadPoolExecutor]:
    """
    Thread pool shared by every parallel kernel of one search.

    Returns None for a single worker; run_parallel() then runs inline.
    The caller owns the pool and must shut it down.
    """
    if workers <= 1:
        return None
    return ThreadPoolExecutor(max_workers=workers, thread_name_prefix='image-finder')


def run_parallel(func: Callable, items: Sequence, workers: int,
                 executor: Optional[ThreadPoolExecutor] = None) -> list:
    """
    Apply `func` to every item and block until all calls complete.

    Results are returned in item order. With a single worker (or a single item)
    the calls run inline on the calling thread. Calls go to `executor` when one
    is given; otherwise a temporary pool is created for this call.
    """
    if workers <= 1 or len(items) <= 1:
        return [func(item) for item in items]

    if executor is not None:
        futures = [executor.submit(func, item) for item in items]
        return [future.result() for future in futures]

    with ThreadPoolExecutor(max_workers=min(workers, len(items))) as pool:
        futures = [pool.submit(func, item) for item in items]
        return [future.result() for future in futures]
