"""Worker and BLAS thread management for the pair loop.

Pairs are independent, so the dataset driver fans them out over worker
processes. Each worker keeps numpy's BLAS single-threaded to avoid
oversubscribing cores with nested thread pools.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import contextmanager

import psutil
from loguru import logger
from threadpoolctl import threadpool_limits


def get_worker_count(n_workers: int | None = None) -> int:
    """Determine the number of worker processes for the pair loop.

    Priority:
    1. Explicit ``n_workers`` argument
    2. POLYREL_WORKERS env var
    3. Physical core count via psutil (avoids hyperthreading oversubscription)

    Returns:
        Positive integer worker count, capped at os.cpu_count().
    """
    max_workers = os.cpu_count() or 64

    if n_workers is not None:
        return max(1, min(int(n_workers), max_workers))

    env_override = os.environ.get("POLYREL_WORKERS")
    if env_override is not None:
        try:
            n = int(env_override)
        except ValueError:
            logger.warning(
                f"POLYREL_WORKERS={env_override!r} is not a valid integer, "
                "falling back to physical core count"
            )
        else:
            n = max(1, min(n, max_workers))
            logger.debug(f"Workers from POLYREL_WORKERS: {n}")
            return n

    n = psutil.cpu_count(logical=False) or max_workers
    n = max(1, min(n, max_workers))
    logger.debug(f"Workers from physical core count: {n}")
    return n


@contextmanager
def blas_threads(n_threads: int = 1) -> Generator[None, None, None]:
    """Context manager for scoped BLAS thread control.

    Args:
        n_threads: Number of BLAS threads inside the block.

    Example:
        >>> with blas_threads(1):
        ...     result = estimate_pair(task)
    """
    with threadpool_limits(limits=n_threads, user_api="blas"):
        yield
