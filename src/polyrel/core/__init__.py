"""Shared infrastructure for polyrel.

- config: EstimationConfig option validation
- jax_config: JAX precision setup
- progress: progress bar for pair loops
- threading: worker count and BLAS thread limits
"""

from polyrel.core.config import EstimationConfig
from polyrel.core.jax_config import configure_jax, get_jax_info
from polyrel.core.progress import progress_iterator
from polyrel.core.threading import blas_threads, get_worker_count

__all__ = [
    "EstimationConfig",
    "blas_threads",
    "configure_jax",
    "get_jax_info",
    "get_worker_count",
    "progress_iterator",
]
