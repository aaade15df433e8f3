"""polyrel: relatedness between polyclonal infections.

Estimates identity-by-descent relatedness between pairs of multi-strain
samples from per-marker sets of detected alleles, accounting for each
sample's complexity of infection and population allele frequencies.

Key features:
- Exact per-marker likelihood under an unphased multi-strain model
- Newton or grid-search maximum likelihood, LRT p-values, profile CIs
- All-pairs driver for one dataset or between two datasets

Example:
    >>> from polyrel import ibd_dat
    >>> res = ibd_dat(samples, coi, afreq, confint=True)
    >>> res.layer("estimate")
"""

import sys
from importlib.metadata import version

from loguru import logger

__version__ = version("polyrel")

# Configure loguru with sensible defaults on import
# Users can override by calling logger.remove()/add()
logger.remove()  # Remove default handler
logger.add(
    sys.stdout,
    level="INFO",
    format="{time:HH:mm:ss} | <level>{level: <8}</level> | {message}",
    colorize=True,
)

from polyrel.errors import ConfigurationError, InputValidityError  # noqa: E402
from polyrel.ibd import (  # noqa: E402
    PairResult,
    RelatednessMatrix,
    Sample,
    generate_grid,
    ibd_dat,
    ibd_est_m,
    ibd_pair,
    log_grid,
    prob_ux_uy,
)

__all__ = [
    "ConfigurationError",
    "InputValidityError",
    "PairResult",
    "RelatednessMatrix",
    "Sample",
    "__version__",
    "generate_grid",
    "ibd_dat",
    "ibd_est_m",
    "ibd_pair",
    "log_grid",
    "prob_ux_uy",
]
