"""Estimation of the number of related strain pairs.

For each candidate M = 1..min(nx, ny) the pair likelihood is maximised on a
grid, and the M with the largest maximum is kept. Ties go to the smaller M.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from loguru import logger

from polyrel.core.config import EstimationConfig
from polyrel.errors import ConfigurationError
from polyrel.ibd.data import prepare_afreq
from polyrel.ibd.grid import MAX_GRID_COLUMNS, grid_columns
from polyrel.ibd.pair import build_grid, estimate_pair, pair_markers
from polyrel.ibd.tables import LogTables


@dataclass
class MEstimate:
    """Selected number of related strain pairs.

    Attributes:
        M: Selected number of related strain pairs.
        estimate: Relatedness estimate under the selected M.
        llik_max: Maximised log-likelihood for each candidate M = 1..Mmax.
    """

    M: int
    estimate: float | np.ndarray
    llik_max: np.ndarray


def ibd_est_m(
    pair: Sequence,
    coi: Sequence[int],
    afreq: Sequence,
    Imax: int | None = None,
    equalr: bool = True,
    freqlog: bool = True,
    reval: np.ndarray | None = None,
    nr: int = 1000,
    names: tuple = ("x", "y"),
) -> MEstimate:
    """Select the number of related strain pairs by maximum likelihood.

    Args:
        pair: Two sequences of per-marker allele indices.
        coi: Complexities of the two samples.
        afreq: Allele frequencies per marker.
        Imax: Upper bound on M; defaults to min(nx, ny).
        equalr: Constrain the M components to one value. With equalr=False
            the grid grows as C(nr + M, M) and must stay within
            MAX_GRID_COLUMNS for the largest candidate M.
        freqlog: Whether ``afreq`` is on the log scale.
        reval: Single-row grid used for every M under equal-r.
        nr: Grid resolution when the grid is generated.
        names: Pair identity used in error messages.

    Returns:
        MEstimate.

    Raises:
        ConfigurationError: If Imax < 1, ``reval`` is given without equalr,
            or the general-r grid for the largest M is too large. Raised
            before any candidate is evaluated.
        InputValidityError: On invalid complexities or allele data.
    """
    if Imax is not None and Imax < 1:
        raise ConfigurationError(f"Imax must be >= 1, got {Imax}")
    if reval is not None and not equalr:
        raise ConfigurationError("a shared reval is only valid with equalr")

    afreq = prepare_afreq(afreq, freqlog=freqlog)
    nx, ny, markers = pair_markers(pair, coi, afreq, 1, names=names)
    Mmax = min(nx, ny) if Imax is None else min(nx, ny, Imax)
    if not equalr and grid_columns(Mmax, nr + 1) > MAX_GRID_COLUMNS:
        raise ConfigurationError(
            f"general-r grid for M={Mmax} at nr={nr} has "
            f"{grid_columns(Mmax, nr + 1)} columns, above the limit of "
            f"{MAX_GRID_COLUMNS}; lower nr, set Imax or use equalr"
        )
    tables = LogTables.build(max(nx, ny))

    lliks = np.full(Mmax, -np.inf)
    estimates = []
    for m in range(1, Mmax + 1):
        config = EstimationConfig(M=m, equalr=equalr, mnewton=False, pval=False, nr=nr)
        config.validate()
        grid = build_grid(config, reval=reval)
        res = estimate_pair(markers, nx, ny, afreq, config, tables, grid=grid)
        lliks[m - 1] = res.llik_max
        estimates.append(res.estimate)

    best = int(np.argmax(lliks))
    logger.debug(f"Selected M={best + 1} for pair {names[0]}/{names[1]}")
    return MEstimate(M=best + 1, estimate=estimates[best], llik_max=lliks)
