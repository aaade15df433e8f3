"""Relatedness estimation for a single pair of samples.

Per-marker kernel outputs are summed across markers (markers are treated as
independent) and the summed log-likelihood is maximised either by Newton's
method on the M = 1 fast-path coefficients or by scanning a precomputed
relatedness grid. Optionally a likelihood-ratio p-value against a null
relatedness and a profile-likelihood confidence interval are derived from
the same likelihood.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from loguru import logger

from polyrel.core.config import EstimationConfig
from polyrel.errors import ConfigurationError, InputValidityError
from polyrel.ibd.data import check_coi, marker_alleles, prepare_afreq
from polyrel.ibd.grid import GridTransform, generate_grid, log_grid
from polyrel.ibd.kernel import prob_ux_uy
from polyrel.ibd.optimize import fast_loglik, grid_argmax, newton_estimate
from polyrel.ibd.stats import lrt_pvalue, profile_ci
from polyrel.ibd.tables import LogTables


@dataclass
class PairResult:
    """Relatedness estimate for one sample pair.

    Attributes:
        estimate: Scalar relatedness (M = 1 or equal-r) or length-M vector.
        pvalue: Likelihood-ratio p-value against the null, if requested.
        ci: (lower, upper) confidence bounds, if requested.
        llik_max: Maximised log-likelihood.
        llik: Log-likelihood over the grid, when a grid was evaluated.
        n_markers: Number of markers typed in both samples.
    """

    estimate: float | np.ndarray
    pvalue: float | None = None
    ci: tuple[float, float] | None = None
    llik_max: float = float("nan")
    llik: np.ndarray | None = None
    n_markers: int = 0

    def total_relatedness(self, nx: int, ny: int, M: int = 1) -> float:
        """Overall relatedness of the pair, on one scale for every mode.

        M = 1 reports r itself. For M > 1 the components are summed and
        divided by min(nx, ny); an equal-r scalar counts as M equal
        components.
        """
        if M == 1:
            return float(np.asarray(self.estimate).reshape(-1)[0])
        components = np.broadcast_to(np.asarray(self.estimate, dtype=np.float64), (M,))
        return float(components.sum() / min(nx, ny))


def build_grid(
    config: EstimationConfig,
    reval: np.ndarray | None = None,
    logr: GridTransform | None = None,
) -> GridTransform:
    """Grid transform for an estimation run.

    Uses ``logr`` if given (after a consistency check), else transforms
    ``reval``, else generates a grid at resolution ``config.nr``.

    Raises:
        ConfigurationError: If the grid does not match M / equal-r.
    """
    if logr is not None:
        if logr.equalr != config.equalr or (not config.equalr and logr.M != config.M):
            raise ConfigurationError(
                f"grid transform built for M={logr.M}, equalr={logr.equalr} "
                f"does not match M={config.M}, equalr={config.equalr}"
            )
        return logr
    if reval is None:
        reval = generate_grid(1 if config.equalr else config.M, nr=config.nr)
    return log_grid(reval, M=config.M, equalr=config.equalr)


def build_null_grid(config: EstimationConfig) -> GridTransform:
    """One-column grid transform holding the null relatedness."""
    rnull = config.null_vector()
    return log_grid(rnull[:, np.newaxis], M=config.M, equalr=config.equalr)


def pair_markers(
    pair: Sequence,
    coi: Sequence[int],
    afreq: list[np.ndarray],
    M: int,
    names: tuple = ("x", "y"),
) -> tuple[int, int, list[tuple[int, np.ndarray, np.ndarray]]]:
    """Validate a pair and collect markers typed in both samples.

    Args:
        pair: Two sequences of per-marker allele-index collections.
        coi: Complexities of the two samples.
        afreq: Log allele frequencies per marker.
        M: Number of related strain pairs.
        names: Pair identity used in error messages.

    Returns:
        Tuple of (nx, ny, markers) where markers holds (index, ux, uy) for
        each marker with alleles detected in both samples.

    Raises:
        InputValidityError: On invalid complexities, M above the smaller
            complexity, mismatched marker counts or invalid allele sets.
    """
    try:
        if len(pair) != 2 or len(coi) != 2:
            raise InputValidityError("a pair needs exactly two samples and two COIs")
        nx = check_coi(coi[0], str(names[0]))
        ny = check_coi(coi[1], str(names[1]))
        if M > min(nx, ny):
            raise InputValidityError(
                f"M = {M} exceeds the smaller complexity {min(nx, ny)}"
            )
        x, y = pair
        if len(x) != len(afreq) or len(y) != len(afreq):
            raise InputValidityError(
                f"samples have {len(x)} and {len(y)} markers, "
                f"frequencies cover {len(afreq)}"
            )

        markers = []
        for t, probs in enumerate(afreq):
            ux = marker_alleles(x[t], nx, probs, t)
            uy = marker_alleles(y[t], ny, probs, t)
            if ux.size and uy.size:
                markers.append((t, ux, uy))
    except InputValidityError as e:
        raise e.with_pair(tuple(names)) from None
    return nx, ny, markers


def estimate_pair(
    markers: list[tuple[int, np.ndarray, np.ndarray]],
    nx: int,
    ny: int,
    afreq: list[np.ndarray],
    config: EstimationConfig,
    tables: LogTables,
    grid: GridTransform | None = None,
    null_grid: GridTransform | None = None,
) -> PairResult:
    """Estimate relatedness for validated pair data.

    Args:
        markers: (index, ux, uy) triples from :func:`pair_markers`.
        nx, ny: Complexities of infection.
        afreq: Log allele frequencies per marker.
        config: Validated estimation options.
        tables: Log tables covering max(nx, ny).
        grid: Grid transform; required in grid mode or with confint.
        null_grid: One-column null transform for grid-mode p-values.

    Returns:
        PairResult.
    """
    M = config.M
    mnewton = config.resolved_mnewton()

    def kernel(t, ux, uy, fast, transform):
        return prob_ux_uy(
            ux, uy, nx, ny, afreq[t], M, tables,
            equalr=config.equalr, mnewton=fast, logr=transform,
        )

    coefs = None
    llik = None
    if mnewton:
        coefs = np.array([kernel(t, ux, uy, True, None) for t, ux, uy in markers])
        coefs = coefs.reshape(-1, 2)
        r_hat, n_iter = newton_estimate(coefs, tol=config.tol, maxiter=config.maxiter)
        if n_iter == 0:
            logger.debug(f"Estimate pinned at boundary r={r_hat:g}")
        estimate = r_hat
        llik_max = fast_loglik(coefs, r_hat)

    if not mnewton or config.confint:
        if grid is None:
            raise ConfigurationError("grid evaluation requested without a grid")
        llik = np.zeros(grid.neval)
        for t, ux, uy in markers:
            llik += kernel(t, ux, uy, False, grid)
        if not mnewton:
            idx = grid_argmax(llik)
            column = grid.grid[:, idx]
            estimate = float(column[0]) if column.size == 1 else column.copy()
            llik_max = float(llik[idx])

    pvalue = None
    if config.pval:
        if mnewton:
            llik_null = fast_loglik(coefs, float(config.null_vector()[0]))
        else:
            if null_grid is None:
                null_grid = build_null_grid(config)
            llik_null = 0.0
            for t, ux, uy in markers:
                llik_null += float(kernel(t, ux, uy, False, null_grid)[0])
        pvalue = lrt_pvalue(llik_max, llik_null, boundary=config.null_on_boundary())

    ci = None
    if config.confint:
        top = max(llik_max, float(np.max(llik)))
        ci = profile_ci(llik, grid.grid[0], config.alpha, llik_max=top)

    return PairResult(
        estimate=estimate,
        pvalue=pvalue,
        ci=ci,
        llik_max=llik_max,
        llik=llik,
        n_markers=len(markers),
    )


def ibd_pair(
    pair: Sequence,
    coi: Sequence[int],
    afreq: Sequence,
    M: int = 1,
    pval: bool = True,
    confint: bool = False,
    rnull: float | np.ndarray = 0.0,
    alpha: float = 0.05,
    mnewton: bool | None = None,
    freqlog: bool = True,
    reval: np.ndarray | None = None,
    nr: int = 1000,
    equalr: bool = False,
    tol: float = 1e-8,
    maxiter: int = 50,
    tables: LogTables | None = None,
    logr: GridTransform | None = None,
    names: tuple = ("x", "y"),
) -> PairResult:
    """Estimate relatedness between two polyclonal samples.

    Args:
        pair: Two sequences (one per sample) of per-marker allele indices.
            An empty collection marks an untyped marker, which is skipped.
        coi: Complexities of infection of the two samples.
        afreq: Allele frequencies per marker, log scale unless
            ``freqlog=False``.
        M: Number of related strain pairs.
        pval: Compute a likelihood-ratio p-value against ``rnull``.
        confint: Compute a profile-likelihood confidence interval (scalar
            relatedness only).
        rnull: Null relatedness, scalar or length-M vector.
        alpha: Significance level for the confidence interval.
        mnewton: Use Newton's method (M = 1 only). None selects Newton when
            M = 1 and ``confint`` is False, else grid search.
        freqlog: Whether ``afreq`` is on the log scale.
        reval: Relatedness grid of shape (M, neval), or (1, neval) with
            ``equalr``. Generated from ``nr`` if omitted.
        nr: Grid resolution when the grid is generated.
        equalr: Constrain all M components to one value.
        tol: Newton convergence tolerance.
        maxiter: Newton iteration cap.
        tables: Precomputed log tables; built if missing or too small.
        logr: Precomputed grid transform; takes precedence over ``reval``.
        names: Pair identity used in error messages.

    Returns:
        PairResult with estimate, optional p-value and confidence interval.

    Raises:
        ConfigurationError: On inconsistent options, before any marker is
            evaluated.
        InputValidityError: On invalid complexities or allele data.

    Example:
        >>> afreq = [np.log([0.5, 0.3, 0.2])] * 3
        >>> x = [[0, 1], [2], [0]]
        >>> y = [[0, 1], [2], [0]]
        >>> res = ibd_pair([x, y], [2, 2], afreq)
        >>> 0.0 <= res.estimate <= 1.0
        True
    """
    config = EstimationConfig(
        M=M, equalr=equalr, mnewton=mnewton, pval=pval, confint=confint,
        rnull=rnull, alpha=alpha, nr=nr, tol=tol, maxiter=maxiter,
    )
    config.validate()

    grid = None
    if not config.resolved_mnewton() or confint:
        grid = build_grid(config, reval=reval, logr=logr)

    afreq = prepare_afreq(afreq, freqlog=freqlog)
    nx, ny, markers = pair_markers(pair, coi, afreq, M, names=names)
    if tables is None or tables.max_coi < max(nx, ny):
        tables = LogTables.build(max(nx, ny))

    return estimate_pair(markers, nx, ny, afreq, config, tables, grid=grid)
