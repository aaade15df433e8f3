"""Relatedness grid generation and log transform.

The grid is an (M, neval) matrix of candidate relatedness vectors, one column
per candidate. All transcendental work on the grid (log r, log(1 - r)) is done
here, once, so that the per-marker kernel only does additions and
log-sum-exps. The resulting GridTransform is read-only and is shared across
every marker and every pair that uses the same grid.

Components equal to 0 or 1 are distinguished cases: log(r) is undefined at
r = 0 and log(1 - r) at r = 1. Those entries are stored as -inf and the
counts ``m1`` / ``nmid`` let consumers branch on them explicitly instead of
propagating infinities through arithmetic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from itertools import combinations_with_replacement
from math import comb

import numpy as np

from polyrel.errors import ConfigurationError
from polyrel.ibd.tables import LogTables

# Upper bound on generated grid columns; general-r grids grow as C(nr + M, M)
MAX_GRID_COLUMNS = 2_000_000


@dataclass(frozen=True)
class GridTransform:
    """Cached log quantities for a relatedness grid.

    Attributes:
        grid: Relatedness values, shape (nc, neval).
        logr: log(r), -inf where r == 0. Shape (nc, neval).
        log1r: log(1 - r), -inf where r == 1. Shape (nc, neval).
        m1: Number of components equal to 1 per column, shape (neval,).
        nmid: Number of components strictly inside (0, 1), shape (neval,).
        sum1r: Sum of log(1 - r) over components < 1, shape (neval,).
            Multiplied by M under equal-r with M > 1.
        equalr: Whether the grid is a single scalar replicated M times.
        M: Number of related strain pairs the transform was built for.
    """

    grid: np.ndarray
    logr: np.ndarray
    log1r: np.ndarray
    m1: np.ndarray
    nmid: np.ndarray
    sum1r: np.ndarray
    equalr: bool
    M: int
    _logpk: dict = field(default_factory=dict, init=False, repr=False, compare=False)

    @property
    def neval(self) -> int:
        return self.grid.shape[1]

    def log_pk(self, tables: LogTables) -> np.ndarray:
        """log P(k | r) for k = 0..M IBD strain pairs at every grid point.

        Depends only on the grid, so it is computed on first use and reused
        for every marker and pair evaluated against this transform.

        Returns:
            Read-only array of shape (M + 1, neval).
        """
        logpk = self._logpk.get("value")
        if logpk is None:
            if self.equalr:
                logpk = _log_pk_equalr(self, tables)
            else:
                logpk = _log_pk_general(self)
            logpk.setflags(write=False)
            self._logpk["value"] = logpk
        return logpk


def _log_pk_equalr(logr: GridTransform, tables: LogTables) -> np.ndarray:
    """log P(k | r) under a binomial(M, r) law; shape (M + 1, neval)."""
    M = logr.M
    r = logr.grid[0]
    is0 = r == 0.0
    is1 = r == 1.0
    mid = ~(is0 | is1)

    ks = np.arange(M + 1)
    out = np.full((M + 1, logr.neval), -np.inf)
    out[0, is0] = 0.0
    out[M, is1] = 0.0
    out[:, mid] = (
        tables.log_choose(M, ks)[:, np.newaxis]
        + ks[:, np.newaxis] * logr.logr[0, mid]
        + (M - ks)[:, np.newaxis] * logr.log1r[0, mid]
    )
    return out


def _log_pk_general(logr: GridTransform) -> np.ndarray:
    """log P(k | r) under a Poisson-binomial law; shape (M + 1, neval).

    Components at r = 1 are always IBD (m1 of them), components at r = 0
    never are. Interior components enter through a log-space recursion for
    the elementary symmetric polynomials of their odds r / (1 - r).
    """
    M = logr.M
    interior = (logr.grid > 0.0) & (logr.grid < 1.0)
    logodds = np.zeros_like(logr.grid)
    logodds[interior] = logr.logr[interior] - logr.log1r[interior]

    esym = np.full((M + 1, logr.neval), -np.inf)
    esym[0] = 0.0
    for c in range(logr.grid.shape[0]):
        cols = interior[c]
        for i in range(M, 0, -1):
            esym[i, cols] = np.logaddexp(
                esym[i, cols], esym[i - 1, cols] + logodds[c, cols]
            )

    out = np.full((M + 1, logr.neval), -np.inf)
    cols = np.arange(logr.neval)
    for k in range(M + 1):
        j = k - logr.m1
        ok = (j >= 0) & (j <= logr.nmid)
        out[k, ok] = logr.sum1r[ok] + esym[j[ok], cols[ok]]
    return out


def grid_columns(M: int, nvalues: int) -> int:
    """Number of non-decreasing M-vectors over ``nvalues`` candidate values."""
    return comb(nvalues + M - 1, M)


def generate_grid(
    M: int = 1,
    nr: int = 1000,
    rval: np.ndarray | None = None,
) -> np.ndarray:
    """Generate a grid of candidate relatedness vectors.

    For M = 1 the grid is 0, 1/nr, ..., 1. For M > 1 it contains every
    non-decreasing M-vector over those values; strain pairs are exchangeable
    so sorted vectors cover the parameter space.

    Args:
        M: Number of related strain pairs (vector length).
        nr: Number of intervals on [0, 1] when ``rval`` is not given.
        rval: Explicit candidate values in [0, 1]. Overrides ``nr``.

    Returns:
        Array of shape (M, neval).

    Raises:
        ConfigurationError: If M < 1, nr < 1, rval is outside [0, 1], or the
            grid would exceed MAX_GRID_COLUMNS columns.
    """
    if M < 1:
        raise ConfigurationError(f"M must be >= 1, got {M}")
    if rval is None:
        if nr < 1:
            raise ConfigurationError(f"nr must be >= 1, got {nr}")
        rval = np.arange(nr + 1, dtype=np.float64) / nr
    else:
        rval = np.unique(np.asarray(rval, dtype=np.float64))
        if rval.size == 0 or rval[0] < 0.0 or rval[-1] > 1.0:
            raise ConfigurationError("rval must be non-empty and within [0, 1]")

    ncol = grid_columns(M, rval.size)
    if ncol > MAX_GRID_COLUMNS:
        raise ConfigurationError(
            f"grid for M={M} over {rval.size} values has {ncol} columns, "
            f"above the limit of {MAX_GRID_COLUMNS}; lower nr or use equalr"
        )

    if M == 1:
        return rval[np.newaxis, :].copy()

    idx = np.array(
        list(combinations_with_replacement(range(rval.size), M)), dtype=np.intp
    )
    return rval[idx.T]


def log_grid(
    grid: np.ndarray,
    M: int | None = None,
    neval: int | None = None,
    equalr: bool = False,
) -> GridTransform:
    """Precompute log quantities for a relatedness grid.

    Args:
        grid: Relatedness values, shape (nc, neval) or (neval,) for one row.
        M: Number of related strain pairs. Checked against the row count
            unless ``equalr``. Defaults to the row count.
        neval: Number of leading columns to use. Defaults to all columns.
        equalr: Treat the single grid row as a scalar replicated M times.

    Returns:
        GridTransform with read-only arrays.

    Raises:
        ConfigurationError: If the row count is inconsistent with M or
            equal-r, neval exceeds the column count, or values are outside
            [0, 1].

    Example:
        >>> t1 = log_grid(generate_grid(1, nr=1000))
        >>> t3 = log_grid(generate_grid(1, nr=1000), M=3, equalr=True)
        >>> bool(np.all(t3.sum1r == 3 * t1.sum1r))
        True
    """
    grid = np.asarray(grid, dtype=np.float64)
    if grid.ndim == 1:
        grid = grid[np.newaxis, :]
    if grid.ndim != 2:
        raise ConfigurationError(f"grid must be 2-dimensional, got {grid.ndim}-d")

    nc, ncol = grid.shape
    if equalr and nc != 1:
        raise ConfigurationError(
            f"grid should have exactly 1 row under equal-r, got {nc}"
        )
    if M is not None and not equalr and M != nc:
        raise ConfigurationError(f"grid has {nc} rows but M = {M}")
    if M is None:
        M = nc
    if neval is None:
        neval = ncol
    if neval < 1 or neval > ncol:
        raise ConfigurationError(f"neval must be in [1, {ncol}], got {neval}")

    grid = grid[:, :neval].copy()
    if np.isnan(grid).any() or (grid < 0.0).any() or (grid > 1.0).any():
        raise ConfigurationError("grid values must lie in [0, 1]")

    is0 = grid == 0.0
    is1 = grid == 1.0
    interior = ~(is0 | is1)

    logr = np.full_like(grid, -np.inf)
    log1r = np.full_like(grid, -np.inf)
    logr[~is0] = np.log(grid[~is0])
    log1r[~is1] = np.log1p(-grid[~is1])

    m1 = is1.sum(axis=0)
    nmid = interior.sum(axis=0)
    sum1r = np.where(is1, 0.0, log1r).sum(axis=0)
    if equalr and M > 1:
        sum1r = M * sum1r

    for arr in (grid, logr, log1r, m1, nmid, sum1r):
        arr.setflags(write=False)

    return GridTransform(
        grid=grid,
        logr=logr,
        log1r=log1r,
        m1=m1,
        nmid=nmid,
        sum1r=sum1r,
        equalr=equalr,
        M=M,
    )
