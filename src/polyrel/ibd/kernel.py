"""Per-marker likelihood of an observed allele-overlap pattern.

Observation model for a pair of samples x, y at one marker:
- x carries nx strains and y carries ny strains; k of the strain pairs are
  identical by descent (IBD), so x has nx - k private strains, y has
  ny - k private strains and k strains are shared.
- Every strain draws its allele independently from the population allele
  frequencies; only the sets Ux, Uy of distinct alleles are observed.

Inclusion-exclusion over subsets Vx of Ux and Vy of Uy gives

    P(Ux, Uy | k) = sum (-1)^(|Ux \\ Vx| + |Uy \\ Vy|)
                    p(Vx)^(nx - k) p(Vy)^(ny - k) p(Vx & Vy)^k

where p(V) is the summed frequency of alleles in V. Without shared alleles
only k = 0 is possible and the expression factorises into single-sample
terms. The number of IBD pairs given relatedness r follows a binomial
(equal-r) or Poisson-binomial (general r) law over the M related pairs;
for M = 1 it collapses to (1 - r) P0 + r P1.

Everything is evaluated in log space. Signed sums are shifted by their
largest term before exponentiation.
"""

from __future__ import annotations

from functools import lru_cache

import numpy as np

from polyrel.errors import ConfigurationError
from polyrel.ibd.grid import GridTransform
from polyrel.ibd.tables import LogTables


@lru_cache(maxsize=32)
def _subset_masks(n: int) -> tuple[np.ndarray, np.ndarray]:
    """Membership masks for all subsets of n items and their parity signs.

    Returns:
        Tuple of (masks, signs): masks has shape (2**n, n) with row s marking
        members of subset s; signs[s] = (-1)**(n - |s|).
    """
    codes = np.arange(2**n)[:, np.newaxis]
    masks = ((codes >> np.arange(n)) & 1).astype(bool)
    signs = np.where((n - masks.sum(axis=1)) % 2 == 0, 1.0, -1.0)
    masks.setflags(write=False)
    signs.setflags(write=False)
    return masks, signs


def _log_subset_sums(masks: np.ndarray, freqs: np.ndarray) -> np.ndarray:
    """log of summed frequencies per subset; -inf for the empty subset."""
    sums = masks.astype(np.float64) @ freqs
    out = np.full(sums.shape, -np.inf)
    pos = sums > 0.0
    out[pos] = np.log(sums[pos])
    return out


def _log_power(logp: np.ndarray, e: int) -> np.ndarray:
    """e * log(p) with the convention 0**0 = 1."""
    if e == 0:
        return np.zeros_like(logp)
    return e * logp


def _log_signed_sum(logs: np.ndarray, signs: np.ndarray) -> float:
    """log(sum(signs * exp(logs))), -inf when the sum is not positive."""
    logs = np.ravel(logs)
    signs = np.ravel(signs)
    finite = np.isfinite(logs)
    if not finite.any():
        return -np.inf
    logs = logs[finite]
    amax = logs.max()
    total = float(np.dot(signs[finite], np.exp(logs - amax)))
    if total <= 0.0:
        return -np.inf
    return float(amax + np.log(total))


def marker_log_prob(u: np.ndarray, n: int, probs: np.ndarray) -> float:
    """log P(U | n): probability that n strains show exactly the alleles U.

    Args:
        u: Distinct allele indices detected in the sample.
        n: Complexity of infection.
        probs: Log allele frequencies for the marker.

    Returns:
        Log probability; 0.0 for an empty set (missing marker) and -inf when
        more alleles are observed than there are strains.
    """
    u = np.asarray(u, dtype=np.intp)
    if u.size == 0:
        return 0.0
    if u.size > n:
        return -np.inf
    masks, signs = _subset_masks(u.size)
    lp = _log_subset_sums(masks, np.exp(probs[u]))
    return _log_signed_sum(_log_power(lp, n), signs)


def log_joint_prob(
    ux: np.ndarray,
    uy: np.ndarray,
    nx: int,
    ny: int,
    probs: np.ndarray,
    kmax: int,
) -> np.ndarray:
    """log P(Ux, Uy | k) for k = 0..kmax IBD strain pairs.

    Args:
        ux, uy: Distinct allele indices of the two samples.
        nx, ny: Complexities of infection.
        probs: Log allele frequencies for the marker.
        kmax: Largest number of IBD pairs to evaluate (<= min(nx, ny)).

    Returns:
        Array of shape (kmax + 1,).
    """
    ux = np.asarray(ux, dtype=np.intp)
    uy = np.asarray(uy, dtype=np.intp)
    out = np.full(kmax + 1, -np.inf)
    out[0] = marker_log_prob(ux, nx, probs) + marker_log_prob(uy, ny, probs)
    if kmax == 0:
        return out

    shared, ix, iy = np.intersect1d(ux, uy, assume_unique=True, return_indices=True)
    if shared.size == 0:
        return out

    mx, sx = _subset_masks(ux.size)
    my, sy = _subset_masks(uy.size)
    lpx = _log_subset_sums(mx, np.exp(probs[ux]))
    lpy = _log_subset_sums(my, np.exp(probs[uy]))

    # p(Vx & Vy) only involves shared alleles
    pxy = (mx[:, ix] * np.exp(probs[shared])) @ my[:, iy].T.astype(np.float64)
    lpxy = np.full(pxy.shape, -np.inf)
    pos = pxy > 0.0
    lpxy[pos] = np.log(pxy[pos])

    signs = np.outer(sx, sy)
    for k in range(1, kmax + 1):
        terms = (
            _log_power(lpx, nx - k)[:, np.newaxis]
            + _log_power(lpy, ny - k)[np.newaxis, :]
            + _log_power(lpxy, k)
        )
        out[k] = _log_signed_sum(terms, signs)
    return out


def prob_ux_uy(
    ux: np.ndarray,
    uy: np.ndarray,
    nx: int,
    ny: int,
    probs: np.ndarray,
    M: int,
    tables: LogTables,
    equalr: bool = False,
    mnewton: bool = True,
    logr: GridTransform | None = None,
) -> np.ndarray:
    """Log-likelihood contribution of one marker for a pair of samples.

    Args:
        ux, uy: Distinct allele indices detected in each sample.
        nx, ny: Complexities of infection.
        probs: Log population allele frequencies for the marker. Not checked
            for normalisation.
        M: Number of related strain pairs.
        tables: Shared log / log-factorial tables.
        equalr: All M relatedness components share one value.
        mnewton: Return fast-path coefficients instead of a grid curve.
            Only available for M = 1.
        logr: Grid transform; required when ``mnewton`` is False.

    Returns:
        If ``mnewton``: array [c0, c1] such that the marker log-likelihood is
        c0 + log1p(c1 * r); c1 = -1 when no allele is shared.
        Otherwise: array of shape (neval,) with log-likelihoods over the grid.

    Raises:
        ConfigurationError: If the fast path is requested for M > 1 or no
            grid transform is supplied in grid mode.

    Example:
        >>> probs = np.log(np.full(7, 1 / 7))
        >>> tables = LogTables.build(6)
        >>> prob_ux_uy([0, 2, 6], [1, 6], 5, 6, probs, 1, tables).shape
        (2,)
    """
    ux = np.asarray(ux, dtype=np.intp)
    uy = np.asarray(uy, dtype=np.intp)
    probs = np.asarray(probs, dtype=np.float64)

    if mnewton and M != 1:
        raise ConfigurationError("Newton fast path is only available for M = 1")
    if not mnewton and logr is None:
        raise ConfigurationError("grid mode requires a grid transform")
    if not mnewton and M > 1 and (logr.M != M or logr.equalr != equalr):
        raise ConfigurationError(
            f"grid transform built for M={logr.M}, equalr={logr.equalr} "
            f"does not match M={M}, equalr={equalr}"
        )

    has_shared = np.intersect1d(ux, uy, assume_unique=True).size > 0
    ljoint = log_joint_prob(ux, uy, nx, ny, probs, M if has_shared else 0)
    lp0 = ljoint[0]

    if M == 1:
        lp1 = ljoint[1] if has_shared else -np.inf
        if mnewton:
            slope = np.expm1(lp1 - lp0) if np.isfinite(lp1) else -1.0
            return np.array([lp0, slope])
        r = logr.grid[0]
        llik = np.empty(logr.neval)
        at0 = r == 0.0
        at1 = r == 1.0
        mid = ~(at0 | at1)
        llik[at0] = lp0
        llik[at1] = lp1
        llik[mid] = np.logaddexp(
            logr.log1r[0, mid] + lp0, logr.logr[0, mid] + lp1
        )
        return llik

    if not has_shared:
        # only k = 0 is possible: P(k = 0 | r) = prod(1 - r)
        llik = np.full(logr.neval, -np.inf)
        free = logr.m1 == 0
        llik[free] = logr.sum1r[free] + lp0
        return llik

    logpk = logr.log_pk(tables)
    return np.logaddexp.reduce(logpk + ljoint[:, np.newaxis], axis=0)
