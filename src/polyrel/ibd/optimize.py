"""Maximisation of the pairwise log-likelihood.

Two strategies are provided:
1. Newton-Raphson on the M = 1 fast-path coefficients. Each marker
   contributes c0 + log1p(c1 * r), so the summed log-likelihood is concave
   in r and its derivatives are closed-form. The iteration is kept inside a
   derivative-sign bracket and falls back to bisection whenever a Newton
   step would leave it, so the estimate never leaves [0, 1].
2. Exhaustive grid scan over a precomputed log-likelihood curve.
"""

from __future__ import annotations

import warnings

import numpy as np
from loguru import logger


def _derivatives(slopes: np.ndarray, r: float) -> tuple[float, float]:
    """First and second derivative of sum(log1p(slopes * r)) at r."""
    if r == 1.0 and (slopes == -1.0).any():
        return -np.inf, -np.inf
    g = slopes / (1.0 + slopes * r)
    return float(g.sum()), float(-(g * g).sum())


def fast_loglik(coefs: np.ndarray, r: float) -> float:
    """Summed log-likelihood at scalar r from fast-path coefficients.

    Args:
        coefs: Array of shape (n_markers, 2) with rows [c0, c1].
        r: Relatedness in [0, 1].

    Returns:
        Log-likelihood; -inf at r = 1 if any marker excludes r = 1.
    """
    coefs = np.asarray(coefs, dtype=np.float64).reshape(-1, 2)
    c0 = float(coefs[:, 0].sum())
    if r == 0.0:
        return c0
    slopes = coefs[:, 1]
    if r == 1.0 and (slopes == -1.0).any():
        return -np.inf
    return c0 + float(np.log1p(slopes * r).sum())


def newton_estimate(
    coefs: np.ndarray,
    r0: float | None = None,
    tol: float = 1e-8,
    maxiter: int = 50,
) -> tuple[float, int]:
    """Maximum-likelihood relatedness from fast-path coefficients.

    The optimum is pinned at 0 when the derivative at 0 is non-positive and
    at 1 when the derivative at 1 is non-negative; both are valid terminal
    states rather than failures.

    Args:
        coefs: Array of shape (n_markers, 2) with rows [c0, c1].
        r0: Starting value (warm start). Defaults to 0.5.
        tol: Convergence tolerance on the step size.
        maxiter: Maximum Newton iterations.

    Returns:
        Tuple of (r_hat, n_iter).
    """
    slopes = np.asarray(coefs, dtype=np.float64).reshape(-1, 2)[:, 1]

    if slopes.sum() <= 0.0:
        return 0.0, 0
    d_hi, _ = _derivatives(slopes, 1.0)
    if d_hi >= 0.0:
        return 1.0, 0

    lo, hi = 0.0, 1.0
    r = 0.5 if r0 is None or not 0.0 < r0 < 1.0 else float(r0)

    for it in range(1, maxiter + 1):
        d, d2 = _derivatives(slopes, r)
        if d == 0.0:
            return r, it
        if d > 0.0:
            lo = r
        else:
            hi = r

        r_new = r - d / d2 if d2 < 0.0 else np.nan
        if not lo < r_new < hi:
            r_new = 0.5 * (lo + hi)

        if abs(r_new - r) < tol:
            logger.debug(f"Newton converged in {it} iterations: r={r_new:.6g}")
            return float(r_new), it
        r = r_new

    warnings.warn(
        f"Newton iteration did not converge in {maxiter} iterations",
        RuntimeWarning,
        stacklevel=2,
    )
    return float(r), maxiter


def grid_argmax(llik: np.ndarray) -> int:
    """Index of the first maximum of a log-likelihood curve, ignoring NaN."""
    llik = np.asarray(llik, dtype=np.float64)
    return int(np.argmax(np.where(np.isnan(llik), -np.inf, llik)))
