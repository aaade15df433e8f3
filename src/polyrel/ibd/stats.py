"""Likelihood-ratio p-values and profile-likelihood confidence intervals.

Reference distributions come from JAX's scipy port, in 64-bit precision.
"""

from __future__ import annotations

import numpy as np
from jax.scipy.stats import chi2, norm

from polyrel.core.jax_config import configure_jax

# Ensure 64-bit precision
configure_jax()


def chi2_critical(alpha: float) -> float:
    """Upper-alpha quantile of the chi-squared distribution with 1 df.

    Uses chi2_1 = Z**2, so the quantile is norm.ppf(1 - alpha / 2)**2.
    """
    z = norm.ppf(1.0 - alpha / 2.0)
    return float(z * z)


def lrt_pvalue(llik_max: float, llik_null: float, boundary: bool = False) -> float:
    """p-value of the likelihood-ratio test against a null relatedness.

    The statistic 2 * (llik_max - llik_null) is referred to chi2 with 1 df.
    When the null lies on the boundary of the parameter space (r = 0 or
    r = 1) the statistic follows a 50:50 mixture of a point mass at zero and
    chi2_1, so the tail probability is halved.

    Args:
        llik_max: Maximised log-likelihood.
        llik_null: Log-likelihood at the null value.
        boundary: Whether the null value is 0 or 1.

    Returns:
        p-value in [0, 1]; exactly 1 when the statistic is not positive.
        NaN when the maximised log-likelihood is not finite, since the
        data are then impossible under every candidate relatedness.
    """
    if not np.isfinite(llik_max):
        return float("nan")
    if np.isneginf(llik_null):
        return 0.0
    stat = 2.0 * (llik_max - llik_null)

    # Guard against negative statistic (numerical artifact)
    if stat <= 0:
        return 1.0

    p = float(chi2.sf(stat, df=1))
    return 0.5 * p if boundary else p


def profile_ci(
    llik: np.ndarray,
    values: np.ndarray,
    alpha: float = 0.05,
    llik_max: float | None = None,
) -> tuple[float, float]:
    """Profile-likelihood confidence interval on a grid.

    The interval spans the smallest and largest grid values whose
    log-likelihood is at least llik_max - chi2_critical(alpha) / 2. Endpoints
    are grid values; no interpolation is done.

    Args:
        llik: Log-likelihood curve over the grid, shape (neval,).
        values: Scalar relatedness value of each grid point, shape (neval,).
        alpha: Significance level; the interval has 1 - alpha coverage.
        llik_max: Maximum log-likelihood. Defaults to the curve maximum.

    Returns:
        Tuple of (lower, upper).
    """
    llik = np.asarray(llik, dtype=np.float64)
    values = np.asarray(values, dtype=np.float64)
    curve = np.where(np.isnan(llik), -np.inf, llik)
    if llik_max is None:
        llik_max = float(curve.max())

    inside = curve >= llik_max - chi2_critical(alpha) / 2.0
    if not inside.any():
        inside = curve == curve.max()
    return float(values[inside].min()), float(values[inside].max())
