"""Configuration dataclasses for polyrel.

EstimationConfig gathers the options shared by the pairwise estimator and
the dataset driver and validates their combinations eagerly, before any
per-marker work starts.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from polyrel.errors import ConfigurationError


@dataclass
class EstimationConfig:
    """Options for relatedness estimation.

    Attributes:
        M: Number of related strain pairs.
        equalr: Constrain all M relatedness components to one value.
        mnewton: Use Newton's method (M = 1 only). None selects Newton when
            M = 1 and no confidence interval is requested.
        pval: Compute a likelihood-ratio p-value against ``rnull``.
        confint: Compute a profile-likelihood confidence interval.
        rnull: Null relatedness, scalar or length-M vector.
        alpha: Significance level for the confidence interval.
        nr: Grid resolution (intervals on [0, 1]) when the grid is generated.
        tol: Newton convergence tolerance on the step size.
        maxiter: Newton iteration cap.
    """

    M: int = 1
    equalr: bool = False
    mnewton: bool | None = None
    pval: bool = True
    confint: bool = False
    rnull: float | np.ndarray = 0.0
    alpha: float = 0.05
    nr: int = 1000
    tol: float = 1e-8
    maxiter: int = 50

    def validate(self) -> None:
        """Check option combinations.

        Raises:
            ConfigurationError: On any inconsistent or out-of-range option.
        """
        if int(self.M) != self.M or self.M < 1:
            raise ConfigurationError(f"M must be a positive integer, got {self.M}")
        if self.mnewton and self.M != 1:
            raise ConfigurationError("Newton's method is only available for M = 1")
        if self.confint and self.M > 1 and not self.equalr:
            raise ConfigurationError(
                "confidence intervals need a scalar relatedness (M = 1 or equalr)"
            )
        if not 0.0 < self.alpha < 1.0:
            raise ConfigurationError(f"alpha must be in (0, 1), got {self.alpha}")
        if self.nr < 1:
            raise ConfigurationError(f"nr must be >= 1, got {self.nr}")
        if self.tol <= 0.0 or self.maxiter < 1:
            raise ConfigurationError("tol must be positive and maxiter >= 1")
        self.null_vector()

    def resolved_mnewton(self) -> bool:
        """Estimation mode after applying the default rule."""
        if self.mnewton is None:
            return self.M == 1 and not self.confint
        return bool(self.mnewton)

    def null_vector(self) -> np.ndarray:
        """Null relatedness as a vector matching the grid rows.

        Returns:
            Array of length 1 under equal-r or M = 1, length M otherwise.

        Raises:
            ConfigurationError: If values fall outside [0, 1] or the length
                does not match.
        """
        rnull = np.atleast_1d(np.asarray(self.rnull, dtype=np.float64))
        nrow = 1 if self.equalr else self.M
        if rnull.size == 1:
            rnull = np.repeat(rnull, nrow)
        if rnull.ndim != 1 or rnull.size != nrow:
            raise ConfigurationError(
                f"rnull must be a scalar or a vector of length {nrow}"
            )
        if np.isnan(rnull).any() or (rnull < 0.0).any() or (rnull > 1.0).any():
            raise ConfigurationError("rnull must lie in [0, 1]")
        return rnull

    def null_on_boundary(self) -> bool:
        """Whether any null component sits at 0 or 1."""
        rnull = self.null_vector()
        return bool(((rnull == 0.0) | (rnull == 1.0)).any())
