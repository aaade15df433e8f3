"""Precomputed logarithm tables shared by every marker of a run.

The kernel needs log(j) for j = 1..max_coi and log(j!) for j = 0..max_coi
(the latter for binomial weights of IBD pair counts). These are built once
per run and passed by reference; nothing mutates them afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class LogTables:
    """Log and log-factorial lookup tables.

    Attributes:
        logj: log(1..max_coi), shape (max_coi,).
        factj: log(0!..max_coi!), shape (max_coi + 1,).
    """

    logj: np.ndarray
    factj: np.ndarray

    @classmethod
    def build(cls, max_coi: int) -> LogTables:
        """Build tables covering complexities up to ``max_coi``.

        Args:
            max_coi: Largest complexity of infection in the run (>= 1).

        Returns:
            LogTables with read-only arrays.
        """
        max_coi = max(int(max_coi), 1)
        logj = np.log(np.arange(1, max_coi + 1, dtype=np.float64))
        factj = np.concatenate(([0.0], np.cumsum(logj)))
        logj.setflags(write=False)
        factj.setflags(write=False)
        return cls(logj=logj, factj=factj)

    @property
    def max_coi(self) -> int:
        return len(self.logj)

    def log_choose(self, n: int, k: np.ndarray | int) -> np.ndarray:
        """log C(n, k), vectorised over k."""
        k = np.asarray(k)
        return self.factj[n] - self.factj[k] - self.factj[n - k]
