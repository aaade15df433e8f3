"""Pairwise relatedness between polyclonal samples.

Key functions:
- generate_grid / log_grid: relatedness grid and its cached log transform
- prob_ux_uy: per-marker log-likelihood kernel
- ibd_pair: estimate, p-value and confidence interval for one pair
- ibd_dat: the same over all pairs of one or two datasets
- ibd_est_m: select the number of related strain pairs
"""

from polyrel.ibd.data import Sample, prepare_afreq
from polyrel.ibd.dataset import RelatednessMatrix, ibd_dat
from polyrel.ibd.estm import MEstimate, ibd_est_m
from polyrel.ibd.grid import GridTransform, generate_grid, log_grid
from polyrel.ibd.kernel import log_joint_prob, marker_log_prob, prob_ux_uy
from polyrel.ibd.pair import PairResult, ibd_pair
from polyrel.ibd.stats import chi2_critical, lrt_pvalue, profile_ci
from polyrel.ibd.tables import LogTables

__all__ = [
    "GridTransform",
    "LogTables",
    "MEstimate",
    "PairResult",
    "RelatednessMatrix",
    "Sample",
    "chi2_critical",
    "generate_grid",
    "ibd_dat",
    "ibd_est_m",
    "ibd_pair",
    "log_grid",
    "log_joint_prob",
    "lrt_pvalue",
    "marker_log_prob",
    "prepare_afreq",
    "prob_ux_uy",
    "profile_ci",
]
