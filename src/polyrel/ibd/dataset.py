"""Relatedness estimation over all sample pairs of one or two datasets.

Every pair is estimated independently from read-only shared inputs (allele
frequencies, log tables, grid transform), so the pair loop is distributed
over worker processes when more than one worker is requested. A pair with
invalid input is logged and left missing; the rest of the run continues.
"""

from __future__ import annotations

import multiprocessing
import time
from collections.abc import Iterator, Mapping, Sequence
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from itertools import chain

import numpy as np
from loguru import logger

from polyrel.core.config import EstimationConfig
from polyrel.core.progress import progress_iterator
from polyrel.core.threading import blas_threads, get_worker_count
from polyrel.errors import ConfigurationError, InputValidityError
from polyrel.ibd.data import Sample, as_coi, as_samples, prepare_afreq
from polyrel.ibd.grid import GridTransform
from polyrel.ibd.pair import (
    build_grid,
    build_null_grid,
    estimate_pair,
    pair_markers,
)
from polyrel.ibd.tables import LogTables

LAYER_ESTIMATE = "estimate"
LAYER_PVALUE = "p_value"
LAYER_LOWER = "CI_lower"
LAYER_UPPER = "CI_upper"


@dataclass
class RelatednessMatrix:
    """Pairwise results of a dataset run.

    Attributes:
        values: (n_rows, n_cols) estimates, or (n_rows, n_cols, n_layers)
            when p-values or confidence bounds were requested. Missing cells
            are NaN.
        row_names: Sample names along axis 0.
        col_names: Sample names along axis 1.
        layers: Layer names along axis 2, in order.
    """

    values: np.ndarray
    row_names: list[str]
    col_names: list[str]
    layers: tuple[str, ...]

    def layer(self, name: str) -> np.ndarray:
        """2-D view of a single result layer."""
        if name not in self.layers:
            raise KeyError(f"layer {name!r} not in {self.layers}")
        if self.values.ndim == 2:
            return self.values
        return self.values[:, :, self.layers.index(name)]

    @property
    def estimate(self) -> np.ndarray:
        return self.layer(LAYER_ESTIMATE)


@dataclass(frozen=True)
class _RunContext:
    """Read-only inputs shared by every pair of a run."""

    afreq: list
    config: EstimationConfig
    tables: LogTables
    grid: GridTransform | None
    null_grid: GridTransform | None


@dataclass(frozen=True)
class _PairTask:
    """Per-pair inputs; shared state travels separately in _RunContext."""

    row: int
    col: int
    names: tuple[str, str]
    pair: tuple
    coi: tuple


# Set once per worker process by _init_worker
_worker_context: _RunContext | None = None


def _cell_values(
    task: _PairTask, context: _RunContext
) -> tuple[int, int, list[float] | None, str | None]:
    """Estimate one pair and flatten it into result layers.

    Returns:
        Tuple of (row, col, layer values or None, error message or None).
    """
    config = context.config
    try:
        nx, ny, markers = pair_markers(
            task.pair, task.coi, context.afreq, config.M, names=task.names
        )
    except InputValidityError as e:
        return task.row, task.col, None, str(e)

    tables = context.tables
    if tables.max_coi < max(nx, ny):
        tables = LogTables.build(max(nx, ny))
    res = estimate_pair(
        markers, nx, ny, context.afreq, config, tables,
        grid=context.grid, null_grid=context.null_grid,
    )
    cell = [res.total_relatedness(nx, ny, config.M)]
    if config.pval:
        cell.append(res.pvalue)
    if config.confint:
        cell.extend(res.ci)
    return task.row, task.col, cell, None


def _max_coi(*cois) -> int:
    """Largest usable complexity; invalid entries are reported per pair later."""
    best = 1
    for c in chain(*cois):
        try:
            best = max(best, int(c))
        except (TypeError, ValueError):
            continue
    return best


def _init_worker(context: _RunContext) -> None:
    """Receive the shared run inputs once per worker process."""
    global _worker_context
    _worker_context = context


def _run_task(task: _PairTask) -> tuple[int, int, list[float] | None, str | None]:
    with blas_threads(1):
        return _cell_values(task, _worker_context)


def _layer_names(config: EstimationConfig) -> tuple[str, ...]:
    layers = [LAYER_ESTIMATE]
    if config.pval:
        layers.append(LAYER_PVALUE)
    if config.confint:
        layers.extend([LAYER_LOWER, LAYER_UPPER])
    return tuple(layers)


def ibd_dat(
    samples: Sequence[Sample] | Mapping[str, Sequence],
    coi: Sequence[int] | Mapping[str, int],
    afreq: Sequence,
    samples2: Sequence[Sample] | Mapping[str, Sequence] | None = None,
    coi2: Sequence[int] | Mapping[str, int] | None = None,
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
    n_workers: int | None = 1,
    show_progress: bool = True,
) -> RelatednessMatrix:
    """Estimate relatedness for every pair of samples.

    With a single dataset, pairs (i, j) with i > j fill the lower triangle;
    the diagonal and upper triangle stay NaN. With a second dataset every
    (i in samples, j in samples2) pair is estimated and the result is dense.

    With M > 1 each estimate cell holds the overall relatedness
    sum(r) / min(nx, ny); an equal-r estimate counts as M equal components.

    Args:
        samples: Samples, or a mapping from name to per-marker allele indices.
        coi: Complexities aligned with ``samples`` (sequence or name mapping).
        afreq: Allele frequencies per marker, log scale unless
            ``freqlog=False``.
        samples2: Optional second dataset for cross comparison.
        coi2: Complexities for ``samples2``.
        M, pval, confint, rnull, alpha, mnewton, freqlog, reval, nr, equalr,
            tol, maxiter: As in :func:`polyrel.ibd.pair.ibd_pair`.
        n_workers: Worker processes. None uses POLYREL_WORKERS or the
            physical core count.
        show_progress: Show a progress bar over pairs.

    Returns:
        RelatednessMatrix with layers estimate, p_value, CI_lower, CI_upper
        (those requested, in this order).

    Raises:
        ConfigurationError: On inconsistent options, before any pair is
            evaluated.
        InputValidityError: If the dataset-level inputs do not line up
            (e.g. complexities missing for some samples).

    Example:
        >>> res = ibd_dat(samples, coi, afreq, pval=True, confint=True)
        >>> res.layer("p_value")[1, 0]
    """
    t_start = time.perf_counter()

    config = EstimationConfig(
        M=M, equalr=equalr, mnewton=mnewton, pval=pval, confint=confint,
        rnull=rnull, alpha=alpha, nr=nr, tol=tol, maxiter=maxiter,
    )
    config.validate()
    if (samples2 is None) != (coi2 is None):
        raise ConfigurationError("samples2 and coi2 must be given together")

    mnewton_resolved = config.resolved_mnewton()
    grid = None
    if not mnewton_resolved or confint:
        grid = build_grid(config, reval=reval)
    null_grid = build_null_grid(config) if pval and not mnewton_resolved else None

    rows = as_samples(samples)
    row_coi = as_coi(coi, rows)
    cross = samples2 is not None
    if cross:
        cols = as_samples(samples2)
        col_coi = as_coi(coi2, cols)
    else:
        cols, col_coi = rows, row_coi

    afreq = prepare_afreq(afreq, freqlog=freqlog)
    tables = LogTables.build(_max_coi(row_coi, col_coi))

    if cross:
        index_pairs = [(i, j) for i in range(len(rows)) for j in range(len(cols))]
    else:
        index_pairs = [(i, j) for i in range(len(rows)) for j in range(i)]

    def tasks() -> Iterator[_PairTask]:
        for i, j in index_pairs:
            yield _PairTask(
                row=i,
                col=j,
                names=(rows[i].name, cols[j].name),
                pair=(rows[i].alleles, cols[j].alleles),
                coi=(row_coi[i], col_coi[j]),
            )

    context = _RunContext(
        afreq=afreq, config=config, tables=tables, grid=grid, null_grid=null_grid
    )

    layers = _layer_names(config)
    values = np.full((len(rows), len(cols), len(layers)), np.nan)
    n_pairs = len(index_pairs)
    n_workers = get_worker_count(n_workers)
    mode = "newton" if mnewton_resolved else f"grid ({grid.neval} points)"
    logger.info(
        f"Estimating relatedness for {n_pairs} pairs "
        f"({len(afreq)} markers, M={M}, {mode}, {n_workers} workers)"
    )

    if n_workers > 1 and n_pairs > 1:
        executor = ProcessPoolExecutor(
            max_workers=n_workers,
            mp_context=multiprocessing.get_context("spawn"),
            initializer=_init_worker,
            initargs=(context,),
        )
        chunksize = max(1, n_pairs // (4 * n_workers))
        results = executor.map(_run_task, tasks(), chunksize=chunksize)
    else:
        executor = None
        results = (_cell_values(task, context) for task in tasks())

    n_failed = 0
    try:
        for i, j, cell, error in progress_iterator(
            results, total=n_pairs, desc="Pairs", enabled=show_progress
        ):
            if error is not None:
                n_failed += 1
                logger.warning(f"Skipping pair: {error}")
                continue
            values[i, j, :] = cell
    finally:
        if executor is not None:
            executor.shutdown()

    elapsed = time.perf_counter() - t_start
    logger.info(
        f"Relatedness complete: {n_pairs - n_failed}/{n_pairs} pairs "
        f"in {elapsed:.1f}s"
    )

    if len(layers) == 1:
        values = values[:, :, 0]
    return RelatednessMatrix(
        values=values,
        row_names=[s.name for s in rows],
        col_names=[s.name for s in cols],
        layers=layers,
    )
