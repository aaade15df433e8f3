"""Pytest fixtures for the polyrel test suite."""

from __future__ import annotations

from collections.abc import Callable

import numpy as np
import pytest

from polyrel.ibd import Sample

# =============================================================================
# Test Tier System
# =============================================================================
#
# tier0 - Fast unit tests: grid transform, kernel, optimizer, statistics.
# tier1 - End-to-end estimation on simulated pairs and datasets.
# tier2 - Slow tests: worker pools, larger datasets. Alias: slow.
#
#   pytest -m tier0             # Fast tests only
#   pytest -m "not tier2"       # Exclude slow tests
# =============================================================================


def simulate_afreq(
    rng: np.random.Generator, n_markers: int, min_alleles: int = 3, max_alleles: int = 8
) -> list[np.ndarray]:
    """Log allele frequencies drawn from a flat Dirichlet per marker."""
    afreq = []
    for _ in range(n_markers):
        k = int(rng.integers(min_alleles, max_alleles + 1))
        afreq.append(np.log(rng.dirichlet(np.ones(k))))
    return afreq


def draw_strains(
    rng: np.random.Generator, afreq: list[np.ndarray], n: int
) -> np.ndarray:
    """Allele carried by each of n strains at each marker, shape (n, n_markers)."""
    strains = np.empty((n, len(afreq)), dtype=int)
    for t, f in enumerate(afreq):
        p = np.exp(f)
        strains[:, t] = rng.choice(p.size, size=n, p=p / p.sum())
    return strains


def observe(strains: np.ndarray) -> list[list[int]]:
    """Unphased observation: the set of distinct alleles per marker."""
    return [sorted(set(strains[:, t].tolist())) for t in range(strains.shape[1])]


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(2024)


@pytest.fixture
def afreq(rng) -> list[np.ndarray]:
    """Log allele frequencies for 80 markers with 3-8 alleles each."""
    return simulate_afreq(rng, 80)


@pytest.fixture
def simulate_pair(rng) -> Callable:
    """Factory for simulated pairs sharing ``n_shared`` IBD strains."""

    def _simulate(afreq, nx, ny, n_shared=0):
        sx = draw_strains(rng, afreq, nx)
        sy = draw_strains(rng, afreq, ny)
        sy[:n_shared] = sx[:n_shared]
        return [observe(sx), observe(sy)]

    return _simulate


@pytest.fixture
def example_marker() -> dict:
    """Single marker: Ux={1,3,7}, Uy={2,7} (0-based here), COI 5 and 6, 7 alleles."""
    aft = np.random.default_rng(7).uniform(size=7)
    return {
        "ux": np.array([0, 2, 6]),
        "uy": np.array([1, 6]),
        "nx": 5,
        "ny": 6,
        "probs": np.log(aft / aft.sum()),
    }


@pytest.fixture
def dataset25() -> tuple[list[Sample], list[int], list[np.ndarray]]:
    """25 simulated samples over 15 markers with COI 1-3, some related."""
    rng = np.random.default_rng(11)
    afreq = simulate_afreq(rng, 15)
    coi = [int(c) for c in rng.integers(1, 4, size=25)]
    strains = [draw_strains(rng, afreq, n) for n in coi]
    # sample 1 shares a strain with sample 0
    strains[1][0] = strains[0][0]
    samples = [Sample(f"S{i:02d}", observe(s)) for i, s in enumerate(strains)]
    return samples, coi, afreq
