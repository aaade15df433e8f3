"""Input data structures and validation.

A sample is a name plus, per marker, the collection of detected allele
indices (0-based positions into that marker's frequency vector). An empty
collection means the marker was not typed for that sample.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import numpy as np

from polyrel.errors import InputValidityError


@dataclass(frozen=True)
class Sample:
    """Per-marker detected alleles for one sample.

    Attributes:
        name: Sample identifier.
        alleles: One collection of allele indices per marker.
    """

    name: str
    alleles: Sequence[Sequence[int]]

    @property
    def n_markers(self) -> int:
        return len(self.alleles)


def as_samples(samples: Sequence[Sample] | Mapping[str, Sequence]) -> list[Sample]:
    """Normalise a list of Samples or a name -> alleles mapping."""
    if isinstance(samples, Mapping):
        return [Sample(str(name), alleles) for name, alleles in samples.items()]
    out = []
    for i, s in enumerate(samples):
        out.append(s if isinstance(s, Sample) else Sample(f"sample{i + 1}", s))
    return out


def as_coi(coi, samples: list[Sample]) -> np.ndarray:
    """Complexities aligned with ``samples``; accepts a sequence or mapping."""
    if isinstance(coi, Mapping):
        try:
            values = [coi[s.name] for s in samples]
        except KeyError as e:
            raise InputValidityError(f"no complexity given for sample {e}") from None
    else:
        values = list(coi)
    if len(values) != len(samples):
        raise InputValidityError(
            f"{len(values)} complexities given for {len(samples)} samples"
        )
    return np.asarray(values)


def prepare_afreq(afreq: Sequence, freqlog: bool = True) -> list[np.ndarray]:
    """Per-marker allele frequencies as log-scale float arrays.

    Args:
        afreq: One frequency vector per marker.
        freqlog: Whether ``afreq`` is already on the log scale.

    Returns:
        List of read-only log-frequency arrays.
    """
    out = []
    for f in afreq:
        arr = np.array(f, dtype=np.float64)
        if not freqlog:
            with np.errstate(divide="ignore"):
                arr = np.log(arr)
        arr.setflags(write=False)
        out.append(arr)
    return out


def check_coi(n, label: str) -> int:
    """Validate a single complexity of infection.

    Raises:
        InputValidityError: If n is not an integer >= 1.
    """
    try:
        value = int(n)
    except (TypeError, ValueError):
        raise InputValidityError(
            f"complexity of {label} is not an integer: {n!r}"
        ) from None
    if value != n or value < 1:
        raise InputValidityError(f"complexity of {label} must be >= 1, got {n!r}")
    return value


def marker_alleles(
    alleles: Sequence[int],
    n: int,
    probs: np.ndarray,
    marker: int,
) -> np.ndarray:
    """Validate and deduplicate the alleles of one sample at one marker.

    Args:
        alleles: Detected allele indices.
        n: Complexity of the sample.
        probs: Log allele frequencies of the marker.
        marker: Marker index, for error context.

    Returns:
        Sorted unique allele indices.

    Raises:
        InputValidityError: If an index is outside the frequency vector,
            a detected allele has zero frequency, or more distinct alleles
            are detected than there are strains.
    """
    u = np.unique(np.asarray(alleles, dtype=np.int64))
    if u.size == 0:
        return u.astype(np.intp)
    if u[0] < 0 or u[-1] >= probs.size:
        raise InputValidityError(
            f"allele index outside frequency vector of length {probs.size}",
            marker=marker,
        )
    if np.isneginf(probs[u]).any():
        raise InputValidityError(
            f"detected allele {int(u[np.isneginf(probs[u])][0])} has zero frequency",
            marker=marker,
        )
    if u.size > n:
        raise InputValidityError(
            f"{u.size} distinct alleles detected with complexity {n}",
            marker=marker,
        )
    return u.astype(np.intp)
